import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Union

from loguru import logger

from cloud_api_client.models import (
    ErrorResponse,
    Task,
    TaskResult,
    TaskStatus,
)

Sleep = Callable[[float], Awaitable[Any]]


class TaskPoller:
    def __init__(
        self,
        transport: Any,
        interval: float = 5.0,
        sleep: Optional[Sleep] = None,
    ):
        if interval <= 0:
            raise ValueError(f"Task poll interval must be positive, got {interval}")
        self.transport = transport
        self.interval = interval
        self.sleep = sleep or asyncio.sleep
        self.logger = logger

    async def get_task(self, task_id: Union[int, str]) -> Task:
        data = await self.transport.get(f"/tasks/{task_id}")
        return Task.model_validate(data)

    async def get_tasks(self) -> List[Task]:
        data = await self.transport.get("/tasks")
        if isinstance(data, dict):
            data = data.get("tasks", [])
        return [Task.model_validate(item) for item in data]

    async def wait_for_task_status(
        self,
        task_id: Union[int, str],
        expected_status: Union[TaskStatus, str] = TaskStatus.processing_completed,
    ) -> TaskResult:
        """Polls a task until it reaches the expected status or the error status.

        There is no timeout here; wrap the call in ``asyncio.wait_for`` to bound it.
        Transport failures are raised immediately and never retried.
        """
        expected = _status_value(expected_status)
        attempt = 0
        waited = 0.0

        while True:
            attempt += 1
            task = await self.get_task(task_id)
            self.logger.debug(
                f"Task {task_id} is '{task.status}', waiting for '{expected}' "
                f"(attempt {attempt}, waited {waited:g}s)"
            )

            if task.status == expected:
                return TaskResult(task_id=task.task_id, response=task.response)

            if task.status == TaskStatus.processing_error.value:
                return TaskResult(task_id=task.task_id, error=_task_error(task))

            await self.sleep(self.interval)
            waited += self.interval


def _task_error(task: Task) -> ErrorResponse:
    if task.response is not None and task.response.error is not None:
        return task.response.error
    return ErrorResponse(
        type="TASK_PROCESSING_ERROR",
        status=task.status,
        description=task.description,
    )


def _status_value(status: Union[TaskStatus, str]) -> str:
    return status.value if isinstance(status, TaskStatus) else status
