import asyncio
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from cloud_api_client.models import ClientConfig
from cloud_api_client.subscription import SubscriptionAPI
from cloud_api_client.task import TaskPoller
from cloud_api_client.transport import HttpTransport


class CloudAPIClient:
    """Entry point: owns the HTTP transport and wires the task poller into each resource API

    Usage::

        async with CloudAPIClient(ClientConfig(base_url=...)) as client:
            result = await client.subscription.create_subscription(parameters)
    """

    def __init__(
        self,
        config: ClientConfig,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.config = config
        self.logger = logger
        self.sleep = sleep or asyncio.sleep
        self.transport = HttpTransport(config)
        self.task = TaskPoller(
            self.transport, interval=config.task_poll_interval, sleep=self.sleep
        )
        self.subscription = SubscriptionAPI(self.transport, self.task, sleep=self.sleep)

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "CloudAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
