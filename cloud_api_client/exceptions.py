"""Exception hierarchy for the control plane client.

Task failures are normally reported as values (``TaskResult``); the
exceptions below cover HTTP failures, explicit unwrapping of a failed
task, and a strict convergence wait that did not converge.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from cloud_api_client.models import ErrorResponse


class CloudAPIError(Exception):
    """Base class for every error raised by the client"""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_error_dict(self) -> Dict[str, Any]:
        return {"kind": type(self).__name__, "message": self.message}


class TransportError(CloudAPIError):
    """The control plane answered with a non-success HTTP status"""

    def __init__(
        self, method: str, path: str, status: int, error: "ErrorResponse"
    ) -> None:
        self.method = method
        self.path = path
        self.status = status
        self.error = error
        super().__init__(
            f"{method} {path} failed with HTTP {status}: {error.description or error.type}"
        )

    @property
    def not_found(self) -> bool:
        return self.status == 404

    def to_error_dict(self) -> Dict[str, Any]:
        return {
            **super().to_error_dict(),
            "status": self.status,
            "error": self.error.model_dump(exclude_none=True),
        }


class TaskError(CloudAPIError):
    """A task reached its error status and its result was unwrapped"""

    def __init__(self, task_id: str, error: "ErrorResponse") -> None:
        self.task_id = task_id
        self.error = error
        super().__init__(
            f"Task {task_id} failed: {error.type or 'error'} "
            f"({error.status or 'unknown status'}) {error.description or ''}".rstrip()
        )

    def to_error_dict(self) -> Dict[str, Any]:
        return {
            **super().to_error_dict(),
            "task_id": self.task_id,
            "error": self.error.model_dump(exclude_none=True),
        }


class ConvergenceError(CloudAPIError):
    """A strict status wait ended without reaching the expected status"""

    def __init__(
        self,
        resource: str,
        resource_id: Any,
        status: Optional[Any],
        expected: Any,
        elapsed: float,
        timeout: float,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.status = status
        self.expected = expected
        self.elapsed = elapsed
        self.timeout = timeout
        super().__init__(
            f"{resource} {resource_id} ended up as '{_value(status)}' instead of "
            f"'{_value(expected)}' status after {elapsed:g}/{timeout:g}"
        )

    def to_error_dict(self) -> Dict[str, Any]:
        return {
            **super().to_error_dict(),
            "resource_id": self.resource_id,
            "status": _value(self.status),
            "expected": _value(self.expected),
            "elapsed": self.elapsed,
            "timeout": self.timeout,
        }


def _value(status: Any) -> Any:
    return getattr(status, "value", status)
