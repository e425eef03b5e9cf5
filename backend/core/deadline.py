import time
from typing import Callable

from .errors import TransientStoreFailure


class OperationTimedOut(TransientStoreFailure):
    def __init__(self, operation: str, step: str, timeout: float):
        super().__init__(
            operation, f"{operation} did not complete within {timeout}s (stopped before: {step})"
        )
        self.detail["step"] = step
        self.detail["timeout_seconds"] = timeout


class Deadline:
    """Time budget for one check-in / check-out, checked between store calls."""

    def __init__(self, operation: str, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.operation = operation
        self.timeout = timeout
        self._clock = clock
        self._expires_at = clock() + timeout

    def remaining(self) -> float:
        return self._expires_at - self._clock()

    def check(self, step: str) -> None:
        if self.remaining() <= 0:
            raise OperationTimedOut(self.operation, step, self.timeout)
