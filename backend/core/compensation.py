import logging
from dataclasses import dataclass
from typing import Callable, List, NoReturn, Optional

from .errors import ParkingError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Compensation:
    description: str
    undo: Callable[[], object]


class CompensationStack:
    """Inverse actions for the writes an operation has committed so far.

    Each committed step pushes its inverse. On failure `unwind()` runs them
    newest first; an inverse that raises is logged and collected, and the
    remaining inverses still run.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self._stack: List[Compensation] = []

    def push(self, description: str, undo: Callable[[], object]) -> None:
        self._stack.append(Compensation(description, undo))

    def clear(self) -> None:
        self._stack.clear()

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def pending(self) -> List[str]:
        return [c.description for c in reversed(self._stack)]

    def unwind(self) -> List[Exception]:
        errors: List[Exception] = []
        while self._stack:
            step = self._stack.pop()
            try:
                step.undo()
            except Exception as exc:
                log.error(
                    "%s rollback step '%s' failed: %s", self.operation, step.description, exc
                )
                errors.append(exc)
            else:
                log.debug("%s rolled back: %s", self.operation, step.description)
        return errors

    def abort(self, error: ParkingError, cause: Optional[BaseException] = None) -> NoReturn:
        """Unwind, attach any rollback failures to `error`, then raise it."""
        error.rollback_errors.extend(self.unwind())
        if error.rollback_errors:
            log.error(
                "%s rollback incomplete (%d failure(s)) after: %s",
                self.operation, len(error.rollback_errors), error.message,
            )
        else:
            log.warning("%s failed: %s", self.operation, error.message)
        if cause is not None:
            raise error from cause
        raise error
