import pytest

from core.compensation import CompensationStack
from core.deadline import Deadline, OperationTimedOut
from core.errors import NotCheckedIn, TransientStoreFailure


def test_unwind_runs_newest_first():
    calls = []
    stack = CompensationStack("test")
    stack.push("first", lambda: calls.append("first"))
    stack.push("second", lambda: calls.append("second"))

    assert stack.pending == ["second", "first"]
    assert stack.unwind() == []
    assert calls == ["second", "first"]
    assert len(stack) == 0


def test_unwind_collects_failures_and_keeps_going():
    calls = []

    def boom():
        raise ValueError("undo failed")

    stack = CompensationStack("test")
    stack.push("first", lambda: calls.append("first"))
    stack.push("broken", boom)
    stack.push("third", lambda: calls.append("third"))

    errors = stack.unwind()

    assert calls == ["third", "first"]
    assert len(errors) == 1
    assert str(errors[0]) == "undo failed"


def test_abort_raises_the_primary_error_with_rollback_errors_attached():
    def boom():
        raise ValueError("undo failed")

    stack = CompensationStack("check-out")
    stack.push("broken", boom)
    cause = KeyError("root")

    with pytest.raises(NotCheckedIn) as exc_info:
        stack.abort(NotCheckedIn("ABC-123"), cause)

    assert exc_info.value.__cause__ is cause
    assert [str(e) for e in exc_info.value.rollback_errors] == ["undo failed"]


def test_abort_with_nothing_to_undo():
    stack = CompensationStack("check-in")
    with pytest.raises(TransientStoreFailure) as exc_info:
        stack.abort(TransientStoreFailure("check-in", "down"))
    assert exc_info.value.rollback_errors == []


def test_clear_drops_pending_steps():
    calls = []
    stack = CompensationStack("test")
    stack.push("first", lambda: calls.append("first"))
    stack.clear()
    stack.unwind()
    assert calls == []


def test_deadline_expires():
    now = [100.0]
    deadline = Deadline("check-in", 5.0, clock=lambda: now[0])

    deadline.check("reserve spot")
    assert deadline.remaining() == 5.0

    now[0] = 105.0
    with pytest.raises(OperationTimedOut) as exc_info:
        deadline.check("create session")

    err = exc_info.value
    assert err.retryable
    assert err.detail == {"operation": "check-in", "step": "create session", "timeout_seconds": 5.0}
