"""Error types raised by the scheduler, contexts and waiters."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from affinity.task import Task


class AffinityError(Exception):
    """Base class for all errors raised by affinity."""


class AccessViolation(AffinityError):
    """Raised when a guarded resource is touched off its owning context.

    This is a programming error, not a transient fault: retrying from the
    same thread fails the same way.

    Attributes:
        context_name: Name of the context that owns the resource.
        thread_name: Name of the thread that attempted the access.
    """

    def __init__(self, context_name: str, thread_name: str) -> None:
        self.context_name = context_name
        self.thread_name = thread_name
        super().__init__(
            f"Resource owned by context {context_name!r} accessed from thread {thread_name!r}\n"
            f"Hint: await with CaptureMode.CAPTURE_CONTEXT or post the access to the owning context"
        )


class ContextClosed(AffinityError):
    """Raised when posting to a context that has been shut down."""

    def __init__(self, context_name: str) -> None:
        self.context_name = context_name
        super().__init__(f"Context {context_name!r} is shut down")


class WaitTimeout(AffinityError, TimeoutError):
    """Raised when a BlockingWaiter gives up before the task is terminal."""

    def __init__(self, task: Task, timeout: float, message: str | None = None) -> None:
        self.task = task
        self.timeout = timeout
        super().__init__(message or f"{task!r} did not complete within {timeout:.3f}s")


class DeadlockDetected(WaitTimeout):
    """A timed-out wait whose remaining work is queued behind the waiting thread.

    The waiting thread owns the context and the context holds a continuation of
    the awaited task, so the wait could never have been satisfied.
    """

    def __init__(self, task: Task, timeout: float, context_name: str) -> None:
        self.context_name = context_name
        super().__init__(
            task,
            timeout,
            f"Deadlock: {task!r} has a continuation queued on context {context_name!r}, "
            f"whose owning thread is blocked waiting for it (gave up after {timeout:.3f}s)",
        )


class TaskCancelledError(AffinityError):
    """Raised when observing the outcome of a cancelled task."""


class InvalidTaskStateError(AffinityError, RuntimeError):
    """Raised when reading the outcome of a task that is not terminal yet."""


__all__ = [
    "AccessViolation",
    "AffinityError",
    "ContextClosed",
    "DeadlockDetected",
    "InvalidTaskStateError",
    "TaskCancelledError",
    "WaitTimeout",
]
