"""Task handle: state, outcome slot, completion signal and done callbacks.

A Task moves through

    PENDING -> SUSPENDED -> ... -> RAN_TO_COMPLETION | FAULTED | CANCELLED

The terminal transition happens exactly once. It wakes every blocked waiter
through the task's condition variable and then hands the task to each done
callback on the completing thread. Callbacks registered after the transition
are invoked immediately on the registering thread.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from affinity.errors import InvalidTaskStateError, TaskCancelledError
from affinity.types import TaskStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

_task_ids = itertools.count(1)


class Task(Generic[T]):
    """Handle for one asynchronous operation."""

    def __init__(self, name: str | None = None) -> None:
        self.id = next(_task_ids)
        self.name = name or f"task-{self.id}"
        self._lock = threading.Lock()
        self._completed = threading.Condition(self._lock)
        self._status = TaskStatus.PENDING
        self._result: T | None = None
        self._exception: BaseException | None = None
        self._callbacks: list[Callable[[Task[T]], None]] = []

    def __repr__(self) -> str:
        return f"<Task #{self.id} {self.name} {self._status.name}>"

    @property
    def status(self) -> TaskStatus:
        return self._status

    def done(self) -> bool:
        return self._status.is_terminal

    def cancelled(self) -> bool:
        return self._status is TaskStatus.CANCELLED

    @property
    def exception(self) -> BaseException | None:
        """The error a FAULTED task carries, otherwise None."""
        return self._exception

    def result(self) -> T:
        """Return the value of a completed task.

        Raises:
            InvalidTaskStateError: If the task is not terminal yet.
            TaskCancelledError: If the task was cancelled.
            Exception: The original error of a FAULTED task.
        """
        status = self._status
        if status is TaskStatus.RAN_TO_COMPLETION:
            return self._result  # type: ignore[return-value]
        if status is TaskStatus.FAULTED:
            assert self._exception is not None
            raise self._exception
        if status is TaskStatus.CANCELLED:
            raise TaskCancelledError(f"{self!r} was cancelled")
        raise InvalidTaskStateError(f"{self!r} has not completed")

    def wait_done(self, timeout: float | None = None) -> bool:
        """Block until the task is terminal. Returns False if the timeout expired."""
        with self._completed:
            return self._completed.wait_for(lambda: self._status.is_terminal, timeout)

    def add_done_callback(self, fn: Callable[[Task[T]], None]) -> None:
        with self._lock:
            if not self._status.is_terminal:
                self._callbacks.append(fn)
                return
        self._invoke(fn)

    def cancel(self) -> bool:
        """Move a PENDING or SUSPENDED task to CANCELLED.

        The body's pending continuation is discarded when it arrives. Returns
        False if the task had already reached a terminal state.
        """
        return self._finish(TaskStatus.CANCELLED, None, None)

    def _mark_suspended(self) -> None:
        with self._lock:
            if not self._status.is_terminal:
                self._status = TaskStatus.SUSPENDED

    def _set_result(self, value: T) -> bool:
        return self._finish(TaskStatus.RAN_TO_COMPLETION, value, None)

    def _set_exception(self, exc: BaseException) -> bool:
        return self._finish(TaskStatus.FAULTED, None, exc)

    def _finish(self, status: TaskStatus, value: T | None, exc: BaseException | None) -> bool:
        with self._completed:
            if self._status.is_terminal:
                return False
            self._status = status
            self._result = value
            self._exception = exc
            callbacks, self._callbacks = self._callbacks, []
            self._completed.notify_all()

        logger.debug(f"{self!r} finished on {threading.current_thread().name}")
        for fn in callbacks:
            self._invoke(fn)
        return True

    def _invoke(self, fn: Callable[[Task[T]], None]) -> None:
        try:
            fn(self)
        except Exception:
            logger.exception(f"Done callback {fn!r} of {self!r} raised")


def completed_task(value: Any, name: str | None = None) -> Task[Any]:
    """Return a task that already ran to completion with ``value``."""
    task: Task[Any] = Task(name=name)
    task._set_result(value)
    return task


__all__ = ["Task", "completed_task"]
