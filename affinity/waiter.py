"""Blocking bridge from synchronous callers to tasks.

BlockingWaiter sleeps on the task's condition variable, which is signalled by
whichever thread performs the terminal transition. No context has to run for
the wake-up to happen, so waiting from a context's owning thread succeeds
whenever the task's remaining work runs elsewhere.

Waiting from the owning thread for a task whose continuation is queued on that
same context never returns. Give the waiter a timeout to turn that into a
``WaitTimeout``, and the context to have it reported as ``DeadlockDetected``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from typing import Any, TypeVar

from affinity.context import AffinityContext
from affinity.errors import DeadlockDetected, WaitTimeout
from affinity.task import Task

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BlockingWaiter:
    """Block the calling thread until a task is terminal.

    Args:
        timeout: Upper bound in seconds for each ``wait``. None blocks forever.
        context: The context the caller runs on, used to diagnose deadlocks
            when the bound expires.
    """

    def __init__(self, timeout: float | None = None, context: AffinityContext | None = None) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError(f"timeout must be non-negative, got {timeout}")
        self.timeout = timeout
        self.context = context

    def wait(self, task: Task[T]) -> T:
        """Return the task's result, re-raising its error if it faulted.

        Raises:
            WaitTimeout: The bound expired first.
            DeadlockDetected: The bound expired while the calling thread owns
                ``context`` and a continuation of ``task`` sits in its queue.
            TaskCancelledError: The task was cancelled.
        """
        return self._wait(task, self.timeout)

    def wait_all(self, tasks: Iterable[Task[Any]]) -> list[Any]:
        """Wait for every task in order under one shared deadline."""
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        results = []
        for task in tasks:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            results.append(self._wait(task, remaining))
        return results

    def _wait(self, task: Task[T], timeout: float | None) -> T:
        thread = threading.current_thread().name
        logger.debug(f"{thread} waiting for {task!r} (timeout={timeout})")
        if not task.wait_done(timeout):
            raise self._timeout_error(task, timeout if timeout is not None else 0.0)
        return task.result()

    def _timeout_error(self, task: Task[Any], timeout: float) -> WaitTimeout:
        context = self.context
        if (
            context is not None
            and context.current_thread_is_owner()
            and context.has_pending_for(task)
        ):
            logger.warning(f"deadlock on context {context.name!r} waiting for {task!r}")
            return DeadlockDetected(task, timeout, context.name)
        return WaitTimeout(task, timeout)


def wait(task: Task[T], timeout: float | None = None) -> T:
    """Shorthand for ``BlockingWaiter(timeout).wait(task)``."""
    return BlockingWaiter(timeout).wait(task)


__all__ = ["BlockingWaiter", "wait"]
