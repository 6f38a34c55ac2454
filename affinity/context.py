"""Single-threaded affinity context with a serialized work queue.

An AffinityContext models a UI thread: work is posted from any thread and
drained by exactly one owning thread, in post order, one item at a time.

Usage:
    ui = AffinityContext("ui")
    ui.start()                 # dedicated daemon thread runs run_loop()

    ui.post(print, "hello")    # callable from any thread

    ui.shutdown()
    ui.join()

A host that already has a thread to give away calls ``run_loop()`` on it
instead of ``start()``.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from affinity.errors import ContextClosed

if TYPE_CHECKING:
    from affinity.task import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    """A queued callback, optionally tagged with the task it belongs to."""

    callback: Callable[..., Any]
    args: tuple[Any, ...] = ()
    owner: Task[Any] | None = field(default=None, repr=False)

    def run(self) -> None:
        self.callback(*self.args)


class AffinityContext:
    """A logical single thread of execution that owns a FIFO of work items.

    Thread Safety:
        - post() is thread-safe and never blocks on queued work
        - run_loop() runs only on the owning thread and is not reentrant
        - shutdown() is thread-safe and idempotent
    """

    def __init__(self, name: str = "ui") -> None:
        self.name = name
        self._queue: deque[WorkItem] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._owner: threading.Thread | None = None
        self._running = False
        self._thread: threading.Thread | None = None
        self._started = threading.Event()

    def __repr__(self) -> str:
        owner = self._owner.name if self._owner is not None else None
        return f"<AffinityContext {self.name!r} owner={owner!r} pending={len(self)}>"

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def __enter__(self) -> AffinityContext:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
        self.join()

    @property
    def owner_thread(self) -> threading.Thread | None:
        return self._owner

    @property
    def is_closed(self) -> bool:
        return self._closed

    def current_thread_is_owner(self) -> bool:
        return self._owner is not None and self._owner is threading.current_thread()

    def post(self, callback: Callable[..., Any], *args: Any, owner: Task[Any] | None = None) -> None:
        """Enqueue ``callback(*args)`` to run on the owning thread.

        Raises:
            ContextClosed: If the context has been shut down.
        """
        item = WorkItem(callback, args, owner)
        with self._cond:
            if self._closed:
                raise ContextClosed(self.name)
            self._queue.append(item)
            self._cond.notify()
        logger.debug(f"posted {item!r} to {self.name!r}")

    def has_pending_for(self, task: Task[Any]) -> bool:
        """Whether work belonging to ``task`` is waiting in the queue."""
        with self._cond:
            return any(item.owner is task for item in self._queue)

    def run_loop(self) -> None:
        """Drain the queue on the calling thread until shut down.

        The calling thread becomes the owner for the lifetime of the context.
        After shutdown() the loop finishes the items already queued and returns.

        Raises:
            RuntimeError: If called from inside a running loop, or if the
                context is already bound to another thread.
        """
        current = threading.current_thread()
        with self._cond:
            if self._running and self._owner is current:
                raise RuntimeError(f"run_loop() of context {self.name!r} is not reentrant")
            if self._owner is not None and self._owner is not current:
                raise RuntimeError(
                    f"Context {self.name!r} is bound to thread {self._owner.name!r}, "
                    f"cannot run its loop on {current.name!r}"
                )
            self._owner = current
            self._running = True
        self._started.set()
        logger.debug(f"context {self.name!r} loop started on {current.name}")

        try:
            while True:
                with self._cond:
                    while not self._queue and not self._closed:
                        self._cond.wait()
                    if not self._queue:
                        return
                    item = self._queue.popleft()
                self._run_item(item)
        finally:
            with self._cond:
                self._running = False
            logger.debug(f"context {self.name!r} loop stopped")

    def _run_item(self, item: WorkItem) -> None:
        try:
            item.run()
        except Exception:
            logger.exception(f"Work item {item!r} raised on context {self.name!r}")

    def start(self) -> None:
        """Run the loop on a dedicated daemon thread.

        Idempotent. Blocks until the loop owns its thread.

        Raises:
            RuntimeError: If another thread bound the context first.
        """
        with self._cond:
            if self._thread is not None:
                return
            if self._owner is not None:
                raise RuntimeError(
                    f"Context {self.name!r} is already bound to thread {self._owner.name!r}"
                )
            thread = threading.Thread(
                target=self._host_loop,
                name=f"{self.name}-thread",
                daemon=True,
            )
            self._thread = thread
            thread.start()

        # Wait outside the lock, run_loop needs it to bind the owner
        self._started.wait()
        with self._cond:
            if self._owner is thread:
                return
            self._thread = None
        thread.join()
        raise RuntimeError(f"Context {self.name!r} was bound to another thread before its loop started")

    def _host_loop(self) -> None:
        try:
            self.run_loop()
        except RuntimeError:
            logger.debug(f"context {self.name!r} was bound before its thread started")
        finally:
            # Unblock start() even when the loop never bound this thread
            self._started.set()

    def shutdown(self) -> None:
        """Refuse further posts and let the loop exit once drained."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        logger.debug(f"context {self.name!r} shut down")

    def join(self, timeout: float | None = 5.0) -> bool:
        """Wait for the thread started by start(). Returns True if it exited."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout=timeout)
        return not thread.is_alive()


__all__ = ["AffinityContext", "WorkItem"]
