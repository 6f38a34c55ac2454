"""Scheduler: timers, worker pool and the suspension primitive.

The scheduler drives task bodies written as generators. Each ``yield`` is a
suspension point naming a Task (and optionally a CaptureMode). When that task
completes, the rest of the body is resumed either on the context that was
ambient at the suspension point or on a worker thread:

    def body(scheduler, window):
        yield Await(scheduler.delay(3.0), capture=CaptureMode.NO_CAPTURE)
        window.present("details")   # runs on a worker here

    task = scheduler.start(body, scheduler, window, context=ui)

Resumptions are always dispatched, never run inline, even when the awaited
task has already completed.
"""

from __future__ import annotations

import heapq
import inspect
import itertools
import logging
import threading
import time
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from affinity import config
from affinity.context import AffinityContext
from affinity.effects import as_await
from affinity.errors import AccessViolation, ContextClosed, TaskCancelledError
from affinity.task import Task
from affinity.types import CaptureMode, TaskStatus

logger = logging.getLogger(__name__)

Body = Callable[..., Any]
BodyGenerator = Generator[Any, Any, Any]


class Continuation:
    """Single-shot callback resumed with the task it was waiting for.

    Python generators cannot be cloned, so once resumed a continuation cannot
    be used again.
    """

    def __init__(self, fn: Callable[[Task[Any]], None]) -> None:
        self._fn = fn
        self._used = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Continuation({self._fn!r}, used={self._used})"

    @property
    def used(self) -> bool:
        return self._used

    def __call__(self, completed: Task[Any]) -> None:
        with self._lock:
            if self._used:
                raise RuntimeError("Continuation already used (single-shot)")
            self._used = True
        self._fn(completed)


@dataclass(order=True)
class TimerEntry:
    deadline: float
    seq: int
    task: Task[None] = field(compare=False)


class TimerThread:
    """Completes delay tasks when their deadline passes.

    A heap of deadlines guarded by a condition variable, served by one lazily
    started daemon thread.
    """

    def __init__(self, name: str = config.TIMER_THREAD_NAME) -> None:
        self._name = name
        self._heap: list[TimerEntry] = []
        self._cond = threading.Condition()
        self._seq = itertools.count()
        self._thread: threading.Thread | None = None
        self._stopped = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._heap)

    def schedule(self, seconds: float, task: Task[None]) -> None:
        with self._cond:
            if self._stopped:
                raise RuntimeError("Cannot schedule a timer after shutdown")
            heapq.heappush(self._heap, TimerEntry(time.monotonic() + seconds, next(self._seq), task))
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
            self._cond.notify()

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._stopped:
                    if not self._heap:
                        self._cond.wait()
                        continue
                    remaining = self._heap[0].deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._stopped:
                    return
                entry = heapq.heappop(self._heap)
            logger.debug(f"timer fired for {entry.task!r}")
            entry.task._set_result(None)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the thread and cancel the delays that have not fired."""
        with self._cond:
            self._stopped = True
            pending = [entry.task for entry in self._heap]
            self._heap.clear()
            self._cond.notify_all()
        for task in pending:
            task.cancel()
        if self._thread is not None:
            self._thread.join(timeout=timeout)


def _body_name(body: Body) -> str:
    return getattr(body, "__qualname__", None) or getattr(body, "__name__", None) or repr(body)


def _close_body(task: Task[Any], gen: BodyGenerator) -> None:
    """Close a body that will not be resumed. A body that refuses to close is logged."""
    try:
        gen.close()
    except Exception:
        logger.exception(f"Body of {task!r} raised while being closed")


class Scheduler:
    """Posts continuations to affinity contexts or to a worker pool.

    Owns a timer thread for ``delay`` and a ``ThreadPoolExecutor`` for
    non-capturing resumptions. Use as a context manager or call ``shutdown()``.
    """

    def __init__(self, max_workers: int | None = None) -> None:
        self._max_workers = max_workers or config.MAX_WORKERS
        self._executor: ThreadPoolExecutor | None = None
        self._timers = TimerThread()
        self._lock = threading.Lock()
        self._is_shutdown = False

    def __enter__(self) -> Scheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Completion sources
    # ------------------------------------------------------------------

    def delay(self, seconds: float) -> Task[None]:
        """Return a task that completes after ``seconds`` on the timer thread."""
        if seconds < 0:
            raise ValueError(f"seconds must be non-negative, got {seconds}")
        task: Task[None] = Task(name=f"delay({seconds:g}s)")
        task._mark_suspended()
        self._timers.schedule(seconds, task)
        return task

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._is_shutdown:
                raise RuntimeError("Scheduler is shut down")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=config.WORKER_THREAD_PREFIX,
                )
            return self._executor

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        """Run ``fn(*args)`` on a worker thread. Errors are logged, not dropped."""
        self._get_executor().submit(self._run_logged, fn, args)

    @staticmethod
    def _run_logged(fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception(f"Worker callback {fn!r} raised")

    def await_(
        self,
        task: Task[Any],
        capture: CaptureMode,
        ambient_context: AffinityContext | None,
        continuation: Callable[[Task[Any]], None],
        *,
        owner: Task[Any] | None = None,
        on_undeliverable: Callable[[BaseException], None] | None = None,
    ) -> Continuation:
        """Resume ``continuation`` once ``task`` is terminal.

        With CAPTURE_CONTEXT and an ambient context the continuation is posted
        to that context; otherwise it goes to the worker pool. It runs at most
        once and is never invoked inline, even if ``task`` is already done.

        Args:
            task: The task being awaited.
            capture: Capture mode of this suspension point.
            ambient_context: The context the suspending code runs on, or None.
            continuation: Called with the completed ``task``.
            owner: The task the continuation belongs to, used to tag queued
                work for deadlock diagnosis.
            on_undeliverable: Receives the error if the continuation cannot be
                dispatched (closed context, scheduler shut down). Logged when
                omitted.

        Returns:
            The single-shot continuation wrapper.
        """
        k = Continuation(continuation)
        target = ambient_context if capture is CaptureMode.CAPTURE_CONTEXT else None

        def dispatch(completed: Task[Any]) -> None:
            try:
                if target is not None:
                    target.post(k, completed, owner=owner)
                else:
                    self.submit(k, completed)
            except (ContextClosed, RuntimeError) as e:
                if on_undeliverable is None:
                    logger.error(f"Dropped continuation for {completed!r}: {e}")
                else:
                    on_undeliverable(e)

        task.add_done_callback(dispatch)
        return k

    # ------------------------------------------------------------------
    # Task bodies
    # ------------------------------------------------------------------

    def start(
        self,
        body: Body,
        *args: Any,
        context: AffinityContext | None = None,
        **kwargs: Any,
    ) -> Task[Any]:
        """Run ``body`` up to its first suspension point on the calling thread.

        Args:
            body: A generator function (suspends at each ``yield``) or a plain
                function (completes the task with its return value).
            context: The ambient context of the first segment. The calling
                thread must own it.

        Raises:
            AccessViolation: If ``context`` is given and not owned by the
                calling thread.
        """
        if context is not None and not context.current_thread_is_owner():
            raise AccessViolation(context.name, threading.current_thread().name)
        task: Task[Any] = Task(name=_body_name(body))
        self._begin(task, body, args, kwargs, context)
        return task

    def run_on(self, context: AffinityContext, body: Body, *args: Any, **kwargs: Any) -> Task[Any]:
        """Start ``body`` on ``context``'s owning thread, with it as ambient context.

        Raises:
            ContextClosed: If the context has been shut down.
        """
        task: Task[Any] = Task(name=_body_name(body))
        context.post(self._begin, task, body, args, kwargs, context, owner=task)
        return task

    def _begin(
        self,
        task: Task[Any],
        body: Body,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        ambient: AffinityContext | None,
    ) -> None:
        if task.done():
            return
        try:
            produced = body(*args, **kwargs)
        except Exception as e:
            task._set_exception(e)
            return
        if not inspect.isgenerator(produced):
            task._set_result(produced)
            return
        self._advance(task, produced, ambient)

    def _advance(
        self,
        task: Task[Any],
        gen: BodyGenerator,
        ambient: AffinityContext | None,
        value: Any = None,
        error: BaseException | None = None,
    ) -> None:
        if task.done():
            logger.debug(f"discarding continuation of {task!r}")
            _close_body(task, gen)
            return

        try:
            yielded = gen.throw(error) if error is not None else gen.send(value)
        except StopIteration as stop:
            task._set_result(stop.value)
            return
        except Exception as e:
            task._set_exception(e)
            return

        try:
            request = as_await(yielded)
        except TypeError as e:
            _close_body(task, gen)
            task._set_exception(e)
            return

        task._mark_suspended()
        resume_on = ambient if request.capture is CaptureMode.CAPTURE_CONTEXT else None
        logger.debug(
            f"{task!r} suspended on {request.task!r} "
            f"({request.capture.name}, resumes on {resume_on.name if resume_on is not None else 'worker'})"
        )

        def abandon(e: BaseException) -> None:
            try:
                _close_body(task, gen)
            finally:
                task._set_exception(e)

        self.await_(
            request.task,
            request.capture,
            ambient,
            lambda completed: self._resume(task, gen, resume_on, completed),
            owner=task,
            on_undeliverable=abandon,
        )

    def _resume(
        self,
        task: Task[Any],
        gen: BodyGenerator,
        ambient: AffinityContext | None,
        completed: Task[Any],
    ) -> None:
        status = completed.status
        if status is TaskStatus.RAN_TO_COMPLETION:
            self._advance(task, gen, ambient, value=completed.result())
        elif status is TaskStatus.FAULTED:
            self._advance(task, gen, ambient, error=completed.exception)
        else:
            self._advance(task, gen, ambient, error=TaskCancelledError(f"{completed!r} was cancelled"))

    def shutdown(self, wait: bool = True) -> None:
        """Cancel pending delays and stop the timer and worker threads."""
        with self._lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
            executor = self._executor

        self._timers.stop()
        if executor is not None:
            executor.shutdown(wait=wait)
        logger.debug("scheduler shut down")


__all__ = ["Continuation", "Scheduler", "TimerEntry", "TimerThread"]
