"""Shared fixtures: a running UI context, a scheduler, and a way to run code on the UI thread."""

from collections.abc import Callable
from typing import Any

import pytest

from affinity import AffinityContext, BlockingWaiter, Scheduler, Task


@pytest.fixture
def scheduler():
    scheduler = Scheduler(max_workers=4)
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def ui():
    context = AffinityContext("ui")
    context.start()
    yield context
    context.shutdown()
    context.join()


def call_on(context: AffinityContext, fn: Callable[..., Any], *args: Any, timeout: float = 5.0) -> Any:
    """Run ``fn(*args)`` on ``context``'s thread and return (or raise) its outcome."""
    task: Task[Any] = Task(name=getattr(fn, "__name__", "call_on"))

    def run() -> None:
        try:
            task._set_result(fn(*args))
        except Exception as e:
            task._set_exception(e)

    context.post(run, owner=task)
    return BlockingWaiter(timeout).wait(task)


@pytest.fixture
def on_ui(ui):
    def run(fn: Callable[..., Any], *args: Any, timeout: float = 5.0) -> Any:
        return call_on(ui, fn, *args, timeout=timeout)

    return run
