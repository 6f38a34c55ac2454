"""Suspension requests yielded from task bodies.

Usage:
    def body(scheduler):
        yield Await(scheduler.delay(1.0), capture=CaptureMode.NO_CAPTURE)
        yield configure_await(scheduler.delay(1.0), False)  # same thing
        yield scheduler.delay(1.0)  # bare task: resumes on the captured context
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from affinity.task import Task
from affinity.types import CaptureMode


@dataclass(frozen=True)
class Await:
    """Suspend the current body until ``task`` is terminal.

    Args:
        task: The task to wait for.
        capture: Where the rest of the body resumes. Decided per suspension
            point, so one body may mix capturing and non-capturing awaits.
    """

    task: Task[Any]
    capture: CaptureMode = CaptureMode.CAPTURE_CONTEXT

    def __post_init__(self) -> None:
        if not isinstance(self.task, Task):
            raise TypeError(f"task must be Task, got {type(self.task).__name__}")
        if not isinstance(self.capture, CaptureMode):
            raise TypeError(f"capture must be CaptureMode, got {type(self.capture).__name__}")


def configure_await(task: Task[Any], continue_on_captured_context: bool) -> Await:
    return Await(task, CaptureMode.from_flag(continue_on_captured_context))


def as_await(yielded: Any) -> Await:
    """Normalise a value yielded by a body into an Await request."""
    if isinstance(yielded, Await):
        return yielded
    if isinstance(yielded, Task):
        return Await(yielded)
    raise TypeError(
        f"Task bodies may only yield Task or Await, got {type(yielded).__name__}: {yielded!r}"
    )


__all__ = ["Await", "as_await", "configure_await"]
