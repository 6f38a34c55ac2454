"""Enumerations shared across the scheduler."""

from __future__ import annotations

from enum import Enum, auto


class TaskStatus(Enum):
    PENDING = auto()
    SUSPENDED = auto()
    RAN_TO_COMPLETION = auto()
    FAULTED = auto()
    CANCELLED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({TaskStatus.RAN_TO_COMPLETION, TaskStatus.FAULTED, TaskStatus.CANCELLED})


class CaptureMode(Enum):
    """Where the code after a suspension point resumes.

    CAPTURE_CONTEXT resumes on the context that was ambient when the body
    suspended. NO_CAPTURE resumes on a worker thread.
    """

    CAPTURE_CONTEXT = auto()
    NO_CAPTURE = auto()

    @classmethod
    def from_flag(cls, continue_on_captured_context: bool) -> CaptureMode:
        return cls.CAPTURE_CONTEXT if continue_on_captured_context else cls.NO_CAPTURE


__all__ = ["CaptureMode", "TaskStatus"]
