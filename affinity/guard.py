"""Context-affine resources.

A ResourceGuard ties a resource to the AffinityContext allowed to touch it,
the way a UI toolkit only lets its own thread manipulate views.

Usage:
    guard = ResourceGuard(ui, window)
    guard.access(lambda w: w.present("details"))   # AccessViolation off the UI thread

    class Window:
        def __init__(self, context):
            self.guard = ResourceGuard(context, self)

        @requires_owner
        def present(self, name): ...
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from functools import wraps
from typing import Any, Generic, ParamSpec, TypeVar

from affinity.context import AffinityContext
from affinity.errors import AccessViolation

R = TypeVar("R")
T = TypeVar("T")
P = ParamSpec("P")


class ResourceGuard(Generic[R]):
    def __init__(self, context: AffinityContext, resource: R) -> None:
        self.context = context
        self.resource = resource

    def __repr__(self) -> str:
        return f"ResourceGuard({self.context.name!r}, {self.resource!r})"

    def check(self) -> None:
        """Raise AccessViolation unless the current thread owns the context."""
        if not self.context.current_thread_is_owner():
            raise AccessViolation(self.context.name, threading.current_thread().name)

    def access(self, operation: Callable[[R], T]) -> T:
        self.check()
        return operation(self.resource)


def requires_owner(method: Callable[P, T]) -> Callable[P, T]:
    """Check ``self.guard`` before every call of the decorated method."""

    @wraps(method)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        owner: Any = args[0]
        owner.guard.check()
        return method(*args, **kwargs)

    return wrapper


__all__ = ["ResourceGuard", "requires_owner"]
