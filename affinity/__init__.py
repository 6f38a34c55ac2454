"""
affinity - Context-affine task scheduling and deadlock detection.

Models a single UI thread (AffinityContext), tasks whose bodies suspend at
``yield`` points and resume on the captured context or on a worker
(Scheduler), and a blocking waiter that bridges synchronous callers to those
tasks (BlockingWaiter). Blocking the UI thread on a task that resumes on the
UI thread deadlocks; the waiter reports that as DeadlockDetected.

Example:
    >>> from affinity import AffinityContext, Await, BlockingWaiter, CaptureMode, Scheduler
    >>>
    >>> def body(scheduler):
    ...     yield Await(scheduler.delay(0.1), CaptureMode.NO_CAPTURE)
    ...     return "done"
    >>>
    >>> with Scheduler() as scheduler, AffinityContext("ui") as ui:
    ...     task = scheduler.run_on(ui, body, scheduler)
    ...     BlockingWaiter(timeout=1.0).wait(task)
    'done'
"""

from affinity.context import AffinityContext, WorkItem
from affinity.effects import Await, configure_await
from affinity.errors import (
    AccessViolation,
    AffinityError,
    ContextClosed,
    DeadlockDetected,
    InvalidTaskStateError,
    TaskCancelledError,
    WaitTimeout,
)
from affinity.guard import ResourceGuard, requires_owner
from affinity.harness import (
    SCENARIOS,
    Outcome,
    Scenario,
    ScenarioReport,
    process_task,
    run_scenario,
    run_scenarios,
)
from affinity.scheduler import Continuation, Scheduler
from affinity.task import Task, completed_task
from affinity.types import CaptureMode, TaskStatus
from affinity.waiter import BlockingWaiter, wait

__all__ = [
    "SCENARIOS",
    "AccessViolation",
    "AffinityContext",
    "AffinityError",
    "Await",
    "BlockingWaiter",
    "CaptureMode",
    "ContextClosed",
    "Continuation",
    "DeadlockDetected",
    "InvalidTaskStateError",
    "Outcome",
    "ResourceGuard",
    "Scenario",
    "ScenarioReport",
    "Scheduler",
    "Task",
    "TaskCancelledError",
    "TaskStatus",
    "WaitTimeout",
    "WorkItem",
    "completed_task",
    "configure_await",
    "process_task",
    "requires_owner",
    "run_scenario",
    "run_scenarios",
    "wait",
]
