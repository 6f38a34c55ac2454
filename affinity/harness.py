"""Scenario harness: three outcomes of blocking on async work from the UI thread.

Each scenario runs a test body on a fresh UI context. The body starts
``process_task`` (delay, then optionally touch the window) with the UI context
as ambient context and blocks on it with a bounded BlockingWaiter:

- ``no_capture``: the rest of the task runs on a worker, the wait returns.
- ``no_capture_ui_access``: the worker touches the window, AccessViolation.
- ``capture_context``: the rest of the task is queued behind the blocked UI
  thread. The wait times out and is reported as a deadlock.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from frozendict import frozendict
from loguru import logger as loguru_logger

from affinity import config
from affinity.context import AffinityContext
from affinity.effects import Await
from affinity.errors import DeadlockDetected, WaitTimeout
from affinity.guard import ResourceGuard, requires_owner
from affinity.scheduler import Scheduler
from affinity.types import CaptureMode
from affinity.waiter import BlockingWaiter

logger = loguru_logger.bind(component="harness")

# Extra time the outer wait allows on top of the scenario's own bounds.
_OUTER_GRACE = 5.0


class Window:
    """Stand-in for a UI window whose methods only work on the UI thread."""

    def __init__(self, context: AffinityContext) -> None:
        self.guard = ResourceGuard(context, self)
        self.presented: list[str] = []

    @requires_owner
    def present_view_controller(self, name: str) -> None:
        self.presented.append(name)


def process_task(
    scheduler: Scheduler,
    window: Window,
    delay_seconds: float,
    capture: CaptureMode,
    access_ui: bool,
):
    """Delay, then optionally touch the window. Returns the resuming thread's name."""
    # The ambient context is captured at this yield
    yield Await(scheduler.delay(delay_seconds), capture)

    thread = threading.current_thread().name
    logger.debug("task awaited, resumed on {}", thread)

    if access_ui:
        window.present_view_controller("details")
    return thread


class Outcome(Enum):
    SUCCESS = "success"
    EXCEPTION = "exception"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Scenario:
    name: str
    capture: CaptureMode
    access_ui: bool
    expected: Outcome
    description: str
    delay_seconds: float = config.SCENARIO_DELAY

    def with_delay(self, delay_seconds: float) -> Scenario:
        return replace(self, delay_seconds=delay_seconds)


SCENARIOS: frozendict[str, Scenario] = frozendict(
    {
        "no_capture": Scenario(
            name="no_capture",
            capture=CaptureMode.NO_CAPTURE,
            access_ui=False,
            expected=Outcome.SUCCESS,
            description="Wait synchronously, do not capture the context, do not touch the UI: no deadlock.",
        ),
        "no_capture_ui_access": Scenario(
            name="no_capture_ui_access",
            capture=CaptureMode.NO_CAPTURE,
            access_ui=True,
            expected=Outcome.EXCEPTION,
            description="Wait synchronously, do not capture the context, touch the UI: access violation.",
        ),
        "capture_context": Scenario(
            name="capture_context",
            capture=CaptureMode.CAPTURE_CONTEXT,
            access_ui=False,
            expected=Outcome.TIMEOUT,
            description="Wait synchronously and capture the context: deadlock.",
        ),
    }
)


@dataclass(frozen=True)
class ScenarioReport:
    scenario: Scenario
    outcome: Outcome
    elapsed: float
    error: BaseException | None = None
    deadlock: bool = False
    resumed_on: str | None = None

    @property
    def passed(self) -> bool:
        return self.outcome is self.scenario.expected

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario.name,
            "capture": self.scenario.capture.name,
            "access_ui": self.scenario.access_ui,
            "delay_seconds": self.scenario.delay_seconds,
            "expected": self.scenario.expected.value,
            "outcome": self.outcome.value,
            "passed": self.passed,
            "elapsed": round(self.elapsed, 4),
            "error": None if self.error is None else f"{type(self.error).__name__}: {self.error}",
            "deadlock": self.deadlock,
            "resumed_on": self.resumed_on,
        }


def run_scenario(
    scenario: Scenario,
    *,
    wait_timeout: float | None = None,
    max_workers: int | None = None,
) -> ScenarioReport:
    """Run one scenario on a fresh UI context and scheduler.

    Args:
        scenario: What to run.
        wait_timeout: Bound for the UI thread's blocking wait. Defaults to
            ``AFFINITY_WAIT_TIMEOUT``.
        max_workers: Worker pool size for the scheduler.
    """
    timeout = config.WAIT_TIMEOUT if wait_timeout is None else wait_timeout
    logger.info("running {}: {}", scenario.name, scenario.description)

    with Scheduler(max_workers=max_workers) as scheduler, AffinityContext(f"ui-{scenario.name}") as ui:
        window = Window(ui)
        waiter = BlockingWaiter(timeout=timeout, context=ui)

        def test_body() -> ScenarioReport:
            started = time.monotonic()
            task = scheduler.start(
                process_task,
                scheduler,
                window,
                scenario.delay_seconds,
                scenario.capture,
                scenario.access_ui,
                context=ui,
            )
            # Blocks the UI thread, which is the task's captured context
            try:
                resumed_on = waiter.wait(task)
            except WaitTimeout as e:
                return ScenarioReport(
                    scenario,
                    Outcome.TIMEOUT,
                    time.monotonic() - started,
                    error=e,
                    deadlock=isinstance(e, DeadlockDetected),
                )
            except Exception as e:
                return ScenarioReport(scenario, Outcome.EXCEPTION, time.monotonic() - started, error=e)
            return ScenarioReport(
                scenario, Outcome.SUCCESS, time.monotonic() - started, resumed_on=resumed_on
            )

        outer = scheduler.run_on(ui, test_body)
        report = BlockingWaiter(timeout=timeout + scenario.delay_seconds + _OUTER_GRACE).wait(outer)

    logger.info(
        "{} finished: {} (expected {}) in {:.3f}s",
        scenario.name,
        report.outcome.value,
        scenario.expected.value,
        report.elapsed,
    )
    return report


def run_scenarios(
    names: list[str] | None = None,
    *,
    delay_seconds: float | None = None,
    wait_timeout: float | None = None,
) -> list[ScenarioReport]:
    """Run the named scenarios (all of them by default) one after another.

    Raises:
        KeyError: If a name is not in SCENARIOS.
    """
    selected = list(SCENARIOS) if not names else names
    reports = []
    for name in selected:
        if name not in SCENARIOS:
            raise KeyError(f"Unknown scenario {name!r}, choose from {', '.join(SCENARIOS)}")
        scenario = SCENARIOS[name]
        if delay_seconds is not None:
            scenario = scenario.with_delay(delay_seconds)
        reports.append(run_scenario(scenario, wait_timeout=wait_timeout))
    return reports


__all__ = [
    "Outcome",
    "SCENARIOS",
    "Scenario",
    "ScenarioReport",
    "Window",
    "process_task",
    "run_scenario",
    "run_scenarios",
]
