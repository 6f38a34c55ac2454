from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence

from loguru import logger as loguru_logger

from affinity import config
from affinity.harness import SCENARIOS, ScenarioReport, run_scenarios

logger = loguru_logger.bind(component="cli")

LOG_LEVELS = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]


class InterceptHandler(logging.Handler):
    """Route stdlib log records from the library modules into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        loguru_logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str) -> None:
    loguru_logger.remove()
    loguru_logger.add(sys.stderr, level=level)
    # The loguru sink filters; stdlib has no TRACE or SUCCESS level
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="affinity",
        description="Block on async work from a UI context and report what happens.",
    )
    parser.add_argument(
        "--scenario",
        action="append",
        choices=list(SCENARIOS),
        dest="scenarios",
        help="Scenario to run (repeatable). Runs all scenarios by default.",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help=f"Delay awaited by the task, in seconds (default: {config.SCENARIO_DELAY}).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=config.WAIT_TIMEOUT,
        help=f"Bound for the UI thread's blocking wait, in seconds (default: {config.WAIT_TIMEOUT}).",
    )
    parser.add_argument("--format", choices=["text", "json"], default="text")
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL,
        type=str.upper,
        choices=LOG_LEVELS,
        help=f"Log level (default: {config.LOG_LEVEL}, set by AFFINITY_LOG_LEVEL).",
    )
    return parser


def format_text(reports: Sequence[ScenarioReport]) -> str:
    lines = []
    for report in reports:
        status = "PASS" if report.passed else "FAIL"
        line = (
            f"[{status}] {report.scenario.name}: {report.outcome.value} "
            f"(expected {report.scenario.expected.value}, {report.elapsed:.3f}s)"
        )
        if report.deadlock:
            line += " deadlock detected"
        lines.append(line)
        if report.error is not None:
            lines.append(f"    {type(report.error).__name__}: {report.error}")
    passed = sum(report.passed for report in reports)
    lines.append(f"{passed}/{len(reports)} scenarios produced their expected outcome")
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.delay is not None and args.delay < 0:
        parser.error("--delay must be non-negative")
    if args.timeout < 0:
        parser.error("--timeout must be non-negative")
    # argparse does not check defaults against choices
    if args.log_level not in LOG_LEVELS:
        parser.error(f"invalid log level {args.log_level!r}, choose from {', '.join(LOG_LEVELS)}")

    configure_logging(args.log_level)
    logger.debug("running scenarios {}", args.scenarios or list(SCENARIOS))

    reports = run_scenarios(args.scenarios, delay_seconds=args.delay, wait_timeout=args.timeout)

    if args.format == "json":
        print(json.dumps([report.to_dict() for report in reports], indent=2))
    else:
        print(format_text(reports))
    return 0 if all(report.passed for report in reports) else 1


if __name__ == "__main__":
    sys.exit(main())
