"""Environment-driven defaults.

Values are read once at import time:
    export AFFINITY_WAIT_TIMEOUT=2.5
    python -m affinity
"""

import os


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


WAIT_TIMEOUT = _float_env("AFFINITY_WAIT_TIMEOUT", 1.0)
SCENARIO_DELAY = _float_env("AFFINITY_SCENARIO_DELAY", 0.2)
MAX_WORKERS = _int_env("AFFINITY_MAX_WORKERS", 16)
LOG_LEVEL = os.environ.get("AFFINITY_LOG_LEVEL", "WARNING").upper()

WORKER_THREAD_PREFIX = "affinity-worker"
TIMER_THREAD_NAME = "affinity-timer"
