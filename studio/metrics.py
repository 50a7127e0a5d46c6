"""
In-process metrics for the studio service, served by GET /metrics.

Signals:
  - Backend calls: `requests.<METHOD /resource>` and
    `requests_failed.<METHOD /resource>` counters plus call latency
  - Runs: `runs.started` and one `runs.<outcome>` counter per terminal outcome
  - Failures: `errors.<ErrorType>` counters and the last stage failures,
    tagged with the run id
  - Gauges: `active_runs` (0 or 1) and `start_time`

Nothing is persisted; a restart starts from zero.
"""

import time
import threading
from typing import Dict, List
from collections import defaultdict

_lock = threading.Lock()

_counters: Dict[str, int] = defaultdict(int)
_gauges: Dict[str, float] = defaultdict(float)

# Backend call durations in ms, newest last, per "METHOD /resource"
_latency_samples: Dict[str, List[float]] = defaultdict(list)
MAX_SAMPLES = 100

# Run failures, oldest first
_recent_errors: List[dict] = []
MAX_ERRORS = 50

RUN_OUTCOMES = ("succeeded", "failed", "cancelled")


def inc_counter(name: str, amount: int = 1):
    """Increment a counter (e.g. 'requests.GET /tasks', 'runs.failed')."""
    with _lock:
        _counters[name] += amount


def record_latency(endpoint: str, duration_ms: float):
    with _lock:
        samples = _latency_samples[endpoint]
        samples.append(duration_ms)
        if len(samples) > MAX_SAMPLES:
            del samples[:-MAX_SAMPLES]


def set_gauge(name: str, value: float):
    with _lock:
        _gauges[name] = value


def record_error(source: str, error_type: str, message: str, run_id: str = ""):
    """Log a failure from `source` (a stage name, or "pipeline") and bump errors.<error_type>."""
    with _lock:
        _counters[f"errors.{error_type}"] += 1
        _recent_errors.append({
            "timestamp": time.time(),
            "source": source,
            "error_type": error_type,
            "message": message[:300],
            "run_id": run_id,
        })
        if len(_recent_errors) > MAX_ERRORS:
            del _recent_errors[0]


def reset():
    """Clear everything. Used by tests."""
    with _lock:
        _counters.clear()
        _latency_samples.clear()
        _gauges.clear()
        _recent_errors.clear()


def _latency_stats(samples: List[float]) -> dict:
    ordered = sorted(samples)
    n = len(ordered)
    return {
        "p50": ordered[n // 2],
        # Too few samples for a meaningful p95; report the worst one
        "p95": ordered[int(n * 0.95)] if n >= 20 else ordered[-1],
        "avg": sum(ordered) / n,
        "count": n,
    }


def get_snapshot() -> dict:
    now = time.time()

    with _lock:
        latency = {
            endpoint: _latency_stats(samples)
            for endpoint, samples in _latency_samples.items()
            if samples
        }

        runs = {"started": _counters.get("runs.started", 0)}
        for outcome in RUN_OUTCOMES:
            runs[outcome] = _counters.get(f"runs.{outcome}", 0)

        error_patterns: Dict[str, int] = defaultdict(int)
        for err in _recent_errors:
            error_patterns[f"{err['source']}:{err['error_type']}"] += 1

        return {
            "timestamp": now,
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "runs": runs,
            "latency": latency,
            "recent_errors": list(_recent_errors[-10:]),
            "error_patterns": dict(error_patterns),
            "uptime_seconds": now - _gauges.get("start_time", now),
        }
