"""Tests for the in-memory metrics collector."""

from studio import metrics


def test_counters_and_gauges():
    metrics.inc_counter("runs.started")
    metrics.inc_counter("runs.started", 2)
    metrics.set_gauge("active_runs", 1)

    snapshot = metrics.get_snapshot()

    assert snapshot["counters"] == {"runs.started": 3}
    assert snapshot["gauges"]["active_runs"] == 1


def test_latency_stats():
    for ms in range(1, 11):
        metrics.record_latency("GET /tasks", float(ms))

    stats = metrics.get_snapshot()["latency"]["GET /tasks"]

    assert stats["count"] == 10
    assert stats["p50"] == 6.0
    assert stats["p95"] == 10.0
    assert stats["avg"] == 5.5


def test_latency_keeps_last_samples_only():
    for ms in range(metrics.MAX_SAMPLES + 20):
        metrics.record_latency("POST /dramas", float(ms))

    assert metrics.get_snapshot()["latency"]["POST /dramas"]["count"] == metrics.MAX_SAMPLES


def test_record_error_counts_and_truncates():
    metrics.record_error("PollStoryboardJob", "PollTimeout", "x" * 500, run_id="r1")

    snapshot = metrics.get_snapshot()

    assert snapshot["counters"]["errors.PollTimeout"] == 1
    assert snapshot["error_patterns"] == {"PollStoryboardJob:PollTimeout": 1}
    error = snapshot["recent_errors"][0]
    assert error["run_id"] == "r1"
    assert len(error["message"]) == 300


def test_error_log_is_bounded():
    for i in range(metrics.MAX_ERRORS + 5):
        metrics.record_error("CreateScript", "ApiError", f"error {i}")

    snapshot = metrics.get_snapshot()

    assert snapshot["counters"]["errors.ApiError"] == metrics.MAX_ERRORS + 5
    assert snapshot["error_patterns"]["CreateScript:ApiError"] == metrics.MAX_ERRORS
    assert snapshot["recent_errors"][-1]["message"] == f"error {metrics.MAX_ERRORS + 4}"


def test_reset():
    metrics.inc_counter("runs.started")
    metrics.reset()

    assert metrics.get_snapshot()["counters"] == {}


def test_run_outcomes_summary():
    metrics.inc_counter("runs.started", 3)
    metrics.inc_counter("runs.succeeded")
    metrics.inc_counter("runs.cancelled", 2)

    snapshot = metrics.get_snapshot()

    assert snapshot["runs"] == {"started": 3, "succeeded": 1, "failed": 0, "cancelled": 2}
    assert "runs.failed" not in snapshot["counters"]
