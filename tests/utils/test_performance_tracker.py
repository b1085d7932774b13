import logging

from emberorm.utils import get_logger
from emberorm.utils.performance import PerformanceTracker


def test_performance_tracker_records_summary(caplog):
    caplog.set_level(logging.WARNING, logger="emberorm.tests.performance")
    tracker = PerformanceTracker(get_logger("tests.performance"), n_plus_one_threshold=3, sample_size=2)
    for i in range(3):
        tracker.record("fetch foo id__exact", [i], 1.5)

    assert any("Potential N+1 detected" in rec.message for rec in caplog.records)
    summary = tracker.summary()
    assert summary[0]["count"] == 3
    assert summary[0]["distinct_params"] == 3
    assert summary[0]["average_ms"] == 1.5


def test_repeated_identical_calls_are_not_reported(caplog):
    caplog.set_level(logging.WARNING, logger="emberorm.tests.performance")
    tracker = PerformanceTracker(get_logger("tests.performance"), n_plus_one_threshold=2)
    for _ in range(4):
        tracker.record("fetch foo id__exact", [7], 0.5)

    assert not caplog.records
    assert tracker.total_calls() == 4


def test_performance_tracker_reset():
    tracker = PerformanceTracker(get_logger("tests.performance"), n_plus_one_threshold=2)
    tracker.record("fetch foo ()", [], 0.5)
    tracker.reset()

    assert tracker.summary() == []
    assert tracker.total_calls() == 0
