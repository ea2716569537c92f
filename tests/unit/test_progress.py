import logging
import threading
import pytest
from ibt.domain.events import AllJobsIdle
from ibt.pipeline.progress import ProgressTracker


def test_counts_start_and_finish():
    tracker = ProgressTracker()
    tracker.job_started()
    tracker.job_started()
    assert tracker.snapshot() == (2, 2)
    tracker.job_finished()
    assert tracker.snapshot() == (1, 2)
    tracker.job_finished()
    assert tracker.snapshot() == (0, 2)


def test_finish_without_start_is_an_error():
    with pytest.raises(RuntimeError):
        ProgressTracker().job_finished()


def test_idle_event_and_log(event_bus, caplog):
    idle = []
    event_bus.subscribe(AllJobsIdle, idle.append)
    tracker = ProgressTracker(event_bus)

    with caplog.at_level(logging.INFO):
        tracker.job_started()
        tracker.job_started()
        tracker.job_finished()
        assert idle == []
        tracker.job_finished()

    assert [e.total for e in idle] == [2]
    assert "All jobs completed. Total files processed: 2" in caplog.text


def test_wait_idle_blocks_until_drained():
    tracker = ProgressTracker()
    tracker.job_started()
    assert tracker.wait_idle(timeout=0.05) is False

    timer = threading.Timer(0.05, tracker.job_finished)
    timer.start()
    assert tracker.wait_idle(timeout=5) is True
    assert tracker.total == 1


def test_wait_idle_returns_immediately_when_nothing_active():
    assert ProgressTracker().wait_idle(timeout=0) is True


def test_invariant_under_concurrency():
    tracker = ProgressTracker()
    violations = []

    def worker():
        for _ in range(200):
            tracker.job_started()
            active, total = tracker.snapshot()
            if not 0 <= active <= total:
                violations.append((active, total))
            tracker.job_finished()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert violations == []
    assert tracker.snapshot() == (0, 1600)
