import threading
from ibt.pipeline.dedup import DispatchDeduplicator, RecentPathIndex


def test_same_path_within_window_admitted_once():
    dedup = DispatchDeduplicator(window_s=2.0)
    assert dedup.admit("/b/file", now=100.0) is True
    assert dedup.admit("/b/file", now=100.2) is False
    assert dedup.admit("/b/file", now=103.2) is True


def test_window_measured_from_last_admission():
    dedup = DispatchDeduplicator(window_s=2.0)
    assert dedup.admit("/b/file", now=0.0)
    assert not dedup.admit("/b/file", now=1.9)
    assert dedup.admit("/b/file", now=2.0)


def test_distinct_paths_independent():
    dedup = DispatchDeduplicator(window_s=2.0)
    assert dedup.admit("/b/one", now=1.0)
    assert dedup.admit("/b/two", now=1.0)


def test_expired_entries_swept():
    index = RecentPathIndex(window_s=2.0)
    for i in range(100):
        index.touch(f"/b/{i}", now=float(i) * 0.01)
    index.touch("/b/late", now=10.0)
    assert len(index) == 1


def test_max_entries_bounds_memory():
    index = RecentPathIndex(window_s=1000.0, max_entries=10)
    for i in range(50):
        index.touch(f"/b/{i}", now=1.0)
    assert len(index) == 10
    assert index.seen_within("/b/49", now=1.0)
    assert not index.seen_within("/b/0", now=1.0)


def test_touch_refreshes_order():
    index = RecentPathIndex(window_s=5.0)
    index.touch("a", now=0.0)
    index.touch("b", now=1.0)
    index.touch("a", now=4.0)
    index.touch("c", now=5.5)   # b is 4.5s old, still inside the window
    assert index.seen_within("a", now=5.5)
    assert index.seen_within("b", now=5.5)
    index.touch("d", now=6.5)
    assert not index.seen_within("b", now=6.5)
    assert index.seen_within("a", now=8.9)
    assert not index.seen_within("a", now=9.0)


def test_concurrent_admissions_admit_exactly_one():
    dedup = DispatchDeduplicator(window_s=2.0)
    results = []
    barrier = threading.Barrier(16)

    def worker():
        barrier.wait()
        results.append(dedup.admit("/b/same", now=50.0))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1
