"""
Unit tests for the bounded callback pool.
"""

import logging
import threading
import time

import pytest

from tcpconsole.core.thread_pool import ThreadPool


class TestThreadPool:
    """Tests for ThreadPool."""

    def test_submit_runs_task(self):
        """Test a submitted callback runs with its arguments."""
        pool = ThreadPool(min_workers=1, max_workers=2)
        pool.start()
        done = threading.Event()
        received = []

        def task(value, flag=None):
            received.append((value, flag))
            done.set()

        try:
            assert pool.submit(task, args=("event",), kwargs={"flag": True})
            assert done.wait(2.0)
        finally:
            pool.shutdown()

        assert received == [("event", True)]

    def test_submit_before_start(self):
        """Test that an idle pool refuses work."""
        pool = ThreadPool()

        with pytest.raises(RuntimeError, match="not started"):
            pool.submit(lambda: None)

    def test_submit_after_shutdown(self):
        """Test that a stopped pool refuses work."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        pool.shutdown()

        with pytest.raises(RuntimeError):
            pool.submit(lambda: None)

    def test_invalid_max_workers(self):
        """Test the lower bound on max_workers."""
        with pytest.raises(ValueError):
            ThreadPool(max_workers=0)

    def test_min_workers_clamped(self):
        """Test min_workers never exceeds max_workers."""
        pool = ThreadPool(min_workers=10, max_workers=3)

        assert pool.min_workers == 3

    def test_concurrency_never_exceeds_max_workers(self):
        """Test the hard cap on callbacks running at once."""
        pool = ThreadPool(min_workers=1, max_workers=2)
        pool.start()

        lock = threading.Lock()
        running = [0]
        peak = [0]
        finished = []

        def task():
            with lock:
                running[0] += 1
                peak[0] = max(peak[0], running[0])
            time.sleep(0.05)
            with lock:
                running[0] -= 1
                finished.append(1)

        for _ in range(10):
            assert pool.submit(task)

        deadline = time.time() + 5.0
        while len(finished) < 10 and time.time() < deadline:
            time.sleep(0.01)
        pool.shutdown()

        assert len(finished) == 10
        assert peak[0] <= 2
        assert pool.worker_count == 0

    def test_full_queue_rejects_without_blocking(self):
        """Test a non-blocking submit on a full queue returns False."""
        pool = ThreadPool(min_workers=1, max_workers=1, queue_size=1)
        pool.start()
        started = threading.Event()
        release = threading.Event()

        def blocker():
            started.set()
            release.wait(2.0)

        try:
            assert pool.submit(blocker, block=False)
            assert started.wait(2.0)

            assert pool.submit(lambda: None, block=False) is True
            assert pool.submit(lambda: None, block=False) is False
        finally:
            release.set()
            pool.shutdown()

    def test_failing_task_does_not_kill_worker(self):
        """Test that a raising callback is contained."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        done = threading.Event()

        def boom():
            raise RuntimeError("callback failed")

        try:
            pool.submit(boom)
            pool.submit(done.set)
            assert done.wait(2.0)
            assert pool.stats["tasks"]["failed"] == 1
        finally:
            pool.shutdown()

    def test_shutdown_without_wait_discards_queue(self):
        """Test queued tasks are dropped on an immediate shutdown."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        started = threading.Event()
        release = threading.Event()
        ran = []

        def blocker():
            started.set()
            release.wait(2.0)

        pool.submit(blocker)
        assert started.wait(2.0)
        pool.submit(lambda: ran.append(1))

        threading.Timer(0.1, release.set).start()
        pool.shutdown(wait=False)

        assert ran == []
        assert not pool.is_running

    def test_shutdown_idempotent(self):
        """Test repeated and premature shutdown."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.shutdown()

        pool.start()
        pool.shutdown()
        pool.shutdown()

        assert not pool.is_running

    def test_shutdown_reports_task_counts(self, caplog):
        """Test that shutdown logs how many callbacks ran and failed."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()

        def fail():
            raise RuntimeError("boom")

        pool.submit(lambda: None)
        pool.submit(fail)

        with caplog.at_level(logging.INFO, logger="tcpconsole"):
            pool.shutdown()

        assert "1 callbacks run, 1 failed" in caplog.text
        assert pool.worker_count == 0
