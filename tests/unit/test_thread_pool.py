"""
Unit tests for the worker thread pool.
"""

import threading
import time

import pytest

from geminiserver.core.thread_pool import ThreadPool


@pytest.fixture
def pool():
    pool = ThreadPool(min_workers=2, max_workers=4, queue_size=8)
    pool.start()
    yield pool
    pool.shutdown(wait=False, timeout=5.0)


class TestThreadPool:
    """Tests for ThreadPool class."""

    def test_runs_tasks(self, pool: ThreadPool):
        done = threading.Event()
        results = []

        def task(value):
            results.append(value)
            done.set()

        assert pool.submit(task, args=(7,)) is True
        assert done.wait(timeout=5.0)
        assert results == [7]

    def test_failing_task_keeps_worker_alive(self, pool: ThreadPool):
        done = threading.Event()

        def boom():
            raise RuntimeError("boom")

        pool.submit(boom)
        pool.submit(done.set)

        assert done.wait(timeout=5.0)

    def test_submit_before_start(self):
        with pytest.raises(RuntimeError):
            ThreadPool().submit(print)

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            ThreadPool(min_workers=0)
        with pytest.raises(ValueError):
            ThreadPool(min_workers=4, max_workers=2)

    def test_queue_full(self):
        """A full queue is reported, not waited on."""
        pool = ThreadPool(min_workers=1, max_workers=1, queue_size=1)
        pool.start()
        release = threading.Event()
        started = threading.Event()

        def blocker():
            started.set()
            release.wait(timeout=5.0)

        try:
            assert pool.submit(blocker)
            assert started.wait(timeout=5.0)
            assert pool.submit(blocker)          # waits in the queue
            assert pool.submit(blocker) is False  # no room left
        finally:
            release.set()
            pool.shutdown(wait=True, timeout=5.0)

    def test_scales_up_when_busy(self):
        pool = ThreadPool(min_workers=1, max_workers=3, queue_size=8)
        pool.start()
        release = threading.Event()

        try:
            for _ in range(4):
                pool.submit(release.wait, args=(5.0,))
                time.sleep(0.05)

            assert pool.stats["workers"]["total"] > 1
            assert pool.stats["workers"]["total"] <= 3
        finally:
            release.set()
            pool.shutdown(wait=True, timeout=5.0)

    def test_shutdown_waits_for_queued_tasks(self):
        """Graceful shutdown lets in-flight and queued work finish."""
        pool = ThreadPool(min_workers=1, max_workers=1, queue_size=8)
        pool.start()
        results = []

        def slow(value):
            time.sleep(0.05)
            results.append(value)

        for value in range(3):
            pool.submit(slow, args=(value,))

        pool.shutdown(wait=True, timeout=5.0)

        assert results == [0, 1, 2]

    def test_submit_after_shutdown(self, pool: ThreadPool):
        pool.shutdown(wait=True, timeout=5.0)
        with pytest.raises(RuntimeError):
            pool.submit(print)
