"""
Tests for the thread-backed scheduler.
"""

import threading

import pytest

from ai_carbon_tracker.core.scheduler import ThreadingScheduler


class TestThreadingScheduler:
    """Test recurring runs, cancellation and shutdown."""

    def test_task_runs_repeatedly(self):
        scheduler = ThreadingScheduler()
        runs = []
        done = threading.Event()

        def task():
            runs.append(1)
            if len(runs) >= 3:
                done.set()

        scheduler.schedule(0.01, task)
        try:
            assert done.wait(5)
        finally:
            scheduler.shutdown()
        assert len(runs) >= 3

    def test_cancelled_task_stops(self):
        scheduler = ThreadingScheduler()
        handle = scheduler.schedule(0.01, lambda: None)

        handle.cancel()
        scheduler.shutdown()

        assert handle.cancelled

    def test_failing_task_keeps_running(self):
        scheduler = ThreadingScheduler()
        calls = []
        done = threading.Event()

        def task():
            calls.append(1)
            if len(calls) >= 2:
                done.set()
            raise RuntimeError("boom")

        scheduler.schedule(0.01, task)
        try:
            assert done.wait(5)
        finally:
            scheduler.shutdown()

    def test_shutdown_waits_for_run_in_progress(self):
        scheduler = ThreadingScheduler()
        started = threading.Event()
        release = threading.Event()
        finished = []

        def task():
            started.set()
            release.wait(5)
            finished.append(1)

        scheduler.schedule(0.01, task)
        assert started.wait(5)
        threading.Timer(0.1, release.set).start()

        scheduler.shutdown()

        assert finished == [1]

    def test_non_positive_interval_raises_error(self):
        with pytest.raises(ValueError, match="interval_seconds"):
            ThreadingScheduler().schedule(0, lambda: None)
