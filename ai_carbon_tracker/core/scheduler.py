"""
Periodic task scheduling.

Components that poll receive a PeriodicScheduler instead of creating
timers themselves, so tests can drive ticks by hand.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ScheduledTask(ABC):
    """Handle for a recurring task."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop future runs. Safe to call more than once."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class PeriodicScheduler(ABC):
    """Runs callables at a fixed interval."""

    @abstractmethod
    def schedule(self, interval_seconds: float, task: Callable[[], None]) -> ScheduledTask:
        """Run task every interval_seconds until the handle is cancelled.

        The first run happens one interval after scheduling.
        """


class _ThreadTask(ScheduledTask):

    def __init__(self, interval_seconds: float, task: Callable[[], None]):
        self._interval = interval_seconds
        self._task = task
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self._task()
            except Exception:
                logger.exception("Scheduled task failed")


class ThreadingScheduler(PeriodicScheduler):
    """Scheduler backed by one daemon thread per task.

    A cancelled task finishes its current run but never starts another.
    shutdown() waits for those runs, so an in-flight scan is not cut off
    when the process exits.
    """

    def __init__(self):
        self._tasks: List[_ThreadTask] = []
        self._lock = threading.Lock()

    def schedule(self, interval_seconds: float, task: Callable[[], None]) -> ScheduledTask:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        handle = _ThreadTask(interval_seconds, task)
        with self._lock:
            self._tasks.append(handle)
        handle.start()
        return handle

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every task scheduled through this scheduler and wait for
        runs in progress to finish.

        Args:
            timeout: Seconds to wait for each task; None waits indefinitely
        """
        with self._lock:
            tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            task.join(timeout)
