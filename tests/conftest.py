"""
Shared test fixtures.
"""

import json
import os
import tempfile
from datetime import datetime, timedelta
from typing import Callable, List

import pytest

from ai_carbon_tracker.core.scheduler import PeriodicScheduler, ScheduledTask
from ai_carbon_tracker.storage.repository import StatsRepository


class ManualTask(ScheduledTask):
    """Task that only runs when the test ticks the scheduler."""

    def __init__(self, interval_seconds: float, task: Callable[[], None]):
        self.interval_seconds = interval_seconds
        self.task = task
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(PeriodicScheduler):
    """Deterministic scheduler driven by tick()."""

    def __init__(self):
        self.tasks: List[ManualTask] = []

    def schedule(self, interval_seconds: float, task: Callable[[], None]) -> ScheduledTask:
        handle = ManualTask(interval_seconds, task)
        self.tasks.append(handle)
        return handle

    @property
    def active_tasks(self) -> List[ManualTask]:
        return [t for t in self.tasks if not t.cancelled]

    def tick(self) -> None:
        """Run every active task once."""
        for handle in self.active_tasks:
            handle.task()


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def usage_entry(message_id=None, input_tokens=100, output_tokens=50, uuid=None, **extra):
    """Build one assistant transcript entry with usage."""
    message = {
        "role": "assistant",
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }
    if message_id is not None:
        message["id"] = message_id
    entry = {
        "type": "assistant",
        "timestamp": "2024-01-01T12:00:00.000Z",
        "message": message,
    }
    if uuid is not None:
        entry["uuid"] = uuid
    entry.update(extra)
    return entry


def write_transcript(source_dir: str, session: str, name: str, entries, append: bool = False) -> str:
    """Write entries (dicts or raw strings) as a JSONL transcript file."""
    session_dir = os.path.join(source_dir, session)
    os.makedirs(session_dir, exist_ok=True)
    path = os.path.join(session_dir, name)
    with open(path, 'a' if append else 'w', encoding='utf-8') as f:
        for entry in entries:
            line = entry if isinstance(entry, str) else json.dumps(entry)
            f.write(line + "\n")
    return path


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as path:
        yield path


@pytest.fixture
def source_dir(temp_dir):
    path = os.path.join(temp_dir, "projects")
    os.makedirs(path)
    return path


@pytest.fixture
def repository(temp_dir):
    return StatsRepository(os.path.join(temp_dir, "tracker.db"))


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock()
