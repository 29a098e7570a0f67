"""
Configuration change notification.

Polls a config file's modification time and reloads it when it changes.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

import yaml

from .loader import TrackerConfig, load_tracker_config
from ai_carbon_tracker.core.scheduler import PeriodicScheduler, ScheduledTask

logger = logging.getLogger(__name__)


class ConfigWatcher:
    """Calls back with the new configuration whenever the file changes.

    An unreadable or invalid file is logged and the previous
    configuration stays in effect.
    """

    def __init__(self, path: str, on_change: Callable[[TrackerConfig], None]):
        self.path = Path(path).expanduser()
        self._on_change = on_change
        self._last_mtime = self._mtime()
        self._task: Optional[ScheduledTask] = None

    def start(self, scheduler: PeriodicScheduler, interval_seconds: float) -> None:
        if self._task is None:
            self._task = scheduler.schedule(interval_seconds, self.check)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def check(self) -> bool:
        """Reload the file if it changed since the last check.

        Returns:
            True if a new configuration was delivered
        """
        mtime = self._mtime()
        if mtime is None or mtime == self._last_mtime:
            return False
        self._last_mtime = mtime

        try:
            config = load_tracker_config(str(self.path))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring invalid configuration change in {self.path}: {e}")
            return False

        logger.info(f"Configuration reloaded from {self.path}")
        self._on_change(config)
        return True

    def _mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None
