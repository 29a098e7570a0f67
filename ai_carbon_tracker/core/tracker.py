"""
Carbon tracker composition root.

Owns the accumulator and the ingestion scanner, runs milestone evaluation
after every usage update and hands each crossing to the notifier. The
presentation layer talks only to this class.
"""

import logging
from typing import Callable, List, Optional

from .accumulator import UsageAccumulator
from .emissions import Equivalents, compute_equivalents
from .milestones import CrossingEvent, evaluate
from .scanner import IngestionScanner, MonitoringStatus
from .scheduler import PeriodicScheduler, ScheduledTask
from .tiers import DEFAULT_TIER_TABLE, Tier, TierTable
from ai_carbon_tracker.config.loader import TrackerConfig
from ai_carbon_tracker.storage.models import AccumulatedStats, UsageRecord
from ai_carbon_tracker.storage.repository import StatsRepository

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


class CarbonTracker:
    """Single owner of the tracker's mutable state."""

    def __init__(
        self,
        config: TrackerConfig,
        repository: Optional[StatsRepository],
        scheduler: PeriodicScheduler,
        notifier: Optional[Notifier] = None,
        on_warning: Optional[Callable[[str], None]] = None,
        table: TierTable = DEFAULT_TIER_TABLE
    ):
        """Wire the tracker's components.

        Args:
            config: Tracker settings
            repository: Persistence for totals and processed ids
            scheduler: Runs polling and status refresh
            notifier: Receives (message, emoji) for each milestone
            on_warning: Receives user-facing warnings
            table: Tier catalogue used for milestones and tier queries
        """
        self.config = config
        self._scheduler = scheduler
        self._notifier = notifier
        self._table = table
        self._refresh_task: Optional[ScheduledTask] = None

        self.accumulator = UsageAccumulator(
            repository=repository,
            emission_factor=config.emission_factor
        )
        self.accumulator.load()

        self.scanner = IngestionScanner(
            source_dirs=config.source_dirs,
            consumer=self.ingest,
            scheduler=scheduler,
            repository=repository,
            poll_interval=config.poll_interval,
            on_warning=on_warning
        )

    def start(self) -> None:
        """Begin polling transcripts."""
        self.scanner.start()

    def stop(self) -> None:
        """Stop polling and status refresh."""
        self.scanner.stop()
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    def scan(self) -> int:
        """Run a single scan immediately."""
        return self.scanner.scan_once()

    def ingest(self, record: UsageRecord) -> List[CrossingEvent]:
        """Accumulate one record and announce any milestones it crossed.

        A failing notifier is logged; the record stays counted.
        """
        before, after = self.accumulator.record_usage(
            record.input_tokens, record.output_tokens, source_id=record.source_id
        )
        events = evaluate(before, after, self._table)
        if self._notifier is not None:
            for event in events:
                try:
                    self._notifier(event.message, event.emoji)
                except Exception:
                    logger.exception(f"Failed to deliver milestone notification: {event.message}")
        return events

    def start_status_refresh(
        self,
        callback: Callable[[AccumulatedStats], None],
        interval_seconds: Optional[float] = None
    ) -> None:
        """Periodically hand a stats snapshot to callback."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
        interval = interval_seconds or self.config.refresh_interval
        self._refresh_task = self._scheduler.schedule(
            interval, lambda: callback(self.get_stats())
        )

    def apply_config(self, config: TrackerConfig) -> None:
        """React to a configuration change.

        Only the emission factor is applied live; other settings take
        effect on the next start.
        """
        if config.emission_factor != self.accumulator.emission_factor:
            self.accumulator.set_emission_factor(config.emission_factor)
        self.config = config

    @property
    def emission_factor(self) -> float:
        return self.accumulator.emission_factor

    def get_stats(self) -> AccumulatedStats:
        return self.accumulator.snapshot()

    def get_equivalents(self) -> Equivalents:
        return compute_equivalents(self.get_stats().total_emitted_mass_kg)

    def get_current_tier(self) -> Tier:
        return self._table.current_tier(self.get_stats().total_emitted_mass_kg)

    def get_next_tier(self) -> Optional[Tier]:
        return self._table.next_tier(self.get_stats().total_emitted_mass_kg)

    def get_progress(self) -> float:
        return self._table.progress_within_tier(self.get_stats().total_emitted_mass_kg)

    def reset_stats(self) -> None:
        self.accumulator.reset()

    def get_monitoring_status(self) -> MonitoringStatus:
        return self.scanner.get_monitoring_status()
