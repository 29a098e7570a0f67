"""
Usage accumulation.

Keeps the running totals of tracked usage. Every change is applied to the
stored totals inside one write transaction, so several processes sharing
a database never overwrite each other. Persistence is best-effort: when a
write fails the change is applied to the in-memory totals only.
"""

import logging
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Tuple

from .emissions import DEFAULT_EMISSION_FACTOR, calculate_emissions
from ai_carbon_tracker.storage.models import AccumulatedStats
from ai_carbon_tracker.storage.repository import StatsRepository

logger = logging.getLogger(__name__)


class UsageAccumulator:
    """Owner of the process-wide AccumulatedStats.

    Mutations hold one lock across read, compute, write and persist so
    concurrent callers never lose an update.
    """

    def __init__(
        self,
        repository: Optional[StatsRepository] = None,
        emission_factor: float = DEFAULT_EMISSION_FACTOR,
        clock: Callable[[], datetime] = datetime.now
    ):
        """Create an accumulator with zeroed totals.

        Args:
            repository: Where totals are persisted; None keeps them in memory only
            emission_factor: kg CO2 per 1000 tokens
            clock: Source of the current time
        """
        _validate_factor(emission_factor)
        self._repository = repository
        self._emission_factor = emission_factor
        self._clock = clock
        self._lock = threading.RLock()
        self._stats = AccumulatedStats.zero(clock())

    @property
    def emission_factor(self) -> float:
        return self._emission_factor

    def initialize(self, persisted: Optional[AccumulatedStats], emission_factor: float) -> None:
        """Adopt previously persisted totals, or start from zero.

        Args:
            persisted: Totals loaded from storage, or None for a first run
            emission_factor: kg CO2 per 1000 tokens
        """
        _validate_factor(emission_factor)
        with self._lock:
            self._emission_factor = emission_factor
            if persisted is not None:
                self._stats = persisted
            else:
                self._stats = AccumulatedStats.zero(self._clock())

    def load(self) -> None:
        """Initialize from the repository, keeping the current factor."""
        persisted = None
        if self._repository is not None:
            try:
                persisted = self._repository.load_stats()
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Could not load persisted stats, starting from zero: {e}")
        self.initialize(persisted, self._emission_factor)

    def record_usage(
        self,
        input_tokens: int,
        output_tokens: int,
        source_id: Optional[str] = None
    ) -> Tuple[float, float]:
        """Add one request's tokens to the totals.

        With a repository the addition is applied to the stored totals, so
        a reset made by another process is respected. A source_id already
        in the processed ledger is not counted again.

        Args:
            input_tokens: Prompt-side tokens
            output_tokens: Completion-side tokens
            source_id: Id of the transcript record, recorded with the totals

        Returns:
            (previous_mass_kg, new_mass_kg) for milestone evaluation

        Raises:
            ValueError: If a token count is negative
        """
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts cannot be negative")

        tokens = input_tokens + output_tokens
        with self._lock:
            delta = calculate_emissions(tokens, self._emission_factor)
            now = self._clock()

            def add_usage(stats: AccumulatedStats) -> AccumulatedStats:
                return replace(
                    stats,
                    total_tokens=stats.total_tokens + tokens,
                    input_tokens=stats.input_tokens + input_tokens,
                    output_tokens=stats.output_tokens + output_tokens,
                    total_emitted_mass_kg=stats.total_emitted_mass_kg + delta,
                    request_count=stats.request_count + 1,
                    last_updated_at=now
                )

            changed = self._apply(add_usage, source_id)
            if changed is None:
                logger.debug(f"Record {source_id} was already counted")
                mass = self._stats.total_emitted_mass_kg
                return mass, mass
            previous, new = changed

        logger.debug(f"Tracked usage: {tokens} tokens = {delta:.6f} kg CO2")
        return previous.total_emitted_mass_kg, new.total_emitted_mass_kg

    def reset(self) -> None:
        """Zero every counter and restart the tracking period now."""
        with self._lock:
            now = self._clock()
            self._apply(lambda stats: AccumulatedStats.zero(now))
        logger.info("Carbon tracking statistics reset")

    def set_emission_factor(self, new_factor: float) -> None:
        """Change the factor and recompute the mass from the token total.

        Args:
            new_factor: kg CO2 per 1000 tokens

        Raises:
            ValueError: If new_factor is negative
        """
        _validate_factor(new_factor)
        with self._lock:
            self._emission_factor = new_factor
            self._apply(lambda stats: replace(
                stats,
                total_emitted_mass_kg=calculate_emissions(stats.total_tokens, new_factor)
            ))
        logger.info(f"Emission factor set to {new_factor} kg CO2 per 1000 tokens")

    def snapshot(self) -> AccumulatedStats:
        """Current totals; the returned value is immutable."""
        with self._lock:
            return self._stats

    def _apply(
        self,
        change: Callable[[AccumulatedStats], AccumulatedStats],
        source_id: Optional[str] = None
    ) -> Optional[Tuple[AccumulatedStats, AccumulatedStats]]:
        """Apply change to the latest totals and persist the result.

        Must be called with the lock held. Returns (previous, new), or None
        if source_id had already been counted.
        """
        current = self._stats
        if self._repository is not None:
            try:
                outcome = self._repository.update_stats(
                    lambda stored: change(stored if stored is not None else current),
                    source_id=source_id
                )
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Failed to persist carbon stats: {e}")
            else:
                if outcome is None:
                    return None
                stored, self._stats = outcome
                return (stored if stored is not None else current), self._stats

        self._stats = change(current)
        return current, self._stats


def _validate_factor(emission_factor: float) -> None:
    if emission_factor < 0:
        raise ValueError("emission_factor must be >= 0")
