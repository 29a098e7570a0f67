"""
Repository pattern for data access.

Handles tracker state persistence: the running totals record and the
ledger of transcript records that have already been counted.
"""

import json
import logging
from typing import Callable, Iterable, Optional, Set, Tuple

from .db import DEFAULT_DB_PATH, get_connection
from .models import AccumulatedStats

logger = logging.getLogger(__name__)

STATS_KEY = "carbon_stats"


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the state tables if they don't exist.

    tracker_state is a small key-value store holding JSON documents.
    processed_record is an append-only ledger of ingested source ids.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tracker_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS processed_record (
                source_id TEXT PRIMARY KEY
            )
        """)
        conn.commit()
    finally:
        conn.close()


class StatsRepository:
    """Repository for tracker state.

    Every call opens its own connection, so one instance can be shared by
    the polling thread and the caller's thread.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository and make sure the schema exists.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        initialize_schema(db_path)

    def get_state(self, key: str) -> Optional[str]:
        """Return the raw value stored under key, or None."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT value FROM tracker_state WHERE key = ?", (key,)
            )
            row = cursor.fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def set_state(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO tracker_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """, (key, value))
            conn.commit()
        finally:
            conn.close()

    def load_stats(self) -> Optional[AccumulatedStats]:
        """Load the persisted running totals.

        Returns:
            The stored AccumulatedStats, or None if nothing is stored or the
            stored record cannot be decoded
        """
        return _decode_stats(self.get_state(STATS_KEY))

    def save_stats(self, stats: AccumulatedStats) -> None:
        """Persist the running totals."""
        self.set_state(STATS_KEY, json.dumps(stats.to_dict()))

    def update_stats(
        self,
        update: Callable[[Optional[AccumulatedStats]], AccumulatedStats],
        source_id: Optional[str] = None
    ) -> Optional[Tuple[Optional[AccumulatedStats], AccumulatedStats]]:
        """Read, change and write the running totals in one transaction.

        The write lock is taken before reading, so changes made by other
        processes sharing the database are never overwritten. When
        source_id is given it is added to the processed ledger in the same
        transaction.

        Args:
            update: Receives the stored totals (None if nothing is stored)
                and returns the new totals
            source_id: Id of the record being counted, if any

        Returns:
            (stored, updated), or None if source_id was already counted
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            if source_id is not None:
                seen = conn.execute(
                    "SELECT 1 FROM processed_record WHERE source_id = ?", (source_id,)
                ).fetchone()
                if seen:
                    conn.rollback()
                    return None

            row = conn.execute(
                "SELECT value FROM tracker_state WHERE key = ?", (STATS_KEY,)
            ).fetchone()
            stored = _decode_stats(row[0] if row else None)
            updated = update(stored)

            conn.execute("""
                INSERT INTO tracker_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """, (STATS_KEY, json.dumps(updated.to_dict())))
            if source_id is not None:
                conn.execute(
                    "INSERT OR IGNORE INTO processed_record (source_id) VALUES (?)",
                    (source_id,)
                )
            conn.commit()
            return stored, updated
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def load_processed_ids(self) -> Set[str]:
        """Return every source id recorded as already counted."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("SELECT source_id FROM processed_record")
            return {row[0] for row in cursor.fetchall()}
        finally:
            conn.close()

    def add_processed_ids(self, source_ids: Iterable[str]) -> None:
        """Record source ids as counted, atomically.

        All ids are inserted in a single transaction. Ids already present
        are ignored.

        Args:
            source_ids: Ids of records whose usage has been accumulated
        """
        ids = list(source_ids)
        if not ids:
            return

        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            conn.executemany(
                "INSERT OR IGNORE INTO processed_record (source_id) VALUES (?)",
                [(source_id,) for source_id in ids]
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


def _decode_stats(raw: Optional[str]) -> Optional[AccumulatedStats]:
    if raw is None:
        return None
    try:
        return AccumulatedStats.from_dict(json.loads(raw))
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring unreadable persisted stats: {e}")
        return None
