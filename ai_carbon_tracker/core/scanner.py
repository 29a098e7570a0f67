"""
Transcript ingestion.

Polls session transcript directories for newline-delimited JSON files,
extracts token usage records and feeds the ones not seen before to a
consumer.

Directory layout scanned:
    <source_dir>/<session_dir>/<name>.jsonl

A bad directory, file or line is logged and skipped; it never aborts the
rest of the scan.
"""

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .scheduler import PeriodicScheduler, ScheduledTask
from ai_carbon_tracker.storage.models import UsageRecord
from ai_carbon_tracker.storage.repository import StatsRepository

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
TRANSCRIPT_SUFFIX = ".jsonl"

NO_SOURCE_WARNING = (
    "Could not find a Claude data directory. Make sure Claude Code is "
    "installed and has been used at least once."
)


class TranscriptParseError(ValueError):
    """Raised when a transcript line is not a usable JSON record."""


class ScannerState(Enum):
    """Lifecycle state of the ingestion scanner."""
    IDLE = "idle"
    POLLING = "polling"


@dataclass(frozen=True)
class MonitoringStatus:
    """Snapshot of what the scanner is doing."""
    is_monitoring: bool
    paths_found: int
    records_processed: int


def parse_transcript_line(line: str, file_path: str, line_index: int) -> Optional[UsageRecord]:
    """Extract a usage record from one transcript line.

    Summary entries, entries without a message and messages without usage
    yield None. The record id is the message id, else the entry uuid, else
    one synthesized from the file path and line index.

    Args:
        line: One non-empty line of a transcript file
        file_path: Path of the file the line came from
        line_index: Position of the line among the file's non-empty lines

    Returns:
        UsageRecord, or None if the line carries no usage

    Raises:
        TranscriptParseError: If the line is not a JSON object or its
            token counts are invalid
    """
    try:
        entry = json.loads(line)
    except json.JSONDecodeError as e:
        raise TranscriptParseError(f"Invalid JSON: {e}")

    if not isinstance(entry, dict):
        raise TranscriptParseError("Transcript entry must be a JSON object")

    if entry.get("type") == "summary":
        return None

    message = entry.get("message")
    if not isinstance(message, dict):
        return None

    usage = message.get("usage")
    if usage is None:
        return None
    if not isinstance(usage, dict):
        raise TranscriptParseError("'usage' must be a JSON object")

    source_id = message.get("id") or entry.get("uuid") or f"{file_path}-{line_index}"

    return UsageRecord(
        input_tokens=_token_count(usage, "input_tokens") or 0,
        output_tokens=_token_count(usage, "output_tokens") or 0,
        source_id=str(source_id),
        timestamp=_parse_timestamp(entry.get("timestamp")),
        role=message.get("role") or "user",
        cache_creation_input_tokens=_token_count(usage, "cache_creation_input_tokens"),
        cache_read_input_tokens=_token_count(usage, "cache_read_input_tokens")
    )


def parse_transcript_file(path: Path) -> List[UsageRecord]:
    """Parse every usage record in a transcript file.

    Malformed lines are logged and skipped. Bytes that are not valid UTF-8
    are replaced, so they only spoil the line they appear on.

    Raises:
        OSError: If the file cannot be read
    """
    content = path.read_text(encoding="utf-8", errors="replace")
    lines = [line for line in content.split("\n") if line.strip()]

    records = []
    for index, line in enumerate(lines):
        try:
            record = parse_transcript_line(line, str(path), index)
        except TranscriptParseError as e:
            logger.warning(f"Could not parse line {index} in {path}: {e}")
            continue
        if record is not None:
            records.append(record)
    return records


def _token_count(usage: Dict[str, Any], key: str) -> Optional[int]:
    value = usage.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TranscriptParseError(f"'{key}' must be a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise TranscriptParseError(f"'{key}' must be a whole number")
        value = int(value)
    if value < 0:
        raise TranscriptParseError(f"'{key}' cannot be negative")
    return value


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.debug(f"Unparseable timestamp {value!r}, using current time")
    return datetime.now()


class IngestionScanner:
    """Incrementally ingests usage records from transcript directories.

    Starts IDLE. start() moves to POLLING, scans once and schedules
    recurring scans; stop() moves back to IDLE. A record id is marked as
    processed only after the consumer accepted the record.

    Ticks that fire while a scan is still running are skipped.
    """

    def __init__(
        self,
        source_dirs: Iterable[str],
        consumer: Callable[[UsageRecord], Any],
        scheduler: PeriodicScheduler,
        repository: Optional[StatsRepository] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_warning: Optional[Callable[[str], None]] = None,
        transcript_suffix: str = TRANSCRIPT_SUFFIX
    ):
        """Create an idle scanner.

        Args:
            source_dirs: Directories whose subdirectories hold transcripts
            consumer: Called once for every newly discovered record
            scheduler: Runs the recurring scans
            repository: Ledger of processed ids; None keeps them in memory only
            poll_interval: Seconds between scans
            on_warning: Receives the user-facing warning when no source
                directory exists
            transcript_suffix: File name ending of transcript files
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        self._source_dirs = [Path(d).expanduser() for d in source_dirs]
        self._consumer = consumer
        self._scheduler = scheduler
        self._repository = repository
        self._poll_interval = poll_interval
        self._on_warning = on_warning
        self._suffix = transcript_suffix

        self._state = ScannerState.IDLE
        self._task: Optional[ScheduledTask] = None
        self._scan_lock = threading.Lock()
        self._warned_missing = False
        self._processed: Set[str] = self._load_processed_ids()

    @property
    def state(self) -> ScannerState:
        return self._state

    def is_processed(self, source_id: str) -> bool:
        return source_id in self._processed

    def start(self) -> None:
        """Scan now and keep scanning every poll interval.

        With no existing source directory nothing is scheduled and a
        warning is raised once.
        """
        if self._state is ScannerState.POLLING:
            return
        self._state = ScannerState.POLLING

        source_dirs = self._existing_source_dirs()
        if not source_dirs:
            self._warn_missing_sources()
            return

        logger.info(f"Monitoring transcript directories: {[str(d) for d in source_dirs]}")
        self.scan_once()
        self._task = self._scheduler.schedule(self._poll_interval, self.scan_once)

    def stop(self) -> None:
        """Cancel future scans. An in-flight scan runs to completion."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._state = ScannerState.IDLE

    def scan_once(self) -> int:
        """Run one full scan.

        Returns:
            Number of new records handed to the consumer
        """
        if not self._scan_lock.acquire(blocking=False):
            logger.debug("Previous scan still running, skipping this one")
            return 0
        try:
            return self._scan()
        finally:
            self._scan_lock.release()

    def get_monitoring_status(self) -> MonitoringStatus:
        return MonitoringStatus(
            is_monitoring=self._task is not None,
            paths_found=len(self._existing_source_dirs()),
            records_processed=len(self._processed)
        )

    def _scan(self) -> int:
        source_dirs = self._existing_source_dirs()
        if not source_dirs:
            self._warn_missing_sources()
            return 0

        ingested = 0
        for source_dir in source_dirs:
            try:
                sessions = sorted(p for p in source_dir.iterdir() if p.is_dir())
            except OSError as e:
                logger.warning(f"Error scanning {source_dir}: {e}")
                continue

            for session in sessions:
                try:
                    files = sorted(
                        p for p in session.iterdir()
                        if p.name.endswith(self._suffix) and p.is_file()
                    )
                except OSError as e:
                    logger.warning(f"Could not access session directory {session}: {e}")
                    continue

                for path in files:
                    ingested += self._ingest_file(path)

        logger.debug(f"Scan complete: {ingested} new records")
        return ingested

    def _ingest_file(self, path: Path) -> int:
        try:
            records = parse_transcript_file(path)
        except OSError as e:
            logger.warning(f"Error reading transcript {path}: {e}")
            return 0

        ingested = 0
        for record in records:
            if record.source_id in self._processed:
                continue
            try:
                self._consumer(record)
            except Exception:
                logger.exception(f"Failed to track record {record.source_id} from {path}")
                continue
            self._processed.add(record.source_id)
            self._persist_processed(record.source_id)
            ingested += 1

        return ingested

    def _persist_processed(self, source_id: str) -> None:
        if self._repository is None:
            return
        try:
            self._repository.add_processed_ids([source_id])
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to persist processed record id {source_id}: {e}")

    def _existing_source_dirs(self) -> List[Path]:
        existing = []
        for source_dir in self._source_dirs:
            try:
                if source_dir.is_dir():
                    existing.append(source_dir)
            except OSError as e:
                logger.warning(f"Could not access {source_dir}: {e}")
        return existing

    def _warn_missing_sources(self) -> None:
        if self._warned_missing:
            return
        self._warned_missing = True
        logger.warning(NO_SOURCE_WARNING)
        if self._on_warning is not None:
            self._on_warning(NO_SOURCE_WARNING)

    def _load_processed_ids(self) -> Set[str]:
        if self._repository is None:
            return set()
        try:
            return self._repository.load_processed_ids()
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Could not load processed record ids: {e}")
            return set()
