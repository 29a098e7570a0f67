"""
Data models for storage layer.

Defines usage records and the persisted running totals.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one observed unit of AI work.

    Parsed from a single transcript line. The source_id identifies the
    record across all time and is what deduplication keys on.
    """
    input_tokens: int
    output_tokens: int
    source_id: str
    timestamp: datetime
    role: str = "user"
    cache_creation_input_tokens: Optional[int] = None
    cache_read_input_tokens: Optional[int] = None

    def __post_init__(self):
        """Validate token counts are non-negative."""
        if self.input_tokens < 0:
            raise ValueError("input_tokens cannot be negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens counted towards emissions (input + output)."""
        return self.input_tokens + self.output_tokens


# Key names used by the original persisted record, accepted on load.
_LEGACY_KEYS = {
    "totalTokens": "total_tokens",
    "inputTokens": "input_tokens",
    "outputTokens": "output_tokens",
    "totalCO2": "total_emitted_mass_kg",
    "requestCount": "request_count",
    "startDate": "started_at",
    "lastUpdated": "last_updated_at",
}


@dataclass(frozen=True)
class AccumulatedStats:
    """Running totals of tracked usage.

    total_tokens always equals input_tokens + output_tokens. The emitted
    mass only changes through new usage, an emission factor change or an
    explicit reset.
    """
    total_tokens: int
    input_tokens: int
    output_tokens: int
    total_emitted_mass_kg: float
    request_count: int
    started_at: datetime
    last_updated_at: datetime

    def __post_init__(self):
        """Validate counters are consistent and non-negative."""
        if self.input_tokens < 0 or self.output_tokens < 0:
            raise ValueError("token counts cannot be negative")
        if self.total_tokens != self.input_tokens + self.output_tokens:
            raise ValueError("total_tokens must equal input_tokens + output_tokens")
        if self.total_emitted_mass_kg < 0:
            raise ValueError("total_emitted_mass_kg cannot be negative")
        if self.request_count < 0:
            raise ValueError("request_count cannot be negative")

    @classmethod
    def zero(cls, now: datetime) -> "AccumulatedStats":
        """Fresh totals starting at the given instant."""
        return cls(
            total_tokens=0,
            input_tokens=0,
            output_tokens=0,
            total_emitted_mass_kg=0.0,
            request_count=0,
            started_at=now,
            last_updated_at=now
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible representation with ISO-8601 dates."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["last_updated_at"] = self.last_updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccumulatedStats":
        """Build stats from a persisted dictionary.

        Args:
            data: Dictionary produced by to_dict, or a record using the
                legacy camelCase key names

        Returns:
            AccumulatedStats instance

        Raises:
            ValueError: If required fields are missing or invalid
        """
        normalized = {_LEGACY_KEYS.get(key, key): value for key, value in data.items()}

        required = {
            'total_tokens', 'input_tokens', 'output_tokens',
            'total_emitted_mass_kg', 'request_count',
            'started_at', 'last_updated_at'
        }
        missing = required - set(normalized.keys())
        if missing:
            raise ValueError(f"Persisted stats missing fields: {sorted(missing)}")

        return cls(
            total_tokens=int(normalized['total_tokens']),
            input_tokens=int(normalized['input_tokens']),
            output_tokens=int(normalized['output_tokens']),
            total_emitted_mass_kg=float(normalized['total_emitted_mass_kg']),
            request_count=int(normalized['request_count']),
            started_at=_parse_datetime(normalized['started_at']),
            last_updated_at=_parse_datetime(normalized['last_updated_at'])
        )


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date value: {value!r}")
    # fromisoformat only accepts a trailing Z from Python 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)
