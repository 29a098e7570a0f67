"""
Milestone tiers and waypoints.

Static catalogue of contiguous emission bands ("tiers") and isolated
noteworthy totals ("waypoints"), plus the pure queries over them.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple


@dataclass(frozen=True)
class Tier:
    """Half-open emission band [lower_bound, upper_bound) in kg CO2."""
    id: str
    name: str
    lower_bound: float
    upper_bound: float
    emoji: str
    equivalent: str
    description: str
    color: str

    def contains(self, total: float) -> bool:
        return self.lower_bound <= total < self.upper_bound


@dataclass(frozen=True)
class Waypoint:
    """One-off noteworthy total in kg CO2."""
    threshold_kg: float
    emoji: str
    equivalent: str
    message: str


class TierTable:
    """Ordered tier catalogue with its waypoints.

    Tiers must partition [0, inf): the first starts at 0, each ends where
    the next begins and the last is unbounded above. This is checked once
    at construction so the queries never need an error path.
    """

    def __init__(self, tiers: Sequence[Tier], waypoints: Sequence[Waypoint] = ()):
        """Validate and store the catalogue.

        Args:
            tiers: Tiers in ascending order
            waypoints: Waypoints in any order

        Raises:
            ValueError: If tiers do not partition [0, inf) or a waypoint
                threshold is not positive
        """
        _validate_tiers(tiers)
        for waypoint in waypoints:
            if waypoint.threshold_kg <= 0:
                raise ValueError(
                    f"Waypoint threshold must be > 0, got {waypoint.threshold_kg}"
                )

        self.tiers: Tuple[Tier, ...] = tuple(tiers)
        self.waypoints: Tuple[Waypoint, ...] = tuple(
            sorted(waypoints, key=lambda w: w.threshold_kg)
        )

    def current_tier(self, total: float) -> Tier:
        """Return the tier whose band contains total.

        Totals below zero belong to the first tier; totals past every
        bound belong to the last.
        """
        for tier in self.tiers:
            if tier.contains(total):
                return tier
        if total < self.tiers[0].lower_bound:
            return self.tiers[0]
        return self.tiers[-1]

    def next_tier(self, total: float) -> Optional[Tier]:
        """Return the tier after the current one, or None at the top."""
        index = self.tiers.index(self.current_tier(total))
        if index < len(self.tiers) - 1:
            return self.tiers[index + 1]
        return None

    def progress_within_tier(self, total: float) -> float:
        """Percentage of the way through the current tier, in [0, 100]."""
        tier = self.current_tier(total)
        span = tier.upper_bound - tier.lower_bound
        progress = 100 * (total - tier.lower_bound) / span
        return min(100.0, max(0.0, progress))


def _validate_tiers(tiers: Sequence[Tier]) -> None:
    if not tiers:
        raise ValueError("Tier table must contain at least one tier")

    ids = [tier.id for tier in tiers]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Tier ids must be unique: {ids}")

    if tiers[0].lower_bound != 0:
        raise ValueError(
            f"First tier must start at 0, got {tiers[0].lower_bound}"
        )

    for tier in tiers:
        if not tier.lower_bound < tier.upper_bound:
            raise ValueError(f"Tier '{tier.id}' has an empty band")

    for previous, following in zip(tiers, tiers[1:]):
        if previous.upper_bound != following.lower_bound:
            raise ValueError(
                f"Tiers '{previous.id}' and '{following.id}' are not contiguous: "
                f"{previous.upper_bound} != {following.lower_bound}"
            )

    if not math.isinf(tiers[-1].upper_bound):
        raise ValueError(
            f"Last tier '{tiers[-1].id}' must be unbounded above"
        )


TIERS = (
    Tier(
        id="idle",
        name="Idle",
        lower_bound=0.0,
        upper_bound=0.01,  # 10g
        emoji="💡",
        equivalent="One LED bulb for an hour",
        description="Just browsing code, reading docs, or quick edits",
        color="#22c55e"
    ),
    Tier(
        id="light",
        name="Light Usage",
        lower_bound=0.01,
        upper_bound=0.1,  # 100g
        emoji="☕",
        equivalent="Brewing a cup of coffee",
        description="Quick AI queries, code reviews, or small refactoring sessions",
        color="#84cc16"
    ),
    Tier(
        id="moderate",
        name="Moderate Session",
        lower_bound=0.1,
        upper_bound=0.5,
        emoji="🍳",
        equivalent="Cooking breakfast on a stove",
        description="Active coding session with continuous AI assistance",
        color="#eab308"
    ),
    Tier(
        id="active",
        name="Active Development",
        lower_bound=0.5,
        upper_bound=1.0,
        emoji="🍽️",
        equivalent="Cooking a full meal",
        description="Extended AI-assisted development, code generation, or refactoring",
        color="#f59e0b"
    ),
    Tier(
        id="intensive",
        name="Intensive Session",
        lower_bound=1.0,
        upper_bound=3.0,
        emoji="🚗",
        equivalent="Driving 8 km (5 miles)",
        description="Heavy AI usage with large context, multiple iterations, or complex tasks",
        color="#f97316"
    ),
    Tier(
        id="heavy",
        name="Heavy Usage",
        lower_bound=3.0,
        upper_bound=10.0,
        emoji="🏭",
        equivalent="Manufacturing a pair of jeans",
        description="Day-long AI-heavy development or batch processing",
        color="#ef4444"
    ),
    Tier(
        id="power",
        name="Power User",
        lower_bound=10.0,
        upper_bound=50.0,
        emoji="✈️",
        equivalent="Short-haul flight (100 km)",
        description="Continuous AI assistance over multiple days or team usage",
        color="#dc2626"
    ),
    Tier(
        id="extreme",
        name="Extreme Usage",
        lower_bound=50.0,
        upper_bound=math.inf,
        emoji="🌍",
        equivalent="A week of average electricity consumption",
        description="Extended team usage or automated systems over weeks",
        color="#991b1b"
    ),
)

WAYPOINTS = (
    Waypoint(
        threshold_kg=0.025,
        emoji="📧",
        equivalent="Sending 50 emails",
        message="You've emitted as much CO₂ as sending 50 emails!"
    ),
    Waypoint(
        threshold_kg=0.05,
        emoji="🔍",
        equivalent="An hour of Google searches",
        message="That's equivalent to an hour of web browsing!"
    ),
    Waypoint(
        threshold_kg=0.2,
        emoji="🍫",
        equivalent="A chocolate bar",
        message="You've emitted the carbon footprint of a chocolate bar!"
    ),
    Waypoint(
        threshold_kg=0.4,
        emoji="🥤",
        equivalent="A liter of bottled water",
        message="Equivalent to producing a liter of bottled water!"
    ),
    Waypoint(
        threshold_kg=2.5,
        emoji="🍕",
        equivalent="A large pizza",
        message="You've reached the carbon footprint of a large pizza!"
    ),
    Waypoint(
        threshold_kg=5.0,
        emoji="👕",
        equivalent="A cotton T-shirt",
        message="That's the same as manufacturing a T-shirt!"
    ),
    Waypoint(
        threshold_kg=20.0,
        emoji="📱",
        equivalent="A smartphone",
        message="You've emitted as much CO₂ as manufacturing a smartphone!"
    ),
)

DEFAULT_TIER_TABLE = TierTable(TIERS, WAYPOINTS)


def current_tier(total: float) -> Tier:
    """Tier containing total in the default table."""
    return DEFAULT_TIER_TABLE.current_tier(total)


def next_tier(total: float) -> Optional[Tier]:
    """Tier after the current one in the default table."""
    return DEFAULT_TIER_TABLE.next_tier(total)


def progress_within_tier(total: float) -> float:
    """Progress through the current tier of the default table."""
    return DEFAULT_TIER_TABLE.progress_within_tier(total)
