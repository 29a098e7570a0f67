"""
Milestone evaluation.

Decides which waypoints and tier boundaries an update crossed. Detection
is a pure function of the before/after totals; dispatching the resulting
events is left to the caller.
"""

from dataclasses import dataclass
from typing import List, Union

from .tiers import DEFAULT_TIER_TABLE, Tier, TierTable, Waypoint


@dataclass(frozen=True)
class WaypointCrossed:
    """A single waypoint threshold was passed."""
    waypoint: Waypoint

    @property
    def emoji(self) -> str:
        return self.waypoint.emoji

    @property
    def message(self) -> str:
        return self.waypoint.message


@dataclass(frozen=True)
class TierChanged:
    """The total moved into a different tier."""
    from_tier: Tier
    to_tier: Tier

    @property
    def emoji(self) -> str:
        return self.to_tier.emoji

    @property
    def message(self) -> str:
        return (
            f'{self.to_tier.emoji} You\'ve reached "{self.to_tier.name}" tier! '
            f"Equivalent to: {self.to_tier.equivalent}"
        )


CrossingEvent = Union[WaypointCrossed, TierChanged]


def evaluate(
    before: float,
    after: float,
    table: TierTable = DEFAULT_TIER_TABLE
) -> List[CrossingEvent]:
    """Report the milestones crossed between two totals.

    Every waypoint with before < threshold <= after is reported, in
    ascending order, so one large update can pass several at once. A tier
    change is reported at most once, naming only the destination tier even
    when intermediate tiers were skipped.

    Args:
        before: Total mass in kg before the update
        after: Total mass in kg after the update
        table: Tier catalogue to evaluate against

    Returns:
        Waypoint crossings followed by at most one tier change
    """
    events: List[CrossingEvent] = []

    for waypoint in table.waypoints:
        if before < waypoint.threshold_kg <= after:
            events.append(WaypointCrossed(waypoint))

    from_tier = table.current_tier(before)
    to_tier = table.current_tier(after)
    if from_tier.id != to_tier.id:
        events.append(TierChanged(from_tier=from_tier, to_tier=to_tier))

    return events
