"""Day-over-day rank change detection for alerts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .rank_statistics import RankObservation

TOP_MOVERS_LIMIT = 10
SIGNIFICANT_CHANGE = 10


@dataclass
class RankChange:
    entity_id: Any
    keyword: Optional[str]
    country: Optional[str]
    previous_position: int
    current_position: int
    change: int  # positive = improved
    labels: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "keyword": self.keyword,
            "country": self.country,
            "previous_position": self.previous_position,
            "current_position": self.current_position,
            "change": self.change,
            **self.labels,
        }


def detect_changes(
    today: Iterable[RankObservation],
    yesterday: Iterable[RankObservation],
) -> list[RankChange]:
    """Compare two snapshots matched on (entity, keyword, country).

    Only keys ranked (position > 0) on both days are compared, and unchanged
    keys are dropped. The result is sorted by change ascending, so the worst
    drops come first.
    """
    previous = {obs.key: obs.position for obs in yesterday}

    changes = []
    for obs in today:
        previous_position = previous.get(obs.key)
        if previous_position is None or previous_position <= 0 or not obs.is_ranked:
            continue
        change = previous_position - obs.position
        if change == 0:
            continue
        changes.append(RankChange(
            entity_id=obs.entity_id,
            keyword=obs.keyword,
            country=obs.country,
            previous_position=previous_position,
            current_position=obs.position,
            change=change,
            labels=dict(obs.labels),
        ))

    return sorted(changes, key=lambda c: c.change)


@dataclass
class ChangeReport:
    changes: list[RankChange] = field(default_factory=list)
    top_drops: list[RankChange] = field(default_factory=list)
    top_improvements: list[RankChange] = field(default_factory=list)
    total_drops: int = 0
    total_improvements: int = 0
    significant_drops: int = 0
    significant_improvements: int = 0

    def to_dict(self) -> dict:
        return {
            "summary": {
                "total_drops": self.total_drops,
                "total_improvements": self.total_improvements,
                "significant_drops": self.significant_drops,
                "significant_improvements": self.significant_improvements,
            },
            "top_drops": [c.to_dict() for c in self.top_drops],
            "top_improvements": [c.to_dict() for c in self.top_improvements],
        }


def summarize_changes(
    changes: Iterable[RankChange],
    limit: int = TOP_MOVERS_LIMIT,
    threshold: int = SIGNIFICANT_CHANGE,
) -> ChangeReport:
    """Split changes into top drops and top improvements.

    A move is significant when ``abs(change) >= threshold``.
    """
    changes = sorted(changes, key=lambda c: c.change)
    drops = [c for c in changes if c.change < 0]
    improvements = sorted(
        [c for c in changes if c.change > 0],
        key=lambda c: c.change,
        reverse=True,
    )

    return ChangeReport(
        changes=changes,
        top_drops=drops[:limit],
        top_improvements=improvements[:limit],
        total_drops=len(drops),
        total_improvements=len(improvements),
        significant_drops=sum(1 for c in drops if c.change <= -threshold),
        significant_improvements=sum(1 for c in improvements if c.change >= threshold),
    )
