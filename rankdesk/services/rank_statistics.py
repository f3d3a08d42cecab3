"""
Ranking statistics over a time series of rank observations.

Positions follow the search-results convention: 1 is the top spot, larger is
worse, and 0 means "not ranked". Unranked observations are excluded from the
average/best/worst figures and from the trend fit but still count as the
current or previous position.

Sign conventions:
    position_change = previous - current   (positive = improved)
    trend slope > 0                        (positions growing = declining)
"""

from __future__ import annotations

import datetime
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Sequence


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass
class RankObservation:
    """A single dated position measurement."""
    date: datetime.date
    position: int = 0
    keyword: Optional[str] = None
    country: Optional[str] = None
    entity_id: Any = None
    traffic: Optional[int] = None
    search_volume: Optional[int] = None
    difficulty: Optional[int] = None
    cpc: Optional[float] = None
    url: Optional[str] = None
    labels: dict = field(default_factory=dict)

    @property
    def is_ranked(self) -> bool:
        return bool(self.position) and self.position > 0

    @property
    def key(self) -> tuple:
        """Composite identity used to match snapshots: (entity, keyword, country)."""
        return (self.entity_id, self.keyword, self.country)


@dataclass
class RankStatistics:
    has_data: bool = False
    total_records: int = 0
    average_position: Optional[int] = None
    best_position: Optional[int] = None
    worst_position: Optional[int] = None
    current_position: Optional[int] = None
    previous_position: Optional[int] = None
    position_change: Optional[int] = None
    average_traffic: Optional[int] = None
    average_search_volume: Optional[int] = None
    first_recorded: Optional[datetime.date] = None
    last_recorded: Optional[datetime.date] = None
    days_tracked: int = 0
    trend: Trend = Trend.INSUFFICIENT_DATA

    @classmethod
    def no_data(cls) -> "RankStatistics":
        return cls()

    def to_dict(self) -> dict:
        return {
            "has_data": self.has_data,
            "total_records": self.total_records,
            "average_position": self.average_position,
            "best_position": self.best_position,
            "worst_position": self.worst_position,
            "current_position": self.current_position,
            "previous_position": self.previous_position,
            "position_change": self.position_change,
            "average_traffic": self.average_traffic,
            "average_search_volume": self.average_search_volume,
            "first_recorded": self.first_recorded.isoformat() if self.first_recorded else None,
            "last_recorded": self.last_recorded.isoformat() if self.last_recorded else None,
            "days_tracked": self.days_tracked,
            "trend": self.trend.value,
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _mean(values: Sequence[float]) -> Optional[int]:
    if not values:
        return None
    return _round_half_up(sum(values) / len(values))


def _as_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def slope_sign(values: Sequence[float]) -> int:
    """Sign of the least-squares slope of *values* against their 0-based index.

    Only the numerator ``n*Sxy - Sx*Sy`` decides the sign (the denominator is
    positive for two or more points), which keeps integer input exact.
    """
    n = len(values)
    if n < 2:
        raise ValueError("At least two values are required for a slope")
    sum_x = n * (n - 1) // 2
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    numerator = n * sum_xy - sum_x * sum_y
    return (numerator > 0) - (numerator < 0)


def classify_trend(positions: Sequence[int]) -> Trend:
    if len(positions) < 2:
        return Trend.INSUFFICIENT_DATA
    sign = slope_sign(positions)
    if sign > 0:
        return Trend.DECLINING
    if sign < 0:
        return Trend.IMPROVING
    return Trend.STABLE


def compute_statistics(series: Iterable[RankObservation]) -> RankStatistics:
    """Aggregate statistics for a date-ascending series of observations.

    An empty series is not an error: it yields :meth:`RankStatistics.no_data`.
    """
    series = list(series)
    if not series:
        return RankStatistics.no_data()

    positions = [o.position for o in series if o.is_ranked]
    traffic = [o.traffic for o in series if o.traffic is not None]
    volumes = [o.search_volume for o in series if o.search_volume is not None]

    current = series[-1].position
    previous = series[-2].position if len(series) > 1 else None
    change = previous - current if previous is not None and current is not None else None

    first_date = _as_date(series[0].date)
    last_date = _as_date(series[-1].date)

    return RankStatistics(
        has_data=True,
        total_records=len(series),
        average_position=_mean(positions),
        best_position=min(positions) if positions else None,
        worst_position=max(positions) if positions else None,
        current_position=current,
        previous_position=previous,
        position_change=change,
        average_traffic=_mean(traffic),
        average_search_volume=_mean(volumes),
        first_recorded=first_date,
        last_recorded=last_date,
        days_tracked=max(1, (last_date - first_date).days + 1),
        trend=classify_trend(positions),
    )
