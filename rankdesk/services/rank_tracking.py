"""
Rank tracker history and SEMrush position fetching.
===================================================

A rank tracker is a (keyword, country, domain) combination. Each day it gets
at most one history row: recording a second observation on the same
calendar day overwrites the first.

Positions come from SEMrush's ``phrase_organic`` report, a ``;``-separated
text body with a header line and one data line per result.

Usage:
    from rankdesk.services.rank_tracking import RankFetcher, RankHistory

    fetcher = RankFetcher(session)
    result = fetcher.fetch_batch([1, 2, 3])

    stats = RankHistory(session).statistics(tracker_id=1)
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import requests
from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings, get_settings
from ..errors import (
    BatchResult, ConflictError, RankdeskError, UpstreamUnavailable, ValidationError,
)
from ..models.ranking import RankTracker, RankTrackerHistory
from ..utils.domains import normalize_domain
from ..utils.row_adapter import parse_float, parse_int
from .rank_statistics import RankObservation, RankStatistics, compute_statistics

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SEMRUSH_ENDPOINT = "/analytics/v1"
SEMRUSH_EXPORT_COLUMNS = "Ph,Po,Ur,Tr,Vr,Nq,Cp,Co,Tg"
MIN_COLUMNS = 9


def _or_none(value):
    return value if value else None


# ---------------------------------------------------------------------------
# SEMrush client
# ---------------------------------------------------------------------------


@dataclass
class ProviderRanking:
    """Position data returned by the ranking provider for one keyword."""
    position: int
    url: Optional[str] = None
    traffic: Optional[int] = None
    search_volume: Optional[int] = None
    difficulty: Optional[int] = None
    cpc: Optional[float] = None
    competition: Optional[float] = None
    trend: Optional[int] = None


def parse_phrase_organic(body: str) -> ProviderRanking:
    """Parse a ``phrase_organic`` response body.

    Raises
    ------
    UpstreamUnavailable
        If the body has no data line or too few columns.
    """
    lines = body.strip().splitlines()
    if len(lines) < 2:
        raise UpstreamUnavailable("No data found for this keyword", source="semrush")

    columns = lines[1].split(";")
    if len(columns) < MIN_COLUMNS:
        raise UpstreamUnavailable("Invalid data format from SEMrush API", source="semrush")

    return ProviderRanking(
        position=parse_int(columns[1]) or 0,
        url=columns[2].strip() or None,
        traffic=_or_none(parse_int(columns[3])),
        search_volume=_or_none(parse_int(columns[4])),
        difficulty=_or_none(parse_int(columns[5])),
        cpc=_or_none(parse_float(columns[6])),
        competition=_or_none(parse_float(columns[7])),
        trend=_or_none(parse_int(columns[8])),
    )


class SemrushClient:
    """Minimal SEMrush Analytics API client for single-keyword positions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.api_key = api_key or settings.semrush_api_key
        self.base_url = (base_url or settings.semrush_base_url).rstrip("/")
        self.timeout = timeout or settings.semrush_timeout_seconds

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=15),
        retry=retry_if_exception_type(
            (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
        ),
        reraise=True,
    )
    def _get(self, params: dict[str, Any]) -> requests.Response:
        return requests.get(
            f"{self.base_url}{SEMRUSH_ENDPOINT}", params=params, timeout=self.timeout
        )

    def fetch_ranking(self, keyword: str, country: str, domain: str) -> ProviderRanking:
        """Fetch the current position of *domain* for *keyword*.

        Raises
        ------
        UpstreamUnavailable
            On a missing API key, a transport error, a non-200 response or
            an unparsable body.
        """
        if not self.api_key:
            raise UpstreamUnavailable("SEMrush API key not configured", source="semrush")

        params = {
            "type": "phrase_organic",
            "key": self.api_key,
            "phrase": keyword,
            "database": country,
            "export_columns": SEMRUSH_EXPORT_COLUMNS,
            "domain": domain,
        }
        try:
            response = self._get(params)
        except requests.exceptions.RequestException as exc:
            raise UpstreamUnavailable(f"SEMrush request failed: {exc}", source="semrush") from exc

        if response.status_code != 200:
            logger.error("SEMrush API error {}: {}", response.status_code, response.text[:200])
            raise UpstreamUnavailable(
                f"SEMrush API request failed with status {response.status_code}",
                source="semrush",
            )

        return parse_phrase_organic(response.text)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def observation_from_history(row: RankTrackerHistory) -> RankObservation:
    tracker = row.rank_tracker
    return RankObservation(
        date=row.date,
        position=row.position or 0,
        keyword=tracker.keyword if tracker else None,
        country=tracker.country if tracker else None,
        entity_id=row.rank_tracker_id,
        traffic=row.traffic,
        search_volume=row.search_volume,
        difficulty=row.difficulty,
        cpc=row.cpc,
        url=row.url,
    )


class RankHistory:
    """Read and write daily rank tracker history."""

    FIELDS = ("position", "url", "traffic", "search_volume", "difficulty", "cpc", "competition", "trend")

    def __init__(self, session: Session) -> None:
        self.session = session

    def _find(self, tracker_id: int, day: datetime.date) -> Optional[RankTrackerHistory]:
        return (
            self.session.query(RankTrackerHistory)
            .filter(
                RankTrackerHistory.rank_tracker_id == tracker_id,
                RankTrackerHistory.date == day,
            )
            .first()
        )

    def record(
        self,
        tracker_id: int,
        ranking: ProviderRanking,
        day: Optional[datetime.date] = None,
    ) -> RankTrackerHistory:
        """Store *ranking* as the observation for *day* (default: today).

        An existing row for the same tracker and day is overwritten.
        """
        day = day or datetime.date.today()
        values = {name: getattr(ranking, name, None) for name in self.FIELDS}

        row = self._find(tracker_id, day)
        if row is None:
            row = RankTrackerHistory(rank_tracker_id=tracker_id, date=day, **values)
            self.session.add(row)
            try:
                self.session.commit()
                return row
            except IntegrityError:
                # A concurrent write for the same day won; overwrite it instead
                self.session.rollback()
                row = self._find(tracker_id, day)
                if row is None:
                    raise

        for name, value in values.items():
            setattr(row, name, value)
        self.session.commit()
        logger.debug("Overwrote history for tracker {} on {}", tracker_id, day)
        return row

    def _query(self, tracker_ids, start, end):
        query = self.session.query(RankTrackerHistory).filter(
            RankTrackerHistory.rank_tracker_id.in_(tracker_ids)
        )
        if start:
            query = query.filter(RankTrackerHistory.date >= start)
        if end:
            query = query.filter(RankTrackerHistory.date <= end)
        return query

    def load_series(
        self,
        tracker_id: int,
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
    ) -> list[RankObservation]:
        """Return the tracker's observations ordered by date ascending."""
        rows = self._query([tracker_id], start, end).order_by(RankTrackerHistory.date.asc()).all()
        return [observation_from_history(row) for row in rows]

    def load_grouped(
        self,
        tracker_ids: Iterable[int],
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
    ) -> dict[int, list[dict]]:
        """Return history for several trackers, newest first, grouped by tracker id."""
        tracker_ids = list(tracker_ids)
        if not tracker_ids:
            raise ValidationError("Rank tracker IDs are required", field="rank_tracker_ids")

        rows = self._query(tracker_ids, start, end).order_by(RankTrackerHistory.date.desc()).all()
        grouped: dict[int, list[dict]] = {}
        for row in rows:
            grouped.setdefault(row.rank_tracker_id, []).append(row.to_dict())
        return grouped

    def statistics(
        self,
        tracker_id: int,
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
    ) -> RankStatistics:
        return compute_statistics(self.load_series(tracker_id, start, end))


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


class RankFetcher:
    """Fetch positions from the ranking provider and record them."""

    def __init__(self, session: Session, client: Optional[SemrushClient] = None) -> None:
        self.session = session
        self.client = client or SemrushClient()
        self.history = RankHistory(session)
        self.settings = get_settings()

    def fetch_one(self, tracker_id: int, day: Optional[datetime.date] = None) -> RankTrackerHistory:
        """Fetch and record today's position for one tracker.

        Raises
        ------
        ValidationError
            If the tracker does not exist.
        UpstreamUnavailable
            If the provider call fails.
        """
        tracker = self.session.get(RankTracker, tracker_id)
        if tracker is None:
            raise ValidationError(f"Rank tracker {tracker_id} not found", field="rank_tracker_id")

        ranking = self.client.fetch_ranking(tracker.keyword, tracker.country, tracker.domain)
        row = self.history.record(tracker.id, ranking, day)

        tracker.last_checked = datetime.datetime.utcnow()
        self.session.commit()
        logger.info(
            "Tracker {} ('{}' / {}): position {}",
            tracker.id, tracker.keyword, tracker.country, ranking.position,
        )
        return row

    def fetch_batch(
        self,
        tracker_ids: Optional[Iterable[int]],
        day: Optional[datetime.date] = None,
    ) -> BatchResult:
        """Fetch every tracker independently; one failure never stops the others."""
        if tracker_ids is None:
            raise ValidationError("Rank tracker IDs array is required", field="rank_tracker_ids")

        result = BatchResult(max_errors=self.settings.error_sample_limit)
        for tracker_id in tracker_ids:
            try:
                row = self.fetch_one(tracker_id, day)
            except (RankdeskError, SQLAlchemyError) as exc:
                self.session.rollback()
                logger.warning("Fetch failed for tracker {}: {}", tracker_id, exc)
                result.add_failure(
                    f"tracker {tracker_id}: {exc}",
                    {"rank_tracker_id": tracker_id, "error": str(exc)},
                )
                continue
            result.add_success({"rank_tracker_id": tracker_id, "position": row.position})

        logger.info("Batch fetch completed: {} ok, {} failed", result.succeeded, result.failed)
        return result


# ---------------------------------------------------------------------------
# Tracker management
# ---------------------------------------------------------------------------


class RankTrackerService:
    """Create, list, toggle and delete rank trackers."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.history = RankHistory(session)

    def _get(self, tracker_id: int) -> RankTracker:
        tracker = self.session.get(RankTracker, tracker_id)
        if tracker is None:
            raise ValidationError(f"Rank tracker {tracker_id} not found", field="rank_tracker_id")
        return tracker

    def _find(self, keyword: str, country: str, domain: str) -> Optional[RankTracker]:
        return (
            self.session.query(RankTracker)
            .filter(
                RankTracker.keyword == keyword,
                RankTracker.country == country,
                RankTracker.domain == domain,
            )
            .first()
        )

    def create(self, keyword: str, country: str, domain: str) -> RankTracker:
        """Start tracking *keyword* in *country* for *domain*.

        Raises
        ------
        ValidationError
            If any of the three fields is empty.
        ConflictError
            If the same keyword, country and domain is already tracked.
        """
        keyword = (keyword or "").strip()
        country = (country or "").strip().lower()
        domain = normalize_domain(domain)
        for name, value in (("keyword", keyword), ("country", country), ("domain", domain)):
            if not value:
                raise ValidationError(f"{name.capitalize()} is required", field=name)

        message = "Rank tracker for this keyword, country, and domain already exists"
        if self._find(keyword, country, domain) is not None:
            raise ConflictError(message)

        tracker = RankTracker(keyword=keyword, country=country, domain=domain, is_active=True)
        self.session.add(tracker)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(message) from exc

        logger.info("Created rank tracker {} ('{}' / {} / {})", tracker.id, keyword, country, domain)
        return tracker

    def list(self, active_only: bool = False) -> list[RankTracker]:
        query = self.session.query(RankTracker)
        if active_only:
            query = query.filter(RankTracker.is_active.is_(True))
        return query.order_by(RankTracker.created_at.desc(), RankTracker.id.desc()).all()

    def set_active(self, tracker_id: int, active: bool) -> RankTracker:
        tracker = self._get(tracker_id)
        tracker.is_active = bool(active)
        self.session.commit()
        logger.info("Rank tracker {} is now {}", tracker_id, "active" if active else "inactive")
        return tracker

    def delete(self, tracker_id: int) -> None:
        """Delete a tracker together with its history."""
        tracker = self._get(tracker_id)
        self.session.delete(tracker)
        self.session.commit()
        logger.info("Deleted rank tracker {}", tracker_id)

    def record(
        self,
        tracker_id: int,
        position: int,
        day: Optional[datetime.date] = None,
        url: Optional[str] = None,
        traffic: Optional[int] = None,
        search_volume: Optional[int] = None,
    ) -> RankTrackerHistory:
        """Record a manually observed position; 0 means not ranked."""
        tracker = self._get(tracker_id)
        if position is None or position < 0:
            raise ValidationError("Position must be zero or a positive integer", field="position")

        ranking = ProviderRanking(
            position=position, url=url, traffic=traffic, search_volume=search_volume,
        )
        row = self.history.record(tracker.id, ranking, day)
        tracker.last_checked = datetime.datetime.utcnow()
        self.session.commit()
        return row
