"""
App-store ranking uploads and daily rank alerts.

Rankings arrive as pasted or uploaded text (see
:mod:`rankdesk.utils.ranking_file`) and are stored one row per
(app, keyword, country, date). Alerts compare yesterday's snapshot with the
day before.
"""

from __future__ import annotations

import datetime
from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..config import get_settings
from ..errors import ConflictError, ValidationError
from ..models.brand import App, Brand
from ..models.ranking import AppRanking, RankTracker
from ..utils.ranking_file import ParsedRanking, parse_ranking_lines
from .change_detector import ChangeReport, detect_changes, summarize_changes
from .rank_statistics import RankObservation


class AppRankingUploader:
    """Store parsed ranking lines for one app."""

    def __init__(self, session: Session):
        self.session = session

    def _find(self, app_id: int, ranking: ParsedRanking) -> Optional[AppRanking]:
        return (
            self.session.query(AppRanking)
            .filter(
                AppRanking.app_id == app_id,
                AppRanking.keyword == ranking.keyword,
                AppRanking.country == ranking.country,
                AppRanking.date == ranking.date,
            )
            .first()
        )

    def upload(self, app_id: int, text: str, today: Optional[datetime.date] = None) -> dict:
        """Parse *text* and upsert its rankings for *app_id*.

        Returns created/updated/skipped counts. Raises :class:`ValidationError`
        for an unknown app or when no line could be parsed, and
        :class:`ConflictError` when a concurrent upload wins a row.
        """
        if self.session.get(App, app_id) is None:
            raise ValidationError(f"App {app_id} not found", field="app_id")

        parsed = parse_ranking_lines(text or "", today=today)
        if not parsed.rankings:
            raise ValidationError("No valid ranking data found", field="data")

        created = updated = 0
        try:
            for ranking in parsed.rankings:
                row = self._find(app_id, ranking)
                if row is None:
                    self.session.add(AppRanking(
                        app_id=app_id,
                        keyword=ranking.keyword,
                        country=ranking.country,
                        rank=ranking.rank,
                        score=ranking.score,
                        traffic=ranking.traffic,
                        date=ranking.date,
                    ))
                    # Flush so a duplicate line later in the same upload finds this row
                    self.session.flush()
                    created += 1
                else:
                    row.rank = ranking.rank
                    row.score = ranking.score
                    row.traffic = ranking.traffic
                    updated += 1

            self.session.commit()
        except IntegrityError as exc:
            # Another upload stored the same (app, keyword, country, date) first
            self.session.rollback()
            raise ConflictError(
                f"Rankings for app {app_id} were uploaded concurrently; retry the upload"
            ) from exc

        logger.info(
            "Uploaded rankings for app {}: {} created, {} updated, {} skipped",
            app_id, created, updated, len(parsed.skipped),
        )
        return {
            "created": created,
            "updated": updated,
            "skipped": len(parsed.skipped),
            "skipped_lines": parsed.skipped,
        }


def observation_from_app_ranking(row: AppRanking) -> RankObservation:
    app = row.app
    brand = app.brand if app else None
    platform = app.platform if app else None
    return RankObservation(
        date=row.date,
        position=row.rank or 0,
        keyword=row.keyword,
        country=row.country,
        entity_id=row.app_id,
        traffic=row.traffic,
        labels={
            "app_name": app.name if app else None,
            "brand_name": brand.name if brand else None,
            "platform": platform.value if hasattr(platform, "value") else platform,
        },
    )


class AlertService:
    """Day-over-day ranking alerts for the dashboard."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = get_settings()

    def _snapshot(self, day: datetime.date) -> list[RankObservation]:
        rows = (
            self.session.query(AppRanking)
            .options(joinedload(AppRanking.app).joinedload(App.brand))
            .filter(AppRanking.date == day)
            .all()
        )
        return [observation_from_app_ranking(row) for row in rows]

    def changes(self, today: Optional[datetime.date] = None) -> ChangeReport:
        today = today or datetime.date.today()
        current_day = today - datetime.timedelta(days=1)
        previous_day = today - datetime.timedelta(days=2)

        changes = detect_changes(self._snapshot(current_day), self._snapshot(previous_day))
        return summarize_changes(
            changes,
            limit=self.settings.top_movers_limit,
            threshold=self.settings.significant_change_threshold,
        )

    def daily_alerts(self, today: Optional[datetime.date] = None) -> dict:
        """Return the change report for yesterday plus dashboard totals."""
        report = self.changes(today)
        logger.info(
            "Daily alerts: {} drops, {} improvements",
            report.total_drops, report.total_improvements,
        )

        data = report.to_dict()
        data["totals"] = {
            "apps": self.session.query(App).count(),
            "brands": self.session.query(Brand).count(),
            "rank_trackers": self.session.query(RankTracker).count(),
        }
        return data
