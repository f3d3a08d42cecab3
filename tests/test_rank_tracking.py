"""Tests for SEMrush fetching and rank tracker history."""

import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests
from tenacity import wait_none

from rankdesk.config import Settings
from rankdesk.errors import ConflictError, UpstreamUnavailable, ValidationError
from rankdesk.models import RankTracker, RankTrackerHistory
from rankdesk.services.rank_statistics import Trend
from rankdesk.services.rank_tracking import (
    ProviderRanking,
    RankFetcher,
    RankHistory,
    RankTrackerService,
    SemrushClient,
    parse_phrase_organic,
)

HEADER = "Keyword;Position;Url;Traffic;Search Volume;Keyword Difficulty;CPC;Competition;Trends"
BODY = HEADER + "\napostille service;4;https://branda.com/apostille;120;2400;38;2.75;0.41;12\n"


def response(status_code=200, text=BODY):
    return MagicMock(status_code=status_code, text=text)


class TestParsePhraseOrganic:
    """Test suite for parse_phrase_organic."""

    def test_parses_data_line(self):
        ranking = parse_phrase_organic(BODY)
        assert ranking == ProviderRanking(
            position=4,
            url="https://branda.com/apostille",
            traffic=120,
            search_volume=2400,
            difficulty=38,
            cpc=2.75,
            competition=0.41,
            trend=12,
        )

    def test_unranked_and_empty_columns(self):
        ranking = parse_phrase_organic(HEADER + "\nkw;-;;0;;0;0;;0")
        assert ranking.position == 0
        assert ranking.url is None
        assert ranking.traffic is None
        assert ranking.search_volume is None
        assert ranking.cpc is None

    def test_no_data_line(self):
        with pytest.raises(UpstreamUnavailable):
            parse_phrase_organic(HEADER)

    def test_too_few_columns(self):
        with pytest.raises(UpstreamUnavailable):
            parse_phrase_organic(HEADER + "\nkw;4;https://a.com")


class TestSemrushClient:
    """Test suite for SemrushClient with the HTTP layer mocked."""

    def _client(self, api_key="test-key"):
        return SemrushClient(settings=Settings(SEMRUSH_API_KEY=api_key))

    @patch("rankdesk.services.rank_tracking.requests.get")
    def test_fetch_ranking(self, mock_get):
        mock_get.return_value = response()

        ranking = self._client().fetch_ranking("apostille service", "us", "branda.com")

        assert ranking.position == 4
        _, kwargs = mock_get.call_args
        assert kwargs["params"]["type"] == "phrase_organic"
        assert kwargs["params"]["phrase"] == "apostille service"
        assert kwargs["params"]["database"] == "us"
        assert kwargs["params"]["export_columns"] == "Ph,Po,Ur,Tr,Vr,Nq,Cp,Co,Tg"
        assert kwargs["timeout"] == 30.0

    @patch("rankdesk.services.rank_tracking.requests.get")
    def test_missing_api_key(self, mock_get):
        with pytest.raises(UpstreamUnavailable):
            self._client(api_key="").fetch_ranking("kw", "us", "a.com")
        mock_get.assert_not_called()

    @patch("rankdesk.services.rank_tracking.requests.get")
    def test_non_200_status(self, mock_get):
        mock_get.return_value = response(status_code=403, text="ERROR 120 :: WRONG KEY")
        with pytest.raises(UpstreamUnavailable) as exc_info:
            self._client().fetch_ranking("kw", "us", "a.com")
        assert exc_info.value.source == "semrush"

    @patch("rankdesk.services.rank_tracking.requests.get")
    def test_request_error_is_wrapped(self, mock_get):
        """Errors that are not retried surface as UpstreamUnavailable."""
        mock_get.side_effect = requests.exceptions.InvalidURL("bad url")
        with pytest.raises(UpstreamUnavailable):
            self._client().fetch_ranking("kw", "us", "a.com")
        assert mock_get.call_count == 1

    @patch("rankdesk.services.rank_tracking.requests.get")
    def test_transport_errors_are_retried(self, mock_get, monkeypatch):
        """Connection errors and timeouts get three attempts before giving up."""
        monkeypatch.setattr(SemrushClient._get.retry, "wait", wait_none())
        client = self._client()

        mock_get.side_effect = requests.exceptions.ConnectionError("down")
        with pytest.raises(UpstreamUnavailable):
            client.fetch_ranking("kw", "us", "a.com")
        assert mock_get.call_count == 3

        mock_get.reset_mock()
        mock_get.side_effect = [requests.exceptions.Timeout("slow"), response()]
        assert client.fetch_ranking("kw", "us", "a.com").position == 4
        assert mock_get.call_count == 2


class TestRankHistory:
    """Test suite for RankHistory."""

    def test_same_day_write_overwrites(self, session, tracker, today):
        history = RankHistory(session)
        history.record(tracker.id, ProviderRanking(position=9), today)
        history.record(tracker.id, ProviderRanking(position=4, traffic=50), today)

        rows = session.query(RankTrackerHistory).all()
        assert len(rows) == 1
        assert rows[0].position == 4
        assert rows[0].traffic == 50

    def test_load_series_and_statistics(self, session, tracker, today):
        history = RankHistory(session)
        for offset, position in enumerate([12, 0, 8, 5]):
            history.record(tracker.id, ProviderRanking(position=position), today + datetime.timedelta(days=offset))

        series = history.load_series(tracker.id)
        assert [o.position for o in series] == [12, 0, 8, 5]
        assert series[0].keyword == "apostille service"

        stats = history.statistics(tracker.id)
        assert stats.average_position == 8
        assert stats.position_change == 3
        assert stats.trend is Trend.IMPROVING
        assert stats.days_tracked == 4

        window = history.load_series(tracker.id, start=today + datetime.timedelta(days=2))
        assert [o.position for o in window] == [8, 5]

    def test_statistics_without_history(self, session, tracker):
        assert RankHistory(session).statistics(tracker.id).has_data is False

    def test_load_grouped(self, session, tracker, today):
        history = RankHistory(session)
        history.record(tracker.id, ProviderRanking(position=3), today)
        history.record(tracker.id, ProviderRanking(position=6), today - datetime.timedelta(days=1))

        grouped = history.load_grouped([tracker.id])
        assert [row["position"] for row in grouped[tracker.id]] == [3, 6]

        with pytest.raises(ValidationError):
            history.load_grouped([])


class TestRankFetcher:
    """Test suite for RankFetcher batch isolation."""

    def test_fetch_batch_isolates_failures(self, session, tracker, today):
        client = MagicMock()
        client.fetch_ranking.side_effect = [
            ProviderRanking(position=5, url="https://branda.com/"),
            UpstreamUnavailable("SEMrush API request failed with status 500", source="semrush"),
        ]
        second = RankTracker(keyword="notary", country="uk", domain="branda.com")
        session.add(second)
        session.commit()

        result = RankFetcher(session, client=client).fetch_batch([tracker.id, second.id, 999], today)

        assert result.succeeded == 1
        assert result.failed == 2
        assert result.success is False
        assert len(result.errors) == 2
        assert "not found" in result.errors[1]
        assert tracker.last_checked is not None
        assert second.last_checked is None
        assert session.query(RankTrackerHistory).count() == 1

    def test_fetch_batch_requires_ids(self, session):
        with pytest.raises(ValidationError):
            RankFetcher(session, client=MagicMock()).fetch_batch(None)

    def test_empty_batch_is_not_an_error(self, session):
        result = RankFetcher(session, client=MagicMock()).fetch_batch([])
        assert result.succeeded == 0
        assert result.success is True


class TestRankTrackerService:
    """Test suite for RankTrackerService."""

    def test_create_normalizes_fields(self, session):
        tracker = RankTrackerService(session).create("  notary near me ", "US", "https://www.BrandA.com/")

        assert (tracker.keyword, tracker.country, tracker.domain) == ("notary near me", "us", "branda.com")
        assert tracker.is_active is True

    def test_create_rejects_duplicates(self, session, tracker):
        with pytest.raises(ConflictError):
            RankTrackerService(session).create("apostille service", "US", "www.branda.com")
        assert session.query(RankTracker).count() == 1

    def test_create_requires_every_field(self, session):
        service = RankTrackerService(session)
        with pytest.raises(ValidationError) as exc_info:
            service.create("kw", "", "a.com")
        assert exc_info.value.field == "country"
        with pytest.raises(ValidationError):
            service.create(" ", "us", "a.com")

    def test_list_and_set_active(self, session, tracker):
        service = RankTrackerService(session)
        paused = service.create("notary", "uk", "branda.com")

        service.set_active(paused.id, False)

        assert {t.id for t in service.list()} == {tracker.id, paused.id}
        assert [t.id for t in service.list(active_only=True)] == [tracker.id]
        with pytest.raises(ValidationError):
            service.set_active(999, True)

    def test_record_overwrites_same_day(self, session, tracker, today):
        service = RankTrackerService(session)
        service.record(tracker.id, 7, today, url="https://branda.com/a")
        row = service.record(tracker.id, 3, today, traffic=40)

        assert session.query(RankTrackerHistory).count() == 1
        assert (row.position, row.url, row.traffic) == (3, None, 40)
        assert tracker.last_checked is not None

    def test_record_rejects_bad_input(self, session, tracker):
        service = RankTrackerService(session)
        with pytest.raises(ValidationError):
            service.record(tracker.id, -1)
        with pytest.raises(ValidationError):
            service.record(999, 4)

    def test_delete_removes_history(self, session, tracker, today):
        service = RankTrackerService(session)
        tracker_id = tracker.id
        service.record(tracker_id, 5, today)

        service.delete(tracker_id)

        assert session.query(RankTracker).count() == 0
        assert session.query(RankTrackerHistory).count() == 0
        with pytest.raises(ValidationError):
            service.delete(tracker_id)
