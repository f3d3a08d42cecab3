"""Tests for day-over-day change detection."""

import datetime

from rankdesk.services.change_detector import detect_changes, summarize_changes
from rankdesk.services.rank_statistics import RankObservation

TODAY = datetime.date(2025, 9, 15)
YESTERDAY = datetime.date(2025, 9, 14)


def obs(day, keyword, position, entity_id=1, country="US", **labels):
    return RankObservation(date=day, position=position, keyword=keyword, country=country,
                           entity_id=entity_id, labels=labels)


class TestDetectChanges:
    """Test suite for detect_changes."""

    def test_unranked_transitions_are_excluded(self):
        changes = detect_changes(
            [obs(TODAY, "lost", 0), obs(TODAY, "found", 4)],
            [obs(YESTERDAY, "lost", 5), obs(YESTERDAY, "found", 0)],
        )
        assert changes == []

    def test_only_keys_in_both_snapshots(self):
        changes = detect_changes(
            [obs(TODAY, "a", 3), obs(TODAY, "b", 3, country="GB"), obs(TODAY, "c", 3, entity_id=2)],
            [obs(YESTERDAY, "a", 6), obs(YESTERDAY, "b", 6, country="US"), obs(YESTERDAY, "c", 6, entity_id=1)],
        )
        assert [(c.keyword, c.change) for c in changes] == [("a", 3)]

    def test_unchanged_dropped_and_sorted_worst_first(self):
        changes = detect_changes(
            [obs(TODAY, "up", 2), obs(TODAY, "same", 7), obs(TODAY, "down", 20), obs(TODAY, "dip", 6)],
            [obs(YESTERDAY, "up", 9), obs(YESTERDAY, "same", 7), obs(YESTERDAY, "down", 4), obs(YESTERDAY, "dip", 5)],
        )
        assert [(c.keyword, c.change) for c in changes] == [("down", -16), ("dip", -1), ("up", 7)]

    def test_labels_are_carried(self):
        changes = detect_changes(
            [obs(TODAY, "a", 1, app_name="Notary", platform="IOS")],
            [obs(YESTERDAY, "a", 2)],
        )
        data = changes[0].to_dict()
        assert data["app_name"] == "Notary"
        assert data["previous_position"] == 2
        assert data["current_position"] == 1
        assert data["change"] == 1


class TestSummarizeChanges:
    """Test suite for summarize_changes."""

    def _changes(self, deltas):
        today = [obs(TODAY, f"kw{i}", 50 - d) for i, d in enumerate(deltas)]
        yesterday = [obs(YESTERDAY, f"kw{i}", 50) for i in range(len(deltas))]
        return detect_changes(today, yesterday)

    def test_top_movers(self):
        report = summarize_changes(self._changes([-12, -3, 5, 15, 10, -9, 1]), limit=2)

        assert [c.change for c in report.top_drops] == [-12, -9]
        assert [c.change for c in report.top_improvements] == [15, 10]
        assert report.total_drops == 3
        assert report.total_improvements == 4

    def test_significant_threshold_is_inclusive(self):
        report = summarize_changes(self._changes([-10, -9, 10, 9, 25]))
        assert report.significant_drops == 1
        assert report.significant_improvements == 2

    def test_default_limit_is_ten(self):
        report = summarize_changes(self._changes([-(i + 1) for i in range(15)]))
        assert len(report.top_drops) == 10
        assert report.top_drops[0].change == -15

    def test_to_dict(self):
        data = summarize_changes(self._changes([-3, 4])).to_dict()
        assert data["summary"] == {
            "total_drops": 1,
            "total_improvements": 1,
            "significant_drops": 0,
            "significant_improvements": 0,
        }
        assert data["top_drops"][0]["change"] == -3
        assert data["top_improvements"][0]["change"] == 4
