"""Tests for competitor import classification."""

import pytest

from rankdesk.errors import ValidationError
from rankdesk.models import Backlink, BacklinkProspect, CompetitorImport, ProspectStatus
from rankdesk.services.import_classifier import (
    CompetitorImporter,
    ImportRow,
    ImportStatus,
    classify,
    count_statuses,
    partition_rows,
)


class TestClassify:
    """Pure classification against existing lookups."""

    def test_end_to_end_scenario(self):
        rows = [
            {"url": "https://rival.com/x", "dr": 70},
            {"url": "https://new-site.com/y", "dr": 30},
            {"url": "https://fresh.com/z", "dr": 90},
        ]
        result = classify(rows, {"rival.com": ["BrandA"]}, {"new-site.com": "NOT_CONTACTED"})

        assert [(r.root_domain, r.status) for r in result] == [
            ("fresh.com", ImportStatus.NEW),
            ("new-site.com", ImportStatus.IN_PROSPECTS),
            ("rival.com", ImportStatus.ALREADY_HAVE),
        ]
        assert result[1].prospect_status == "NOT_CONTACTED"
        assert result[2].existing_brands == ["BrandA"]

    def test_sort_by_priority_then_rating(self):
        """NEW rows come first, highest rating first; None rating counts as 0."""
        rows = [
            ImportRow("https://a.com/", 10),
            ImportRow("https://have.com/", 99),
            ImportRow("https://b.com/", 50),
            ImportRow("https://c.com/", None),
        ]
        result = classify(rows, {"have.com": ["BrandA"]}, {})

        assert [(r.status, r.domain_rating) for r in result] == [
            (ImportStatus.NEW, 50),
            (ImportStatus.NEW, 10),
            (ImportStatus.NEW, None),
            (ImportStatus.ALREADY_HAVE, 99),
        ]

    def test_ties_keep_input_order(self):
        rows = [ImportRow(f"https://site{i}.com/", 40) for i in range(5)]
        result = classify(rows, {}, {})
        assert [r.root_domain for r in result] == [f"site{i}.com" for i in range(5)]

    def test_backlink_match_beats_prospect_match(self):
        result = classify([ImportRow("https://both.com/")], {"both.com": ["B"]}, {"both.com": "CONTACTED"})
        assert result[0].status is ImportStatus.ALREADY_HAVE

    def test_lookup_keys_are_normalized(self):
        """Existing domains stored with www. or a scheme still match."""
        result = classify(
            [ImportRow("https://rival.com/x"), ImportRow("https://prospect.com/")],
            {"www.rival.com": ["BrandA"], "https://rival.com": ["BrandB"]},
            {"WWW.Prospect.com": "RESPONDED"},
        )
        by_domain = {r.root_domain: r for r in result}
        assert by_domain["rival.com"].existing_brands == ["BrandA", "BrandB"]
        assert by_domain["prospect.com"].prospect_status == "RESPONDED"

    def test_url_only_match_defaults_status(self):
        result = classify([ImportRow("https://url-only.com/page")], {}, {}, {"https://url-only.com/page"})
        assert result[0].status is ImportStatus.IN_PROSPECTS
        assert result[0].prospect_status == ProspectStatus.NOT_CONTACTED.value

    def test_empty_keys_never_match(self):
        """An empty-domain lookup entry matches nothing."""
        result = classify([ImportRow("https://x.com/")], {"": ["Ghost"]}, {"": "CONTACTED"})
        assert result[0].status is ImportStatus.NEW

    def test_totals_match_valid_rows(self):
        rows = [
            {"Referring page URL": "https://a.com/", "Domain rating": "20"},
            {"Referring page URL": "not-a-url"},
            {"Referring page URL": ""},
            {"referringPageUrl": "http://b.com/", "domainRating": 5},
            {"url": "https://have.com/"},
        ]
        valid, skipped = partition_rows(rows)
        result = classify(rows, {"have.com": ["A"]}, {"b.com": "CONTACTED"})
        counts = count_statuses(result)

        assert len(skipped) == 2
        assert counts == {"new_opportunities": 1, "already_have": 1, "in_prospects": 1}
        assert sum(counts.values()) == len(rows) - len(skipped) == len(valid)

    def test_to_dict(self):
        row = classify([ImportRow("https://a.com/", 12, 300, "anchor", "dofollow")], {}, {})[0]
        assert row.to_dict() == {
            "url": "https://a.com/",
            "root_domain": "a.com",
            "dr": 12,
            "traffic": 300,
            "anchor": "anchor",
            "link_type": "dofollow",
            "status": "new",
        }


class TestCompetitorImporter:
    """Database-backed import analysis."""

    @pytest.fixture
    def seeded(self, session, brand):
        session.add_all([
            Backlink(brand_id=brand.id, referring_page_url="https://rival.com/a", root_domain="rival.com"),
            BacklinkProspect(referring_page_url="https://new-site.com/old", root_domain="new-site.com",
                             status=ProspectStatus.CONTACTED),
        ])
        session.commit()
        return session

    def test_analyze(self, seeded):
        rows = [
            {"Referring page URL": "https://rival.com/x", "Domain rating": "70"},
            {"Referring page URL": "https://www.new-site.com/y", "Domain rating": "30"},
            {"Referring page URL": "https://fresh.com/z", "Domain rating": "90", "Anchor": "best apostille"},
            {"Referring page URL": "bogus"},
        ]
        report = CompetitorImporter(seeded).analyze(rows, "competitor.com")

        assert report.stats == {"new_opportunities": 1, "already_have": 1, "in_prospects": 1}
        assert report.skipped == 1
        assert report.rows[1].prospect_status == "CONTACTED"
        assert report.rows[2].existing_brands == ["BrandA"]

        stored = seeded.query(CompetitorImport).filter_by(import_batch_id=report.import_batch_id).all()
        assert len(stored) == 3
        assert {s.classification for s in stored} == {"new", "in_prospects", "already_have"}

    def test_analyze_requires_rows_and_competitor(self, session):
        importer = CompetitorImporter(session)
        with pytest.raises(ValidationError):
            importer.analyze([], "competitor.com")
        with pytest.raises(ValidationError) as exc_info:
            importer.analyze([{"url": "https://a.com"}], "")
        assert exc_info.value.field == "competitor_domain"

    def test_add_prospects_skips_existing(self, seeded):
        importer = CompetitorImporter(seeded)
        report = importer.analyze([
            {"url": "https://fresh.com/z", "dr": "90", "Type": "nofollow"},
            {"url": "https://other.com/q", "dr": "10"},
        ], "competitor.com")

        result = importer.add_prospects(report.rows + [{"url": "https://new-site.com/again"}], "competitor.com")

        assert result.succeeded == 2
        assert result.skipped == 1
        prospect = seeded.query(BacklinkProspect).filter_by(root_domain="fresh.com").one()
        assert prospect.status is ProspectStatus.NOT_CONTACTED
        assert prospect.nofollow is True
        assert prospect.source == "ahrefs-competitor.com"

    def test_add_prospects_matches_stored_www_domain(self, session):
        """A stored ``www.`` root domain blocks the same site without the prefix."""
        session.add(BacklinkProspect(referring_page_url="https://www.dup.com/old", root_domain="www.dup.com"))
        session.commit()

        result = CompetitorImporter(session).add_prospects([{"url": "https://dup.com/new"}])

        assert result.succeeded == 0
        assert result.skipped == 1
        assert session.query(BacklinkProspect).count() == 1

    def test_add_prospects_skips_duplicates_within_batch(self, session):
        result = CompetitorImporter(session).add_prospects([
            {"url": "https://twice.com/a"},
            {"url": "https://www.twice.com/b"},
        ])

        assert result.succeeded == 1
        assert result.skipped == 1
        assert session.query(BacklinkProspect).one().root_domain == "twice.com"

    def test_add_prospects_requires_selection(self, session):
        with pytest.raises(ValidationError):
            CompetitorImporter(session).add_prospects([])

    def test_list_and_delete_batch(self, seeded):
        importer = CompetitorImporter(seeded)
        report = importer.analyze([
            {"url": "https://low.com/", "dr": "5"},
            {"url": "https://high.com/", "dr": "80"},
        ], "competitor.com")

        listed = importer.list_imports(batch_id=report.import_batch_id)
        assert [row.root_domain for row in listed] == ["high.com", "low.com"]
        assert [row.root_domain for row in importer.list_imports(min_dr=50)] == ["high.com"]

        assert importer.delete_batch(report.import_batch_id) == 2
        assert importer.list_imports(batch_id=report.import_batch_id) == []
        with pytest.raises(ValidationError):
            importer.delete_batch("")
