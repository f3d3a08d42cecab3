"""
Competitor backlink import analysis.
====================================

Rows exported from a competitor's backlink profile are compared against the
domains we already have live backlinks from and the domains already in the
prospect pipeline. Each row is tagged ``new``, ``in_prospects`` or
``already_have`` and the list is ordered so that new opportunities with the
highest domain rating come first.

Usage:
    from rankdesk.services.import_classifier import CompetitorImporter

    importer = CompetitorImporter(session)
    report = importer.analyze(rows, competitor_domain="rival.com")
    importer.add_prospects(report.new_rows()[:20], "rival.com")
"""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..errors import BatchResult, ValidationError
from ..models.backlink import (
    Backlink,
    BacklinkProspect,
    CompetitorImport,
    ProspectStatus,
)
from ..models.brand import Brand
from ..utils.domains import is_http_url, normalize_domain
from ..utils.row_adapter import canonicalize_row, parse_int

LIST_LIMIT = 500


class ImportStatus(str, Enum):
    NEW = "new"
    IN_PROSPECTS = "in_prospects"
    ALREADY_HAVE = "already_have"


STATUS_PRIORITY = {
    ImportStatus.NEW: 0,
    ImportStatus.IN_PROSPECTS: 1,
    ImportStatus.ALREADY_HAVE: 2,
}


@dataclass
class ImportRow:
    """One competitor backlink row."""
    url: Optional[str]
    domain_rating: Optional[int] = None
    domain_traffic: Optional[int] = None
    anchor: Optional[str] = None
    link_type: Optional[str] = None

    @property
    def root_domain(self) -> str:
        return normalize_domain(self.url)

    @property
    def is_valid(self) -> bool:
        return is_http_url(self.url)

    @classmethod
    def from_raw(cls, row: Mapping[str, Any]) -> "ImportRow":
        """Build a row from either naming convention (``domainRating`` or ``Domain rating``)."""
        data = canonicalize_row(row)
        url = data["referring_page_url"]
        return cls(
            url=url if isinstance(url, str) else None,
            domain_rating=parse_int(data["domain_rating"]),
            domain_traffic=parse_int(data["domain_traffic"]),
            anchor=data["anchor"],
            link_type=data["link_type"],
        )


@dataclass
class ClassifiedRow:
    url: str
    root_domain: str
    domain_rating: Optional[int]
    domain_traffic: Optional[int]
    anchor: Optional[str]
    link_type: Optional[str]
    status: ImportStatus
    existing_brands: Optional[list[str]] = None
    prospect_status: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "url": self.url,
            "root_domain": self.root_domain,
            "dr": self.domain_rating,
            "traffic": self.domain_traffic,
            "anchor": self.anchor,
            "link_type": self.link_type,
            "status": self.status.value,
        }
        if self.existing_brands is not None:
            data["existing_brands"] = list(self.existing_brands)
        if self.prospect_status is not None:
            data["prospect_status"] = self.prospect_status
        return data


RowInput = Union[ImportRow, Mapping[str, Any]]


def _as_import_row(row: RowInput) -> ImportRow:
    return row if isinstance(row, ImportRow) else ImportRow.from_raw(row)


def partition_rows(rows: Iterable[RowInput]) -> tuple[list[ImportRow], list[str]]:
    """Split rows into valid rows and reasons for the invalid ones."""
    valid, reasons = [], []
    for index, raw in enumerate(rows, start=1):
        row = _as_import_row(raw)
        if not row.url:
            reasons.append(f"row {index}: missing referring page URL")
        elif not row.is_valid:
            reasons.append(f"row {index}: not an absolute http(s) URL: {row.url}")
        else:
            valid.append(row)
    return valid, reasons


def _normalized_keys(mapping: Mapping[str, Any], merge=None) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in mapping.items():
        domain = normalize_domain(key)
        if not domain:
            continue
        if merge is not None and domain in normalized:
            normalized[domain] = merge(normalized[domain], value)
        else:
            normalized.setdefault(domain, value)
    return normalized


def _union(left: Iterable[str], right: Iterable[str]) -> list[str]:
    return sorted(set(left) | set(right))


def sort_classified(rows: Iterable[ClassifiedRow]) -> list[ClassifiedRow]:
    """Order by status priority, then domain rating descending (None counts as 0).

    ``sorted`` is stable, so rows that tie on both keys keep input order.
    """
    return sorted(rows, key=lambda r: (STATUS_PRIORITY[r.status], -(r.domain_rating or 0)))


def classify(
    rows: Iterable[RowInput],
    existing_backlink_domains: Mapping[str, Iterable[str]],
    existing_prospect_domains: Mapping[str, str],
    existing_prospect_urls: Iterable[str] = (),
) -> list[ClassifiedRow]:
    """Classify competitor rows against what we already have.

    Rows without an absolute http(s) URL are dropped. A domain we already
    hold a backlink from is ``already_have`` (with the brand names); else a
    domain or exact URL in the prospect pipeline is ``in_prospects`` (with its
    outreach status, ``NOT_CONTACTED`` when only the URL matched); anything
    else is ``new``. The result is ordered by :func:`sort_classified`.
    """
    backlink_domains = _normalized_keys(existing_backlink_domains, merge=_union)
    prospect_domains = _normalized_keys(existing_prospect_domains)
    prospect_urls = set(existing_prospect_urls)

    valid, _ = partition_rows(rows)
    classified = []
    for row in valid:
        domain = row.root_domain
        brands = None
        prospect_status = None

        if domain and domain in backlink_domains:
            status = ImportStatus.ALREADY_HAVE
            brands = sorted(set(backlink_domains[domain]))
        elif (domain and domain in prospect_domains) or row.url in prospect_urls:
            status = ImportStatus.IN_PROSPECTS
            found = prospect_domains.get(domain) if domain else None
            prospect_status = found or ProspectStatus.NOT_CONTACTED.value
        else:
            status = ImportStatus.NEW

        classified.append(ClassifiedRow(
            url=row.url,
            root_domain=domain,
            domain_rating=row.domain_rating,
            domain_traffic=row.domain_traffic,
            anchor=row.anchor,
            link_type=row.link_type,
            status=status,
            existing_brands=brands,
            prospect_status=prospect_status,
        ))

    return sort_classified(classified)


def count_statuses(rows: Iterable[ClassifiedRow]) -> dict[str, int]:
    counts = Counter(row.status for row in rows)
    return {
        "new_opportunities": counts[ImportStatus.NEW],
        "already_have": counts[ImportStatus.ALREADY_HAVE],
        "in_prospects": counts[ImportStatus.IN_PROSPECTS],
    }


@dataclass
class ImportReport:
    """Result of analyzing one competitor import batch."""
    competitor_domain: str
    import_batch_id: str
    total_rows: int
    rows: list[ClassifiedRow] = field(default_factory=list)
    skipped_reasons: list[str] = field(default_factory=list)
    skipped: int = 0

    @property
    def stats(self) -> dict[str, int]:
        return count_statuses(self.rows)

    def new_rows(self) -> list[ClassifiedRow]:
        return [row for row in self.rows if row.status is ImportStatus.NEW]

    def to_dict(self) -> dict:
        return {
            "competitor_domain": self.competitor_domain,
            "import_batch_id": self.import_batch_id,
            "total_rows": self.total_rows,
            "analyzed": len(self.rows),
            "skipped": self.skipped,
            "skipped_reasons": list(self.skipped_reasons),
            "stats": self.stats,
            "data": [row.to_dict() for row in self.rows],
        }


class CompetitorImporter:
    """Analyze competitor backlink exports and feed new domains into prospecting."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = get_settings()

    def load_lookups(self) -> tuple[dict[str, list[str]], dict[str, str], set[str]]:
        """Load backlink domains (with brand names), prospect domains and prospect URLs."""
        backlink_domains: dict[str, set[str]] = {}
        rows = (
            self.session.query(Backlink.root_domain, Brand.name)
            .join(Brand, Backlink.brand_id == Brand.id)
            .all()
        )
        for root_domain, brand_name in rows:
            backlink_domains.setdefault(normalize_domain(root_domain), set()).add(brand_name)

        prospect_domains: dict[str, str] = {}
        prospect_urls: set[str] = set()
        prospects = self.session.query(
            BacklinkProspect.referring_page_url,
            BacklinkProspect.root_domain,
            BacklinkProspect.status,
        ).all()
        for url, root_domain, status in prospects:
            prospect_urls.add(url)
            prospect_domains[normalize_domain(root_domain)] = (
                status.value if status else ProspectStatus.NOT_CONTACTED.value
            )

        return (
            {domain: sorted(brands) for domain, brands in backlink_domains.items()},
            prospect_domains,
            prospect_urls,
        )

    def analyze(self, rows: list[Mapping[str, Any]], competitor_domain: str) -> ImportReport:
        """Classify a competitor export and keep an audit copy of the batch.

        Raises
        ------
        ValidationError
            If there are no rows or no competitor domain.
        """
        if not rows:
            raise ValidationError("No data to import", field="rows")
        if not competitor_domain:
            raise ValidationError("Competitor domain is required", field="competitor_domain")

        valid, reasons = partition_rows(rows)
        backlink_domains, prospect_domains, prospect_urls = self.load_lookups()
        classified = classify(valid, backlink_domains, prospect_domains, prospect_urls)

        report = ImportReport(
            competitor_domain=competitor_domain,
            import_batch_id=uuid.uuid4().hex,
            total_rows=len(rows),
            rows=classified,
            skipped_reasons=reasons[:self.settings.error_sample_limit],
            skipped=len(reasons),
        )
        self._store_audit_copy(report)

        stats = report.stats
        logger.info(
            "Import from '{}': {} rows, {} new, {} in prospects, {} already have, {} skipped",
            competitor_domain, len(rows), stats["new_opportunities"],
            stats["in_prospects"], stats["already_have"], report.skipped,
        )
        return report

    def _store_audit_copy(self, report: ImportReport) -> None:
        for row in report.rows:
            self.session.add(CompetitorImport(
                import_batch_id=report.import_batch_id,
                competitor_domain=report.competitor_domain,
                referring_page_url=row.url,
                root_domain=row.root_domain,
                domain_rating=row.domain_rating,
                domain_traffic=row.domain_traffic,
                anchor=row.anchor,
                link_type=row.link_type,
                classification=row.status.value,
            ))
        self.session.commit()

    def add_prospects(
        self,
        selected: Iterable[Union[ClassifiedRow, ImportRow, Mapping[str, Any]]],
        competitor_domain: Optional[str] = None,
    ) -> BatchResult:
        """Create ``NOT_CONTACTED`` prospects for the selected rows.

        Rows whose URL or root domain already exists as a prospect are
        skipped; a storage error on one row does not stop the others.
        """
        selected = list(selected)
        if not selected:
            raise ValidationError("No prospects to add", field="prospects")

        result = BatchResult(max_errors=self.settings.error_sample_limit)
        source = f"ahrefs-{competitor_domain}" if competitor_domain else "ahrefs-import"
        _, prospect_domains, prospect_urls = self.load_lookups()
        known_domains = set(prospect_domains)

        for item in selected:
            if isinstance(item, ClassifiedRow):
                row = ImportRow(item.url, item.domain_rating, item.domain_traffic, item.anchor, item.link_type)
            else:
                row = _as_import_row(item)
            if not row.is_valid:
                result.add_skip(f"invalid URL: {row.url}")
                continue

            root_domain = row.root_domain
            if row.url in prospect_urls or root_domain in known_domains:
                result.add_skip()
                continue

            try:
                self.session.add(BacklinkProspect(
                    referring_page_url=row.url,
                    root_domain=root_domain,
                    domain_rating=row.domain_rating or None,
                    domain_traffic=row.domain_traffic or None,
                    nofollow="nofollow" in (row.link_type or "").lower(),
                    source=source,
                    status=ProspectStatus.NOT_CONTACTED,
                ))
                self.session.commit()
                known_domains.add(root_domain)
                prospect_urls.add(row.url)
                result.add_success({"root_domain": root_domain, "url": row.url})
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.warning("Could not add prospect {}: {}", root_domain, exc)
                result.add_failure(f"{root_domain}: {exc}")

        logger.info(
            "Prospects added from '{}': {} created, {} skipped, {} failed",
            source, result.succeeded, result.skipped, result.failed,
        )
        return result

    def list_imports(
        self,
        batch_id: Optional[str] = None,
        competitor_domain: Optional[str] = None,
        min_dr: Optional[int] = None,
    ) -> list[CompetitorImport]:
        query = self.session.query(CompetitorImport)
        if batch_id:
            query = query.filter(CompetitorImport.import_batch_id == batch_id)
        if competitor_domain:
            query = query.filter(CompetitorImport.competitor_domain == competitor_domain)
        if min_dr is not None:
            query = query.filter(CompetitorImport.domain_rating >= min_dr)
        return (
            query.order_by(
                CompetitorImport.domain_rating.desc(),
                CompetitorImport.domain_traffic.desc(),
            )
            .limit(LIST_LIMIT)
            .all()
        )

    def delete_batch(self, batch_id: str) -> int:
        if not batch_id:
            raise ValidationError("Batch ID is required", field="batch_id")
        deleted = (
            self.session.query(CompetitorImport)
            .filter(CompetitorImport.import_batch_id == batch_id)
            .delete(synchronize_session=False)
        )
        self.session.commit()
        logger.info("Deleted import batch {} ({} rows)", batch_id, deleted)
        return deleted
