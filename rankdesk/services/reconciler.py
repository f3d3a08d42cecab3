"""
Domain reconciliation for the link directory.
=============================================

Backlinks and prospects are recorded per page URL, often several times for
the same site. Reconciliation folds them into one :class:`DomainAggregate`
per normalized root domain and materializes each aggregate as a
``LinkDirectoryDomain`` row.

Merge rules live in a single policy table (``MERGE_POLICY``) consumed by one
generic fold:

- ``max``: keep the largest non-null value (domain rating, traffic)
- ``first-non-null``: the first value seen wins (example URL, contact fields)
- ``or``: true if any contributing record was true (nofollow)

Backlinks are always folded before prospects so that a live backlink's URL
becomes the example URL whenever the domain has one. Contact fields are only
taken from prospect-shaped records.

Usage:
    from rankdesk.services.reconciler import DirectorySync

    sync = DirectorySync(session)
    result = sync.run()
"""

from __future__ import annotations

import datetime
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..errors import BatchResult, ConflictError
from ..models.backlink import Backlink, BacklinkProspect, LinkDirectoryDomain
from ..utils.domains import normalize_domain
from ..utils.row_adapter import (
    canonicalize_row,
    parse_bool,
    parse_contact_method,
    parse_date,
    parse_nonzero_int,
    split_email_or_link,
)

# ---------------------------------------------------------------------------
# Merge policy
# ---------------------------------------------------------------------------

MAX = "max"
FIRST_NON_NULL = "first-non-null"
OR = "or"

MERGE_POLICY: dict[str, str] = {
    "example_url": FIRST_NON_NULL,
    "domain_rating": MAX,
    "domain_traffic": MAX,
    "nofollow": OR,
    "contacted_on": FIRST_NON_NULL,
    "contact_method": FIRST_NON_NULL,
    "contact_email": FIRST_NON_NULL,
    "contact_form_url": FIRST_NON_NULL,
    "remarks": FIRST_NON_NULL,
}

# Spreadsheet imports only fill gaps on an existing directory row
FILL_EMPTY_POLICY: dict[str, str] = {
    **MERGE_POLICY,
    "domain_rating": FIRST_NON_NULL,
    "domain_traffic": FIRST_NON_NULL,
}

CONTACT_FIELDS = frozenset(
    {"contacted_on", "contact_method", "contact_email", "contact_form_url", "remarks"}
)


def merge_value(policy: str, current: Any, incoming: Any) -> Any:
    """Combine *current* and *incoming* according to one policy name."""
    if policy == MAX:
        if incoming is not None and (current is None or incoming > current):
            return incoming
        return current
    if policy == FIRST_NON_NULL:
        return current if current is not None else incoming
    if policy == OR:
        return bool(current) or bool(incoming)
    raise ValueError(f"Unknown merge policy: {policy}")


# ---------------------------------------------------------------------------
# Data contracts
# ---------------------------------------------------------------------------


class RecordKind(str, Enum):
    BACKLINK = "backlink"
    PROSPECT = "prospect"


@dataclass
class SourceRecord:
    """A backlink or prospect reduced to the fields reconciliation needs."""
    kind: RecordKind
    id: Any
    url: Optional[str]
    root_domain: Optional[str] = None
    domain_rating: Optional[int] = None
    domain_traffic: Optional[int] = None
    nofollow: bool = False
    contacted_on: Optional[datetime.datetime] = None
    contact_method: Any = None
    contact_email: Optional[str] = None
    contact_form_url: Optional[str] = None
    remarks: Optional[str] = None

    @property
    def domain_key(self) -> str:
        return normalize_domain(self.root_domain or self.url)

    @classmethod
    def from_backlink(cls, backlink: Backlink) -> "SourceRecord":
        link_type = (backlink.link_type or "").lower()
        return cls(
            kind=RecordKind.BACKLINK,
            id=backlink.id,
            url=backlink.referring_page_url,
            root_domain=backlink.root_domain,
            domain_rating=backlink.domain_rating,
            domain_traffic=backlink.domain_traffic,
            nofollow="nofollow" in link_type,
        )

    @classmethod
    def from_prospect(cls, prospect: BacklinkProspect) -> "SourceRecord":
        return cls(
            kind=RecordKind.PROSPECT,
            id=prospect.id,
            url=prospect.referring_page_url,
            root_domain=prospect.root_domain,
            domain_rating=prospect.domain_rating,
            domain_traffic=prospect.domain_traffic,
            nofollow=bool(prospect.nofollow),
            contacted_on=prospect.contacted_on,
            contact_method=prospect.contact_method,
            contact_email=prospect.contact_email,
            contact_form_url=prospect.contact_form_url,
            remarks=prospect.remarks,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any], row_id: Any = None) -> "SourceRecord":
        """Build a prospect-shaped record from a spreadsheet row."""
        data = canonicalize_row(row)
        email, form_url = split_email_or_link(data["email_or_link"])
        return cls(
            kind=RecordKind.PROSPECT,
            id=row_id,
            url=data["referring_page_url"],
            domain_rating=parse_nonzero_int(data["domain_rating"]),
            domain_traffic=parse_nonzero_int(data["domain_traffic"]),
            nofollow=parse_bool(data["nofollow"]),
            contacted_on=parse_date(data["contacted_on"]),
            contact_method=parse_contact_method(data["contact_method"]),
            contact_email=email,
            contact_form_url=form_url,
            remarks=data["remarks"],
        )


@dataclass
class DomainAggregate:
    """Everything known about one root domain after a reconciliation pass."""
    root_domain: str
    example_url: Optional[str] = None
    domain_rating: Optional[int] = None
    domain_traffic: Optional[int] = None
    nofollow: bool = False
    contacted_on: Optional[datetime.datetime] = None
    contact_method: Any = None
    contact_email: Optional[str] = None
    contact_form_url: Optional[str] = None
    remarks: Optional[str] = None
    backlink_ids: list = field(default_factory=list)
    prospect_ids: list = field(default_factory=list)

    def values(self) -> dict[str, Any]:
        """Return the merge-policy fields as a dict."""
        return {name: getattr(self, name) for name in MERGE_POLICY}


# ---------------------------------------------------------------------------
# Pure reconciliation
# ---------------------------------------------------------------------------


def fold(aggregate: DomainAggregate, record: SourceRecord) -> DomainAggregate:
    """Fold one record into *aggregate* in place and return it."""
    incoming = {
        "example_url": record.url,
        "domain_rating": record.domain_rating,
        "domain_traffic": record.domain_traffic,
        "nofollow": record.nofollow,
        "contacted_on": record.contacted_on,
        "contact_method": record.contact_method,
        "contact_email": record.contact_email,
        "contact_form_url": record.contact_form_url,
        "remarks": record.remarks,
    }
    for name, policy in MERGE_POLICY.items():
        if name in CONTACT_FIELDS and record.kind is not RecordKind.PROSPECT:
            continue
        setattr(aggregate, name, merge_value(policy, getattr(aggregate, name), incoming[name]))

    if record.kind is RecordKind.BACKLINK:
        aggregate.backlink_ids.append(record.id)
    else:
        aggregate.prospect_ids.append(record.id)
    return aggregate


def _as_record(item: Any, kind: RecordKind) -> SourceRecord:
    if isinstance(item, SourceRecord):
        return item
    if kind is RecordKind.BACKLINK:
        return SourceRecord.from_backlink(item)
    return SourceRecord.from_prospect(item)


def reconcile(
    backlinks: Iterable[Any],
    prospects: Iterable[Any] = (),
) -> dict[str, DomainAggregate]:
    """Merge backlink and prospect records into one aggregate per domain.

    Parameters
    ----------
    backlinks : iterable
        ``Backlink`` ORM rows or backlink-kind :class:`SourceRecord` objects.
    prospects : iterable
        ``BacklinkProspect`` ORM rows or prospect-kind records.

    Returns
    -------
    dict
        A fresh mapping of normalized domain to :class:`DomainAggregate`.
        Records without a usable domain are left out and logged.
    """
    aggregates: dict[str, DomainAggregate] = {}

    for kind, items in ((RecordKind.BACKLINK, backlinks), (RecordKind.PROSPECT, prospects)):
        for item in items:
            record = _as_record(item, kind)
            key = record.domain_key
            if not key:
                logger.warning("Skipping {} id={} with no domain", record.kind.value, record.id)
                continue
            aggregate = aggregates.get(key)
            if aggregate is None:
                aggregate = aggregates[key] = DomainAggregate(root_domain=key)
            fold(aggregate, record)

    logger.debug("Reconciled into {} domains", len(aggregates))
    return aggregates


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class DirectorySync:
    """Materialize domain aggregates into ``link_directory_domains``.

    Every domain is persisted and committed on its own, so the session must
    not carry unrelated pending changes. A domain that fails is rolled back,
    reported in the :class:`BatchResult` and skipped; the rest of the pass
    carries on.
    """

    def __init__(self, session: Session, cancel: Optional[threading.Event] = None) -> None:
        self.session = session
        self.cancel = cancel
        self.settings = get_settings()

    def _new_result(self) -> BatchResult:
        return BatchResult(max_errors=self.settings.error_sample_limit)

    def _find_existing(self, root_domain: str) -> Optional[LinkDirectoryDomain]:
        return (
            self.session.query(LinkDirectoryDomain)
            .filter(LinkDirectoryDomain.root_domain == root_domain)
            .first()
        )

    @staticmethod
    def _apply(row: LinkDirectoryDomain, aggregate: DomainAggregate, policy: Mapping[str, str]) -> None:
        for name, rule in policy.items():
            setattr(row, name, merge_value(rule, getattr(row, name), getattr(aggregate, name)))
        # On a full pass a live backlink URL replaces a stored prospect URL
        if policy is MERGE_POLICY and aggregate.backlink_ids:
            row.example_url = aggregate.example_url

    def _link_records(self, row: LinkDirectoryDomain, aggregate: DomainAggregate) -> None:
        if aggregate.backlink_ids:
            self.session.query(Backlink).filter(
                Backlink.id.in_(aggregate.backlink_ids)
            ).update({Backlink.link_directory_domain_id: row.id}, synchronize_session=False)
        if aggregate.prospect_ids:
            self.session.query(BacklinkProspect).filter(
                BacklinkProspect.id.in_(aggregate.prospect_ids)
            ).update({BacklinkProspect.link_directory_domain_id: row.id}, synchronize_session=False)

    def _upsert(self, aggregate: DomainAggregate, policy: Mapping[str, str]) -> bool:
        """Persist one aggregate; return True when a new row was created.

        Raises
        ------
        ConflictError
            When the insert lost a uniqueness race and the retried update
            failed as well.
        """
        existing = self._find_existing(aggregate.root_domain)
        if existing is not None:
            self._apply(existing, aggregate, policy)
            self.session.flush()
            self._link_records(existing, aggregate)
            self.session.commit()
            return False

        try:
            row = LinkDirectoryDomain(root_domain=aggregate.root_domain, **aggregate.values())
            self.session.add(row)
            self.session.flush()
            self._link_records(row, aggregate)
            self.session.commit()
            return True
        except IntegrityError:
            # Another writer created this domain after our lookup
            self.session.rollback()
            logger.info("Domain {} created concurrently, retrying as update", aggregate.root_domain)

        try:
            existing = self._find_existing(aggregate.root_domain)
            if existing is None:
                raise ConflictError(f"{aggregate.root_domain}: conflicting insert but no row found")
            self._apply(existing, aggregate, policy)
            self.session.flush()
            self._link_records(existing, aggregate)
            self.session.commit()
            return False
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise ConflictError(f"{aggregate.root_domain}: {exc}") from exc

    def materialize(
        self,
        aggregates: Mapping[str, DomainAggregate],
        policy: Mapping[str, str] = MERGE_POLICY,
    ) -> BatchResult:
        """Persist each aggregate independently.

        Returns a :class:`BatchResult` whose items record ``created`` or
        ``updated`` per domain.
        """
        result = self._new_result()
        for domain, aggregate in aggregates.items():
            if self.cancel is not None and self.cancel.is_set():
                logger.warning("Reconciliation cancelled; {} domains not persisted",
                               len(aggregates) - result.succeeded - result.failed)
                break
            try:
                created = self._upsert(aggregate, policy)
            except ConflictError as exc:
                logger.warning("Could not persist domain {}: {}", domain, exc)
                result.add_failure(str(exc), {"root_domain": domain, "action": "failed"})
                continue
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.warning("Could not persist domain {}: {}", domain, exc)
                result.add_failure(f"{domain}: {exc}", {"root_domain": domain, "action": "failed"})
                continue
            result.add_success({"root_domain": domain, "action": "created" if created else "updated"})
        return result

    def run(self) -> BatchResult:
        """Reconcile every backlink and prospect in storage."""
        backlinks = self.session.query(Backlink).order_by(Backlink.id).all()
        prospects = self.session.query(BacklinkProspect).order_by(BacklinkProspect.id).all()
        logger.info("Reconciling {} backlinks and {} prospects", len(backlinks), len(prospects))

        aggregates = reconcile(backlinks, prospects)
        result = self.materialize(aggregates)
        logger.info(
            "Reconciliation finished: {} domains persisted, {} failed",
            result.succeeded, result.failed,
        )
        return result

    def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> BatchResult:
        """Import link directory rows from a spreadsheet export.

        Rows without a referring page URL are skipped. Existing directory
        rows only have their empty fields filled in.
        """
        records = []
        skipped = []
        for index, row in enumerate(rows, start=1):
            record = SourceRecord.from_row(row)
            if not record.url or not record.domain_key:
                skipped.append(f"row {index}: missing referring page URL")
                continue
            records.append(record)

        aggregates = reconcile((), records)
        result = self.materialize(aggregates, policy=FILL_EMPTY_POLICY)
        for message in skipped:
            result.add_skip(message)

        logger.info(
            "Directory import: {} domains from {} rows, {} skipped, {} failed",
            len(aggregates), len(records) + len(skipped), result.skipped, result.failed,
        )
        return result
