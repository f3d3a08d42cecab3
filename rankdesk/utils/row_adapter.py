"""Adapters for loosely-typed rows coming from CSV exports and JSON uploads.

Column names differ between sources (an Ahrefs export says ``Domain rating``,
the dashboard sends ``domainRating``). Everything here maps those aliases to a
single canonical field name and parses values without raising, so the
reconciliation and classification code only ever sees clean fields.
"""

import re
import math
import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from dateutil import parser as date_parser

from ..models.backlink import ContactMethod


FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "referring_page_url": ("referring_page_url", "referringPageUrl", "Referring page URL", "url", "URL"),
    "domain_rating": ("domain_rating", "domainRating", "Domain rating", "DR", "dr"),
    "domain_traffic": ("domain_traffic", "domainTraffic", "Domain traffic", "traffic"),
    "anchor": ("anchor", "Anchor"),
    "link_type": ("link_type", "linkType", "Type"),
    "nofollow": ("nofollow", "Nofollow"),
    "contacted_on": ("contacted_on", "Contacted On", "contactedOn"),
    "contact_method": ("contact_method", "Contacted", "Contact (Method)", "contactMethod"),
    "remarks": ("remarks", "Remarks", "notes"),
    "email_or_link": ("email_or_link", "Email/Link", "email", "contact_email"),
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_TRUE_VALUES = {"true", "1", "yes", "y"}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def canonicalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Map a raw row onto canonical field names.

    For each canonical field the first alias holding a non-blank value wins.
    Fields with no value are present and set to None.
    """
    canonical = {}
    for field_name, aliases in FIELD_ALIASES.items():
        canonical[field_name] = None
        for alias in aliases:
            value = row.get(alias)
            if not _is_blank(value):
                canonical[field_name] = value.strip() if isinstance(value, str) else value
                break
    return canonical


def parse_int(value: Any) -> Optional[int]:
    """Parse the leading integer of *value*; None when there is none.

    ``"1,234"`` is read as 1234 and ``"45.7"`` as 45.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value).replace(",", ""))
    return int(match.group(1)) if match else None


def parse_nonzero_int(value: Any) -> Optional[int]:
    """Like :func:`parse_int` but zero counts as missing."""
    parsed = parse_int(value)
    return parsed if parsed else None


def parse_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(str(value).replace(",", "").strip())
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def parse_date(value: Any) -> Optional[datetime.datetime]:
    """Parse dates such as ``16-September-2025``, ``9/16/2025`` or ``2025-09-16``."""
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    if _is_blank(value):
        return None
    try:
        return date_parser.parse(str(value).strip())
    except (ValueError, OverflowError):
        return None


def parse_contact_method(value: Any) -> Optional[ContactMethod]:
    if isinstance(value, ContactMethod):
        return value
    if _is_blank(value):
        return None
    lower = str(value).lower()
    if "email" in lower:
        return ContactMethod.EMAIL
    if "contact" in lower or "form" in lower:
        return ContactMethod.CONTACT_FORM
    if "social" in lower or "twitter" in lower or "linkedin" in lower:
        return ContactMethod.SOCIAL_MEDIA
    return ContactMethod.OTHER


def split_email_or_link(value: Any) -> Tuple[Optional[str], Optional[str]]:
    """Split a combined ``Email/Link`` cell into ``(email, form_url)``."""
    if _is_blank(value):
        return None, None
    text = str(value).strip()
    if "@" in text:
        return text, None
    if text.lower().startswith("http"):
        return None, text
    return None, None
