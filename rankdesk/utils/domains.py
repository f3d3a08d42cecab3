"""Root domain normalization used as the merge key across records."""

from typing import Optional
from urllib.parse import urlparse

WWW_PREFIX = "www."


def _hostname(text: str) -> str:
    """Return the hostname of an absolute URL, or *text* unchanged."""
    try:
        parsed = urlparse(text)
        if parsed.scheme and parsed.netloc:
            return parsed.hostname or ""
    except ValueError:
        pass
    return text


def _normalize_once(text: str) -> str:
    host = _hostname(text.strip()).lower().strip()
    if host.startswith(WWW_PREFIX):
        host = host[len(WWW_PREFIX):]
    return host


def normalize_domain(value: Optional[str]) -> str:
    """Canonicalize a URL or bare domain to a comparable root-domain key.

    ``https://WWW.Example.com/path`` and ``example.com`` both become
    ``example.com``. Unparsable input degrades to a lower-cased copy of the
    raw string with the ``www.`` prefix removed, so the result is always
    usable as a key. Empty input gives an empty key.
    """
    if not value:
        return ""

    # Iterate to a fixed point so that normalizing twice changes nothing
    key = str(value)
    while True:
        normalized = _normalize_once(key)
        if normalized == key:
            return key
        key = normalized


def is_http_url(value: Optional[str]) -> bool:
    """Check whether *value* is an absolute http(s) URL with a host."""
    if not value or not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(parsed.netloc)
