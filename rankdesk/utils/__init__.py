"""Utility modules for Rankdesk."""

from .domains import is_http_url, normalize_domain
from .row_adapter import canonicalize_row
from .ranking_file import parse_ranking_lines

__all__ = ["is_http_url", "normalize_domain", "canonicalize_row", "parse_ranking_lines"]
