"""Parser for uploaded app-store ranking files.

Expected columns are ``Keyword, Country, Rank[, Score[, Traffic[, Date]]]``.
Lines may be comma, tab, semicolon or whitespace separated; the separator is
detected per line. Whitespace-separated lines are the awkward case because
keywords contain spaces, so the country (a two-letter upper-case code) and
the rank (the first integer after it, optionally ``#``-prefixed) anchor
the split. Tokens before the country form the keyword.
"""

import re
import datetime
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from .row_adapter import parse_date, parse_int

_COUNTRY_TOKEN = re.compile(r"^[A-Z]{2}$")
_RANK_TOKEN = re.compile(r"^#?\d+$")
_EMPTY_MARKERS = ("", "-")


@dataclass
class ParsedRanking:
    """One ranking line after parsing."""
    keyword: str
    country: str
    rank: int
    score: Optional[int] = None
    traffic: Optional[int] = None
    date: Optional[datetime.date] = None


@dataclass
class ParseResult:
    rankings: List[ParsedRanking] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _is_header(line: str) -> bool:
    lower = line.lower()
    return "keyword" in lower and ("country" in lower or "rank" in lower)


def _split_whitespace(line: str) -> List[str]:
    parts = line.split()

    country_index = -1
    for i in range(len(parts) - 1, -1, -1):
        if _COUNTRY_TOKEN.match(parts[i]):
            country_index = i
            break

    # Rank is the first integer after the country; score and traffic follow it
    rank_index = -1
    if country_index >= 0:
        for i in range(country_index + 1, len(parts)):
            if _RANK_TOKEN.match(parts[i]):
                rank_index = i
                break

    if rank_index > country_index:
        keyword = " ".join(parts[:country_index])
        return [keyword, parts[country_index]] + parts[rank_index:rank_index + 3]

    # Fall back to counting fields from the right
    if len(parts) >= 5:
        return [" ".join(parts[:-4])] + parts[-4:]
    if len(parts) == 4:
        return [" ".join(parts[:-3])] + parts[-3:]
    if len(parts) == 3:
        return [" ".join(parts[:-2])] + parts[-2:]
    return parts


def split_columns(line: str) -> List[str]:
    """Split one line into columns using the first separator it contains."""
    if "," in line:
        return [col.strip().strip('"') for col in line.split(",")]
    if "\t" in line:
        return [col.strip() for col in line.split("\t")]
    if ";" in line:
        return [col.strip().strip('"') for col in line.split(";")]
    return _split_whitespace(line)


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() in _EMPTY_MARKERS:
        return None
    return parse_int(value)


def parse_ranking_lines(text: str, today: Optional[datetime.date] = None) -> ParseResult:
    """Parse uploaded ranking text into :class:`ParsedRanking` rows.

    Lines without a keyword, country and rank are skipped and reported.
    A missing or unparsable date falls back to *today*.
    """
    today = today or datetime.date.today()
    result = ParseResult()

    lines = [line for line in text.splitlines() if line.strip()]
    if lines and _is_header(lines[0]):
        lines = lines[1:]

    for number, line in enumerate(lines, start=1):
        columns = split_columns(line.strip())

        if columns and columns[0].lower() == "keyword":
            continue

        if len(columns) < 3:
            result.skipped.append(f"line {number}: not enough columns")
            logger.debug("Skipping line {}: not enough columns ({!r})", number, line)
            continue

        keyword, country, rank = columns[0], columns[1], columns[2]
        extra = columns[3:] + [None] * 3
        score, traffic, date_str = extra[0], extra[1], extra[2]

        if not keyword or not country or not rank:
            result.skipped.append(f"line {number}: missing keyword, country or rank")
            logger.debug("Skipping line {}: missing required fields ({!r})", number, line)
            continue

        parsed_date = parse_date(date_str)
        result.rankings.append(ParsedRanking(
            keyword=keyword,
            country=country.upper(),
            rank=parse_int(rank.replace("#", "")) or 0,
            score=_optional_int(score),
            traffic=_optional_int(traffic),
            date=parsed_date.date() if parsed_date else today,
        ))

    logger.info("Parsed {} rankings ({} skipped)", len(result.rankings), len(result.skipped))
    return result
