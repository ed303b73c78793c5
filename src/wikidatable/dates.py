"""
Normalization of Wikidata time literals for display in citations.

Wikidata encodes precision by zeroing date components: ``+2020-05-00T00:00:00Z``
is "May 2020" and ``+2020-00-00T00:00:00Z`` is just "2020". Full dates are
tried first so the most precise rendering always wins.
"""

import re
from datetime import date, datetime

DAY = "day"
MONTH = "month"
YEAR = "year"

MONTH_PRECISION_RE = re.compile(r"^\+(\d{4})-(\d{2})-00T00:00:00Z$")
YEAR_PRECISION_RE = re.compile(r"^\+(\d{4})-00-00T00:00:00Z$")


def _parse_day(raw):
    try:
        parsed = datetime.strptime(raw, "+%Y-%m-%dT%H:%M:%SZ")
    except ValueError:
        return None
    return parsed.strftime("%Y-%m-%d"), DAY


def _parse_month(raw):
    match = MONTH_PRECISION_RE.match(raw)
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return date(year, month, 1).strftime("%B %Y"), MONTH


def _parse_year(raw):
    match = YEAR_PRECISION_RE.match(raw)
    if not match:
        return None
    return match.group(1), YEAR


def normalize_time(raw):
    """Return (display, granularity) for a Wikidata time literal, or None if unparseable."""
    if not raw or not isinstance(raw, str):
        return None
    for parser in (_parse_day, _parse_month, _parse_year):
        result = parser(raw)
        if result is not None:
            return result
    return None


def display_date(raw):
    """Return the display form of a time literal, or "" when it cannot be parsed."""
    normalized = normalize_time(raw)
    if normalized is None:
        return ""
    return normalized[0]
