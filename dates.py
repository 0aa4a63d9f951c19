#!/usr/bin/env python3
"""
Feed timestamp parsing.

RSS and Atom use different date conventions (RFC 822 vs. RFC 3339). Both
parsers are total: anything they cannot read becomes UNKNOWN_TIME instead of
an exception, so one bad date never sinks a whole feed.
"""

from calendar import timegm
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from feedparser.datetimes import _parse_date as feedparser_parse_date

from config import get_logger

logger = get_logger("dates")

# Sentinel for missing or unparseable timestamps
UNKNOWN_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

RSS_CUSTOM_FORMATS = [
    "%d %b %Y %H:%M:%S %z",
    "%d %b %Y %H:%M:%S %Z",
    "%d %b %Y %H:%M:%S",
    "%a, %d %b %Y %H:%M %z",
    "%d %b %Y %H:%M %z",
]


def is_unknown_time(value: Optional[datetime]) -> bool:
    return value is None or value == UNKNOWN_TIME


def _as_utc_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_with_email_utils(date_str: str) -> Optional[datetime]:
    try:
        dt = parsedate_to_datetime(date_str)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    return _as_utc_aware(dt) if dt else None


def _parse_with_custom_formats(date_str: str) -> Optional[datetime]:
    for fmt in RSS_CUSTOM_FORMATS:
        try:
            return _as_utc_aware(datetime.strptime(date_str, fmt))
        except (ValueError, TypeError):
            continue
    return None


def _parse_with_isoformat(date_str: str) -> Optional[datetime]:
    value = date_str
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        return _as_utc_aware(datetime.fromisoformat(value))
    except ValueError:
        return None


def _parse_with_feedparser(date_str: str) -> Optional[datetime]:
    """Last resort: feedparser's registered date handlers (returns UTC struct_time)."""
    try:
        time_struct = feedparser_parse_date(date_str)
        if time_struct:
            return datetime.fromtimestamp(timegm(time_struct), tz=timezone.utc)
    except (ValueError, TypeError, AttributeError, OverflowError, OSError):
        return None
    return None


def _parse(date_str: Optional[str], parsers, kind: str) -> datetime:
    if not date_str or not date_str.strip():
        return UNKNOWN_TIME
    value = date_str.strip()
    for parser in parsers:
        parsed = parser(value)
        if parsed is not None:
            return parsed
    logger.debug(f"Unparseable {kind} date '{value}'")
    return UNKNOWN_TIME


def parse_rss_time(date_str: Optional[str]) -> datetime:
    """Parse an RSS (RFC 822 style) date, returning UNKNOWN_TIME on failure."""
    return _parse(
        date_str,
        (_parse_with_email_utils, _parse_with_custom_formats, _parse_with_feedparser),
        "RSS",
    )


def parse_atom_time(date_str: Optional[str]) -> datetime:
    """Parse an Atom (RFC 3339) date, returning UNKNOWN_TIME on failure."""
    return _parse(
        date_str,
        (_parse_with_isoformat, _parse_with_feedparser),
        "Atom",
    )
