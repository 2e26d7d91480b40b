"""Lenient ISO-8601 parsing for Cloudflare timestamps.

Cloudflare endpoints disagree on fractional-second precision: some return
milliseconds, some microseconds, some a single digit, some none at all.
Everything is decoded to an aware UTC datetime with millisecond precision.
"""

import re
from datetime import datetime, timezone
from typing import Optional

_WITH_MILLIS = "%Y-%m-%dT%H:%M:%S.%f%z"
_WITHOUT_FRACTION = "%Y-%m-%dT%H:%M:%S%z"

_MILLIS_RE = re.compile(r"T\d{2}:\d{2}:\d{2}\.\d{3}(?!\d)")
_FRACTION_RE = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")


def _normalize_fraction(value: str) -> str:
    """Pad or truncate the fractional-seconds part to exactly three digits."""

    def _fix(match: "re.Match[str]") -> str:
        digits = match.group(2)[:3].ljust(3, "0")
        return f"{match.group(1)}.{digits}"

    return _FRACTION_RE.sub(_fix, value, count=1)


def _parse_millis(value: str) -> datetime:
    if not _MILLIS_RE.search(value):
        raise ValueError(f"no millisecond component in {value!r}")
    return datetime.strptime(value, _WITH_MILLIS)


def parse_datetime(value: object) -> datetime:
    """Decode a Cloudflare timestamp.

    Tries ISO-8601 with millisecond fractional seconds, then the same after
    normalizing the fraction to three digits, then ISO-8601 without a
    fraction.

    Raises:
        ValueError: If none of the formats match
        TypeError: If ``value`` is not a string
    """
    if not isinstance(value, str):
        raise TypeError(f"expected a date string, got {type(value).__name__}")

    text = value.strip()
    for candidate in (text, _normalize_fraction(text)):
        try:
            return _parse_millis(candidate).astimezone(timezone.utc)
        except ValueError:
            continue

    try:
        return datetime.strptime(text, _WITHOUT_FRACTION).astimezone(timezone.utc)
    except ValueError:
        raise ValueError(f"Unrecognized date format: {value!r}") from None


def parse_optional_datetime(value: object) -> Optional[datetime]:
    if value is None:
        return None
    return parse_datetime(value)


def start_of_utc_day(moment: datetime) -> datetime:
    moment = moment.astimezone(timezone.utc)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def format_instant(moment: datetime) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SSZ`` for GraphQL ``Time`` filters."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_date(moment: datetime) -> str:
    """Render the UTC calendar day as ``YYYY-MM-DD`` for GraphQL ``Date`` filters."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
