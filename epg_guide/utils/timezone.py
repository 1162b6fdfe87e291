"""
Date and Time utilities

This module handles XMLTV timestamp parsing/formatting, ISO8601 query
parsing and timezone resolution. Centralizes all date parsing logic to
maintain consistency across the application.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Literal
from zoneinfo import ZoneInfo
import logging
import re

from epg_guide.errors import MalformedTimestamp

logger = logging.getLogger(__name__)

XMLTV_FIELDS_LENGTH = 14

_OFFSET_RE = re.compile(r"^([+-])(\d{2})(\d{2})$")

_DISPLAY_FORMATS = {
    "date": "%d/%m/%Y",
    "time": "%H:%M",
    "datetime": "%d/%m/%Y %H:%M",
}


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def resolve_timezone(name: str | None) -> tzinfo | None:
    """
    Resolve a configured timezone name

    Args:
        name: 'local' (or empty) for host local time, 'UTC', or an IANA name

    Returns:
        tzinfo instance, or None for host local time

    Raises:
        ValueError: If the IANA name is unknown
    """
    if not name or name.lower() == "local":
        return None
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: '{name}'") from exc


def parse_xmltv_time(time_str: str, naive_tz: tzinfo | None = None) -> datetime:
    """
    Convert XMLTV time format to a timezone-aware UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600' or '20080715003000'
        naive_tz: Zone used when no offset is present (None = host local time)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        MalformedTimestamp: If the fields are short, non-numeric or out of range
    """
    if not isinstance(time_str, str):
        raise MalformedTimestamp(f"XMLTV timestamp must be a string, got {type(time_str).__name__}")

    value = time_str.strip()
    if len(value) < XMLTV_FIELDS_LENGTH:
        raise MalformedTimestamp(f"XMLTV timestamp too short: '{time_str}'")

    # YYYY MM DD HH MM SS
    fields = (value[0:4], value[4:6], value[6:8], value[8:10], value[10:12], value[12:14])
    if not all(field.isascii() and field.isdigit() for field in fields):
        raise MalformedTimestamp(f"XMLTV timestamp has non-numeric fields: '{time_str}'")
    year, month, day, hour, minute, second = (int(field) for field in fields)

    suffix = value[XMLTV_FIELDS_LENGTH:].strip()
    offset_match = _OFFSET_RE.match(suffix) if suffix else None
    if suffix and offset_match is None:
        raise MalformedTimestamp(f"XMLTV timestamp has an invalid offset: '{time_str}'")

    try:
        if offset_match is not None:
            tz_sign = 1 if offset_match.group(1) == "+" else -1
            tz_offset_minutes = tz_sign * (int(offset_match.group(2)) * 60 + int(offset_match.group(3)))
            dt_utc = datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
            return dt_utc - timedelta(minutes=tz_offset_minutes)

        naive = datetime(year, month, day, hour, minute, second)
        if naive_tz is None:
            # astimezone() on a naive datetime interprets it as host local time
            return naive.astimezone().astimezone(timezone.utc)
        return naive.replace(tzinfo=naive_tz).astimezone(timezone.utc)
    except (ValueError, OverflowError, OSError) as exc:
        raise MalformedTimestamp(f"XMLTV timestamp out of range: '{time_str}'") from exc


def format_xmltv_time(instant: datetime, tz: tzinfo | None = timezone.utc, include_offset: bool = True) -> str:
    """
    Render an instant in XMLTV form

    Args:
        instant: Timezone-aware datetime
        tz: Zone to express the fields in (None = host local time)
        include_offset: Append the ' ±HHMM' suffix

    Returns:
        String like '20080715063000 +0000'
    """
    local = instant.astimezone(tz) if tz is not None else instant.astimezone()
    text = (
        f"{local.year:04d}{local.month:02d}{local.day:02d}"
        f"{local.hour:02d}{local.minute:02d}{local.second:02d}"
    )
    if not include_offset:
        return text

    offset = local.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{text} {sign}{hours:02d}{minutes:02d}"


def format_for_display(
    instant: datetime,
    style: Literal["date", "time", "datetime"] = "time",
    tz: tzinfo | None = None,
) -> str:
    """Format an instant the way the guide displays it (dd/mm/YYYY, HH:MM)."""
    local = instant.astimezone(tz) if tz is not None else instant.astimezone()
    return local.strftime(_DISPLAY_FORMATS[style])


def _normalize_iso8601_string(date_str: str) -> str:
    """Normalize ISO8601 string by replacing 'Z' with '+00:00'"""
    return date_str.replace('Z', '+00:00') if date_str.endswith('Z') else date_str


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-10-09T00:00:00Z' or '2025-10-09T00:00:00+01:00')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = _normalize_iso8601_string(date_str)
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e

