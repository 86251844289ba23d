"""
UTC timestamp utilities (stdlib-only).

All datetimes handled by fieldspine are timezone-aware UTC.  Storage uses
the fixed ``YYYY-MM-DD HH:MM:SS`` text form so values compare and sort
the same on every backend; naive values read back from storage are taken
to be UTC.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"

_FALLBACK_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y",
    "%m/%d/%Y",
)


def utc_now() -> datetime:
    """Current UTC datetime truncated to whole seconds."""
    return datetime.now(UTC).replace(microsecond=0)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime or convert an aware one to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: object) -> datetime | None:
    """Parse *value* into an aware UTC datetime, or ``None``.

    Accepts datetimes, dates, epoch seconds and the usual textual forms.
    Never raises.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(value, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", "replace")
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return parse_datetime(int(text))
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue
    return None


def parse_date(value: object) -> date | None:
    """Parse *value* into a date (time of day dropped), or ``None``."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_datetime(value)
    return parsed.date() if parsed is not None else None


def parse_time(value: object) -> time | None:
    """Parse *value* into a naive time of day, or ``None``."""
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    if isinstance(value, datetime):
        return value.time().replace(microsecond=0)
    if isinstance(value, str):
        text = value.strip()
        try:
            return time.fromisoformat(text).replace(microsecond=0, tzinfo=None)
        except ValueError:
            parsed = parse_datetime(text)
            return parsed.time().replace(microsecond=0) if parsed is not None else None
    return None


def format_timestamp(value: datetime) -> str:
    """Render *value* as ``YYYY-MM-DD HH:MM:SS`` in UTC."""
    return ensure_utc(value).strftime(TIMESTAMP_FORMAT)


def format_date(value: date) -> str:
    """Render *value* as ``YYYY-MM-DD``."""
    return value.strftime(DATE_FORMAT)


def format_time(value: time) -> str:
    """Render *value* as ``HH:MM:SS``."""
    return value.strftime(TIME_FORMAT)


__all__ = [
    "DATE_FORMAT",
    "TIMESTAMP_FORMAT",
    "TIME_FORMAT",
    "ensure_utc",
    "format_date",
    "format_time",
    "format_timestamp",
    "parse_date",
    "parse_datetime",
    "parse_time",
    "utc_now",
]
