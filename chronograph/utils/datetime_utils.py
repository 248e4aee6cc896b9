"""Datetime helpers. Every datetime that reaches a store is timezone-aware UTC."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are assumed to already be in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """
    Parse an ISO-8601 string (as returned by an LLM or a store) into aware UTC.

    Unparseable strings return None rather than raising; extracted dates are
    best-effort.
    """
    if value is None or isinstance(value, datetime):
        return ensure_utc(value)

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def to_iso(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO string, so lexical order equals time order."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")
