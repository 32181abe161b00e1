"""Time helpers with timezone-aware UTC defaults."""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(UTC)


def utc_naive_now() -> datetime:
    """Current UTC time without tzinfo, matching what SQLite hands back for DateTime columns."""
    return utc_now().replace(tzinfo=None)


def date_stamp(moment: datetime | None = None) -> str:
    """YYYY-MM-DD stamp used in export filenames."""
    return (moment or utc_now()).strftime("%Y-%m-%d")
