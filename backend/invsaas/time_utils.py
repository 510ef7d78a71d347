# Overview: UTC helpers; timestamps are stored UTC-naive and serialized with a trailing Z.

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: datetime) -> datetime:
    """Convert an aware datetime to UTC and drop tzinfo; naive input is already UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value) -> datetime | None:
    """
    Parse an ISO-8601 date/datetime (or pass a datetime through) as UTC-naive.

    None and blank strings yield None. A trailing "Z" is accepted.
    Raises ValueError on unparseable text.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc_naive(value)

    text = str(value).strip()
    if not text:
        return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    return as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
