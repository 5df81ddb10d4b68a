"""Calendar-date helpers working on ISO `YYYY-MM-DD` strings."""
from datetime import date, datetime, time, timezone
from typing import Optional


def to_iso_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a calendar date, rejecting anything that does not round-trip exactly."""
    if not value or not isinstance(value, str):
        return None
    parts = value.split("-")
    if len(parts) != 3:
        return None
    try:
        year, month, day = (int(p) for p in parts)
        parsed = date(year, month, day)
    except ValueError:
        return None
    if to_iso_date(parsed) != value:
        return None
    return parsed


def days_between_iso(start_iso: str, end_iso: str) -> Optional[int]:
    start = parse_iso_date(start_iso)
    end = parse_iso_date(end_iso)
    if not start or not end:
        return None
    return (end - start).days


def in_window(value: str, cutoff: date, today: date) -> bool:
    """True when `value` is a valid date inside cutoff..today (both inclusive)."""
    parsed = parse_iso_date(value)
    return parsed is not None and cutoff <= parsed <= today


def _timestamp(value: Optional[str]) -> float:
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _date_timestamp(value: Optional[str]) -> float:
    parsed = parse_iso_date(value)
    if parsed is None:
        return _timestamp(value)
    return datetime.combine(parsed, time(12, 0), tzinfo=timezone.utc).timestamp()


def recency_timestamp(record) -> float:
    """Most precise known moment of a workout; the nominal date counts as noon UTC."""
    return max(
        _timestamp(record.completed_at),
        _timestamp(record.updated_at),
        _timestamp(record.created_at),
        _date_timestamp(record.date),
    )
