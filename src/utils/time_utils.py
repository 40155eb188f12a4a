from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(date_str: str) -> datetime:
    """Parse ISO datetime string, handling both with/without timezone."""
    try:
        dt = datetime.fromisoformat(date_str.replace('Z', '+00:00'))
    except ValueError:
        dt = datetime.strptime(date_str, "%Y-%m-%dT%H:%M:%S")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_visit_date(value: Union[str, date, datetime]) -> date:
    """
    Accept a date, a datetime or an ISO-like string ("2025-12-22",
    "2025-12-22T10:00:00Z") and return the calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return datetime.strptime(text, "%Y-%m-%d").date()
    return parse_iso(text).date()


def to_vendor_date(value: date) -> str:
    """Format a date the way WellSky forms expect it: MM/DD/YYYY."""
    return value.strftime("%m/%d/%Y")


def is_past(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True once `now` reaches or passes `expires_at`. No expiry never passes."""
    if expires_at is None:
        return False
    now = now or utc_now()
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now >= expires_at
