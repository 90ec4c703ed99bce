"""Time helpers shared by the QBO integration and domain services"""

from datetime import date, datetime, timezone
from typing import Callable, Optional

# Injected wherever "now" matters so tests can move the clock
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_qbo_date(value: Optional[date]) -> str:
    """QBO expects YYYY-MM-DD; default to today"""
    if value is None:
        value = utcnow().date()
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()
