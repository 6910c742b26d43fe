# healthpass/expiry.py
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

EXPIRED = "expired"
CRITICAL = "critical"
WARNING = "warning"
GOOD = "good"

CRITICAL_DAYS = 7
WARNING_DAYS = 21


@dataclass(frozen=True)
class ExpiryStatus:
    status: str
    days: int
    label: str


def days_until(expiry_date: date, today: date) -> int:
    if isinstance(expiry_date, datetime):
        expiry_date = expiry_date.date()
    if isinstance(today, datetime):
        today = today.date()
    return (expiry_date - today).days


def classify_expiry(expiry_date: date, today: Optional[date] = None) -> ExpiryStatus:
    """Bucket a medication by whole days left: <0 expired, <=7 critical, <=21 warning."""
    days = days_until(expiry_date, today or date.today())
    if days < 0:
        return ExpiryStatus(EXPIRED, days, "Expired")
    if days <= CRITICAL_DAYS:
        return ExpiryStatus(CRITICAL, days, f"{days} days left")
    if days <= WARNING_DAYS:
        return ExpiryStatus(WARNING, days, f"{days} days left")
    return ExpiryStatus(GOOD, days, "Good")
