"""Datetime utilities for timezone-aware UTC timestamps and club calendar rules.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def age_in_years(date_of_birth: date, today: Optional[date] = None) -> int:
    """Whole years elapsed since ``date_of_birth``."""
    today = today or utc_now().date()
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def add_months(value: date, months: int) -> date:
    """Shift a date by whole months, clamping to the last day of the month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    next_month_first = date(year + month // 12, month % 12 + 1, 1)
    last_day = (next_month_first - timedelta(days=1)).day
    return date(year, month, min(value.day, last_day))


def next_monthly_billing_date(today: Optional[date] = None) -> date:
    """First day of next month."""
    today = today or utc_now().date()
    return add_months(today.replace(day=1), 1)


def next_annual_billing_date(today: Optional[date] = None) -> date:
    """7 January of next year."""
    today = today or utc_now().date()
    return date(today.year + 1, 1, 7)


def to_unix(value: date) -> int:
    """Midnight UTC of ``value`` as a unix timestamp."""
    return int(datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp())
