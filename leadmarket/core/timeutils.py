"""
Time helpers.

All timestamps are stored as naive UTC datetimes so comparisons behave the
same on PostgreSQL and SQLite.
"""
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-aware month arithmetic (Jan 31 + 1 month -> Feb 28/29)."""
    return moment + relativedelta(months=months)


def to_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment
