"""Date manipulation utilities"""

from datetime import date, datetime, timezone

from dateutil.relativedelta import relativedelta


def add_months(from_date: date, months: int) -> date:
    """Add calendar months; the day is clamped to the target month's length"""
    return from_date + relativedelta(months=months)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    """Bucket key used by monthly stats (YYYY-MM)"""
    return moment.strftime("%Y-%m")
