from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from config import get_settings
from models import BillFrequency


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Shift by whole months, snapping to the last day when the day overflows."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(base.day, days_in_month(year, month)))


def next_due_date(from_date: date, frequency: BillFrequency) -> date:
    if frequency == BillFrequency.daily:
        return from_date + timedelta(days=1)
    if frequency == BillFrequency.weekly:
        return from_date + timedelta(weeks=1)
    if frequency == BillFrequency.biweekly:
        return from_date + timedelta(weeks=2)
    if frequency == BillFrequency.monthly:
        return add_months(from_date, 1)
    if frequency == BillFrequency.quarterly:
        return add_months(from_date, 3)
    return add_months(from_date, 12)


def monthly_equivalent_cents(amount_cents: int, frequency: BillFrequency) -> int:
    """Approximate monthly cost; weeks per month are 4.33 and fortnights 2.17."""
    if frequency == BillFrequency.daily:
        return amount_cents * 30
    if frequency == BillFrequency.weekly:
        return amount_cents * 433 // 100
    if frequency == BillFrequency.biweekly:
        return amount_cents * 217 // 100
    if frequency == BillFrequency.quarterly:
        return amount_cents // 3
    if frequency == BillFrequency.yearly:
        return amount_cents // 12
    return amount_cents
