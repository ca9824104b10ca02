from datetime import date, datetime, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo

from config import get_settings
from entities import Transaction
from models import RecurringFrequency


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


def _add_months(base: date, months: int, *, desired_day: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(desired_day, days_in_month(year, month)))


def next_due_date(frequency: RecurringFrequency, from_date: date) -> date:
    """Occurrence following ``from_date``; month ends snap to the last valid day."""
    day = from_date.day
    if frequency == RecurringFrequency.daily:
        return from_date + timedelta(days=1)
    if frequency == RecurringFrequency.weekly:
        return from_date + timedelta(weeks=1)
    if frequency == RecurringFrequency.monthly:
        return _add_months(from_date, 1, desired_day=day)
    return _add_months(from_date, 12, desired_day=day)


def series_key(txn: Transaction) -> tuple[str, str, str, str]:
    return (
        txn.description.strip().lower(),
        txn.account,
        txn.category,
        txn.recurring_frequency.value if txn.recurring_frequency else "",
    )


def latest_recurring(transactions: Iterable[Transaction]) -> list[Transaction]:
    """The most recent posting of every recurring series, in first-seen order."""
    latest: dict[tuple[str, str, str, str], Transaction] = {}
    for txn in transactions:
        if not txn.is_recurring or txn.recurring_frequency is None:
            continue
        key = series_key(txn)
        current = latest.get(key)
        if current is None or txn.date >= current.date:
            latest[key] = txn
    return list(latest.values())


def upcoming(transactions: Iterable[Transaction]) -> list[tuple[Transaction, date]]:
    pairs = [
        (txn, next_due_date(txn.recurring_frequency, txn.date))
        for txn in latest_recurring(transactions)
    ]
    return sorted(pairs, key=lambda item: item[1])
