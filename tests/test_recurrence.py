from datetime import date
from decimal import Decimal

from models import RecurringFrequency, TransactionType
from recurrence import days_in_month, latest_recurring, next_due_date, upcoming
from schemas import TransactionIn
from store import Store


def _recurring(
    store: Store,
    description: str,
    day: date,
    frequency: RecurringFrequency,
    txn_type: TransactionType = TransactionType.expense,
) -> None:
    store.add_transaction(
        TransactionIn(
            description=description,
            amount=Decimal("10"),
            date=day,
            category="1",
            type=txn_type,
            account="1",
            is_recurring=True,
            recurring_frequency=frequency,
        )
    )


def test_days_in_month() -> None:
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2025, 2) == 28
    assert days_in_month(2025, 12) == 31


def test_next_due_date_by_frequency() -> None:
    start = date(2025, 1, 31)
    assert next_due_date(RecurringFrequency.daily, start) == date(2025, 2, 1)
    assert next_due_date(RecurringFrequency.weekly, start) == date(2025, 2, 7)
    assert next_due_date(RecurringFrequency.monthly, start) == date(2025, 2, 28)
    assert next_due_date(RecurringFrequency.yearly, date(2024, 2, 29)) == date(2025, 2, 28)
    assert next_due_date(RecurringFrequency.monthly, date(2025, 12, 15)) == date(2026, 1, 15)


def test_latest_recurring_keeps_newest_posting_per_series() -> None:
    store = Store()
    _recurring(store, "Gym", date(2025, 1, 5), RecurringFrequency.monthly)
    _recurring(store, "gym ", date(2025, 2, 5), RecurringFrequency.monthly)
    _recurring(store, "Gym", date(2025, 1, 1), RecurringFrequency.yearly)
    store.add_transaction(
        TransactionIn(
            description="One-off",
            amount=Decimal("5"),
            date=date(2025, 2, 1),
            category="1",
            type=TransactionType.expense,
            account="1",
        )
    )

    latest = latest_recurring(store.transactions)
    assert sorted((t.date, t.recurring_frequency.value) for t in latest) == [
        (date(2025, 1, 1), "yearly"),
        (date(2025, 2, 5), "monthly"),
    ]


def test_upcoming_sorted_by_due_date() -> None:
    store = Store()
    _recurring(store, "Rent", date(2025, 3, 1), RecurringFrequency.monthly)
    _recurring(store, "Coffee", date(2025, 3, 10), RecurringFrequency.daily)

    due = [(txn.description, day) for txn, day in upcoming(store.transactions)]
    assert due == [("Coffee", date(2025, 3, 11)), ("Rent", date(2025, 4, 1))]
