from datetime import datetime
from decimal import Decimal
from typing import Optional

from entities import Account, AppState, Category, Subcategory
from models import AccountType, CategoryType

SEED_CATEGORIES = [
    (
        "1",
        "Food & Dining",
        "#FF6B6B",
        "🍽️",
        CategoryType.expense,
        ["Restaurants", "Groceries", "Fast Food"],
    ),
    (
        "2",
        "Transportation",
        "#4ECDC4",
        "🚗",
        CategoryType.expense,
        ["Gas", "Public Transport", "Maintenance"],
    ),
    (
        "3",
        "Salary",
        "#45B7D1",
        "💰",
        CategoryType.income,
        ["Monthly Salary", "Bonus", "Overtime"],
    ),
]

SEED_ACCOUNTS = [
    ("1", "Main Checking", AccountType.bank, Decimal("5000"), "#45B7D1"),
    ("2", "Cash Wallet", AccountType.cash, Decimal("250"), "#96CEB4"),
]


def seed_categories(now: datetime) -> list[Category]:
    return [
        Category(
            id=cat_id,
            name=name,
            color=color,
            icon=icon,
            type=cat_type,
            subcategories=[
                Subcategory(id=f"{cat_id}-{idx}", name=sub)
                for idx, sub in enumerate(subs, start=1)
            ],
            created_at=now,
            updated_at=now,
        )
        for cat_id, name, color, icon, cat_type, subs in SEED_CATEGORIES
    ]


def seed_accounts(now: datetime) -> list[Account]:
    return [
        Account(
            id=acc_id,
            name=name,
            type=acc_type,
            balance=balance,
            currency="USD",
            color=color,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        for acc_id, name, acc_type, balance, color in SEED_ACCOUNTS
    ]


def default_state(now: Optional[datetime] = None) -> AppState:
    now = now or datetime.utcnow()
    return AppState(categories=seed_categories(now), accounts=seed_accounts(now))
