"""Stored records and the application state that holds them.

Records are immutable; the store replaces them with ``model_copy`` when a
field changes, so a reference handed to a caller never changes underneath it.
"""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import (
    AccountType,
    AlertType,
    BudgetPeriod,
    CategoryType,
    RecurringFrequency,
    Theme,
    TransactionType,
)
from schemas import FilterOptions

STATE_VERSION = 1


class Record(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime
    updated_at: datetime


class Transaction(Record):
    description: str
    amount: Decimal
    date: date
    type: TransactionType
    category: str
    subcategory: Optional[str] = None
    account: str
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    tags: list[str] = Field(default_factory=list)

    @property
    def signed_amount(self) -> Decimal:
        if self.type == TransactionType.income:
            return self.amount
        return -self.amount


class Subcategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    budget_limit: Optional[Decimal] = None


class Category(Record):
    name: str
    color: str
    icon: str
    type: CategoryType
    subcategories: list[Subcategory] = Field(default_factory=list)
    budget_limit: Optional[Decimal] = None


class Account(Record):
    name: str
    type: AccountType
    balance: Decimal
    currency: str
    color: str
    is_active: bool = True


class Budget(Record):
    category_id: str
    subcategory_id: Optional[str] = None
    limit: Decimal
    period: BudgetPeriod
    alert_threshold: Decimal


class Goal(Record):
    name: str
    description: Optional[str] = None
    target_amount: Decimal
    current_amount: Decimal
    target_date: dt.date
    category: str
    is_completed: bool = False


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: AlertType
    title: str
    message: str
    is_read: bool = False
    data: Optional[dict[str, Any]] = None
    created_at: datetime


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    avatar: Optional[str] = None
    currency: str = "USD"
    theme: Theme = Theme.light
    created_at: datetime


class PersistedState(BaseModel):
    """The subset of state that survives a restart."""

    model_config = ConfigDict(frozen=True)

    user: Optional[User] = None
    is_authenticated: bool = False
    theme: Theme = Theme.light
    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)


class AppState(PersistedState):
    alerts: list[Alert] = Field(default_factory=list)
    sidebar_open: bool = True
    current_filters: FilterOptions = Field(default_factory=FilterOptions)

    def persisted(self) -> PersistedState:
        return PersistedState(
            user=self.user,
            is_authenticated=self.is_authenticated,
            theme=self.theme,
            transactions=self.transactions,
            categories=self.categories,
            accounts=self.accounts,
            budgets=self.budgets,
            goals=self.goals,
        )
