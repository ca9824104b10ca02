from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class CategoryType(str, Enum):
    income = "income"
    expense = "expense"
    both = "both"


class AccountType(str, Enum):
    cash = "cash"
    bank = "bank"
    credit = "credit"
    investment = "investment"


class BudgetPeriod(str, Enum):
    monthly = "monthly"
    yearly = "yearly"


class RecurringFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class AlertType(str, Enum):
    budget_exceeded = "budget_exceeded"
    goal_reminder = "goal_reminder"
    bill_due = "bill_due"
    recurring_transaction = "recurring_transaction"


class Theme(str, Enum):
    light = "light"
    dark = "dark"


class StorageRecord(Base):
    """One serialized application snapshot per storage key."""

    __tablename__ = "storage"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
