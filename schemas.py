import datetime as dt
from datetime import date
from decimal import Decimal
from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from models import (
    AccountType,
    AlertType,
    BudgetPeriod,
    CategoryType,
    RecurringFrequency,
    Theme,
    TransactionType,
)

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class PartialUpdate(BaseModel):
    """Only the fields a caller sends are merged; `null` is refused unless listed."""

    model_config = ConfigDict(extra="forbid")

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name not in cls.nullable_fields:
            raise ValueError("may not be null")
        return value


class TransactionIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=Decimal("0.01"))
    date: date
    category: str = Field(..., min_length=1)
    subcategory: Optional[str] = None
    type: TransactionType
    account: str = Field(..., min_length=1)
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    tags: list[str] = Field(default_factory=list)


class TransactionUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset(
        {"subcategory", "recurring_frequency"}
    )

    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(None, ge=Decimal("0.01"))
    date: Optional[dt.date] = None
    category: Optional[str] = Field(None, min_length=1)
    subcategory: Optional[str] = None
    type: Optional[TransactionType] = None
    account: Optional[str] = Field(None, min_length=1)
    is_recurring: Optional[bool] = None
    recurring_frequency: Optional[RecurringFrequency] = None
    tags: Optional[list[str]] = None


class SubcategoryIn(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=50)
    budget_limit: Optional[Decimal] = Field(None, ge=0)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field(..., min_length=1)
    icon: str = Field(..., min_length=1)
    type: CategoryType
    subcategories: list[SubcategoryIn] = Field(default_factory=list)
    budget_limit: Optional[Decimal] = Field(None, ge=0)


class CategoryUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"budget_limit"})

    name: Optional[str] = Field(None, min_length=1, max_length=50)
    color: Optional[str] = Field(None, min_length=1)
    icon: Optional[str] = Field(None, min_length=1)
    type: Optional[CategoryType] = None
    subcategories: Optional[list[SubcategoryIn]] = None
    budget_limit: Optional[Decimal] = Field(None, ge=0)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: AccountType
    balance: Decimal = Decimal("0")
    currency: str = Field(..., min_length=1, max_length=3)
    color: str = Field(..., min_length=1)
    is_active: bool = True


class AccountUpdate(PartialUpdate):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    type: Optional[AccountType] = None
    balance: Optional[Decimal] = None
    currency: Optional[str] = Field(None, min_length=1, max_length=3)
    color: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None


class BudgetIn(BaseModel):
    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    limit: Decimal = Field(..., ge=Decimal("0.01"))
    period: BudgetPeriod = BudgetPeriod.monthly
    alert_threshold: Decimal = Field(Decimal("80"), ge=0, le=100)


class BudgetUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"subcategory_id"})

    category_id: Optional[str] = Field(None, min_length=1)
    subcategory_id: Optional[str] = None
    limit: Optional[Decimal] = Field(None, ge=Decimal("0.01"))
    period: Optional[BudgetPeriod] = None
    alert_threshold: Optional[Decimal] = Field(None, ge=0, le=100)


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    target_amount: Decimal = Field(..., ge=Decimal("0.01"))
    current_amount: Decimal = Field(Decimal("0"), ge=0)
    target_date: date
    category: str = Field(..., min_length=1)
    is_completed: bool = False


class GoalUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"description"})

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    target_amount: Optional[Decimal] = Field(None, ge=Decimal("0.01"))
    current_amount: Optional[Decimal] = Field(None, ge=0)
    target_date: Optional[date] = None
    category: Optional[str] = Field(None, min_length=1)
    is_completed: Optional[bool] = None


class AlertIn(BaseModel):
    type: AlertType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    is_read: bool = False
    data: Optional[dict[str, Any]] = None


class UserIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    avatar: Optional[str] = None
    currency: str = Field("USD", min_length=1, max_length=3)
    theme: Theme = Theme.light


class LoginIn(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)


class FilterOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_from: Optional[date] = None
    date_to: Optional[date] = None
    type: Optional[Literal["income", "expense", "all"]] = None
    categories: Optional[list[str]] = None
    accounts: Optional[list[str]] = None
    amount_min: Optional[Decimal] = Field(None, ge=0)
    amount_max: Optional[Decimal] = Field(None, ge=0)
    search: Optional[str] = None
