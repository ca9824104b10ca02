"""The application state container.

``Store`` owns every collection. Mutations never edit records in place: each
one builds the replacement collections, swaps them into a new ``AppState`` in
a single assignment and then notifies subscribers, so a listener never sees a
half-applied change (a transaction appended without its account balance
moved, for instance).

Saving is not the store's job. Callers hand ``snapshot()`` to a
``StateRepository`` when they decide the state should be persisted.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

from pydantic import BaseModel

import aggregates
from entities import (
    Account,
    Alert,
    AppState,
    Budget,
    Category,
    Goal,
    PersistedState,
    Subcategory,
    Transaction,
    User,
)
from models import Theme, TransactionType
from schemas import (
    AccountIn,
    AccountUpdate,
    AlertIn,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    FilterOptions,
    GoalIn,
    GoalUpdate,
    SubcategoryIn,
    TransactionIn,
    TransactionUpdate,
    UserIn,
)
from seed import default_state

logger = logging.getLogger(__name__)

Listener = Callable[[AppState], None]
R = TypeVar("R", bound=BaseModel)

COLLECTIONS = ("transactions", "categories", "accounts", "budgets", "goals", "alerts")
MAX_ID_ATTEMPTS = 8


class DuplicateIdError(ValueError):
    pass


def new_id() -> str:
    return uuid.uuid4().hex


def ensure_unique_ids(collection: str, records: Iterable[Any]) -> None:
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            raise DuplicateIdError(f"Duplicate id '{record.id}' in {collection}")
        seen.add(record.id)


class Store:
    def __init__(
        self,
        state: Optional[AppState] = None,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._listeners: list[Listener] = []
        self._state = state or default_state(clock())
        for name in COLLECTIONS:
            ensure_unique_ids(name, getattr(self._state, name))

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def transactions(self) -> list[Transaction]:
        return self._state.transactions

    @property
    def categories(self) -> list[Category]:
        return self._state.categories

    @property
    def accounts(self) -> list[Account]:
        return self._state.accounts

    @property
    def budgets(self) -> list[Budget]:
        return self._state.budgets

    @property
    def goals(self) -> list[Goal]:
        return self._state.goals

    @property
    def alerts(self) -> list[Alert]:
        return self._state.alerts

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            listener(self._state)

    def _generate_id(self, existing: Sequence[Any]) -> str:
        taken = {record.id for record in existing}
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate not in taken:
                return candidate
            logger.warning(f"id_collision: id={candidate}")
        raise DuplicateIdError("Could not generate a unique id")

    def _find(self, collection: str, record_id: str) -> Optional[Any]:
        return next((r for r in getattr(self._state, collection) if r.id == record_id), None)

    def _insert(self, collection: str, model: type[R], fields: dict[str, Any]) -> R:
        items = getattr(self._state, collection)
        now = self._clock()
        record = model.model_validate(
            {**fields, "id": self._generate_id(items), "created_at": now, "updated_at": now}
        )
        self._commit(**{collection: [*items, record]})
        return record

    def _update(self, collection: str, record_id: str, changes: dict[str, Any]) -> Optional[Any]:
        current = self._find(collection, record_id)
        if current is None:
            logger.debug(f"update_skipped: collection={collection} id={record_id}")
            return None
        merged = {**current.model_dump(), **changes, "id": current.id}
        if "updated_at" in type(current).model_fields:
            merged["updated_at"] = self._clock()
        updated = type(current).model_validate(merged)
        self._commit(
            **{
                collection: [
                    updated if r.id == record_id else r
                    for r in getattr(self._state, collection)
                ]
            }
        )
        return updated

    def _delete(self, collection: str, record_id: str) -> bool:
        items = getattr(self._state, collection)
        remaining = [r for r in items if r.id != record_id]
        if len(remaining) == len(items):
            logger.debug(f"delete_skipped: collection={collection} id={record_id}")
            return False
        self._commit(**{collection: remaining})
        return True

    # Transactions

    def add_transaction(self, data: TransactionIn) -> Transaction:
        now = self._clock()
        transaction = Transaction(
            **data.model_dump(),
            id=self._generate_id(self._state.transactions),
            created_at=now,
            updated_at=now,
        )
        accounts = [
            account.model_copy(
                update={
                    "balance": account.balance + transaction.signed_amount,
                    "updated_at": now,
                }
            )
            if account.id == transaction.account
            else account
            for account in self._state.accounts
        ]
        self._commit(
            transactions=[*self._state.transactions, transaction],
            accounts=accounts,
        )
        return transaction

    def update_transaction(
        self, transaction_id: str, changes: TransactionUpdate
    ) -> Optional[Transaction]:
        return self._update(
            "transactions", transaction_id, changes.model_dump(exclude_unset=True)
        )

    def delete_transaction(self, transaction_id: str) -> bool:
        return self._delete("transactions", transaction_id)

    def get_transactions_by_account(self, account_id: str) -> list[Transaction]:
        return [t for t in self._state.transactions if t.account == account_id]

    def get_transactions_by_category(self, category_id: str) -> list[Transaction]:
        return [t for t in self._state.transactions if t.category == category_id]

    def get_filtered_transactions(self, filters: FilterOptions) -> list[Transaction]:
        return aggregates.filter_transactions(self._state.transactions, filters)

    # Categories

    def _subcategories(self, items: Sequence[SubcategoryIn]) -> list[dict[str, Any]]:
        taken: set[str] = set()
        result = []
        for item in items:
            sub_id = item.id
            if not sub_id or sub_id in taken:
                sub_id = self._id_factory()
            taken.add(sub_id)
            result.append(
                Subcategory(
                    id=sub_id, name=item.name, budget_limit=item.budget_limit
                ).model_dump()
            )
        return result

    def add_category(self, data: CategoryIn) -> Category:
        fields = data.model_dump(exclude={"subcategories"})
        fields["subcategories"] = self._subcategories(data.subcategories)
        return self._insert("categories", Category, fields)

    def update_category(self, category_id: str, changes: CategoryUpdate) -> Optional[Category]:
        fields = changes.model_dump(exclude_unset=True, exclude={"subcategories"})
        if changes.subcategories is not None:
            fields["subcategories"] = self._subcategories(changes.subcategories)
        return self._update("categories", category_id, fields)

    def delete_category(self, category_id: str) -> bool:
        return self._delete("categories", category_id)

    # Accounts

    def add_account(self, data: AccountIn) -> Account:
        return self._insert("accounts", Account, data.model_dump())

    def update_account(self, account_id: str, changes: AccountUpdate) -> Optional[Account]:
        return self._update("accounts", account_id, changes.model_dump(exclude_unset=True))

    def delete_account(self, account_id: str) -> bool:
        return self._delete("accounts", account_id)

    def get_account(self, account_id: str) -> Optional[Account]:
        return self._find("accounts", account_id)

    # Budgets

    def add_budget(self, data: BudgetIn) -> Budget:
        return self._insert("budgets", Budget, data.model_dump())

    def update_budget(self, budget_id: str, changes: BudgetUpdate) -> Optional[Budget]:
        return self._update("budgets", budget_id, changes.model_dump(exclude_unset=True))

    def delete_budget(self, budget_id: str) -> bool:
        return self._delete("budgets", budget_id)

    # Goals

    def add_goal(self, data: GoalIn) -> Goal:
        return self._insert("goals", Goal, data.model_dump())

    def update_goal(self, goal_id: str, changes: GoalUpdate) -> Optional[Goal]:
        return self._update("goals", goal_id, changes.model_dump(exclude_unset=True))

    def delete_goal(self, goal_id: str) -> bool:
        return self._delete("goals", goal_id)

    # Alerts

    def add_alert(self, data: AlertIn) -> Alert:
        alert = Alert(
            **data.model_dump(),
            id=self._generate_id(self._state.alerts),
            created_at=self._clock(),
        )
        self._commit(alerts=[*self._state.alerts, alert])
        return alert

    def mark_alert_as_read(self, alert_id: str) -> bool:
        return self._update("alerts", alert_id, {"is_read": True}) is not None

    def delete_alert(self, alert_id: str) -> bool:
        return self._delete("alerts", alert_id)

    def clear_alerts(self) -> None:
        self._commit(alerts=[])

    # Session

    def set_user(self, data: Optional[UserIn]) -> Optional[User]:
        if data is None:
            self._commit(user=None)
            return None
        current = self._state.user
        user = User(
            **data.model_dump(),
            id=current.id if current else self._id_factory(),
            created_at=current.created_at if current else self._clock(),
        )
        self._commit(user=user)
        return user

    def set_authenticated(self, is_authenticated: bool) -> None:
        self._commit(is_authenticated=is_authenticated)

    def toggle_theme(self) -> Theme:
        theme = Theme.dark if self._state.theme == Theme.light else Theme.light
        self._commit(theme=theme)
        return theme

    def set_sidebar_open(self, is_open: bool) -> None:
        self._commit(sidebar_open=is_open)

    def set_filters(self, filters: FilterOptions) -> None:
        self._commit(current_filters=filters)

    def clear_filters(self) -> None:
        self._commit(current_filters=FilterOptions())

    # Aggregates

    def get_total_balance(self) -> Decimal:
        return aggregates.total_balance(self._state.accounts)

    def get_total_income(self, period: Optional[str] = None, *, today: Optional[date] = None) -> Decimal:
        return aggregates.total_for_period(
            self._state.transactions, TransactionType.income, period, today=today
        )

    def get_total_expenses(self, period: Optional[str] = None, *, today: Optional[date] = None) -> Decimal:
        return aggregates.total_for_period(
            self._state.transactions, TransactionType.expense, period, today=today
        )

    def get_category_spending(
        self, category_id: str, period: Optional[str] = None, *, today: Optional[date] = None
    ) -> Decimal:
        scope = "month" if period == "month" else None
        return aggregates.category_spending(
            self._state.transactions, category_id, scope, today=today
        )

    def get_account_balance(self, account_id: str) -> Decimal:
        account = self._find("accounts", account_id)
        return account.balance if account else Decimal("0")

    # Snapshots

    def snapshot(self) -> PersistedState:
        return self._state.persisted()

    def load_snapshot(self, persisted: PersistedState) -> None:
        for name in ("transactions", "categories", "accounts", "budgets", "goals"):
            ensure_unique_ids(name, getattr(persisted, name))
        self._commit(**{name: getattr(persisted, name) for name in PersistedState.model_fields})

    def replace_collections(self, **collections: list[Any]) -> None:
        """Swap several collections in one step; ids must be unique per collection."""
        unknown = set(collections) - set(COLLECTIONS)
        if unknown:
            raise ValueError(f"Unknown collections: {', '.join(sorted(unknown))}")
        for name, records in collections.items():
            ensure_unique_ids(name, records)
        self._commit(**collections)
