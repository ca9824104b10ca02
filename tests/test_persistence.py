import json
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from database import make_engine, make_session_factory, session_scope
from models import StorageRecord, TransactionType
from persistence import StateRepository, load_store
from schemas import AlertIn, BudgetIn, TransactionIn
from store import Store


def _repository(key: str = "finance-tracker-storage") -> StateRepository:
    factory = make_session_factory(make_engine("sqlite:///:memory:"))
    return StateRepository(factory, key)


def _populated_store() -> Store:
    store = Store()
    store.add_transaction(
        TransactionIn(
            description="Groceries",
            amount=Decimal("42.50"),
            date=date(2025, 3, 2),
            category="1",
            subcategory="1-2",
            type=TransactionType.expense,
            account="1",
            tags=["weekly"],
        )
    )
    store.add_budget(BudgetIn(category_id="1", limit=Decimal("300")))
    return store


def test_load_without_saved_state_returns_seed() -> None:
    repo = _repository()
    assert repo.load() is None

    store = load_store(repo)
    assert [a.id for a in store.accounts] == ["1", "2"]
    assert store.transactions == []


def test_save_and_load_round_trip() -> None:
    repo = _repository()
    original = _populated_store()
    original.toggle_theme()
    original.set_sidebar_open(False)
    original.add_alert(AlertIn(type="bill_due", title="Rent", message="Rent is due"))
    repo.save(original.snapshot())

    restored = load_store(repo)
    assert restored.snapshot() == original.snapshot()
    assert restored.get_account_balance("1") == Decimal("4957.50")
    assert restored.transactions[0].tags == ["weekly"]
    assert restored.state.theme.value == "dark"
    # alerts and ui state are not persisted
    assert restored.alerts == []
    assert restored.state.sidebar_open is True


def test_save_overwrites_single_row() -> None:
    repo = _repository()
    store = _populated_store()
    repo.save(store.snapshot())
    store.delete_budget(store.budgets[0].id)
    repo.save(store.snapshot())

    with session_scope(repo.session_factory) as session:
        rows = session.scalars(select(StorageRecord)).all()
        assert len(rows) == 1
        payload = json.loads(rows[0].value)
    assert payload["version"] == 1
    assert payload["state"]["budgets"] == []


def test_corrupt_payload_falls_back_to_seed() -> None:
    repo = _repository()
    with session_scope(repo.session_factory) as session:
        session.add(StorageRecord(key=repo.key, version=1, value="{not json"))

    assert repo.load() is None
    store = load_store(repo)
    assert len(store.categories) == 3


def test_wrong_version_is_ignored() -> None:
    repo = _repository()
    repo.save(_populated_store().snapshot())
    with session_scope(repo.session_factory) as session:
        session.get(StorageRecord, repo.key).version = 99

    assert repo.load() is None


def test_invalid_shape_is_ignored() -> None:
    repo = _repository()
    bad = json.dumps({"version": 1, "state": {"transactions": [{"id": "x"}]}})
    with session_scope(repo.session_factory) as session:
        session.add(StorageRecord(key=repo.key, version=1, value=bad))

    assert repo.load() is None


def test_duplicate_ids_in_saved_state_fall_back_to_seed() -> None:
    repo = _repository()
    store = _populated_store()
    payload = store.snapshot().model_dump(mode="json")
    payload["transactions"] = payload["transactions"] * 2
    with session_scope(repo.session_factory) as session:
        session.add(
            StorageRecord(
                key=repo.key, version=1, value=json.dumps({"version": 1, "state": payload})
            )
        )

    restored = load_store(repo)
    assert restored.transactions == []


def test_clear_removes_saved_state() -> None:
    repo = _repository()
    repo.save(_populated_store().snapshot())
    repo.clear()
    assert repo.load() is None


def test_keys_are_isolated() -> None:
    factory = make_session_factory(make_engine("sqlite:///:memory:"))
    first = StateRepository(factory, "first")
    second = StateRepository(factory, "second")
    first.save(_populated_store().snapshot())

    assert first.load() is not None
    assert second.load() is None
