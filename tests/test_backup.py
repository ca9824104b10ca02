import json
from datetime import date, datetime
from decimal import Decimal

import pytest

from backup import (
    BackupFormatError,
    ImportMode,
    backup_filename,
    export_backup,
    import_backup,
    parse_backup,
)
from models import TransactionType
from schemas import GoalIn, TransactionIn
from store import Store


def _store_with_data() -> Store:
    store = Store()
    store.add_transaction(
        TransactionIn(
            description="Rent",
            amount=Decimal("900"),
            date=date(2025, 3, 1),
            category="1",
            type=TransactionType.expense,
            account="1",
        )
    )
    store.add_goal(
        GoalIn(
            name="Trip",
            target_amount=Decimal("2000"),
            target_date=date(2025, 12, 1),
            category="travel",
        )
    )
    return store


def test_export_layout() -> None:
    data = export_backup(_store_with_data(), now=datetime(2025, 3, 15, 8, 30))
    assert set(data) == {
        "transactions",
        "categories",
        "accounts",
        "budgets",
        "goals",
        "exportDate",
    }
    assert data["exportDate"].startswith("2025-03-15T08:30")
    assert data["transactions"][0]["amount"] == "900"
    assert backup_filename(datetime(2025, 3, 15)) == "finance-tracker-backup-2025-03-15.json"


def test_replace_import_restores_collections() -> None:
    source = _store_with_data()
    payload = json.dumps(export_backup(source))

    target = Store()
    counts = import_backup(target, payload)

    assert counts == {
        "transactions": 1,
        "categories": 3,
        "accounts": 2,
        "budgets": 0,
        "goals": 1,
    }
    assert target.transactions == source.transactions
    assert target.get_account_balance("1") == Decimal("4100")
    assert [g.name for g in target.goals] == ["Trip"]


def test_merge_import_only_adds_new_ids() -> None:
    source = _store_with_data()
    payload = export_backup(source)

    target = Store()
    target.add_transaction(
        TransactionIn(
            description="Coffee",
            amount=Decimal("3"),
            date=date(2025, 3, 2),
            category="1",
            type=TransactionType.expense,
            account="2",
        )
    )
    counts = import_backup(target, payload, ImportMode.merge)

    assert counts["transactions"] == 1
    assert counts["categories"] == 0
    assert counts["accounts"] == 0
    assert [t.description for t in target.transactions] == ["Coffee", "Rent"]
    # existing accounts win over the backup's copies
    assert target.get_account_balance("1") == Decimal("5000")


def test_malformed_backups_are_rejected() -> None:
    store = _store_with_data()
    before = store.state

    with pytest.raises(BackupFormatError, match="valid JSON"):
        import_backup(store, "{oops")
    with pytest.raises(BackupFormatError, match="JSON object"):
        import_backup(store, "[1, 2]")
    with pytest.raises(BackupFormatError, match="invalid shape"):
        import_backup(store, {"transactions": [{"id": "1"}]})

    assert store.state is before


def test_duplicate_ids_in_backup_are_rejected() -> None:
    data = export_backup(_store_with_data())
    data["goals"] = data["goals"] * 2
    store = Store()
    with pytest.raises(BackupFormatError, match="Duplicate id"):
        import_backup(store, data)
    assert store.goals == []


def test_missing_collections_default_to_empty() -> None:
    backup = parse_backup('{"accounts": []}')
    assert backup.transactions == []
    assert backup.export_date is None
