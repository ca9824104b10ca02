"""JSON backups of the user's data.

The file layout is ``{transactions, categories, accounts, budgets, goals,
exportDate}``. Importing validates the whole document before touching the
store, then either replaces the five collections or appends the records whose
ids are not present yet.
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from entities import Account, Budget, Category, Goal, Transaction
from store import DuplicateIdError, Store

logger = logging.getLogger(__name__)

BACKUP_COLLECTIONS = ("transactions", "categories", "accounts", "budgets", "goals")


class BackupFormatError(ValueError):
    pass


class ImportMode(str, Enum):
    replace = "replace"
    merge = "merge"


class Backup(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    export_date: Optional[datetime] = Field(default=None, alias="exportDate")


def export_backup(store: Store, now: Optional[datetime] = None) -> dict[str, Any]:
    backup = Backup(
        transactions=store.transactions,
        categories=store.categories,
        accounts=store.accounts,
        budgets=store.budgets,
        goals=store.goals,
        export_date=now or datetime.utcnow(),
    )
    return backup.model_dump(mode="json", by_alias=True)


def backup_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    return f"finance-tracker-backup-{now.date().isoformat()}.json"


def parse_backup(payload: Union[str, bytes, dict[str, Any]]) -> Backup:
    try:
        data = json.loads(payload) if isinstance(payload, (str, bytes)) else payload
    except ValueError as exc:
        raise BackupFormatError(f"Backup is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise BackupFormatError("Backup must be a JSON object")
    try:
        return Backup.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()[:5]
        )
        raise BackupFormatError(f"Backup has an invalid shape: {problems}") from exc


def import_backup(
    store: Store,
    payload: Union[str, bytes, dict[str, Any]],
    mode: ImportMode = ImportMode.replace,
) -> dict[str, int]:
    """Load a backup into the store; returns the number of records taken per collection."""
    backup = parse_backup(payload)
    incoming = {name: getattr(backup, name) for name in BACKUP_COLLECTIONS}

    if mode == ImportMode.replace:
        merged = incoming
        taken = {name: len(records) for name, records in incoming.items()}
    else:
        merged = {}
        taken = {}
        for name, records in incoming.items():
            current = getattr(store, name)
            known = {record.id for record in current}
            fresh = [r for r in records if r.id not in known]
            merged[name] = [*current, *fresh]
            taken[name] = len(fresh)

    try:
        store.replace_collections(**merged)
    except DuplicateIdError as exc:
        raise BackupFormatError(str(exc)) from exc
    logger.info(
        f"backup_imported: mode={mode.value} "
        + " ".join(f"{name}={len(merged[name])}" for name in BACKUP_COLLECTIONS)
    )
    return taken
