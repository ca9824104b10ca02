import json
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

from database import session_scope
from entities import STATE_VERSION, PersistedState
from models import StorageRecord
from store import DuplicateIdError, Store

logger = logging.getLogger(__name__)


class StateRepository:
    """Reads and writes the persisted snapshot under a single storage key."""

    def __init__(self, session_factory: sessionmaker[Session], key: str) -> None:
        self.session_factory = session_factory
        self.key = key

    def load(self) -> Optional[PersistedState]:
        with session_scope(self.session_factory) as session:
            record = session.get(StorageRecord, self.key)
            if record is None:
                return None
            version, raw = record.version, record.value
        if version != STATE_VERSION:
            logger.warning(
                f"state_load_skipped: key={self.key} reason=version version={version}"
            )
            return None
        try:
            payload = json.loads(raw)
            return PersistedState.model_validate(payload["state"])
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            logger.warning(f"state_load_skipped: key={self.key} reason={exc!r}")
            return None

    def save(self, state: PersistedState) -> None:
        value = json.dumps(
            {"version": STATE_VERSION, "state": state.model_dump(mode="json")}
        )
        with session_scope(self.session_factory) as session:
            record = session.get(StorageRecord, self.key)
            if record is None:
                session.add(StorageRecord(key=self.key, version=STATE_VERSION, value=value))
            else:
                record.version = STATE_VERSION
                record.value = value
        logger.info(
            f"state_saved: key={self.key} transactions={len(state.transactions)} "
            f"accounts={len(state.accounts)}"
        )

    def clear(self) -> None:
        with session_scope(self.session_factory) as session:
            session.execute(delete(StorageRecord).where(StorageRecord.key == self.key))


def load_store(repository: StateRepository, **store_kwargs) -> Store:
    """Build a store from the saved snapshot, or from seed data when none loads."""
    store = Store(**store_kwargs)
    persisted = repository.load()
    if persisted is None:
        logger.info(f"state_seeded: key={repository.key}")
        return store
    try:
        store.load_snapshot(persisted)
    except DuplicateIdError as exc:
        logger.warning(f"state_load_skipped: key={repository.key} reason={exc}")
        return store
    logger.info(
        f"state_loaded: key={repository.key} transactions={len(store.transactions)}"
    )
    return store
