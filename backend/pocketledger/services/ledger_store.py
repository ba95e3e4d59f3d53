"""
Ledger store: the persistence operations the sync engine and the transfer
writer rely on, over a SQLAlchemy session.

Single writes commit immediately. Writes issued inside ``run_atomic`` are
only flushed and the whole unit commits (or rolls back) at the end.
"""
from datetime import datetime
from typing import Callable, List, Optional, TypeVar
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from pocketledger.exceptions import RecordNotFoundError
from pocketledger.services.entity_kinds import EntityKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerStore:
    """Keyed storage for accounts, categories, transactions and budgets."""

    def __init__(self, db: Session):
        self.db = db
        self._atomic_depth = 0

    @property
    def in_atomic(self) -> bool:
        return self._atomic_depth > 0

    def get_by_id(self, kind: EntityKind, record_id: UUID):
        """Global lookup by id, not scoped to a user."""
        return self.db.get(kind.model, record_id)

    def insert(self, kind: EntityKind, values: dict):
        row = kind.model(**values)
        self.db.add(row)
        self._write()
        logger.debug(f"[STORE] Inserted {kind.name} {values.get('id')}")
        return row

    def update(self, kind: EntityKind, record_id: UUID, fields: dict):
        row = self.get_by_id(kind, record_id)
        if row is None:
            raise RecordNotFoundError(f"{kind.name} {record_id} not found")
        for field, value in fields.items():
            setattr(row, field, value)
        self._write()
        logger.debug(f"[STORE] Updated {kind.name} {record_id}: {sorted(fields)}")
        return row

    def delete(self, kind: EntityKind, record_id: UUID) -> None:
        row = self.get_by_id(kind, record_id)
        if row is None:
            raise RecordNotFoundError(f"{kind.name} {record_id} not found")
        self.db.delete(row)
        self._write()
        logger.debug(f"[STORE] Deleted {kind.name} {record_id}")

    def find_since(self, kind: EntityKind, user_id: str, since: datetime) -> List:
        """All rows of a user changed strictly after ``since``, oldest change first."""
        model = kind.model
        return (
            self.db.query(model)
            .filter(model.user_id == user_id, model.updated_at > since)
            .order_by(model.updated_at.asc(), model.id.asc())
            .all()
        )

    def find_owned(self, kind: EntityKind, user_id: str, record_id: UUID) -> Optional[object]:
        model = kind.model
        return (
            self.db.query(model)
            .filter(model.id == record_id, model.user_id == user_id)
            .first()
        )

    def run_atomic(self, fn: Callable[["LedgerStore"], T]) -> T:
        """
        Execute ``fn(store)`` as one commit-or-rollback unit.

        Nested calls join the outermost unit.
        """
        outermost = self._atomic_depth == 0
        self._atomic_depth += 1
        try:
            result = fn(self)
            if outermost:
                self.db.commit()
        except Exception:
            if outermost:
                self.db.rollback()
            raise
        finally:
            self._atomic_depth -= 1
        return result

    def rollback(self) -> None:
        self.db.rollback()

    def _write(self) -> None:
        if self.in_atomic:
            self.db.flush()
        else:
            self.db.commit()
