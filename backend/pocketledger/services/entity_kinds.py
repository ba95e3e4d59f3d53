"""
Registry of synced entity kinds.

Binds each kind to its ORM model, its wire record type and the fields a
winning client version may overwrite, so the sync engine is written once
against this description instead of once per table.
"""
from dataclasses import dataclass
from typing import Tuple, Type

from pocketledger.database import Base
from pocketledger.models import Account, Budget, Category, Transaction
from pocketledger.schemas import (
    AccountRecord,
    BudgetRecord,
    CategoryRecord,
    SyncRecord,
    TransactionRecord,
)

# Overwritten on every client win, in addition to the kind's own fields.
SYNC_META_FIELDS = ("is_deleted", "updated_at")


@dataclass(frozen=True)
class EntityKind:
    name: str  # entityType label used in conflict reports
    collection: str  # key in SyncBatch and SyncChanges
    model: Type[Base]
    record_type: Type[SyncRecord]
    mutable_fields: Tuple[str, ...]

    def to_record(self, row) -> SyncRecord:
        return self.record_type.model_validate(row)

    def update_values(self, record: SyncRecord) -> dict:
        """Column values a winning client version writes over the server row."""
        fields = self.mutable_fields + SYNC_META_FIELDS
        return {field: getattr(record, field) for field in fields}

    def insert_values(self, record: SyncRecord, user_id: str) -> dict:
        """Column values for creating the row with the client-chosen id."""
        values = self.update_values(record)
        values.update(
            id=record.id,
            user_id=user_id,
            created_at=record.created_at,
        )
        return values


ACCOUNT = EntityKind(
    name="account",
    collection="accounts",
    model=Account,
    record_type=AccountRecord,
    mutable_fields=("name", "account_type", "currency", "opening_balance"),
)

CATEGORY = EntityKind(
    name="category",
    collection="categories",
    model=Category,
    record_type=CategoryRecord,
    mutable_fields=("name", "category_type"),
)

TRANSACTION = EntityKind(
    name="transaction",
    collection="transactions",
    model=Transaction,
    record_type=TransactionRecord,
    mutable_fields=(
        "account_id",
        "category_id",
        "transaction_type",
        "amount",
        "note",
        "transaction_date",
        "linked_transaction_id",
    ),
)

BUDGET = EntityKind(
    name="budget",
    collection="budgets",
    model=Budget,
    record_type=BudgetRecord,
    mutable_fields=("category_id", "amount", "month"),
)

ALL_KINDS = (ACCOUNT, CATEGORY, TRANSACTION, BUDGET)
KINDS_BY_NAME = {kind.name: kind for kind in ALL_KINDS}


def sync_kinds(include_categories: bool) -> Tuple[EntityKind, ...]:
    """Kinds taking part in sync, in push order (parents before children)."""
    if include_categories:
        return (ACCOUNT, CATEGORY, TRANSACTION, BUDGET)
    return (ACCOUNT, TRANSACTION, BUDGET)
