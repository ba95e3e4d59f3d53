"""
Push half of sync: apply a device's records of one entity kind to the ledger.

Every record is handled on its own. A record that fails (store error,
ownership violation, broken transfer) is logged and skipped; the rest of the
batch still goes through.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set
from uuid import UUID
import logging
import traceback

from pocketledger.exceptions import (
    AccountNotFoundError,
    CategoryNotFoundError,
    RecordOwnershipError,
    TransferCannotBeModifiedError,
    TransferIntegrityError,
)
from pocketledger.schemas import BudgetRecord, ConflictReport, SyncRecord, TransactionRecord
from pocketledger.services.conflict_resolver import Resolution, resolve
from pocketledger.services.entity_kinds import ACCOUNT, BUDGET, CATEGORY, TRANSACTION, EntityKind
from pocketledger.services.ledger_store import LedgerStore
from pocketledger.services.transfer_ledger_writer import TransferLedgerWriter, is_transfer

logger = logging.getLogger(__name__)


@dataclass
class BatchContext:
    """
    Per-call view of the pushed array, shared by the records in it.

    ``consumed`` holds partner legs already applied together with their
    transfer leg; their own entry in the array is skipped once.
    """
    records_by_id: Dict[UUID, SyncRecord]
    consumed: Set[UUID] = field(default_factory=set)
    created: int = 0
    updated: int = 0
    failed: int = 0


class RecordSynchronizer:
    """Last-writer-wins push for one entity kind."""

    def __init__(self, store: LedgerStore, kind: EntityKind):
        self.store = store
        self.kind = kind

    def sync_kind(self, user_id: str, records: Sequence[SyncRecord]) -> List[ConflictReport]:
        """
        Apply ``records`` in order and return the conflicts the server won.

        Unknown ids are created with the client id (a retried push finds the
        row and resolves to a no-op). Known ids go through the conflict
        resolver; a client win overwrites the row with the client's values,
        including its ``updated_at``.
        """
        # A later duplicate of an id wins, matching the array order.
        context = BatchContext(records_by_id={record.id: record for record in records})
        conflicts: List[ConflictReport] = []

        for record in records:
            if record.id in context.consumed:
                context.consumed.discard(record.id)
                continue
            try:
                report = self.sync_record(user_id, record, context)
            except Exception as e:
                self.store.rollback()
                context.failed += 1
                logger.error(f"[SYNC] Error syncing {self.kind.name} {record.id}: {e}")
                logger.debug(traceback.format_exc())
                continue
            if report is not None:
                conflicts.append(report)

        logger.info(
            f"[SYNC] {self.kind.collection} for user {user_id}: "
            f"{len(records)} pushed, {context.created} created, {context.updated} updated, "
            f"{len(conflicts)} conflicts, {context.failed} failed"
        )
        return conflicts

    def sync_record(self, user_id: str, record: SyncRecord, context: BatchContext) -> Optional[ConflictReport]:
        server_row = self.store.get_by_id(self.kind, record.id)

        if server_row is None:
            self.create(user_id, record, context)
            context.created += 1
            return None

        if server_row.user_id != user_id:
            raise RecordOwnershipError(f"{self.kind.name} {record.id} belongs to another user")

        outcome = resolve(record, server_row)
        if outcome.client_won:
            self.apply_client_version(user_id, record, server_row, context)
            context.updated += 1
            return None

        return self.conflict_report(record, server_row, outcome)

    def create(self, user_id: str, record: SyncRecord, context: BatchContext) -> None:
        self.store.insert(self.kind, self.kind.insert_values(record, user_id))

    def apply_client_version(self, user_id: str, record: SyncRecord, server_row, context: BatchContext) -> None:
        self.store.update(self.kind, record.id, self.kind.update_values(record))

    def conflict_report(self, record: SyncRecord, server_row, outcome: Resolution) -> ConflictReport:
        return ConflictReport(
            entity_type=self.kind.name,
            entity_id=record.id,
            client_version=record.model_dump(mode="json", by_alias=True),
            server_version=self.kind.to_record(server_row).model_dump(mode="json", by_alias=True),
            resolution=outcome.resolution,
            reason=outcome.reason,
        )

    def check_category(self, user_id: str, category_id: Optional[UUID], record_id: UUID) -> None:
        if category_id is not None and self.store.find_owned(CATEGORY, user_id, category_id) is None:
            raise CategoryNotFoundError(f"Category {category_id} not found for {self.kind.name} {record_id}")


class TransactionSynchronizer(RecordSynchronizer):
    """
    Transaction push that keeps transfer pairs whole.

    A new TRANSFER leg is created together with its partner from the same
    batch. An existing TRANSFER leg may only be deleted, which deletes both
    legs. Everything else behaves like the generic synchronizer.
    """

    def __init__(self, store: LedgerStore, transfer_writer: Optional[TransferLedgerWriter] = None):
        super().__init__(store, TRANSACTION)
        self.transfer_writer = transfer_writer or TransferLedgerWriter(store)

    def create(self, user_id: str, record: TransactionRecord, context: BatchContext) -> None:
        if not is_transfer(record):
            self._check_plain_transaction(user_id, record)
            super().create(user_id, record, context)
            return

        partner = context.records_by_id.get(record.linked_transaction_id) if record.linked_transaction_id else None
        if partner is None:
            raise TransferIntegrityError(f"Transfer leg {record.id} was pushed without its linked leg")
        if self.store.get_by_id(TRANSACTION, partner.id) is not None:
            raise TransferIntegrityError(f"Linked leg {partner.id} already exists on the server")

        self.transfer_writer.insert_synced_pair(user_id, record, partner)
        context.consumed.add(partner.id)

    def apply_client_version(self, user_id: str, record: TransactionRecord, server_row, context: BatchContext) -> None:
        if is_transfer(server_row):
            if not is_transfer(record):
                raise TransferCannotBeModifiedError()
            if server_row.is_deleted and record.is_deleted:
                return
            if record.is_deleted:
                partner_id = server_row.linked_transaction_id
                self.transfer_writer.delete_transfer(user_id, record.id, deleted_at=record.updated_at)
                context.consumed.add(partner_id)
                return
            raise TransferCannotBeModifiedError()

        if is_transfer(record):
            raise TransferIntegrityError(f"Transaction {record.id} cannot be turned into a transfer")

        self._check_plain_transaction(user_id, record)
        super().apply_client_version(user_id, record, server_row, context)

    def _check_plain_transaction(self, user_id: str, record: TransactionRecord) -> None:
        if record.linked_transaction_id is not None:
            raise TransferIntegrityError(f"Transaction {record.id} is not a transfer but carries a linked leg")
        if self.store.find_owned(ACCOUNT, user_id, record.account_id) is None:
            raise AccountNotFoundError(f"Account {record.account_id} not found for transaction {record.id}")
        self.check_category(user_id, record.category_id, record.id)


class BudgetSynchronizer(RecordSynchronizer):
    """Budgets may only point at the pushing user's own categories."""

    def __init__(self, store: LedgerStore):
        super().__init__(store, BUDGET)

    def create(self, user_id: str, record: BudgetRecord, context: BatchContext) -> None:
        self.check_category(user_id, record.category_id, record.id)
        super().create(user_id, record, context)

    def apply_client_version(self, user_id: str, record: BudgetRecord, server_row, context: BatchContext) -> None:
        self.check_category(user_id, record.category_id, record.id)
        super().apply_client_version(user_id, record, server_row, context)


def synchronizer_for(store: LedgerStore, kind: EntityKind) -> RecordSynchronizer:
    if kind is TRANSACTION:
        return TransactionSynchronizer(store)
    if kind is BUDGET:
        return BudgetSynchronizer(store)
    return RecordSynchronizer(store, kind)
