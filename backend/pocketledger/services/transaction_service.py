"""
Service for creating, reading, updating and deleting single transactions.
Transfers are delegated to the TransferLedgerWriter.
"""
from uuid import UUID, uuid4
import logging

from sqlalchemy.orm import Session

from pocketledger.exceptions import (
    AccountNotFoundError,
    CategoryNotFoundError,
    InvalidAmountError,
    InvalidTransactionError,
    TransactionNotFoundError,
)
from pocketledger.schemas import (
    TRANSFER,
    TransactionCreate,
    TransactionRecord,
    TransactionUpdate,
    TransferCreate,
)
from pocketledger.services.entity_kinds import ACCOUNT, CATEGORY, TRANSACTION
from pocketledger.services.ledger_store import LedgerStore
from pocketledger.services.transfer_ledger_writer import (
    TransferLedgerWriter,
    TransferLegs,
    is_transfer,
)
from pocketledger.timeutils import utcnow

logger = logging.getLogger(__name__)


class TransactionService:

    def __init__(self, db: Session, user_id: str):
        self.user_id = user_id
        self.store = LedgerStore(db)
        self.transfer_writer = TransferLedgerWriter(self.store)

    def create_transaction(self, data: TransactionCreate) -> TransactionRecord:
        """
        Create an income or expense. A TRANSFER request becomes a transfer
        pair and the debit leg is returned.
        """
        if data.transaction_type == TRANSFER:
            if data.to_account_id is None:
                raise InvalidTransactionError("toAccountId is required for TRANSFER transactions")
            legs = self.create_transfer(
                TransferCreate(
                    from_account_id=data.account_id,
                    to_account_id=data.to_account_id,
                    amount=data.amount,
                    note=data.note,
                    transaction_date=data.transaction_date,
                )
            )
            return legs.debit_leg

        if data.amount <= 0:
            raise InvalidAmountError()

        account = self.store.find_owned(ACCOUNT, self.user_id, data.account_id)
        if account is None or account.is_deleted:
            raise AccountNotFoundError()
        self._check_category(data.category_id)

        now = utcnow()
        row = self.store.insert(TRANSACTION, {
            "id": uuid4(),
            "user_id": self.user_id,
            "account_id": data.account_id,
            "category_id": data.category_id,
            "transaction_type": data.transaction_type,
            "amount": data.amount,
            "note": data.note,
            "transaction_date": data.transaction_date or now,
            "is_deleted": False,
            "created_at": now,
            "updated_at": now,
        })
        return TRANSACTION.to_record(row)

    def create_transfer(self, data: TransferCreate) -> TransferLegs:
        return self.transfer_writer.create_transfer(
            self.user_id,
            data.from_account_id,
            data.to_account_id,
            data.amount,
            note=data.note,
            transaction_date=data.transaction_date,
        )

    def get_transaction(self, transaction_id: UUID) -> TransactionRecord:
        return TRANSACTION.to_record(self._owned(transaction_id))

    def update_transaction(self, transaction_id: UUID, updates: TransactionUpdate) -> TransactionRecord:
        transaction = self._owned(transaction_id)
        if is_transfer(transaction):
            # Always raises: transfer legs are immutable.
            self.transfer_writer.update_transfer(self.user_id, transaction_id, updates.model_dump(exclude_unset=True))

        fields = updates.model_dump(exclude_unset=True)
        if "amount" in fields and (fields["amount"] is None or fields["amount"] <= 0):
            raise InvalidAmountError()
        if "category_id" in fields:
            self._check_category(fields["category_id"])
        fields["updated_at"] = utcnow()

        row = self.store.update(TRANSACTION, transaction_id, fields)
        return TRANSACTION.to_record(row)

    def delete_transaction(self, transaction_id: UUID, hard: bool = False) -> None:
        transaction = self._owned(transaction_id, include_deleted=hard)
        if is_transfer(transaction):
            self.transfer_writer.delete_transfer(self.user_id, transaction_id, hard=hard)
            return

        if hard:
            self.store.delete(TRANSACTION, transaction_id)
        else:
            self.store.update(TRANSACTION, transaction_id, {"is_deleted": True, "updated_at": utcnow()})
        logger.info(f"{'Removed' if hard else 'Soft-deleted'} transaction {transaction_id} for user {self.user_id}")

    def _check_category(self, category_id):
        if category_id is None:
            return
        category = self.store.find_owned(CATEGORY, self.user_id, category_id)
        if category is None or category.is_deleted:
            raise CategoryNotFoundError()

    def _owned(self, transaction_id: UUID, include_deleted: bool = False):
        transaction = self.store.find_owned(TRANSACTION, self.user_id, transaction_id)
        if transaction is None or (transaction.is_deleted and not include_deleted):
            raise TransactionNotFoundError()
        return transaction
