"""
Transfer ledger writer.

A transfer is two TRANSFER transactions written and removed together:
a debit leg (negative amount) on the source account and a credit leg
(positive amount) on the destination account, each pointing at the other
through ``linked_transaction_id``. Legs are never edited after creation.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4
import logging

from pocketledger.exceptions import (
    AccountNotFoundError,
    CategoryNotFoundError,
    InvalidAmountError,
    SameAccountTransferError,
    TransactionNotFoundError,
    TransferCannotBeModifiedError,
    TransferIntegrityError,
)
from pocketledger.schemas import TRANSFER, TransactionRecord
from pocketledger.services.entity_kinds import ACCOUNT, CATEGORY, TRANSACTION
from pocketledger.services.ledger_store import LedgerStore
from pocketledger.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferLegs:
    debit_leg: TransactionRecord
    credit_leg: TransactionRecord

    @property
    def transfer_id(self) -> UUID:
        return self.debit_leg.id

    @property
    def amount(self) -> Decimal:
        return abs(self.debit_leg.amount)


def is_transfer(transaction) -> bool:
    return transaction.transaction_type == TRANSFER


class TransferLedgerWriter:
    """Creates and deletes transfer pairs as single atomic units."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def create_transfer(
        self,
        user_id: str,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
        note: Optional[str] = None,
        transaction_date: Optional[datetime] = None,
    ) -> TransferLegs:
        """
        Move ``amount`` from one of the user's accounts to another.

        All preconditions are checked before the first write. Both legs are
        inserted unlinked, then linked to each other, inside one commit.

        Raises:
            InvalidAmountError: amount is not positive
            SameAccountTransferError: source and destination are the same account
            AccountNotFoundError: an account is missing or belongs to another user
        """
        if amount is None or amount <= 0:
            raise InvalidAmountError()
        if from_account_id == to_account_id:
            raise SameAccountTransferError()

        from_account = self._owned_account(user_id, from_account_id)
        to_account = self._owned_account(user_id, to_account_id)

        now = utcnow()
        booked_at = transaction_date or now
        magnitude = abs(Decimal(amount))
        debit_id = uuid4()
        credit_id = uuid4()

        def legs(leg_id, account_id, signed_amount, leg_note):
            return {
                "id": leg_id,
                "user_id": user_id,
                "account_id": account_id,
                "category_id": None,
                "transaction_type": TRANSFER,
                "amount": signed_amount,
                "note": leg_note,
                "transaction_date": booked_at,
                "linked_transaction_id": None,
                "is_deleted": False,
                "created_at": now,
                "updated_at": now,
            }

        debit_values = legs(debit_id, from_account.id, -magnitude, note or f"Transfer to {to_account.name}")
        credit_values = legs(credit_id, to_account.id, magnitude, note or f"Transfer from {from_account.name}")

        def write(store: LedgerStore):
            debit = store.insert(TRANSACTION, debit_values)
            credit = store.insert(TRANSACTION, credit_values)
            store.update(TRANSACTION, debit_id, {"linked_transaction_id": credit_id, "updated_at": now})
            store.update(TRANSACTION, credit_id, {"linked_transaction_id": debit_id, "updated_at": now})
            return debit, credit

        debit, credit = self.store.run_atomic(write)
        logger.info(
            f"[TRANSFER] Created transfer {debit_id} for user {user_id}: "
            f"{magnitude} from {from_account_id} to {to_account_id}"
        )
        return TransferLegs(
            debit_leg=TRANSACTION.to_record(debit),
            credit_leg=TRANSACTION.to_record(credit),
        )

    def insert_synced_pair(self, user_id: str, leg: TransactionRecord, partner: TransactionRecord) -> None:
        """
        Create a transfer pushed by a device, keeping the client ids and
        timestamps. Both legs must arrive together and form a valid pair.
        """
        self.check_pair(user_id, leg, partner)

        def write(store: LedgerStore):
            for record in (leg, partner):
                values = TRANSACTION.insert_values(record, user_id)
                values["linked_transaction_id"] = None
                store.insert(TRANSACTION, values)
            store.update(TRANSACTION, leg.id, {"linked_transaction_id": partner.id, "updated_at": leg.updated_at})
            store.update(TRANSACTION, partner.id, {"linked_transaction_id": leg.id, "updated_at": partner.updated_at})

        self.store.run_atomic(write)
        logger.info(f"[TRANSFER] Created synced transfer pair {leg.id} / {partner.id} for user {user_id}")

    def check_pair(self, user_id: str, leg: TransactionRecord, partner: TransactionRecord) -> None:
        if not (is_transfer(leg) and is_transfer(partner)):
            raise TransferIntegrityError("Both legs of a transfer must have type TRANSFER")
        if leg.linked_transaction_id != partner.id or partner.linked_transaction_id != leg.id:
            raise TransferIntegrityError("Transfer legs must link to each other")
        if leg.amount == 0 or leg.amount + partner.amount != 0:
            raise TransferIntegrityError("Transfer leg amounts must be non-zero additive inverses")
        if leg.account_id == partner.account_id:
            raise TransferIntegrityError("Transfer legs must be on different accounts")
        if leg.is_deleted != partner.is_deleted:
            raise TransferIntegrityError("Transfer legs must share the same delete state")
        for account_id in (leg.account_id, partner.account_id):
            if self.store.find_owned(ACCOUNT, user_id, account_id) is None:
                raise AccountNotFoundError()
        for category_id in (leg.category_id, partner.category_id):
            if category_id is not None and self.store.find_owned(CATEGORY, user_id, category_id) is None:
                raise CategoryNotFoundError()

    def delete_transfer(
        self,
        user_id: str,
        leg_id: UUID,
        hard: bool = False,
        deleted_at: Optional[datetime] = None,
    ) -> None:
        """
        Delete both legs of the transfer ``leg_id`` belongs to, in one commit.

        The default is a soft delete stamped with ``deleted_at`` (now when
        omitted) so other devices pull the deletion. ``hard=True`` removes
        both rows.
        """
        leg = self.store.find_owned(TRANSACTION, user_id, leg_id)
        if leg is None or (leg.is_deleted and not hard):
            raise TransactionNotFoundError()
        if not is_transfer(leg):
            raise TransferIntegrityError("Transaction is not part of a transfer")

        partner = None
        if leg.linked_transaction_id is not None:
            partner = self.store.get_by_id(TRANSACTION, leg.linked_transaction_id)
        if partner is None or partner.linked_transaction_id != leg.id:
            raise TransferIntegrityError(f"Transfer leg {leg_id} has no matching linked leg")

        leg_ids = (leg.id, partner.id)

        if hard:
            def write(store: LedgerStore):
                # Break the mutual references before removing either row.
                for transaction_id in leg_ids:
                    store.update(TRANSACTION, transaction_id, {"linked_transaction_id": None})
                for transaction_id in leg_ids:
                    store.delete(TRANSACTION, transaction_id)
        else:
            stamp = deleted_at or utcnow()

            def write(store: LedgerStore):
                for transaction_id in leg_ids:
                    store.update(TRANSACTION, transaction_id, {"is_deleted": True, "updated_at": stamp})

        self.store.run_atomic(write)
        logger.info(f"[TRANSFER] {'Removed' if hard else 'Soft-deleted'} transfer legs {leg_ids[0]} / {leg_ids[1]}")

    def update_transfer(self, user_id: str, leg_id: UUID, fields: dict) -> None:
        """Transfers are immutable; always raises once the leg is found."""
        leg = self.store.find_owned(TRANSACTION, user_id, leg_id)
        if leg is None:
            raise TransactionNotFoundError()
        raise TransferCannotBeModifiedError()

    def _owned_account(self, user_id: str, account_id: UUID):
        account = self.store.find_owned(ACCOUNT, user_id, account_id)
        if account is None or account.is_deleted:
            raise AccountNotFoundError()
        return account
