from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pocketledger.database import get_db
from pocketledger.db_helpers import get_user_id
from pocketledger.schemas import (
    TransactionCreate,
    TransactionRecord,
    TransactionUpdate,
    TransferCreate,
    TransferResponse,
)
from pocketledger.services.transaction_service import TransactionService

router = APIRouter()


def _service(db: Session) -> TransactionService:
    return TransactionService(db, user_id=get_user_id())


@router.post("", response_model=TransactionRecord, status_code=201)
def create_transaction(
    transaction: TransactionCreate,
    db: Session = Depends(get_db),
):
    """Create a transaction. TRANSFER requests return the debit leg."""
    return _service(db).create_transaction(transaction)


@router.post("/transfer", response_model=TransferResponse, status_code=201)
def create_transfer(
    transfer: TransferCreate,
    db: Session = Depends(get_db),
):
    """Move money between two of the user's accounts."""
    legs = _service(db).create_transfer(transfer)
    return TransferResponse(
        transfer_id=legs.transfer_id,
        from_transaction=legs.debit_leg,
        to_transaction=legs.credit_leg,
        amount=legs.amount,
    )


@router.get("/{transaction_id}", response_model=TransactionRecord)
def get_transaction(
    transaction_id: UUID,
    db: Session = Depends(get_db),
):
    return _service(db).get_transaction(transaction_id)


@router.patch("/{transaction_id}", response_model=TransactionRecord)
def update_transaction(
    transaction_id: UUID,
    updates: TransactionUpdate,
    db: Session = Depends(get_db),
):
    """Update a transaction. Transfer legs cannot be modified."""
    return _service(db).update_transaction(transaction_id, updates)


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: UUID,
    hard: bool = Query(False, description="Remove the row instead of marking it deleted"),
    db: Session = Depends(get_db),
):
    """Delete a transaction; deleting a transfer leg deletes both legs."""
    _service(db).delete_transaction(transaction_id, hard=hard)
    return None
