"""
Shared fixtures for ledger tests: an in-memory database and record builders.
"""
import os
import sys
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from pocketledger.database import Base  # noqa: E402
from pocketledger.models import Account, Category, Transaction, User  # noqa: E402
from pocketledger.schemas import (  # noqa: E402
    AccountRecord,
    BudgetRecord,
    CategoryRecord,
    TransactionRecord,
)
from pocketledger.timeutils import to_naive_utc  # noqa: E402

USER_ID = "ledger-test-user"
OTHER_USER_ID = "ledger-other-user"


def make_sessionmaker():
    """Fresh in-memory database shared across threads, with foreign keys enforced."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_session(with_users: bool = True):
    db = make_sessionmaker()()
    if with_users:
        add_user(db, USER_ID)
        add_user(db, OTHER_USER_ID)
    return db


def ts(value: str) -> datetime:
    """Parse an ISO timestamp ("Z" allowed) into naive UTC."""
    return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def add_user(db, user_id: str) -> User:
    user = User(id=user_id, email=f"{user_id}@example.com", name=user_id)
    db.add(user)
    db.commit()
    return user


def add_account(
    db,
    user_id: str = USER_ID,
    name: str = "Cash",
    updated_at: str = "2025-01-01T00:00:00Z",
    account_id: Optional[UUID] = None,
    is_deleted: bool = False,
) -> Account:
    account = Account(
        id=account_id or uuid4(),
        user_id=user_id,
        name=name,
        account_type="CASH",
        currency="USD",
        opening_balance=Decimal("0.00"),
        is_deleted=is_deleted,
        created_at=ts(updated_at),
        updated_at=ts(updated_at),
    )
    db.add(account)
    db.commit()
    return account


def add_category(db, user_id: str = USER_ID, name: str = "Groceries", updated_at: str = "2025-01-01T00:00:00Z") -> Category:
    category = Category(
        id=uuid4(),
        user_id=user_id,
        name=name,
        category_type="EXPENSE",
        created_at=ts(updated_at),
        updated_at=ts(updated_at),
    )
    db.add(category)
    db.commit()
    return category


def add_transaction(
    db,
    account_id: UUID,
    user_id: str = USER_ID,
    amount: str = "12.50",
    updated_at: str = "2025-01-02T10:00:00Z",
    transaction_id: Optional[UUID] = None,
    is_deleted: bool = False,
) -> Transaction:
    transaction = Transaction(
        id=transaction_id or uuid4(),
        user_id=user_id,
        account_id=account_id,
        transaction_type="EXPENSE",
        amount=Decimal(amount),
        note="Lunch",
        transaction_date=ts(updated_at),
        is_deleted=is_deleted,
        created_at=ts(updated_at),
        updated_at=ts(updated_at),
    )
    db.add(transaction)
    db.commit()
    return transaction


def account_record(
    account_id: Optional[UUID] = None,
    name: str = "Cash",
    updated_at: str = "2025-01-01T10:00:00Z",
    is_deleted: bool = False,
) -> AccountRecord:
    return AccountRecord.model_validate({
        "id": str(account_id or uuid4()),
        "name": name,
        "accountType": "CASH",
        "currency": "USD",
        "openingBalance": "0.00",
        "isDeleted": is_deleted,
        "createdAt": "2025-01-01T00:00:00Z",
        "updatedAt": updated_at,
    })


def transaction_record(
    account_id: UUID,
    transaction_id: Optional[UUID] = None,
    amount: str = "12.50",
    transaction_type: str = "EXPENSE",
    updated_at: str = "2025-01-02T09:00:00Z",
    linked_transaction_id: Optional[UUID] = None,
    note: Optional[str] = "Lunch",
    is_deleted: bool = False,
) -> TransactionRecord:
    return TransactionRecord.model_validate({
        "id": str(transaction_id or uuid4()),
        "accountId": str(account_id),
        "type": transaction_type,
        "amount": amount,
        "note": note,
        "transactionDate": "2025-01-02T08:00:00Z",
        "linkedTransactionId": str(linked_transaction_id) if linked_transaction_id else None,
        "isDeleted": is_deleted,
        "createdAt": "2025-01-02T08:00:00Z",
        "updatedAt": updated_at,
    })


def transfer_records(
    from_account_id: UUID,
    to_account_id: UUID,
    amount: str = "50.00",
    updated_at: str = "2025-01-03T12:00:00Z",
    is_deleted: bool = False,
):
    debit_id, credit_id = uuid4(), uuid4()
    debit = transaction_record(
        from_account_id, transaction_id=debit_id, amount=f"-{amount}", transaction_type="TRANSFER",
        updated_at=updated_at, linked_transaction_id=credit_id, note="Savings", is_deleted=is_deleted,
    )
    credit = transaction_record(
        to_account_id, transaction_id=credit_id, amount=amount, transaction_type="TRANSFER",
        updated_at=updated_at, linked_transaction_id=debit_id, note="Savings", is_deleted=is_deleted,
    )
    return debit, credit


def budget_record(category_id: UUID, updated_at: str = "2025-01-05T10:00:00Z") -> BudgetRecord:
    return BudgetRecord.model_validate({
        "id": str(uuid4()),
        "categoryId": str(category_id),
        "amount": "300.00",
        "month": "2025-01",
        "createdAt": "2025-01-05T10:00:00Z",
        "updatedAt": updated_at,
    })


def category_record(updated_at: str = "2025-01-04T10:00:00Z") -> CategoryRecord:
    return CategoryRecord.model_validate({
        "id": str(uuid4()),
        "name": "Rent",
        "type": "EXPENSE",
        "createdAt": "2025-01-04T10:00:00Z",
        "updatedAt": updated_at,
    })
