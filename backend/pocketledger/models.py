"""
SQLAlchemy models for the ledger.

Every synced table carries a client-generated ``id`` plus ``is_deleted``,
``created_at`` and ``updated_at``; rows are soft-deleted so deletions travel
through sync like any other change. ``updated_at`` has no ``onupdate`` hook
on synced tables: every write sets it, so a client-supplied value is kept.
"""
import uuid
from decimal import Decimal
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Numeric,
    Text,
    ForeignKey,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship

from pocketledger.database import Base
from pocketledger.timeutils import utcnow


class User(Base):
    """Owner of a ledger. Identity is issued by the external auth service."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    currency = Column(String(3), default="USD")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    accounts = relationship("Account", back_populates="user")
    categories = relationship("Category", back_populates="user")
    transactions = relationship("Transaction", back_populates="user")
    budgets = relationship("Budget", back_populates="user")
    api_keys = relationship("ApiKey", back_populates="user")


class ApiKey(Base):
    """
    Bearer API keys used by mobile clients.
    Only a bcrypt hash of the key is stored.
    """
    __tablename__ = "api_keys"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    key_hash = Column(String(255), nullable=False)
    key_prefix = Column(String(16), nullable=False)  # First characters, for display only
    last_used_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="api_keys")


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    account_type = Column(String(20), nullable=False)  # CASH, BANK, WALLET, CREDIT_CARD
    currency = Column(String(3), nullable=False, default="USD")
    opening_balance = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="accounts")
    transactions = relationship("Transaction", back_populates="account")

    __table_args__ = (
        Index("idx_accounts_user_updated", "user_id", "updated_at"),
    )


class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(50), nullable=False)
    category_type = Column(String(10), nullable=False)  # INCOME, EXPENSE
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="categories")

    __table_args__ = (
        Index("idx_categories_user_updated", "user_id", "updated_at"),
    )


class Transaction(Base):
    """
    Ledger entry. TRANSFER rows come in linked pairs (debit leg with a
    negative amount, credit leg with the positive amount) that point at
    each other through ``linked_transaction_id``.
    """
    __tablename__ = "transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=True)
    transaction_type = Column(String(10), nullable=False)  # INCOME, EXPENSE, TRANSFER
    amount = Column(Numeric(15, 2), nullable=False)
    note = Column(Text, nullable=True)
    transaction_date = Column(DateTime, nullable=False, default=utcnow)
    linked_transaction_id = Column(Uuid(as_uuid=True), ForeignKey("transactions.id"), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="transactions")
    account = relationship("Account", back_populates="transactions")
    category = relationship("Category")

    __table_args__ = (
        Index("idx_transactions_user_updated", "user_id", "updated_at"),
        Index("idx_transactions_date", "transaction_date"),
    )


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    month = Column(String(7), nullable=False)  # YYYY-MM
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="budgets")
    category = relationship("Category")

    __table_args__ = (
        Index("idx_budgets_user_updated", "user_id", "updated_at"),
    )
