from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from pocketledger.timeutils import isoformat_utc, to_naive_utc

# Naive UTC inside the service, ISO-8601 with "Z" on the wire.
UtcDatetime = Annotated[
    datetime,
    AfterValidator(to_naive_utc),
    PlainSerializer(isoformat_utc, return_type=str, when_used="json"),
]
Money = Annotated[Decimal, Field(max_digits=15, decimal_places=2)]

AccountType = Literal["CASH", "BANK", "WALLET", "CREDIT_CARD"]
CategoryType = Literal["INCOME", "EXPENSE"]
TransactionType = Literal["INCOME", "EXPENSE", "TRANSFER"]
EntityType = Literal["account", "transaction", "budget", "category"]
ResolutionType = Literal["server_won", "client_won"]

TRANSFER = "TRANSFER"


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python; reads ORM rows directly."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="ignore",
    )


# Synced record variants
class SyncRecord(CamelModel):
    """Capabilities shared by every synced entity kind."""
    id: UUID
    is_deleted: bool = False
    created_at: UtcDatetime
    updated_at: UtcDatetime


class AccountRecord(SyncRecord):
    name: str = Field(min_length=1, max_length=100)
    account_type: AccountType
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    opening_balance: Money = Decimal("0")


class TransactionRecord(SyncRecord):
    account_id: UUID
    category_id: Optional[UUID] = None
    transaction_type: TransactionType = Field(alias="type")
    amount: Money
    note: Optional[str] = None
    transaction_date: UtcDatetime
    linked_transaction_id: Optional[UUID] = None


class BudgetRecord(SyncRecord):
    category_id: UUID
    amount: Money
    month: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


class CategoryRecord(SyncRecord):
    name: str = Field(min_length=1, max_length=50)
    category_type: CategoryType = Field(alias="type")


# Sync exchange
class SyncBatch(CamelModel):
    """One push from a device. Absent arrays mean nothing to push for that kind."""
    device_id: UUID
    last_sync_at: Optional[UtcDatetime] = None
    accounts: Optional[List[AccountRecord]] = None
    transactions: Optional[List[TransactionRecord]] = None
    budgets: Optional[List[BudgetRecord]] = None
    categories: Optional[List[CategoryRecord]] = None


class ConflictReport(CamelModel):
    entity_type: EntityType
    entity_id: UUID
    client_version: dict
    server_version: dict
    resolution: ResolutionType
    reason: str


class SyncChanges(CamelModel):
    accounts: List[AccountRecord] = Field(default_factory=list)
    transactions: List[TransactionRecord] = Field(default_factory=list)
    budgets: List[BudgetRecord] = Field(default_factory=list)
    categories: List[CategoryRecord] = Field(default_factory=list)


class SyncResult(CamelModel):
    server_time: UtcDatetime
    changes: SyncChanges
    conflicts: List[ConflictReport] = Field(default_factory=list)
    synced_at: UtcDatetime


class ServerTimeResponse(CamelModel):
    server_time: UtcDatetime


# Transactions
class TransactionCreate(CamelModel):
    account_id: UUID
    category_id: Optional[UUID] = None
    transaction_type: TransactionType = Field(alias="type")
    amount: Money
    note: Optional[str] = None
    transaction_date: Optional[UtcDatetime] = None
    to_account_id: Optional[UUID] = None  # Required when type is TRANSFER


class TransactionUpdate(CamelModel):
    category_id: Optional[UUID] = None
    amount: Optional[Money] = None
    note: Optional[str] = None
    transaction_date: Optional[UtcDatetime] = None


class TransferCreate(CamelModel):
    from_account_id: UUID
    to_account_id: UUID
    amount: Money
    note: Optional[str] = None
    transaction_date: Optional[UtcDatetime] = None


class TransferResponse(CamelModel):
    transfer_id: UUID
    from_transaction: TransactionRecord
    to_transaction: TransactionRecord
    amount: Money
    status: Literal["completed"] = "completed"
