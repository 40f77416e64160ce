"""
Ledger Models

Three ledger kinds share one entry contract (amount, timestamp, direction)
but each has its own type vocabulary:

    savings      deposit / withdrawal
    unallocated  deposit / withdrawal
    chama        contribution / payout, partitioned by chama_id
                 (chama_id None is the unallocated pool inside the chama ledger)

CRITICAL: amount is always positive. Direction is carried by type, never by sign.
Entries are append-only; corrections are new offsetting entries.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from budget_ledger.models.budget import DocumentModel, validate_month_key


def now_millis() -> int:
    """Current time as epoch millis."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


# =============================================================================
# ENUMS
# =============================================================================

class LedgerKind(str, Enum):
    """The three append-only ledgers kept per user."""
    SAVINGS = "savings"
    CHAMA = "chama"
    UNALLOCATED = "unallocated"

    @property
    def collection(self) -> str:
        """Store collection holding this ledger's entries."""
        return f"{self.value}_ledger"

    @property
    def is_partitioned(self) -> bool:
        return self is LedgerKind.CHAMA


class EntrySource(str, Enum):
    """What wrote a ledger entry."""
    TRANSACTION = "transaction"
    MANUAL = "manual"
    MANUAL_WITHDRAWAL = "manual-withdrawal"
    HISTORICAL_MIGRATION = "historical-migration"
    MIGRATION = "migration"
    MIGRATION_REVERSAL = "migration-reversal"
    BUDGET = "budget"
    RECONCILIATION = "reconciliation"


class Direction(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


INCREASE_TYPES = frozenset({"deposit", "contribution"})
DECREASE_TYPES = frozenset({"withdrawal", "payout"})

INCREASE_TYPE_FOR = {
    LedgerKind.SAVINGS: "deposit",
    LedgerKind.CHAMA: "contribution",
    LedgerKind.UNALLOCATED: "deposit",
}
DECREASE_TYPE_FOR = {
    LedgerKind.SAVINGS: "withdrawal",
    LedgerKind.CHAMA: "payout",
    LedgerKind.UNALLOCATED: "withdrawal",
}

# Source recorded on manual debits, per ledger kind
MANUAL_DEBIT_SOURCE = {
    LedgerKind.SAVINGS: EntrySource.MANUAL,
    LedgerKind.CHAMA: EntrySource.MANUAL,
    LedgerKind.UNALLOCATED: EntrySource.MANUAL_WITHDRAWAL,
}


class ChamaStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class MigrationKind(str, Enum):
    SAVINGS = "savings"
    UNALLOCATED = "unallocated"
    CHAMA = "chama"


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class LedgerEntryBase(DocumentModel):
    """Fields and behaviour shared by every ledger entry."""

    kind: ClassVar[LedgerKind]

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned entry id"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount; direction comes from type"
    )
    timestamp: int = Field(
        default_factory=now_millis,
        ge=0,
        description="Epoch millis"
    )
    source: EntrySource
    related_transaction_id: Optional[str] = Field(
        default=None,
        description="Back-reference for lookup only, never ownership"
    )
    budget_month: Optional[str] = None
    note: str = ""
    correlation_id: Optional[str] = Field(
        default=None,
        description="Shared by both sides of one transfer"
    )

    @field_validator('related_transaction_id', 'budget_month', 'correlation_id', mode='before')
    @classmethod
    def empty_string_is_none(cls, v):
        # Older documents store "" for "no reference"
        if v == "":
            return None
        return v

    @field_validator('timestamp', mode='before')
    @classmethod
    def coerce_timestamp(cls, v):
        """Accept ISO date strings from older migration documents."""
        if isinstance(v, str) and not v.isdigit():
            parsed = datetime.fromisoformat(v.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return int(parsed.timestamp() * 1000)
        return v

    @field_validator('budget_month')
    @classmethod
    def validate_budget_month(cls, v: Optional[str]) -> Optional[str]:
        return validate_month_key(v) if v is not None else None

    @property
    def direction(self) -> Direction:
        if self.type in INCREASE_TYPES:
            return Direction.INCREASE
        return Direction.DECREASE

    @property
    def partition(self) -> Optional[str]:
        """Partition key; only chama entries are partitioned."""
        return None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction is Direction.INCREASE else -self.amount


class SavingsEntry(LedgerEntryBase):
    kind: ClassVar[LedgerKind] = LedgerKind.SAVINGS
    type: Literal["deposit", "withdrawal"]


class UnallocatedEntry(LedgerEntryBase):
    kind: ClassVar[LedgerKind] = LedgerKind.UNALLOCATED
    type: Literal["deposit", "withdrawal"]


class ChamaEntry(LedgerEntryBase):
    kind: ClassVar[LedgerKind] = LedgerKind.CHAMA
    type: Literal["contribution", "payout"]
    chama_id: Optional[str] = Field(
        default=None,
        description="Chama this entry belongs to; None is the unallocated pool"
    )

    @field_validator('chama_id', mode='before')
    @classmethod
    def empty_chama_is_pool(cls, v):
        if v == "":
            return None
        return v

    @property
    def partition(self) -> Optional[str]:
        return self.chama_id


LedgerEntry = Union[SavingsEntry, UnallocatedEntry, ChamaEntry]

ENTRY_MODELS: dict[LedgerKind, type[LedgerEntryBase]] = {
    LedgerKind.SAVINGS: SavingsEntry,
    LedgerKind.CHAMA: ChamaEntry,
    LedgerKind.UNALLOCATED: UnallocatedEntry,
}


# =============================================================================
# CHAMA
# =============================================================================

class Chama(DocumentModel):
    """
    A savings group the user contributes to.

    Soft lifecycle only (status); chamas are never deleted.
    The balance is derived from the chama ledger, never stored.
    """

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    status: ChamaStatus = ChamaStatus.ACTIVE
    created_at: int = Field(default_factory=now_millis)
    note: str = ""


# =============================================================================
# POOLS AND TRANSFERS
# =============================================================================

class PoolRef(BaseModel):
    """
    A pool of money that can be debited or credited.

    For the chama ledger the partition is the chama id (None = the pool of
    not-yet-allocated chama money). Savings and unallocated ledgers have a
    single pool, so their partition must be None.
    """

    model_config = ConfigDict(frozen=True)

    kind: LedgerKind
    partition: Optional[str] = None

    @model_validator(mode='after')
    def validate_partition(self) -> 'PoolRef':
        if self.partition is not None and not self.kind.is_partitioned:
            raise ValueError(f"The {self.kind.value} ledger has no partitions")
        return self

    @property
    def label(self) -> str:
        if self.kind is LedgerKind.CHAMA:
            return f"chama {self.partition}" if self.partition else "chama pool"
        return f"{self.kind.value} ledger"


class AllocationResult(BaseModel):
    """Both entries written by one successful transfer."""

    correlation_id: UUID
    source: PoolRef
    destination: PoolRef
    amount: Decimal
    debit_entry: LedgerEntry
    credit_entry: LedgerEntry


# =============================================================================
# BALANCE AND INVARIANT REPORTS
# =============================================================================

class BalanceReport(BaseModel):
    """
    Balance of one pool (or a whole ledger) computed from its entries.

    A negative balance is NOT clamped. It is reported in warnings so the
    caller can show it instead of crashing or hiding it.
    """

    kind: LedgerKind
    scope: str = Field(
        ...,
        description="'all' for the whole ledger, 'pool' or a chama id for a partition"
    )
    balance: Decimal
    total_increase: Decimal
    total_decrease: Decimal
    entry_count: int = Field(ge=0)
    last_entry_at: Optional[int] = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_violation(self) -> bool:
        return bool(self.warnings)


class OrphanedTransfer(BaseModel):
    """One side of a transfer whose other side never got written."""

    correlation_id: str
    entry_id: Optional[str]
    kind: LedgerKind
    partition: Optional[str]
    entry_type: str
    amount: Decimal
    timestamp: int


class ConservationReport(BaseModel):
    """Result of re-verifying a ledger's invariants."""

    kind: LedgerKind
    entry_count: int
    total_net: Decimal
    partition_balances: dict[Optional[str], Decimal] = Field(default_factory=dict)
    negative_partitions: list[Optional[str]] = Field(default_factory=list)
    orphaned_transfers: list[OrphanedTransfer] = Field(default_factory=list)

    @property
    def partition_sum(self) -> Decimal:
        return sum(self.partition_balances.values(), Decimal("0"))

    @property
    def is_conserved(self) -> bool:
        return self.partition_sum == self.total_net

    @property
    def is_consistent(self) -> bool:
        return self.is_conserved and not self.negative_partitions and not self.orphaned_transfers


class ReconciliationReport(BaseModel):
    kind: LedgerKind
    findings: ConservationReport
    repaired: bool = False
    repair_entry_ids: list[str] = Field(default_factory=list)


# =============================================================================
# MIGRATIONS
# =============================================================================

class ChamaMigrationItem(BaseModel):
    """One savings transaction to re-attribute to a chama."""

    transaction_id: str = Field(..., min_length=1)
    savings_ledger_amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount originally deposited to savings (reversed in full)"
    )
    migrate_amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount contributed to the chama"
    )
    excess: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Remainder booked as a new miscellaneous transaction"
    )


class ChamaMigrationPlan(BaseModel):
    chama_id: str = Field(..., min_length=1)
    items: list[ChamaMigrationItem] = Field(..., min_length=1)
    target_budget_month: Optional[str] = Field(
        default=None,
        description="Month for excess transactions; defaults to settings"
    )

    @field_validator('target_budget_month')
    @classmethod
    def validate_target_month(cls, v: Optional[str]) -> Optional[str]:
        return validate_month_key(v) if v is not None else None

    @model_validator(mode='after')
    def validate_unique_transactions(self) -> 'ChamaMigrationPlan':
        ids = [item.transaction_id for item in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError("Each transaction may appear only once in a migration plan")
        return self


class MigrationReport(BaseModel):
    """Outcome of one migration run."""

    kind: MigrationKind
    user_id: str
    correlation_id: UUID
    scanned: int = 0
    created: int = 0
    skipped: int = 0
    entry_ids: list[str] = Field(default_factory=list)
    created_transaction_ids: list[str] = Field(default_factory=list)
    adjusted_transaction_ids: list[str] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)
