"""
Data Models Package

This package contains all Pydantic models used in the Budget Ledger system.
All data flowing through the system must conform to these schemas.
"""

from budget_ledger.models.budget import (
    Budget,
    BudgetCategory,
    CategoryTag,
    PaymentMethod,
    Transaction,
)
from budget_ledger.models.ledger import (
    ENTRY_MODELS,
    AllocationResult,
    BalanceReport,
    Chama,
    ChamaEntry,
    ChamaMigrationItem,
    ChamaMigrationPlan,
    ChamaStatus,
    ConservationReport,
    Direction,
    EntrySource,
    LedgerEntry,
    LedgerEntryBase,
    LedgerKind,
    MigrationKind,
    MigrationReport,
    OrphanedTransfer,
    PoolRef,
    ReconciliationReport,
    SavingsEntry,
    UnallocatedEntry,
)
from budget_ledger.models.analysis import (
    CategoryAnalysis,
    DailySpend,
    MonthlyAnalysis,
    MonthlySummaryRow,
    PaymentMethodCount,
    RankedValue,
    TopCategories,
)
from budget_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Budget models
    "Budget",
    "BudgetCategory",
    "CategoryTag",
    "PaymentMethod",
    "Transaction",
    # Ledger models
    "ENTRY_MODELS",
    "AllocationResult",
    "BalanceReport",
    "Chama",
    "ChamaEntry",
    "ChamaMigrationItem",
    "ChamaMigrationPlan",
    "ChamaStatus",
    "ConservationReport",
    "Direction",
    "EntrySource",
    "LedgerEntry",
    "LedgerEntryBase",
    "LedgerKind",
    "MigrationKind",
    "MigrationReport",
    "OrphanedTransfer",
    "PoolRef",
    "ReconciliationReport",
    "SavingsEntry",
    "UnallocatedEntry",
    # Analysis models
    "CategoryAnalysis",
    "DailySpend",
    "MonthlyAnalysis",
    "MonthlySummaryRow",
    "PaymentMethodCount",
    "RankedValue",
    "TopCategories",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
