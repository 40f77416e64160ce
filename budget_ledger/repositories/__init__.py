"""Repositories over the document store: ledgers, budgets, transactions, chamas."""

from budget_ledger.repositories.budget import BUDGETS_COLLECTION, BudgetRepository
from budget_ledger.repositories.chama import CHAMAS_COLLECTION, ChamaRepository
from budget_ledger.repositories.ledger import (
    ALL_PARTITIONS,
    LedgerRegistry,
    LedgerRepository,
    PartitionFilter,
    derive_entry_id,
)
from budget_ledger.repositories.transaction import (
    TRANSACTIONS_COLLECTION,
    TransactionRepository,
    derive_transaction_id,
)

__all__ = [
    "ALL_PARTITIONS",
    "BUDGETS_COLLECTION",
    "CHAMAS_COLLECTION",
    "TRANSACTIONS_COLLECTION",
    "BudgetRepository",
    "ChamaRepository",
    "LedgerRegistry",
    "LedgerRepository",
    "PartitionFilter",
    "TransactionRepository",
    "derive_entry_id",
    "derive_transaction_id",
]
