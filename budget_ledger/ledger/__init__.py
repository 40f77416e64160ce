"""Balance folding, transfers, withdrawals and the savings trigger."""

from budget_ledger.ledger.allocation import AllocationProtocol
from budget_ledger.ledger.balance import (
    BalanceEngine,
    balance_for,
    check_conservation,
    describe_problems,
    find_orphaned_transfers,
    fold_balance,
    partition_balances,
    summarize,
)
from budget_ledger.ledger.entries import make_entry
from budget_ledger.ledger.savings import SavingsTrigger, savings_deposit_for, savings_deposit_id

__all__ = [
    "AllocationProtocol",
    "BalanceEngine",
    "SavingsTrigger",
    "balance_for",
    "check_conservation",
    "describe_problems",
    "find_orphaned_transfers",
    "fold_balance",
    "make_entry",
    "partition_balances",
    "savings_deposit_for",
    "savings_deposit_id",
    "summarize",
]
