"""
Budget Ledger - Source Package

The ledger core of a household budgeting application: monthly budgets,
transactions, and the append-only savings, chama and unallocated-surplus
ledgers derived from them.

DESIGN PRINCIPLES:
1. Ledger entries are append-only - corrections are offsetting entries
2. Validate everything before the first write
3. No silent corrections, no silent retries
4. Every ledger write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Ledger Team"
