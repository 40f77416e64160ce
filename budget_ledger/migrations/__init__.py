"""Backfill, correction and reconciliation jobs."""

from budget_ledger.migrations.backfill import backfill_savings, backfill_unallocated, surplus_deposit_id
from budget_ledger.migrations.chama import ADJUSTMENT_NOTE, ChamaMigration
from budget_ledger.migrations.engine import MigrationEngine
from budget_ledger.migrations.reconciliation import ReconciliationJob

__all__ = [
    "ADJUSTMENT_NOTE",
    "ChamaMigration",
    "MigrationEngine",
    "ReconciliationJob",
    "backfill_savings",
    "backfill_unallocated",
    "surplus_deposit_id",
]
