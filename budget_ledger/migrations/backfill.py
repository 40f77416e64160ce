"""
Historical Backfills

Synthesize ledger entries for data recorded before the ledgers existed.

DESIGN DECISION: Both backfills are idempotent. An item already represented
in the ledger is skipped, and every synthesized entry gets a deterministic
id, so a rerun (or a race with the live savings trigger) hits a duplicate key
instead of doubling a balance.
"""

import structlog

from budget_ledger.ledger.entries import make_entry
from budget_ledger.ledger.savings import savings_deposit_for, savings_deposit_id
from budget_ledger.models.ledger import (
    Direction,
    EntrySource,
    LedgerKind,
    MigrationReport,
    PoolRef,
)
from budget_ledger.repositories.budget import BudgetRepository
from budget_ledger.repositories.ledger import LedgerRegistry, derive_entry_id
from budget_ledger.repositories.transaction import TransactionRepository
from budget_ledger.services.storage import DuplicateError


logger = structlog.get_logger(__name__)

UNALLOCATED_POOL = PoolRef(kind=LedgerKind.UNALLOCATED)


def surplus_deposit_id(month: str) -> str:
    return derive_entry_id(LedgerKind.UNALLOCATED, month, "surplus")


async def backfill_savings(
    user_id: str,
    transactions: TransactionRepository,
    ledgers: LedgerRegistry,
    savings_category: str,
    report: MigrationReport,
) -> MigrationReport:
    """Write the missing savings deposit for every savings transaction."""
    existing = await ledgers.savings.list_entries(user_id)
    referenced = {
        e.related_transaction_id
        for e in existing
        if e.direction is Direction.INCREASE and e.related_transaction_id
    }

    for transaction in await transactions.list_all(user_id):
        if transaction.category != savings_category:
            continue
        report.scanned += 1

        if transaction.id in referenced:
            report.skipped += 1
            continue

        entry = savings_deposit_for(transaction, EntrySource.HISTORICAL_MIGRATION)
        try:
            written = await ledgers.savings.append(
                user_id,
                entry,
                entry_id=savings_deposit_id(transaction.id),
            )
        except DuplicateError:
            report.skipped += 1
            continue

        report.created += 1
        report.entry_ids.append(written.id)

    logger.info(
        "savings_backfill_finished",
        user_id=user_id,
        scanned=report.scanned,
        created=report.created,
        skipped=report.skipped,
    )
    return report


async def backfill_unallocated(
    user_id: str,
    budgets: BudgetRepository,
    ledgers: LedgerRegistry,
    report: MigrationReport,
) -> MigrationReport:
    """
    One unallocated deposit per budget month with a positive surplus.

    A negative surplus (under-funded month) is left alone; no withdrawal is
    synthesized for it.
    """
    existing = await ledgers.unallocated.list_entries(user_id)
    recorded_months = {
        e.budget_month
        for e in existing
        if e.direction is Direction.INCREASE
        and e.budget_month
        and e.source in (EntrySource.HISTORICAL_MIGRATION, EntrySource.BUDGET)
    }

    for budget in await budgets.list_all(user_id):
        report.scanned += 1
        surplus = budget.surplus

        if surplus <= 0:
            report.messages.append(f"{budget.month}: no surplus ({surplus})")
            report.skipped += 1
            continue
        if budget.month in recorded_months:
            report.skipped += 1
            continue

        entry = make_entry(
            UNALLOCATED_POOL,
            Direction.INCREASE,
            surplus,
            EntrySource.HISTORICAL_MIGRATION,
            budget_month=budget.month,
        )
        try:
            written = await ledgers.unallocated.append(
                user_id,
                entry,
                entry_id=surplus_deposit_id(budget.month),
            )
        except DuplicateError:
            report.skipped += 1
            continue

        report.created += 1
        report.entry_ids.append(written.id)

    logger.info(
        "unallocated_backfill_finished",
        user_id=user_id,
        scanned=report.scanned,
        created=report.created,
        skipped=report.skipped,
    )
    return report
