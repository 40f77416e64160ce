"""
Chama Correction Migration

Re-attributes savings transactions that were really chama contributions.
For each plan item, in order:

    1. chama contribution of migrate_amount      (source=migration)
    2. savings withdrawal of savings_ledger_amount (source=migration-reversal)
    3. if excess > 0, a new Miscellaneous transaction for the excess
    4. mark the original transaction adjusted

The original savings deposit is never touched: step 2 offsets it.

CRITICAL: Steps are sequential writes with no rollback. Every reference is
checked before the first write; a store failure after that raises
ReconciliationNeededError listing the steps that did land. Running the same
plan again completes the item without repeating those steps.
"""

from uuid import NAMESPACE_URL, UUID, uuid5

import structlog

from budget_ledger.errors import ReconciliationNeededError
from budget_ledger.ledger.entries import make_entry
from budget_ledger.models.budget import Transaction
from budget_ledger.models.ledger import (
    ChamaMigrationItem,
    ChamaMigrationPlan,
    Direction,
    EntrySource,
    LedgerKind,
    MigrationReport,
    PoolRef,
)
from budget_ledger.repositories.budget import BudgetRepository
from budget_ledger.repositories.chama import ChamaRepository
from budget_ledger.repositories.ledger import LedgerRegistry, derive_entry_id
from budget_ledger.repositories.transaction import TransactionRepository, derive_transaction_id
from budget_ledger.services.storage import DuplicateError, StorageError


logger = structlog.get_logger(__name__)

ADJUSTMENT_NOTE = "Migrated to chama ledger"

_CORRELATION_NAMESPACE = uuid5(NAMESPACE_URL, "budget-ledger/chama-migration")


def item_correlation_id(transaction_id: str) -> UUID:
    """Both sides of one item share this id, on the first run and on any rerun."""
    return uuid5(_CORRELATION_NAMESPACE, transaction_id)


class ChamaMigration:

    def __init__(
        self,
        ledgers: LedgerRegistry,
        budgets: BudgetRepository,
        transactions: TransactionRepository,
        chamas: ChamaRepository,
        excess_category: str,
        default_target_month: str,
    ):
        self._ledgers = ledgers
        self._budgets = budgets
        self._transactions = transactions
        self._chamas = chamas
        self._excess_category = excess_category
        self._default_target_month = default_target_month

    async def _load(self, user_id: str, plan: ChamaMigrationPlan) -> dict[str, Transaction]:
        """Resolve every reference up front. Raises NotFoundError."""
        await self._chamas.require(user_id, plan.chama_id)

        target_month = plan.target_budget_month or self._default_target_month
        if any(item.excess > 0 for item in plan.items):
            await self._budgets.require(user_id, target_month)

        originals = {}
        for item in plan.items:
            originals[item.transaction_id] = await self._transactions.require(user_id, item.transaction_id)
        return originals

    async def run(
        self,
        user_id: str,
        plan: ChamaMigrationPlan,
        report: MigrationReport,
    ) -> MigrationReport:
        originals = await self._load(user_id, plan)
        target_month = plan.target_budget_month or self._default_target_month

        for item in plan.items:
            report.scanned += 1
            original = originals[item.transaction_id]
            if original.adjusted:
                report.skipped += 1
                report.messages.append(f"{original.id}: already adjusted")
                continue
            if item.migrate_amount + item.excess != item.savings_ledger_amount:
                report.messages.append(
                    f"{original.id}: migrate {item.migrate_amount} + excess {item.excess} "
                    f"differs from savings amount {item.savings_ledger_amount}"
                )
            await self._migrate_item(user_id, plan.chama_id, item, original, target_month, report)
            report.created += 1

        return report

    async def _migrate_item(
        self,
        user_id: str,
        chama_id: str,
        item: ChamaMigrationItem,
        original: Transaction,
        target_month: str,
        report: MigrationReport,
    ) -> None:
        """
        Apply the four steps for one item.

        Every write carries an id derived from the original transaction, so a
        rerun after a partial failure finds the steps that landed (DuplicateError)
        and carries on from the first one that did not.
        """
        correlation_id = item_correlation_id(original.id)
        completed: list[str] = []
        step = "chama contribution"

        try:
            contribution_id = derive_entry_id(LedgerKind.CHAMA, original.id, "migration")
            try:
                await self._ledgers.chama.append(user_id, make_entry(
                    PoolRef(kind=LedgerKind.CHAMA, partition=chama_id),
                    Direction.INCREASE,
                    item.migrate_amount,
                    EntrySource.MIGRATION,
                    note=f"Migrated from savings transaction {original.id}",
                    timestamp=original.timestamp_millis,
                    budget_month=original.budget_month,
                    correlation_id=str(correlation_id),
                ), entry_id=contribution_id)
                report.entry_ids.append(contribution_id)
                completed.append(f"{step} {contribution_id}")
            except DuplicateError:
                completed.append(f"{step} {contribution_id} (already present)")

            step = "savings reversal"
            reversal_id = derive_entry_id(LedgerKind.SAVINGS, original.id, "migration-reversal")
            try:
                await self._ledgers.savings.append(user_id, make_entry(
                    PoolRef(kind=LedgerKind.SAVINGS),
                    Direction.DECREASE,
                    item.savings_ledger_amount,
                    EntrySource.MIGRATION_REVERSAL,
                    note=f"Reversal due to chama migration ({original.id})",
                    timestamp=original.timestamp_millis,
                    related_transaction_id=original.id,
                    budget_month=original.budget_month,
                    correlation_id=str(correlation_id),
                ), entry_id=reversal_id)
                report.entry_ids.append(reversal_id)
                completed.append(f"{step} {reversal_id}")
            except DuplicateError:
                completed.append(f"{step} {reversal_id} (already present)")

            if item.excess > 0:
                step = "excess transaction"
                excess_id = derive_transaction_id(original.id, "migration-excess")
                try:
                    await self._transactions.create(
                        user_id,
                        Transaction(
                            category=self._excess_category,
                            amount=item.excess,
                            budget_month=target_month,
                            date_of_transaction=original.date_of_transaction,
                            paid_through=original.paid_through,
                            note=f"Correction: excess from chama contribution ({original.id})",
                            source=EntrySource.MIGRATION.value,
                            related_transaction_id=original.id,
                        ),
                        enforce_open_budget=False,
                        transaction_id=excess_id,
                    )
                    report.created_transaction_ids.append(excess_id)
                    completed.append(f"{step} {excess_id}")
                except DuplicateError:
                    completed.append(f"{step} {excess_id} (already present)")

            step = "mark adjusted"
            await self._transactions.mark_adjusted(user_id, original.id, ADJUSTMENT_NOTE)
            completed.append(f"{step} {original.id}")
            report.adjusted_transaction_ids.append(original.id)
        except StorageError as e:
            logger.error(
                "chama_migration_item_failed",
                user_id=user_id,
                transaction_id=original.id,
                failed_step=step,
                completed_steps=completed,
                error=str(e),
            )
            raise ReconciliationNeededError(
                f"Chama migration of transaction {original.id} stopped at {step}: {e}",
                correlation_id=correlation_id,
                completed_steps=completed,
                failed_step=step,
            ) from e

        logger.info("chama_migration_item_done", user_id=user_id, transaction_id=original.id)
