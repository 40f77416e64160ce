"""
Migration Engine

Single entry point for the backfill and correction jobs. Each run gets a
correlation id, an audit start/finish pair and a MigrationReport.
"""

from typing import Optional

import structlog

from budget_ledger.audit import AuditLogger, create_correlation_id
from budget_ledger.config import LedgerSettings, get_settings
from budget_ledger.errors import MissingMigrationPlanError, ReconciliationNeededError
from budget_ledger.migrations.backfill import backfill_savings, backfill_unallocated
from budget_ledger.migrations.chama import ChamaMigration
from budget_ledger.models.ledger import ChamaMigrationPlan, MigrationKind, MigrationReport
from budget_ledger.repositories.budget import BudgetRepository
from budget_ledger.repositories.chama import ChamaRepository
from budget_ledger.repositories.ledger import LedgerRegistry
from budget_ledger.repositories.transaction import TransactionRepository
from budget_ledger.services.storage import StorageError


logger = structlog.get_logger(__name__)


class MigrationEngine:

    def __init__(
        self,
        ledgers: LedgerRegistry,
        budgets: BudgetRepository,
        transactions: TransactionRepository,
        chamas: ChamaRepository,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledgers = ledgers
        self._budgets = budgets
        self._transactions = transactions
        self._chamas = chamas
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    async def run(
        self,
        user_id: str,
        kind: MigrationKind,
        plan: Optional[ChamaMigrationPlan] = None,
    ) -> MigrationReport:
        """
        Run one migration for one user.

        Raises:
            MissingMigrationPlanError: kind is chama and no plan was given
            NotFoundError: the chama plan references something missing
            ReconciliationNeededError: a chama item stopped part way
            StorageError: a backfill write failed (audited as a system error)
        """
        kind = MigrationKind(kind)
        if kind is MigrationKind.CHAMA and plan is None:
            raise MissingMigrationPlanError("The chama migration needs a correction plan")

        correlation_id = create_correlation_id()
        report = MigrationReport(kind=kind, user_id=user_id, correlation_id=correlation_id)
        await self._audit.log_migration_started(user_id, kind.value, correlation_id)

        try:
            if kind is MigrationKind.SAVINGS:
                await backfill_savings(
                    user_id,
                    self._transactions,
                    self._ledgers,
                    self._settings.savings_category,
                    report,
                )
            elif kind is MigrationKind.UNALLOCATED:
                await backfill_unallocated(user_id, self._budgets, self._ledgers, report)
            else:
                migration = ChamaMigration(
                    self._ledgers,
                    self._budgets,
                    self._transactions,
                    self._chamas,
                    excess_category=self._settings.excess_category,
                    default_target_month=self._settings.excess_budget_month,
                )
                await migration.run(user_id, plan, report)
        except ReconciliationNeededError as e:
            await self._audit.log_migration_incomplete(
                user_id=user_id,
                kind=kind.value,
                completed_steps=e.completed_steps,
                failed_step=e.failed_step,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except StorageError as e:
            logger.error("migration_failed", user_id=user_id, kind=kind.value, error=str(e))
            await self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"migration": kind.value, "user_id": user_id, "scanned": report.scanned},
                correlation_id=correlation_id,
            )
            raise

        await self._audit.log_migration_completed(
            user_id=user_id,
            kind=kind.value,
            scanned=report.scanned,
            created=report.created,
            skipped=report.skipped,
            correlation_id=correlation_id,
        )
        return report
