"""
Main Orchestrator for Budget Ledger

This module ties together all the components and defines the operations
callers use:
1. Ledgers (list entries, balances, allocate / transfer, withdraw)
2. Chamas (create, change status, list)
3. Budgets and transactions (create, close, record, analyse)
4. Migrations and reconciliation

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every input is validated before the first write
- Ledgers are only ever appended to
- Every balance-changing step is audited

Nothing is cached: every balance and analysis is recomputed from the store.
"""

from datetime import date
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError

from budget_ledger.analysis import AnalysisAggregator
from budget_ledger.audit import AuditLogger, configure_log_level
from budget_ledger.config import LedgerSettings, get_settings
from budget_ledger.errors import InvalidPoolError, NoDestinationSelectedError
from budget_ledger.ledger import AllocationProtocol, BalanceEngine, SavingsTrigger, describe_problems
from budget_ledger.migrations import MigrationEngine, ReconciliationJob
from budget_ledger.models.analysis import (
    DailySpend,
    MonthlyAnalysis,
    MonthlySummaryRow,
    PaymentMethodCount,
    TopCategories,
)
from budget_ledger.models.budget import Budget, PaymentMethod, Transaction
from budget_ledger.models.ledger import (
    AllocationResult,
    BalanceReport,
    Chama,
    ChamaMigrationPlan,
    ChamaStatus,
    ConservationReport,
    LedgerEntry,
    LedgerKind,
    MigrationKind,
    MigrationReport,
    PoolRef,
    ReconciliationReport,
)
from budget_ledger.repositories import (
    ALL_PARTITIONS,
    BudgetRepository,
    ChamaRepository,
    LedgerRegistry,
    PartitionFilter,
    TransactionRepository,
)
from budget_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
)
from budget_ledger.validation import parse_amount, validate_budget_input, validate_month


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Facade over the ledger core for one document store.

    All methods take the user id explicitly; a service instance is not bound
    to a user.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._audit = audit_logger or AuditLogger()

        self.ledgers = LedgerRegistry(store)
        self.budgets = BudgetRepository(store)
        self.transactions = TransactionRepository(store, self.budgets)
        self.chamas = ChamaRepository(store)

        self._balances = BalanceEngine(self.ledgers)
        self._allocation = AllocationProtocol(self.ledgers, self.chamas, self._audit)
        self._savings_trigger = SavingsTrigger(
            self.ledgers,
            self._audit,
            savings_category=self._settings.savings_category,
        )
        self._migrations = MigrationEngine(
            self.ledgers,
            self.budgets,
            self.transactions,
            self.chamas,
            audit_logger=self._audit,
            settings=self._settings,
        )
        self._reconciliation = ReconciliationJob(self.ledgers, self._audit)
        self._analysis = AnalysisAggregator(self.budgets, self.transactions, self._settings)

    # =========================================================================
    # LEDGERS
    # =========================================================================

    async def list_entries(
        self,
        user_id: str,
        ledger_kind: LedgerKind,
        partition: PartitionFilter = ALL_PARTITIONS,
    ) -> list[LedgerEntry]:
        """Entries of one ledger, newest first."""
        return await self._balances.list_entries(user_id, LedgerKind(ledger_kind), partition)

    async def get_balance(
        self,
        user_id: str,
        ledger_kind: LedgerKind,
        partition: PartitionFilter = ALL_PARTITIONS,
    ) -> BalanceReport:
        """
        Balance of a whole ledger or of one partition.

        A negative result comes back with warnings set; it is not raised.
        """
        return await self._balances.get_balance(user_id, LedgerKind(ledger_kind), partition)

    async def allocate(
        self,
        user_id: str,
        source_chama_id: Optional[str],
        destination_chama_id: Optional[str],
        amount: Any,
        note: str = "",
    ) -> AllocationResult:
        """
        Move chama money from one partition of the chama ledger into a chama.

        source_chama_id None is the unallocated chama pool.

        Raises:
            NoDestinationSelectedError: no chama was selected
        """
        if not destination_chama_id:
            raise NoDestinationSelectedError("Select a chama to allocate to")
        return await self._allocation.allocate(
            user_id,
            PoolRef(kind=LedgerKind.CHAMA, partition=source_chama_id),
            PoolRef(kind=LedgerKind.CHAMA, partition=destination_chama_id),
            amount,
            note,
        )

    async def transfer(
        self,
        user_id: str,
        source: PoolRef,
        destination: Optional[PoolRef],
        amount: Any,
        note: str = "",
    ) -> AllocationResult:
        """Move money between any two pools, including across ledgers."""
        return await self._allocation.allocate(user_id, source, destination, amount, note)

    async def withdraw(
        self,
        user_id: str,
        ledger_kind: LedgerKind,
        amount: Any,
        note: str = "",
        partition: Optional[str] = None,
    ) -> LedgerEntry:
        kind = LedgerKind(ledger_kind)
        if partition is not None and not kind.is_partitioned:
            raise InvalidPoolError(f"The {kind.value} ledger has no partitions")
        pool = PoolRef(kind=kind, partition=partition)
        return await self._allocation.withdraw(user_id, pool, amount, note)

    # =========================================================================
    # CHAMAS
    # =========================================================================

    async def create_chama(self, user_id: str, name: str, note: str = "") -> Chama:
        chama = await self.chamas.create(user_id, Chama(name=name, note=note))
        await self._audit.log_chama_created(user_id, chama.id, chama.name)
        return chama

    async def set_chama_status(self, user_id: str, chama_id: str, status: ChamaStatus) -> Chama:
        chama = await self.chamas.require(user_id, chama_id)
        status = ChamaStatus(status)
        if chama.status is status:
            return chama
        await self.chamas.set_status(user_id, chama_id, status)
        await self._audit.log_chama_status_changed(user_id, chama_id, chama.status.value, status.value)
        return chama.model_copy(update={"status": status})

    async def list_chamas(self, user_id: str) -> list[Chama]:
        return await self.chamas.list_all(user_id)

    # =========================================================================
    # MIGRATIONS AND RECONCILIATION
    # =========================================================================

    async def run_migration(
        self,
        user_id: str,
        kind: MigrationKind,
        plan: Optional[ChamaMigrationPlan] = None,
    ) -> MigrationReport:
        return await self._migrations.run(user_id, kind, plan)

    async def reconcile(
        self,
        user_id: str,
        ledger_kind: LedgerKind,
        repair: bool = False,
    ) -> ReconciliationReport:
        return await self._reconciliation.run(user_id, ledger_kind, repair)

    async def verify_ledger(self, user_id: str, ledger_kind: LedgerKind) -> ConservationReport:
        """Re-check conservation, non-negativity and transfer completeness."""
        report = await self._balances.verify(user_id, LedgerKind(ledger_kind))
        problems = describe_problems(report)
        if problems:
            await self._audit.log_invariant_violation(user_id, report.kind.value, problems)
        return report

    # =========================================================================
    # BUDGETS AND TRANSACTIONS
    # =========================================================================

    async def create_budget(
        self,
        user_id: str,
        month: str,
        categories: Iterable[Any],
        total_debited: Any,
    ) -> Budget:
        """
        Save a month's budget. Budgets are write-once.

        Raises:
            InvalidBudgetError: bad month key or category list
            BudgetExistsError: the month already has a budget
        """
        parsed, debited = validate_budget_input(month, categories, total_debited)
        budget = await self.budgets.create(user_id, month, parsed, debited)
        await self._audit.log_budget_created(user_id, month, budget.total_planned)
        return budget

    async def close_budget(self, user_id: str, month: str) -> Budget:
        """Close a month to new transactions. Ledgers are unaffected."""
        validate_month(month)
        was_closed = (await self.budgets.require(user_id, month)).closed
        budget = await self.budgets.close(user_id, month)
        if not was_closed:
            await self._audit.log_budget_closed(user_id, month)
        return budget

    async def record_transaction(
        self,
        user_id: str,
        category: str,
        amount: Any,
        budget_month: str,
        date_of_transaction: Optional[date] = None,
        paid_through: PaymentMethod = PaymentMethod.MPESA,
        note: str = "",
    ) -> tuple[Transaction, Optional[LedgerEntry]]:
        """
        Record a transaction, then run the savings trigger.

        Returns:
            (transaction, savings_deposit) - the deposit is None when the
            category is not the savings category or the trigger failed

        Raises:
            InvalidAmountError: amount is not a positive number
            NotFoundError: budget_month has no budget
            ClosedBudgetError: budget_month is closed
        """
        value = parse_amount(amount)
        validate_month(budget_month)

        fields = dict(
            category=category,
            amount=value,
            budget_month=budget_month,
            paid_through=PaymentMethod(paid_through),
            note=note,
        )
        if date_of_transaction is not None:
            fields["date_of_transaction"] = date_of_transaction

        transaction = await self.transactions.create(user_id, Transaction(**fields))
        await self._audit.log_transaction_recorded(
            user_id=user_id,
            transaction_id=transaction.id,
            category=transaction.category,
            amount=transaction.amount,
            budget_month=transaction.budget_month,
        )

        deposit = await self._savings_trigger.on_transaction_created(user_id, transaction)
        return transaction, deposit

    async def monthly_analysis(self, user_id: str, month: str) -> MonthlyAnalysis:
        return await self._analysis.month(user_id, validate_month(month))

    async def monthly_summary(self, user_id: str) -> list[MonthlySummaryRow]:
        return await self._analysis.summary(user_id)

    async def top_categories(self, user_id: str) -> TopCategories:
        return await self._analysis.top_categories(user_id)

    async def payment_method_breakdown(self, user_id: str) -> list[PaymentMethodCount]:
        return await self._analysis.payment_methods(user_id)

    async def daily_spend(self, user_id: str, today: Optional[date] = None) -> list[DailySpend]:
        return await self._analysis.daily_spend(user_id, today)


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[LedgerService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "google_sheets"; defaults to the
                LEDGER_STORAGE_BACKEND setting.

    Returns:
        (ledger_service, sheets_client)

    Raises:
        ConnectionError: google_sheets was requested but is not configured
    """
    settings = get_settings()
    configure_log_level(settings.app.log_level)
    backend = backend or settings.ledger.storage_backend

    sheets_client = None
    audit_storage: Optional[AuditStorageInterface] = None

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
        except ValidationError as e:
            logger.error("storage_not_configured", backend=backend, error=str(e))
            raise ConnectionError(f"Google Sheets storage is not configured: {e}")
        store: DocumentStoreInterface = GoogleSheetsDocumentStore(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)
    elif backend == "memory":
        store = InMemoryDocumentStore()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    service = LedgerService(
        store,
        audit_logger=AuditLogger(audit_storage),
        settings=settings.ledger,
    )
    logger.info("app_components_created", backend=backend)
    return service, sheets_client
