"""
Audit Logger

DESIGN DECISION: Every balance-changing action in the system is logged.
This provides:
1. Complete traceability of every ledger entry
2. The correlation trail needed to reconcile a half-written transfer
3. Debugging capability

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_ledger.models.audit import AuditEvent, AuditEventBuilder
from budget_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_log_level(level: str) -> None:
    """Set the stdlib level the structlog pipeline filters on."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))
    logging.getLogger("budget_ledger").setLevel(getattr(logging, level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budget_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entry_appended(
        self,
        user_id: str,
        ledger: str,
        entry_id: str,
        entry_type: str,
        amount: Decimal,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger entry write."""
        event = AuditEventBuilder.entry_appended(
            user_id=user_id,
            ledger=ledger,
            entry_id=entry_id,
            entry_type=entry_type,
            amount=amount,
            source=source,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_withdrawal(
        self,
        user_id: str,
        pool: str,
        entry_id: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.withdrawal_recorded(
            user_id=user_id,
            pool=pool,
            entry_id=entry_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_started(
        self,
        user_id: str,
        source: str,
        destination: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log the intent of a paired write before the first write."""
        event = AuditEventBuilder.transfer_started(
            user_id=user_id,
            source=source,
            destination=destination,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_completed(
        self,
        user_id: str,
        debit_entry_id: str,
        credit_entry_id: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transfer_completed(
            user_id=user_id,
            debit_entry_id=debit_entry_id,
            credit_entry_id=credit_entry_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_incomplete(
        self,
        user_id: str,
        written_entry_id: Optional[str],
        failed_side: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a transfer that needs manual reconciliation."""
        event = AuditEventBuilder.transfer_incomplete(
            user_id=user_id,
            written_entry_id=written_entry_id,
            failed_side=failed_side,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_created(self, user_id: str, month: str, total_planned: Decimal) -> None:
        await self.log(AuditEventBuilder.budget_created(user_id, month, total_planned))

    async def log_budget_closed(self, user_id: str, month: str) -> None:
        await self.log(AuditEventBuilder.budget_closed(user_id, month))

    async def log_transaction_recorded(
        self,
        user_id: str,
        transaction_id: str,
        category: str,
        amount: Decimal,
        budget_month: str,
    ) -> None:
        event = AuditEventBuilder.transaction_recorded(
            user_id=user_id,
            transaction_id=transaction_id,
            category=category,
            amount=amount,
            budget_month=budget_month,
        )
        await self.log(event)

    async def log_savings_trigger_failed(
        self,
        user_id: str,
        transaction_id: str,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.savings_trigger_failed(
            user_id=user_id,
            transaction_id=transaction_id,
            error_message=error_message,
        )
        await self.log(event)

    async def log_chama_created(self, user_id: str, chama_id: str, name: str) -> None:
        await self.log(AuditEventBuilder.chama_created(user_id, chama_id, name))

    async def log_chama_status_changed(
        self,
        user_id: str,
        chama_id: str,
        old: str,
        new: str,
    ) -> None:
        await self.log(AuditEventBuilder.chama_status_changed(user_id, chama_id, old, new))

    async def log_migration_started(self, user_id: str, kind: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.migration_started(user_id, kind, correlation_id))

    async def log_migration_completed(
        self,
        user_id: str,
        kind: str,
        scanned: int,
        created: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.migration_completed(
            user_id=user_id,
            kind=kind,
            scanned=scanned,
            created=created,
            skipped=skipped,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_migration_incomplete(
        self,
        user_id: str,
        kind: str,
        completed_steps: list[str],
        failed_step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.migration_incomplete(
            user_id=user_id,
            kind=kind,
            completed_steps=completed_steps,
            failed_step=failed_step,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_invariant_violation(
        self,
        user_id: str,
        ledger: str,
        problems: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.invariant_violation(user_id, ledger, problems))

    async def log_reconciliation_repair(
        self,
        user_id: str,
        ledger: str,
        entry_id: str,
        orphan_correlation_id: str,
        amount: Decimal,
    ) -> None:
        event = AuditEventBuilder.reconciliation_repair(
            user_id=user_id,
            ledger=ledger,
            entry_id=entry_id,
            orphan_correlation_id=orphan_correlation_id,
            amount=amount,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an allocation).
    Pass it through all subsequent operations.
    """
    return uuid4()
