"""
Audit Models for Budget Ledger

Every ledger write, transfer and migration is logged for audit purposes.
This provides:
1. Traceability of every balance change
2. The reconciliation trail when a paired write stops half way
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger writes
    LEDGER_ENTRY_APPENDED = "ledger_entry_appended"
    WITHDRAWAL_RECORDED = "withdrawal_recorded"

    # Transfers (two paired writes)
    TRANSFER_STARTED = "transfer_started"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_INCOMPLETE = "transfer_incomplete"

    # Source documents
    BUDGET_CREATED = "budget_created"
    BUDGET_CLOSED = "budget_closed"
    TRANSACTION_RECORDED = "transaction_recorded"
    SAVINGS_TRIGGER_FAILED = "savings_trigger_failed"
    CHAMA_CREATED = "chama_created"
    CHAMA_STATUS_CHANGED = "chama_status_changed"

    # Migrations and reconciliation
    MIGRATION_STARTED = "migration_started"
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_INCOMPLETE = "migration_incomplete"
    INVARIANT_VIOLATION = "invariant_violation"
    RECONCILIATION_REPAIR = "reconciliation_repair"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'savings_ledger', 'transaction', 'chama')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store id of the entity this event relates to"
    )

    # Correlation - links the writes of one operation
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., both sides of a transfer)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_appended(user_id, "savings", entry_id, ...)
        event = AuditEventBuilder.transfer_incomplete(user_id, correlation_id, ...)
    """

    @staticmethod
    def entry_appended(
        user_id: str,
        ledger: str,
        entry_id: str,
        entry_type: str,
        amount: Decimal,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_ENTRY_APPENDED,
            user_id=user_id,
            entity_type=f"{ledger}_ledger",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"{entry_type.capitalize()} of {amount} appended to {ledger} ledger",
            details={
                "entry_type": entry_type,
                "amount": str(amount),
                "source": source,
            },
        )

    @staticmethod
    def withdrawal_recorded(
        user_id: str,
        pool: str,
        entry_id: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WITHDRAWAL_RECORDED,
            user_id=user_id,
            entity_type="ledger_entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Withdrew {amount} from {pool}",
            details={"pool": pool, "amount": str(amount)},
            is_user_action=True,
        )

    @staticmethod
    def transfer_started(
        user_id: str,
        source: str,
        destination: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_STARTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} from {source} to {destination} started",
            details={
                "source": source,
                "destination": destination,
                "amount": str(amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def transfer_completed(
        user_id: str,
        debit_entry_id: str,
        credit_entry_id: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} completed",
            details={
                "debit_entry_id": debit_entry_id,
                "credit_entry_id": credit_entry_id,
            },
        )

    @staticmethod
    def transfer_incomplete(
        user_id: str,
        written_entry_id: Optional[str],
        failed_side: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_INCOMPLETE,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="ledger_entry",
            entity_id=written_entry_id,
            correlation_id=correlation_id,
            description=f"Transfer stopped after one write: {failed_side} side failed, reconciliation needed",
            details={
                "written_entry_id": written_entry_id,
                "failed_side": failed_side,
            },
            error_message=error_message,
        )

    @staticmethod
    def budget_created(user_id: str, month: str, total_planned: Decimal) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            user_id=user_id,
            entity_type="budget",
            entity_id=month,
            description=f"Budget {month} saved",
            details={"total_planned": str(total_planned)},
            is_user_action=True,
        )

    @staticmethod
    def budget_closed(user_id: str, month: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CLOSED,
            user_id=user_id,
            entity_type="budget",
            entity_id=month,
            description=f"Budget {month} closed",
            is_user_action=True,
        )

    @staticmethod
    def transaction_recorded(
        user_id: str,
        transaction_id: str,
        category: str,
        amount: Decimal,
        budget_month: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction recorded: {category} - {amount}",
            details={
                "category": category,
                "amount": str(amount),
                "budget_month": budget_month,
            },
            is_user_action=True,
        )

    @staticmethod
    def savings_trigger_failed(
        user_id: str,
        transaction_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVINGS_TRIGGER_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Savings deposit for transaction was not written; savings backfill will pick it up",
            error_message=error_message,
        )

    @staticmethod
    def chama_created(user_id: str, chama_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAMA_CREATED,
            user_id=user_id,
            entity_type="chama",
            entity_id=chama_id,
            description=f"Chama created: {name}",
            is_user_action=True,
        )

    @staticmethod
    def chama_status_changed(user_id: str, chama_id: str, old: str, new: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAMA_STATUS_CHANGED,
            user_id=user_id,
            entity_type="chama",
            entity_id=chama_id,
            description=f"Chama status changed from {old} to {new}",
            details={"old_status": old, "new_status": new},
            is_user_action=True,
        )

    @staticmethod
    def migration_started(user_id: str, kind: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_STARTED,
            user_id=user_id,
            entity_type="migration",
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} migration started",
            details={"kind": kind},
        )

    @staticmethod
    def migration_completed(
        user_id: str,
        kind: str,
        scanned: int,
        created: int,
        skipped: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            user_id=user_id,
            entity_type="migration",
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} migration created {created} entries ({skipped} skipped)",
            details={
                "kind": kind,
                "scanned": scanned,
                "created": created,
                "skipped": skipped,
            },
        )

    @staticmethod
    def migration_incomplete(
        user_id: str,
        kind: str,
        completed_steps: list[str],
        failed_step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_INCOMPLETE,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="migration",
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} migration stopped at: {failed_step}",
            details={
                "kind": kind,
                "completed_steps": completed_steps,
                "failed_step": failed_step,
            },
            error_message=error_message,
        )

    @staticmethod
    def invariant_violation(
        user_id: str,
        ledger: str,
        problems: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVARIANT_VIOLATION,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=f"{ledger}_ledger",
            description=f"{ledger.capitalize()} ledger failed {len(problems)} invariant checks",
            details={"problems": problems},
        )

    @staticmethod
    def reconciliation_repair(
        user_id: str,
        ledger: str,
        entry_id: str,
        orphan_correlation_id: str,
        amount: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_REPAIR,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=f"{ledger}_ledger",
            entity_id=entry_id,
            description=f"Compensating entry of {amount} written for orphaned transfer",
            details={
                "orphan_correlation_id": orphan_correlation_id,
                "amount": str(amount),
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
