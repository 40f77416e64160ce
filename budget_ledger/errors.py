"""
Domain Error Taxonomy

Every precondition failure is raised before the first write, so callers can
show the message and nothing needs undoing. ReconciliationNeededError is the
one exception raised AFTER a write: it means a multi-step operation stopped
half way and an operator (or the reconciliation job) has to look at it.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class InvalidAmountError(LedgerError):
    """Amount is missing, non-numeric, or not strictly positive."""

    def __init__(self, message: str, value: object = None):
        super().__init__(message)
        self.value = value


class InsufficientFundsError(LedgerError):
    """Requested amount exceeds the balance of the source pool."""

    def __init__(self, pool: str, available: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient funds in {pool}: available {available}, requested {requested}"
        )
        self.pool = pool
        self.available = available
        self.requested = requested


class NoDestinationSelectedError(LedgerError):
    """A transfer was requested without a (distinct) destination pool."""
    pass


class InvalidPoolError(LedgerError, ValueError):
    """A pool reference that cannot exist, e.g. a partition on an unpartitioned ledger."""
    pass


class ClosedBudgetError(LedgerError):
    """Transaction creation against a closed budget month."""

    def __init__(self, budget_month: str):
        super().__init__(f"Budget {budget_month} is closed")
        self.budget_month = budget_month


class NotFoundError(LedgerError):
    """A referenced transaction, budget or chama does not exist."""

    def __init__(self, entity_type: str, entity_id: Optional[str]):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class BudgetExistsError(LedgerError):
    """A budget for this month was already saved; budgets are write-once."""

    def __init__(self, budget_month: str):
        super().__init__(f"Budget {budget_month} already exists and cannot be edited")
        self.budget_month = budget_month


class InvalidBudgetError(LedgerError):
    """Budget input failed validation (month key, duplicate category names, ...)."""
    pass


class MissingMigrationPlanError(LedgerError):
    """The chama migration was started without a correction plan."""
    pass


class ReconciliationNeededError(LedgerError):
    """
    A multi-write operation failed after at least one write succeeded.

    The writes that did land are listed in completed_steps (entry or document
    ids with a short label). Nothing is retried automatically: a retry could
    duplicate entries because ids are assigned by the store.
    """

    def __init__(
        self,
        message: str,
        correlation_id: UUID,
        completed_steps: list[str],
        failed_step: str,
    ):
        super().__init__(message)
        self.correlation_id = correlation_id
        self.completed_steps = completed_steps
        self.failed_step = failed_step
