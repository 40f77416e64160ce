"""
Transaction-Triggered Savings Deposit

A transaction in the savings category mirrors into the savings ledger as one
deposit. The deposit id is derived from the transaction id, so the live
trigger and the savings backfill agree on it and neither can write it twice.
"""

from typing import Optional

import structlog

from budget_ledger.audit import AuditLogger
from budget_ledger.config import get_settings
from budget_ledger.ledger.entries import make_entry
from budget_ledger.models.budget import Transaction
from budget_ledger.models.ledger import Direction, EntrySource, LedgerEntry, LedgerKind, PoolRef
from budget_ledger.repositories.ledger import LedgerRegistry, derive_entry_id
from budget_ledger.services.storage import DuplicateError, StorageError


logger = structlog.get_logger(__name__)

SAVINGS_POOL = PoolRef(kind=LedgerKind.SAVINGS)


def savings_deposit_id(transaction_id: str) -> str:
    return derive_entry_id(LedgerKind.SAVINGS, transaction_id, "deposit")


def savings_deposit_for(transaction: Transaction, source: EntrySource) -> LedgerEntry:
    """The savings deposit mirroring one savings transaction."""
    return make_entry(
        SAVINGS_POOL,
        Direction.INCREASE,
        transaction.amount,
        source,
        note=transaction.note,
        timestamp=transaction.timestamp_millis,
        related_transaction_id=transaction.id,
        budget_month=transaction.budget_month,
    )


class SavingsTrigger:
    """Runs after a transaction is created."""

    def __init__(
        self,
        ledgers: LedgerRegistry,
        audit_logger: Optional[AuditLogger] = None,
        savings_category: Optional[str] = None,
    ):
        self._ledgers = ledgers
        self._audit = audit_logger or AuditLogger()
        self._category = savings_category or get_settings().ledger.savings_category

    def applies_to(self, transaction: Transaction) -> bool:
        # Exact match only; "Savings Goal" is an ordinary category
        return transaction.category == self._category

    async def on_transaction_created(
        self,
        user_id: str,
        transaction: Transaction,
    ) -> Optional[LedgerEntry]:
        """
        Append the savings deposit for a freshly created transaction.

        Best effort: a failed write is logged and audited and None is
        returned. The transaction stays recorded and the savings backfill
        writes the deposit on its next run.
        """
        if not self.applies_to(transaction):
            return None

        entry = savings_deposit_for(transaction, EntrySource.TRANSACTION)
        try:
            deposit = await self._ledgers.savings.append(
                user_id,
                entry,
                entry_id=savings_deposit_id(transaction.id),
            )
        except DuplicateError:
            logger.info(
                "savings_deposit_already_recorded",
                user_id=user_id,
                transaction_id=transaction.id,
            )
            return None
        except StorageError as e:
            logger.error(
                "savings_trigger_failed",
                user_id=user_id,
                transaction_id=transaction.id,
                error=str(e),
            )
            await self._audit.log_savings_trigger_failed(
                user_id=user_id,
                transaction_id=transaction.id,
                error_message=str(e),
            )
            return None

        await self._audit.log_entry_appended(
            user_id=user_id,
            ledger=LedgerKind.SAVINGS.value,
            entry_id=deposit.id,
            entry_type=deposit.type,
            amount=deposit.amount,
            source=deposit.source.value,
        )
        return deposit
