"""
Allocation Protocol

Moves money between pools with two appends: a decrease on the source, then
an increase on the destination. The store has no multi-document transaction,
so the pair is NOT atomic.

DESIGN DECISION: All checks (amount, destination, chama existence, balance)
run before the first write. If the second write fails we do not retry and
do not try to undo the first one: both would be new writes that can fail the
same way. Instead the caller gets ReconciliationNeededError carrying the
correlation id shared by both sides, and the reconciliation job can find and
repair the orphaned side later.
"""

from decimal import Decimal
from typing import Any, Optional

import structlog

from budget_ledger.audit import AuditLogger, create_correlation_id
from budget_ledger.errors import (
    InsufficientFundsError,
    NoDestinationSelectedError,
    ReconciliationNeededError,
)
from budget_ledger.ledger.balance import BalanceEngine
from budget_ledger.ledger.entries import make_entry
from budget_ledger.models.ledger import (
    MANUAL_DEBIT_SOURCE,
    AllocationResult,
    Direction,
    EntrySource,
    LedgerEntry,
    LedgerKind,
    PoolRef,
    now_millis,
)
from budget_ledger.repositories.chama import ChamaRepository
from budget_ledger.repositories.ledger import LedgerRegistry
from budget_ledger.validation import parse_amount


logger = structlog.get_logger(__name__)


class AllocationProtocol:
    """Transfers and withdrawals over the ledger repositories."""

    def __init__(
        self,
        ledgers: LedgerRegistry,
        chamas: Optional[ChamaRepository] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledgers = ledgers
        self._chamas = chamas
        self._balances = BalanceEngine(ledgers)
        self._audit = audit_logger or AuditLogger()

    async def _describe(self, user_id: str, pool: PoolRef) -> str:
        """Pool label, resolving the chama name. Raises NotFoundError for unknown chamas."""
        if pool.kind is LedgerKind.CHAMA and pool.partition is not None:
            if self._chamas is None:
                return pool.label
            chama = await self._chamas.require(user_id, pool.partition)
            return f"chama {chama.name}"
        return pool.label

    async def _require_funds(self, user_id: str, pool: PoolRef, amount: Decimal) -> Decimal:
        available = await self._balances.current_balance(user_id, pool.kind, pool.partition)
        if amount > available:
            raise InsufficientFundsError(pool.label, available, amount)
        return available

    async def allocate(
        self,
        user_id: str,
        source: PoolRef,
        destination: Optional[PoolRef],
        amount: Any,
        note: str = "",
    ) -> AllocationResult:
        """
        Move amount from source to destination.

        Raises:
            InvalidAmountError: amount is not a positive number
            NoDestinationSelectedError: no destination, or destination == source
            NotFoundError: a chama partition references an unknown chama
            InsufficientFundsError: amount exceeds the source balance
            ReconciliationNeededError: the debit landed but the credit did not
        """
        value = parse_amount(amount)
        if destination is None or destination == source:
            raise NoDestinationSelectedError("Select a destination different from the source")

        source_label = await self._describe(user_id, source)
        destination_label = await self._describe(user_id, destination)
        await self._require_funds(user_id, source, value)

        correlation_id = create_correlation_id()
        await self._audit.log_transfer_started(
            user_id=user_id,
            source=source_label,
            destination=destination_label,
            amount=value,
            correlation_id=correlation_id,
        )

        timestamp = now_millis()
        debit = make_entry(
            source,
            Direction.DECREASE,
            value,
            EntrySource.MANUAL,
            note=f"Allocated to {destination_label}",
            timestamp=timestamp,
            correlation_id=str(correlation_id),
        )
        credit = make_entry(
            destination,
            Direction.INCREASE,
            value,
            EntrySource.MANUAL,
            note=note or f"Allocated from {source_label}",
            timestamp=timestamp,
            correlation_id=str(correlation_id),
        )

        # A failure here leaves nothing written; let it surface as-is.
        written_debit = await self._ledgers.for_kind(source.kind).append(user_id, debit)

        try:
            written_credit = await self._ledgers.for_kind(destination.kind).append(user_id, credit)
        except Exception as e:
            logger.error(
                "transfer_incomplete",
                user_id=user_id,
                correlation_id=str(correlation_id),
                written_entry_id=written_debit.id,
                error=str(e),
            )
            await self._audit.log_transfer_incomplete(
                user_id=user_id,
                written_entry_id=written_debit.id,
                failed_side="credit",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise ReconciliationNeededError(
                f"Debited {value} from {source_label} but the credit to "
                f"{destination_label} failed: {e}",
                correlation_id=correlation_id,
                completed_steps=[f"debit {written_debit.id}"],
                failed_step="credit",
            ) from e

        await self._audit.log_transfer_completed(
            user_id=user_id,
            debit_entry_id=written_debit.id,
            credit_entry_id=written_credit.id,
            amount=value,
            correlation_id=correlation_id,
        )
        logger.info(
            "transfer_completed",
            user_id=user_id,
            source=source_label,
            destination=destination_label,
            amount=str(value),
        )

        return AllocationResult(
            correlation_id=correlation_id,
            source=source,
            destination=destination,
            amount=value,
            debit_entry=written_debit,
            credit_entry=written_credit,
        )

    async def withdraw(
        self,
        user_id: str,
        pool: PoolRef,
        amount: Any,
        note: str = "",
    ) -> LedgerEntry:
        """
        Take money out of a pool: 0 < amount <= balance.

        Withdrawing exactly the full balance is allowed.
        """
        value = parse_amount(amount)
        label = await self._describe(user_id, pool)
        await self._require_funds(user_id, pool, value)

        entry = make_entry(
            pool,
            Direction.DECREASE,
            value,
            MANUAL_DEBIT_SOURCE[pool.kind],
            note=note,
        )
        written = await self._ledgers.for_kind(pool.kind).append(user_id, entry)

        await self._audit.log_withdrawal(
            user_id=user_id,
            pool=label,
            entry_id=written.id,
            amount=value,
            correlation_id=create_correlation_id(),
        )
        return written
