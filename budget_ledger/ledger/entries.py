"""Building typed ledger entries for a pool and a direction."""

from decimal import Decimal
from typing import Optional

from budget_ledger.models.ledger import (
    DECREASE_TYPE_FOR,
    ENTRY_MODELS,
    INCREASE_TYPE_FOR,
    Direction,
    EntrySource,
    LedgerEntry,
    LedgerKind,
    PoolRef,
    now_millis,
)


def make_entry(
    pool: PoolRef,
    direction: Direction,
    amount: Decimal,
    source: EntrySource,
    note: str = "",
    timestamp: Optional[int] = None,
    related_transaction_id: Optional[str] = None,
    budget_month: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> LedgerEntry:
    """
    Entry of the right model and type vocabulary for the pool's ledger.

    Increase on savings -> deposit, increase on chama -> contribution, and so on.
    """
    type_map = INCREASE_TYPE_FOR if direction is Direction.INCREASE else DECREASE_TYPE_FOR
    fields = dict(
        type=type_map[pool.kind],
        amount=amount,
        source=source,
        note=note,
        timestamp=timestamp if timestamp is not None else now_millis(),
        related_transaction_id=related_transaction_id,
        budget_month=budget_month,
        correlation_id=correlation_id,
    )
    if pool.kind is LedgerKind.CHAMA:
        fields["chama_id"] = pool.partition
    return ENTRY_MODELS[pool.kind](**fields)

