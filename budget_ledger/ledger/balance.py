"""
Balance Engine

Balances are never stored. They are folded from the entry stream on every
read:

    balance = sum(increase amounts) - sum(decrease amounts)

DESIGN DECISION: A negative balance is reported, not clamped and not raised.
The protocol prevents it for new writes, but legacy data and half-written
transfers can still produce one, and hiding it would hide the problem.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Sequence

import structlog

from budget_ledger.models.ledger import (
    BalanceReport,
    ConservationReport,
    Direction,
    LedgerEntry,
    LedgerKind,
    OrphanedTransfer,
)
from budget_ledger.repositories.ledger import ALL_PARTITIONS, LedgerRegistry, PartitionFilter


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


# =============================================================================
# PURE FOLDS
# =============================================================================

def fold_balance(entries: Iterable[LedgerEntry]) -> Decimal:
    """Signed sum of an entry stream. Order independent; empty -> 0."""
    return sum((entry.signed_amount for entry in entries), ZERO)


def balance_for(entries: Iterable[LedgerEntry], partition: PartitionFilter = ALL_PARTITIONS) -> Decimal:
    """Balance of one partition (None is the chama pool), or of all entries."""
    if partition is ALL_PARTITIONS:
        return fold_balance(entries)
    return fold_balance(e for e in entries if e.partition == partition)


def partition_balances(entries: Iterable[LedgerEntry]) -> dict[Optional[str], Decimal]:
    balances: dict[Optional[str], Decimal] = defaultdict(lambda: ZERO)
    for entry in entries:
        balances[entry.partition] += entry.signed_amount
    return dict(balances)


def _scope_label(partition: PartitionFilter) -> str:
    if partition is ALL_PARTITIONS:
        return "all"
    return partition if partition is not None else "pool"


def summarize(
    kind: LedgerKind,
    entries: Sequence[LedgerEntry],
    partition: PartitionFilter = ALL_PARTITIONS,
) -> BalanceReport:
    """Fold a stream into a BalanceReport, flagging negative balances."""
    if partition is not ALL_PARTITIONS:
        entries = [e for e in entries if e.partition == partition]

    total_increase = sum((e.amount for e in entries if e.direction is Direction.INCREASE), ZERO)
    total_decrease = sum((e.amount for e in entries if e.direction is Direction.DECREASE), ZERO)
    balance = total_increase - total_decrease
    scope = _scope_label(partition)

    warnings = []
    if balance < 0:
        warnings.append(f"{kind.value} balance for {scope} is negative: {balance}")

    return BalanceReport(
        kind=kind,
        scope=scope,
        balance=balance,
        total_increase=total_increase,
        total_decrease=total_decrease,
        entry_count=len(entries),
        last_entry_at=max((e.timestamp for e in entries), default=None),
        warnings=warnings,
    )


def find_orphaned_transfers(
    kind: LedgerKind,
    entries: Iterable[LedgerEntry],
    counterpart_ids: Optional[set[str]] = None,
) -> list[OrphanedTransfer]:
    """
    Transfer sides whose other side is missing.

    A correlation id is complete when it has both an increase and a decrease.
    For transfers that cross ledgers the other side lives elsewhere; pass the
    correlation ids seen in the other ledgers as counterpart_ids.
    """
    groups: dict[str, list[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        if entry.correlation_id:
            groups[entry.correlation_id].append(entry)

    counterpart_ids = counterpart_ids or set()
    orphans = []
    for correlation_id, group in groups.items():
        directions = {e.direction for e in group}
        if len(directions) == 2 or correlation_id in counterpart_ids:
            continue
        for entry in group:
            orphans.append(OrphanedTransfer(
                correlation_id=correlation_id,
                entry_id=entry.id,
                kind=kind,
                partition=entry.partition,
                entry_type=entry.type,
                amount=entry.amount,
                timestamp=entry.timestamp,
            ))
    return orphans


def check_conservation(
    kind: LedgerKind,
    entries: Sequence[LedgerEntry],
    counterpart_ids: Optional[set[str]] = None,
) -> ConservationReport:
    """Re-verify conservation, non-negativity and transfer completeness."""
    balances = partition_balances(entries)
    return ConservationReport(
        kind=kind,
        entry_count=len(entries),
        total_net=fold_balance(entries),
        partition_balances=balances,
        negative_partitions=[p for p, b in balances.items() if b < 0],
        orphaned_transfers=find_orphaned_transfers(kind, entries, counterpart_ids),
    )


# =============================================================================
# ENGINE
# =============================================================================

class BalanceEngine:
    """Store-backed balance queries over the three ledgers."""

    def __init__(self, ledgers: LedgerRegistry):
        self._ledgers = ledgers

    async def list_entries(
        self,
        user_id: str,
        kind: LedgerKind,
        partition: PartitionFilter = ALL_PARTITIONS,
    ) -> list[LedgerEntry]:
        """Entries newest first, the order the ledger views show them in."""
        entries = await self._ledgers.for_kind(kind).list_entries(user_id, partition)
        return sorted(entries, key=lambda e: e.timestamp, reverse=True)

    async def get_balance(
        self,
        user_id: str,
        kind: LedgerKind,
        partition: PartitionFilter = ALL_PARTITIONS,
    ) -> BalanceReport:
        entries = await self._ledgers.for_kind(kind).list_entries(user_id, partition)
        report = summarize(kind, entries, partition)
        for warning in report.warnings:
            logger.warning("negative_balance", user_id=user_id, ledger=kind.value, detail=warning)
        return report

    async def current_balance(
        self,
        user_id: str,
        kind: LedgerKind,
        partition: PartitionFilter = ALL_PARTITIONS,
    ) -> Decimal:
        entries = await self._ledgers.for_kind(kind).list_entries(user_id, partition)
        return fold_balance(entries)

    async def verify(self, user_id: str, kind: LedgerKind) -> ConservationReport:
        """
        Full invariant check of one ledger.

        Transfers between ledgers are matched against the correlation ids
        present in the other two ledgers before being called orphaned.
        """
        entries = await self._ledgers.for_kind(kind).list_entries(user_id)
        counterpart_ids: set[str] = set()
        for other in LedgerKind:
            if other is kind:
                continue
            for entry in await self._ledgers.for_kind(other).list_entries(user_id):
                if entry.correlation_id:
                    counterpart_ids.add(entry.correlation_id)

        report = check_conservation(kind, entries, counterpart_ids)
        if not report.is_consistent:
            logger.warning(
                "ledger_invariant_violation",
                user_id=user_id,
                ledger=kind.value,
                conserved=report.is_conserved,
                negative_partitions=report.negative_partitions,
                orphaned_transfers=len(report.orphaned_transfers),
            )
        return report


def describe_problems(report: ConservationReport) -> list[str]:
    """Human-readable list of what a ConservationReport found."""
    problems = []
    if not report.is_conserved:
        problems.append(
            f"partition sum {report.partition_sum} does not equal ledger net {report.total_net}"
        )
    for partition in report.negative_partitions:
        label = partition if partition is not None else "pool"
        problems.append(f"{label} balance is negative: {report.partition_balances[partition]}")
    for orphan in report.orphaned_transfers:
        problems.append(
            f"transfer {orphan.correlation_id} has only its {orphan.entry_type} side ({orphan.amount})"
        )
    return problems
