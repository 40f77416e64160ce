"""
Reconciliation Job

Re-verifies one ledger (conservation, non-negative partitions, complete
transfers) and optionally repairs orphaned transfer sides.

A transfer side is orphaned when its correlation id has no opposite-direction
partner in the same ledger and does not appear in any other ledger. Repair
appends an offsetting entry on the orphan's own pool, carrying the same
correlation id, which completes the pair. Running repair twice finds nothing
the second time.
"""

from typing import Optional

import structlog

from budget_ledger.audit import AuditLogger
from budget_ledger.ledger.balance import BalanceEngine, describe_problems
from budget_ledger.ledger.entries import make_entry
from budget_ledger.models.ledger import (
    INCREASE_TYPES,
    Direction,
    EntrySource,
    LedgerKind,
    PoolRef,
    ReconciliationReport,
)
from budget_ledger.repositories.ledger import LedgerRegistry


logger = structlog.get_logger(__name__)


class ReconciliationJob:

    def __init__(self, ledgers: LedgerRegistry, audit_logger: Optional[AuditLogger] = None):
        self._ledgers = ledgers
        self._balances = BalanceEngine(ledgers)
        self._audit = audit_logger or AuditLogger()

    async def run(
        self,
        user_id: str,
        kind: LedgerKind,
        repair: bool = False,
    ) -> ReconciliationReport:
        kind = LedgerKind(kind)
        findings = await self._balances.verify(user_id, kind)
        report = ReconciliationReport(kind=kind, findings=findings)

        problems = describe_problems(findings)
        if problems:
            await self._audit.log_invariant_violation(user_id, kind.value, problems)

        if not repair or not findings.orphaned_transfers:
            return report

        for orphan in findings.orphaned_transfers:
            lone_direction = (
                Direction.INCREASE
                if orphan.entry_type in INCREASE_TYPES
                else Direction.DECREASE
            )
            opposite = Direction.DECREASE if lone_direction is Direction.INCREASE else Direction.INCREASE
            compensation = make_entry(
                PoolRef(kind=kind, partition=orphan.partition),
                opposite,
                orphan.amount,
                EntrySource.RECONCILIATION,
                note=f"Reconciliation of incomplete transfer {orphan.correlation_id}",
                correlation_id=orphan.correlation_id,
            )
            written = await self._ledgers.for_kind(kind).append(user_id, compensation)
            report.repair_entry_ids.append(written.id)

            logger.warning(
                "orphaned_transfer_repaired",
                user_id=user_id,
                ledger=kind.value,
                correlation_id=orphan.correlation_id,
                entry_id=written.id,
            )
            await self._audit.log_reconciliation_repair(
                user_id=user_id,
                ledger=kind.value,
                entry_id=written.id,
                orphan_correlation_id=orphan.correlation_id,
                amount=orphan.amount,
            )

        report.repaired = True
        return report
