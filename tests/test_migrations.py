"""Tests for the backfill and chama correction migrations."""

import pytest
import pytest_asyncio
from datetime import date
from decimal import Decimal

from budget_ledger.errors import (
    MissingMigrationPlanError,
    NotFoundError,
    ReconciliationNeededError,
)
from budget_ledger.migrations import ADJUSTMENT_NOTE, surplus_deposit_id
from budget_ledger.models.audit import AuditEventType
from budget_ledger.models.ledger import (
    ChamaMigrationItem,
    ChamaMigrationPlan,
    EntrySource,
    LedgerKind,
    MigrationKind,
    SavingsEntry,
)
from budget_ledger.services.storage import StorageError


def plan_for(chama_id: str, first_id: str, second_id: str, **kwargs) -> ChamaMigrationPlan:
    return ChamaMigrationPlan(
        chama_id=chama_id,
        items=[
            ChamaMigrationItem(
                transaction_id=first_id,
                savings_ledger_amount=Decimal("3000"),
                migrate_amount=Decimal("3000"),
                excess=Decimal("0"),
            ),
            ChamaMigrationItem(
                transaction_id=second_id,
                savings_ledger_amount=Decimal("3015"),
                migrate_amount=Decimal("3000"),
                excess=Decimal("15"),
            ),
        ],
        **kwargs,
    )


class TestUnallocatedBackfill:

    @pytest_asyncio.fixture
    async def budgets(self, service, user_id):
        await service.create_budget(user_id, "2025-06", [{"name": "Rent", "plannedAmount": 40000}], 45000)
        await service.create_budget(user_id, "2025-07", [{"name": "Rent", "plannedAmount": 40000}], 38000)
        return service

    @pytest.mark.asyncio
    async def test_surplus_months_get_one_deposit(self, budgets, user_id):
        report = await budgets.run_migration(user_id, MigrationKind.UNALLOCATED)

        assert report.scanned == 2
        assert report.created == 1
        entries = await budgets.list_entries(user_id, LedgerKind.UNALLOCATED)
        assert len(entries) == 1
        assert entries[0].id == surplus_deposit_id("2025-06")
        assert entries[0].amount == Decimal("5000")
        assert entries[0].budget_month == "2025-06"
        assert entries[0].source == EntrySource.HISTORICAL_MIGRATION

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, budgets, user_id):
        await budgets.run_migration(user_id, MigrationKind.UNALLOCATED)
        second = await budgets.run_migration(user_id, MigrationKind.UNALLOCATED)

        assert second.created == 0
        assert second.skipped == 2
        balance = await budgets.get_balance(user_id, LedgerKind.UNALLOCATED)
        assert balance.balance == Decimal("5000")

    @pytest.mark.asyncio
    async def test_migration_is_audited(self, budgets, user_id, audit_storage):
        report = await budgets.run_migration(user_id, MigrationKind.UNALLOCATED)
        events = await audit_storage.get_events_by_correlation_id(report.correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.MIGRATION_STARTED,
            AuditEventType.MIGRATION_COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_storage_failure_is_audited_and_raised(self, budgets, store, user_id, audit_storage):
        store.fail_insert("unallocated_ledger")

        with pytest.raises(StorageError):
            await budgets.run_migration(user_id, MigrationKind.UNALLOCATED)

        events = await audit_storage.get_recent_events()
        started = next(e for e in events if e.event_type == AuditEventType.MIGRATION_STARTED)
        failed = next(e for e in events if e.event_type == AuditEventType.SYSTEM_ERROR)
        assert failed.correlation_id == started.correlation_id
        assert failed.details["migration"] == "unallocated"
        assert AuditEventType.MIGRATION_COMPLETED not in [e.event_type for e in events]


class TestSavingsBackfill:

    @pytest.mark.asyncio
    async def test_skips_transactions_already_in_ledger(self, service, store, user_id):
        await service.create_budget(user_id, "2025-06", [{"name": "Savings", "plannedAmount": 5000}], 5000)
        await service.record_transaction(user_id, "Savings", 1000, "2025-06")

        # A transaction recorded before the ledger existed
        store.fail_insert("savings_ledger")
        await service.record_transaction(user_id, "Savings", 400, "2025-06")
        store.heal()
        await service.record_transaction(user_id, "Rent", 400, "2025-06")

        report = await service.run_migration(user_id, MigrationKind.SAVINGS)

        assert report.scanned == 2
        assert report.created == 1
        assert report.skipped == 1
        balance = await service.get_balance(user_id, LedgerKind.SAVINGS)
        assert balance.balance == Decimal("1400")

        rerun = await service.run_migration(user_id, MigrationKind.SAVINGS)
        assert rerun.created == 0
        assert (await service.get_balance(user_id, LedgerKind.SAVINGS)).balance == Decimal("1400")

    @pytest.mark.asyncio
    async def test_legacy_deposit_without_deterministic_id_is_respected(self, service, store, user_id):
        await service.create_budget(user_id, "2025-06", [{"name": "Savings", "plannedAmount": 5000}], 5000)
        store.fail_insert("savings_ledger")
        transaction, _ = await service.record_transaction(user_id, "Savings", 700, "2025-06")
        store.heal()
        # An older deposit written with a store-assigned id
        await service.ledgers.savings.append(user_id, SavingsEntry(
            type="deposit",
            amount=Decimal("700"),
            source=EntrySource.HISTORICAL_MIGRATION,
            related_transaction_id=transaction.id,
        ))

        report = await service.run_migration(user_id, MigrationKind.SAVINGS)

        assert report.created == 0
        assert report.skipped == 1
        assert (await service.get_balance(user_id, LedgerKind.SAVINGS)).balance == Decimal("700")


class TestChamaMigration:

    @pytest_asyncio.fixture
    async def setup(self, service, user_id):
        await service.create_budget(user_id, "2025-06", [{"name": "Savings", "plannedAmount": 7000}], 7000)
        await service.create_budget(user_id, "2026-01", [{"name": "Miscellaneous", "plannedAmount": 500}], 500)
        first, _ = await service.record_transaction(
            user_id, "Savings", 3000, "2025-06", date_of_transaction=date(2025, 6, 2),
        )
        second, _ = await service.record_transaction(
            user_id, "Savings", 3015, "2025-06", date_of_transaction=date(2025, 6, 20),
        )
        chama = await service.create_chama(user_id, "Family Chama")
        return service, chama, first, second

    @pytest.mark.asyncio
    async def test_moves_savings_into_chama(self, setup, user_id):
        service, chama, first, second = setup

        report = await service.run_migration(
            user_id,
            MigrationKind.CHAMA,
            plan_for(chama.id, first.id, second.id),
        )

        assert report.created == 2
        assert report.adjusted_transaction_ids == [first.id, second.id]
        assert (await service.get_balance(user_id, LedgerKind.CHAMA, chama.id)).balance == Decimal("6000")
        assert (await service.get_balance(user_id, LedgerKind.SAVINGS)).balance == Decimal("0")

        # History is kept: two deposits and two reversals
        savings = await service.list_entries(user_id, LedgerKind.SAVINGS)
        assert sorted(e.type for e in savings) == ["deposit", "deposit", "withdrawal", "withdrawal"]
        reversal = next(e for e in savings if e.related_transaction_id == second.id and e.type == "withdrawal")
        assert reversal.source == EntrySource.MIGRATION_REVERSAL
        assert reversal.amount == Decimal("3015")
        assert reversal.timestamp == second.timestamp_millis

        contributions = await service.list_entries(user_id, LedgerKind.CHAMA, chama.id)
        assert {e.source for e in contributions} == {EntrySource.MIGRATION}
        assert {e.budget_month for e in contributions} == {"2025-06"}

        excess = await service.transactions.require(user_id, report.created_transaction_ids[0])
        assert excess.category == "Miscellaneous"
        assert excess.amount == Decimal("15")
        assert excess.budget_month == "2026-01"
        assert excess.related_transaction_id == second.id
        assert excess.source == "migration"

        for transaction_id in (first.id, second.id):
            original = await service.transactions.require(user_id, transaction_id)
            assert original.adjusted is True
            assert original.adjustment_note == ADJUSTMENT_NOTE
            assert original.amount in (Decimal("3000"), Decimal("3015"))

    @pytest.mark.asyncio
    async def test_rerun_skips_adjusted_transactions(self, setup, user_id):
        service, chama, first, second = setup
        plan = plan_for(chama.id, first.id, second.id)
        await service.run_migration(user_id, MigrationKind.CHAMA, plan)

        rerun = await service.run_migration(user_id, MigrationKind.CHAMA, plan)

        assert rerun.created == 0
        assert rerun.skipped == 2
        assert (await service.get_balance(user_id, LedgerKind.CHAMA, chama.id)).balance == Decimal("6000")
        assert len(await service.transactions.list_all(user_id, budget_month="2026-01")) == 1

    @pytest.mark.asyncio
    async def test_excess_goes_into_closed_target_month(self, setup, user_id):
        service, chama, first, second = setup
        await service.close_budget(user_id, "2026-01")

        report = await service.run_migration(user_id, MigrationKind.CHAMA, plan_for(chama.id, first.id, second.id))

        assert len(report.created_transaction_ids) == 1

    @pytest.mark.asyncio
    async def test_needs_a_plan(self, service, user_id):
        with pytest.raises(MissingMigrationPlanError):
            await service.run_migration(user_id, MigrationKind.CHAMA)

    @pytest.mark.asyncio
    async def test_unknown_chama_writes_nothing(self, setup, user_id):
        service, _, first, second = setup
        with pytest.raises(NotFoundError):
            await service.run_migration(user_id, MigrationKind.CHAMA, plan_for("ghost", first.id, second.id))
        assert await service.list_entries(user_id, LedgerKind.CHAMA) == []

    @pytest.mark.asyncio
    async def test_unknown_transaction_writes_nothing(self, setup, user_id):
        service, chama, first, _ = setup
        with pytest.raises(NotFoundError):
            await service.run_migration(user_id, MigrationKind.CHAMA, plan_for(chama.id, first.id, "ghost"))
        assert await service.list_entries(user_id, LedgerKind.CHAMA) == []
        assert (await service.transactions.require(user_id, first.id)).adjusted is False

    @pytest.mark.asyncio
    async def test_missing_target_budget(self, setup, user_id):
        service, chama, first, second = setup
        with pytest.raises(NotFoundError):
            await service.run_migration(
                user_id,
                MigrationKind.CHAMA,
                plan_for(chama.id, first.id, second.id, target_budget_month="2027-01"),
            )
        assert await service.list_entries(user_id, LedgerKind.CHAMA) == []

    @pytest.mark.asyncio
    async def test_failure_mid_item_lists_completed_steps(self, setup, store, user_id, audit_storage):
        service, chama, first, second = setup
        store.fail_insert("savings_ledger")

        with pytest.raises(ReconciliationNeededError) as exc_info:
            await service.run_migration(user_id, MigrationKind.CHAMA, plan_for(chama.id, first.id, second.id))

        error = exc_info.value
        assert error.failed_step == "savings reversal"
        assert len(error.completed_steps) == 1
        assert error.completed_steps[0].startswith("chama contribution ")
        assert (await service.transactions.require(user_id, first.id)).adjusted is False

        events = await audit_storage.get_recent_events()
        assert AuditEventType.MIGRATION_INCOMPLETE in [e.event_type for e in events]

        store.heal()
        findings = await service.reconcile(user_id, LedgerKind.CHAMA)
        assert len(findings.findings.orphaned_transfers) == 1

    @pytest.mark.asyncio
    async def test_rerun_after_failure_completes_without_doubling(self, setup, store, user_id):
        service, chama, first, second = setup
        plan = plan_for(chama.id, first.id, second.id)
        store.fail_insert("savings_ledger")
        with pytest.raises(ReconciliationNeededError):
            await service.run_migration(user_id, MigrationKind.CHAMA, plan)
        store.heal()

        report = await service.run_migration(user_id, MigrationKind.CHAMA, plan)

        assert report.created == 2
        assert (await service.get_balance(user_id, LedgerKind.CHAMA, chama.id)).balance == Decimal("6000")
        assert (await service.get_balance(user_id, LedgerKind.SAVINGS)).balance == Decimal("0")
        assert len(await service.list_entries(user_id, LedgerKind.CHAMA, chama.id)) == 2
        for transaction_id in (first.id, second.id):
            assert (await service.transactions.require(user_id, transaction_id)).adjusted is True
        assert (await service.reconcile(user_id, LedgerKind.CHAMA)).findings.orphaned_transfers == []

    @pytest.mark.asyncio
    async def test_rerun_does_not_repeat_excess_transaction(self, setup, store, user_id):
        service, chama, _, second = setup
        plan = ChamaMigrationPlan(
            chama_id=chama.id,
            items=[ChamaMigrationItem(
                transaction_id=second.id,
                savings_ledger_amount=Decimal("3015"),
                migrate_amount=Decimal("3000"),
                excess=Decimal("15"),
            )],
        )
        store.fail_update("transactions")
        with pytest.raises(ReconciliationNeededError) as exc_info:
            await service.run_migration(user_id, MigrationKind.CHAMA, plan)
        assert exc_info.value.failed_step == "mark adjusted"
        store.heal()

        report = await service.run_migration(user_id, MigrationKind.CHAMA, plan)

        assert report.created_transaction_ids == []
        assert len(await service.transactions.list_all(user_id, budget_month="2026-01")) == 1
        assert (await service.get_balance(user_id, LedgerKind.CHAMA, chama.id)).balance == Decimal("3000")
        assert (await service.get_balance(user_id, LedgerKind.SAVINGS)).balance == Decimal("3000")
        assert (await service.transactions.require(user_id, second.id)).adjusted is True
