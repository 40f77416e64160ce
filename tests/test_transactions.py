"""Tests for budgets, transactions and the savings trigger."""

import pytest
from datetime import date
from decimal import Decimal

from budget_ledger.errors import (
    BudgetExistsError,
    ClosedBudgetError,
    InvalidAmountError,
    InvalidBudgetError,
    NotFoundError,
)
from budget_ledger.ledger import savings_deposit_id
from budget_ledger.models.audit import AuditEventType
from budget_ledger.models.budget import PaymentMethod
from budget_ledger.models.ledger import EntrySource, LedgerKind, MigrationKind


CATEGORIES = [
    {"name": "Rent", "plannedAmount": 30000},
    {"name": "Savings", "plannedAmount": 10000},
]


@pytest.fixture
def budget_month() -> str:
    return "2025-06"


class TestBudgets:

    @pytest.mark.asyncio
    async def test_create_budget_computes_total(self, service, user_id, budget_month):
        budget = await service.create_budget(user_id, budget_month, CATEGORIES, "45000")
        assert budget.total_planned == Decimal("40000")
        assert budget.total_debited == Decimal("45000")
        assert budget.closed is False

        stored = await service.budgets.get(user_id, budget_month)
        assert stored.total_planned == Decimal("40000")
        assert [c.name for c in stored.categories] == ["Rent", "Savings"]
        assert stored.categories[0].planned_amount == Decimal("30000")

    @pytest.mark.asyncio
    async def test_budgets_are_write_once(self, service, user_id, budget_month):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)
        with pytest.raises(BudgetExistsError):
            await service.create_budget(user_id, budget_month, CATEGORIES, 50000)
        stored = await service.budgets.get(user_id, budget_month)
        assert stored.total_debited == Decimal("45000")

    @pytest.mark.asyncio
    async def test_invalid_budget_is_not_saved(self, service, user_id):
        with pytest.raises(InvalidBudgetError):
            await service.create_budget(user_id, "2025-06", [{"name": "Rent", "plannedAmount": -1}], 100)
        assert await service.budgets.get(user_id, "2025-06") is None

    @pytest.mark.asyncio
    async def test_close_is_one_way_and_repeatable(self, service, user_id, budget_month, audit_storage):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)

        closed = await service.close_budget(user_id, budget_month)
        again = await service.close_budget(user_id, budget_month)

        assert closed.closed and again.closed
        events = await audit_storage.get_recent_events()
        assert [e.event_type for e in events].count(AuditEventType.BUDGET_CLOSED) == 1

    @pytest.mark.asyncio
    async def test_close_unknown_budget(self, service, user_id):
        with pytest.raises(NotFoundError):
            await service.close_budget(user_id, "2030-01")


class TestRecordTransaction:

    @pytest.mark.asyncio
    async def test_savings_transaction_writes_one_deposit(self, service, user_id, budget_month):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)

        transaction, deposit = await service.record_transaction(
            user_id,
            category="Savings",
            amount="2500",
            budget_month=budget_month,
            date_of_transaction=date(2025, 6, 3),
        )

        assert deposit is not None
        assert deposit.id == savings_deposit_id(transaction.id)
        assert deposit.type == "deposit"
        assert deposit.amount == Decimal("2500")
        assert deposit.source == EntrySource.TRANSACTION
        assert deposit.related_transaction_id == transaction.id
        assert deposit.budget_month == budget_month
        balance = await service.get_balance(user_id, LedgerKind.SAVINGS)
        assert balance.balance == Decimal("2500")

    @pytest.mark.asyncio
    async def test_savings_deposit_is_audited(self, service, user_id, budget_month, audit_storage):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)

        _, deposit = await service.record_transaction(user_id, "Savings", 1200, budget_month)

        events = await audit_storage.get_recent_events()
        appended = [e for e in events if e.event_type == AuditEventType.LEDGER_ENTRY_APPENDED]
        assert len(appended) == 1
        assert appended[0].entity_id == deposit.id
        assert appended[0].entity_type == "savings_ledger"
        assert appended[0].details["source"] == "transaction"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", ["Rent", "Savings Goal", "savings"])
    async def test_other_categories_write_no_deposit(self, service, user_id, budget_month, category):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)

        transaction, deposit = await service.record_transaction(
            user_id, category=category, amount=100, budget_month=budget_month,
        )

        assert transaction.id is not None
        assert deposit is None
        assert await service.list_entries(user_id, LedgerKind.SAVINGS) == []

    @pytest.mark.asyncio
    async def test_transaction_fields_round_trip(self, service, user_id, budget_month):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)

        transaction, _ = await service.record_transaction(
            user_id,
            category="Rent",
            amount="30000",
            budget_month=budget_month,
            date_of_transaction=date(2025, 6, 1),
            paid_through=PaymentMethod.BANK_TRANSFER,
            note="June rent",
        )

        stored = await service.transactions.require(user_id, transaction.id)
        assert stored.amount == Decimal("30000")
        assert stored.paid_through == PaymentMethod.BANK_TRANSFER
        assert stored.date_of_transaction == date(2025, 6, 1)
        assert stored.note == "June rent"
        assert stored.adjusted is False

    @pytest.mark.asyncio
    async def test_closed_budget_rejects_transactions(self, service, user_id, budget_month):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)
        await service.close_budget(user_id, budget_month)

        with pytest.raises(ClosedBudgetError):
            await service.record_transaction(user_id, "Savings", 100, budget_month)
        assert await service.transactions.list_all(user_id) == []
        assert await service.list_entries(user_id, LedgerKind.SAVINGS) == []

    @pytest.mark.asyncio
    async def test_missing_budget(self, service, user_id):
        with pytest.raises(NotFoundError):
            await service.record_transaction(user_id, "Rent", 100, "2025-06")

    @pytest.mark.asyncio
    async def test_invalid_amount(self, service, user_id, budget_month):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)
        with pytest.raises(InvalidAmountError):
            await service.record_transaction(user_id, "Rent", "-100", budget_month)

    @pytest.mark.asyncio
    async def test_unbudgeted_category_is_accepted(self, service, user_id, budget_month):
        """Category names are references the store does not enforce."""
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)
        transaction, _ = await service.record_transaction(user_id, "Taxi", 350, budget_month)
        assert transaction.category == "Taxi"


class TestSavingsTriggerFailure:

    @pytest.mark.asyncio
    async def test_failed_deposit_keeps_transaction(self, service, store, user_id, budget_month, audit_storage):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)
        store.fail_insert("savings_ledger")

        transaction, deposit = await service.record_transaction(user_id, "Savings", 700, budget_month)

        assert deposit is None
        assert await service.transactions.get(user_id, transaction.id) is not None
        events = await audit_storage.get_recent_events()
        assert AuditEventType.SAVINGS_TRIGGER_FAILED in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_backfill_picks_up_failed_deposit(self, service, store, user_id, budget_month):
        await service.create_budget(user_id, budget_month, CATEGORIES, 45000)
        store.fail_insert("savings_ledger")
        transaction, _ = await service.record_transaction(user_id, "Savings", 700, budget_month)
        store.heal()

        report = await service.run_migration(user_id, MigrationKind.SAVINGS)

        assert report.created == 1
        assert report.entry_ids == [savings_deposit_id(transaction.id)]
        entries = await service.list_entries(user_id, LedgerKind.SAVINGS)
        assert len(entries) == 1
        assert entries[0].source == EntrySource.HISTORICAL_MIGRATION
        assert entries[0].related_transaction_id == transaction.id
