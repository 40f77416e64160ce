"""
Analysis Aggregator

Read-only views over one budget month (and over all months for the summary
table and charts). Nothing here writes to the store or to a ledger.

Semantics:
- "recovered" categories are inflows: they reduce net outflow and ADD to
  the category balance.
- "lost" categories are informational: balance mirrors actual and is always
  shown as a deficit.
- "savings" categories are outflows that are tracked separately and never
  count as a deficit.

A category's role comes from its explicit tag, falling back to its name
(see BudgetCategory.effective_tag). Transactions whose category is not in the
budget fall back to the configured category names.
"""

from collections import Counter, defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from budget_ledger.config import LedgerSettings, get_settings
from budget_ledger.models.analysis import (
    CategoryAnalysis,
    DailySpend,
    MonthlyAnalysis,
    MonthlySummaryRow,
    PaymentMethodCount,
    RankedValue,
    TopCategories,
)
from budget_ledger.models.budget import Budget, BudgetCategory, CategoryTag, PaymentMethod, Transaction
from budget_ledger.repositories.budget import BudgetRepository
from budget_ledger.repositories.transaction import TransactionRepository


ZERO = Decimal("0")
TOP_N = 6
DAILY_WINDOW_DAYS = 30


def _sum(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), ZERO)


def category_roles(budget: Optional[Budget], settings: LedgerSettings) -> dict[str, CategoryTag]:
    """Map category name -> role for every name a transaction might use."""
    roles = {
        settings.recovered_category: CategoryTag.RECOVERED,
        settings.lost_category: CategoryTag.LOST,
        settings.savings_category: CategoryTag.SAVINGS,
    }
    if budget is not None:
        for category in budget.categories:
            roles[category.name] = category.effective_tag
    return roles


def net_outflow(transactions: Iterable[Transaction], roles: dict[str, CategoryTag]) -> Decimal:
    """Non-recovered spend minus recovered inflow."""
    outflows = ZERO
    recovered = ZERO
    for t in transactions:
        if roles.get(t.category) is CategoryTag.RECOVERED:
            recovered += t.amount
        else:
            outflows += t.amount
    return outflows - recovered


def analyze_category(category: BudgetCategory, actual: Decimal) -> CategoryAnalysis:
    tag = category.effective_tag
    planned = category.planned_amount

    if tag is CategoryTag.RECOVERED:
        balance = planned + actual
        is_deficit = False
    elif tag is CategoryTag.LOST:
        balance = planned - actual
        is_deficit = True
    elif tag is CategoryTag.SAVINGS:
        balance = planned - actual
        is_deficit = False
    else:
        balance = planned - actual
        is_deficit = balance < 0

    return CategoryAnalysis(
        name=category.name,
        tag=tag,
        planned=planned,
        actual=actual,
        balance=balance,
        is_deficit=is_deficit,
        notes=category.notes,
    )


def analyze_month(
    budget: Budget,
    transactions: Sequence[Transaction],
    settings: Optional[LedgerSettings] = None,
) -> MonthlyAnalysis:
    """
    Planned vs. actual for one budget month.

    transactions may include other months; only budget.month is counted.
    """
    settings = settings or get_settings().ledger
    transactions = [t for t in transactions if t.budget_month == budget.month]
    roles = category_roles(budget, settings)

    actuals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in transactions:
        actuals[t.category] += t.amount

    def total_for(tag: CategoryTag) -> Decimal:
        return _sum(t for t in transactions if roles.get(t.category) is tag)

    recovered = total_for(CategoryTag.RECOVERED)
    outflows = _sum(transactions) - recovered
    net = outflows - recovered
    saved = total_for(CategoryTag.SAVINGS)
    planned_savings = sum(
        (c.planned_amount for c in budget.categories if c.effective_tag is CategoryTag.SAVINGS),
        ZERO,
    )

    categories = [analyze_category(c, actuals.get(c.name, ZERO)) for c in budget.categories]
    budgeted_names = {c.name for c in budget.categories}

    return MonthlyAnalysis(
        month=budget.month,
        total_planned=budget.total_planned,
        total_debited=budget.total_debited,
        closed=budget.closed,
        total_outflows=outflows,
        total_recovered=recovered,
        net_outflow=net,
        remaining_budget=max(budget.total_planned - net, ZERO),
        balance_from_debited=budget.total_debited - net,
        amount_lost=total_for(CategoryTag.LOST),
        saved_so_far=saved,
        planned_savings=planned_savings,
        to_be_saved=max(planned_savings - saved, ZERO),
        spent_excluding_savings=max(net - saved, ZERO),
        categories=categories,
        unbudgeted={
            name: amount for name, amount in actuals.items() if name not in budgeted_names
        },
        transaction_count=len(transactions),
    )


def monthly_summary(
    budgets: Sequence[Budget],
    transactions: Sequence[Transaction],
    settings: Optional[LedgerSettings] = None,
) -> list[MonthlySummaryRow]:
    """One row per budget, latest month first."""
    settings = settings or get_settings().ledger
    by_month: dict[str, list[Transaction]] = defaultdict(list)
    for t in transactions:
        by_month[t.budget_month].append(t)

    rows = []
    for budget in sorted(budgets, key=lambda b: b.month, reverse=True):
        # Summed from categories, not the stored total, like the month view
        budgeted = sum((c.planned_amount for c in budget.categories), ZERO)
        spent = net_outflow(by_month.get(budget.month, []), category_roles(budget, settings))
        rows.append(MonthlySummaryRow(
            month=budget.month,
            total_debited=budget.total_debited,
            total_budgeted=budgeted,
            total_spent=spent,
            balance=budgeted - spent,
        ))
    return rows


def top_categories(transactions: Iterable[Transaction], limit: int = TOP_N) -> TopCategories:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: Counter = Counter()
    for t in transactions:
        totals[t.category] += t.amount
        counts[t.category] += 1

    by_amount = sorted(totals.items(), key=lambda item: (-item[1], item[0]))[:limit]
    by_frequency = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return TopCategories(
        by_amount=[RankedValue(name=n, value=v) for n, v in by_amount],
        by_frequency=[RankedValue(name=n, value=Decimal(v)) for n, v in by_frequency],
    )


def payment_method_breakdown(transactions: Iterable[Transaction]) -> list[PaymentMethodCount]:
    """Count and total per payment method, every method listed even at zero."""
    rows = {m: PaymentMethodCount(name=m.value, value=0, total_amount=ZERO) for m in PaymentMethod}
    for t in transactions:
        row = rows[t.paid_through]
        row.value += 1
        row.total_amount += t.amount
    return list(rows.values())


def daily_spend(
    transactions: Iterable[Transaction],
    today: Optional[date] = None,
    window_days: int = DAILY_WINDOW_DAYS,
) -> list[DailySpend]:
    """Per-day totals over the trailing window, oldest day first."""
    today = today or date.today()
    start = today - timedelta(days=window_days)
    daily: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for t in transactions:
        if t.date_of_transaction < start:
            continue
        daily[t.date_of_transaction] += t.amount
    return [DailySpend(day=day, amount=daily[day]) for day in sorted(daily)]


class AnalysisAggregator:
    """Store-backed wrappers around the pure functions above."""

    def __init__(
        self,
        budgets: BudgetRepository,
        transactions: TransactionRepository,
        settings: Optional[LedgerSettings] = None,
    ):
        self._budgets = budgets
        self._transactions = transactions
        self._settings = settings or get_settings().ledger

    async def month(self, user_id: str, month: str) -> MonthlyAnalysis:
        budget = await self._budgets.require(user_id, month)
        transactions = await self._transactions.list_all(user_id, budget_month=month)
        return analyze_month(budget, transactions, self._settings)

    async def summary(self, user_id: str) -> list[MonthlySummaryRow]:
        budgets = await self._budgets.list_all(user_id)
        transactions = await self._transactions.list_all(user_id)
        return monthly_summary(budgets, transactions, self._settings)

    async def top_categories(self, user_id: str) -> TopCategories:
        return top_categories(await self._transactions.list_all(user_id))

    async def payment_methods(self, user_id: str) -> list[PaymentMethodCount]:
        return payment_method_breakdown(await self._transactions.list_all(user_id))

    async def daily_spend(self, user_id: str, today: Optional[date] = None) -> list[DailySpend]:
        return daily_spend(await self._transactions.list_all(user_id), today=today)
