"""Read-only analysis results consumed by the presentation layer."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from budget_ledger.models.budget import CategoryTag


class CategoryAnalysis(BaseModel):
    """Planned vs. actual for one budget category."""

    name: str
    tag: CategoryTag
    planned: Decimal
    actual: Decimal
    balance: Decimal
    is_deficit: bool
    notes: str = ""


class MonthlyAnalysis(BaseModel):
    """Everything the month view shows, computed from one budget and its transactions."""

    month: str
    total_planned: Decimal
    total_debited: Decimal
    closed: bool = False

    total_outflows: Decimal
    total_recovered: Decimal
    net_outflow: Decimal
    remaining_budget: Decimal
    balance_from_debited: Decimal

    amount_lost: Decimal
    saved_so_far: Decimal
    planned_savings: Decimal
    to_be_saved: Decimal
    spent_excluding_savings: Decimal

    categories: list[CategoryAnalysis] = Field(default_factory=list)
    unbudgeted: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Actuals for categories that are not in the budget"
    )
    transaction_count: int = 0


class MonthlySummaryRow(BaseModel):
    month: str
    total_debited: Decimal
    total_budgeted: Decimal
    total_spent: Decimal
    balance: Decimal


class RankedValue(BaseModel):
    name: str
    value: Decimal


class TopCategories(BaseModel):
    by_amount: list[RankedValue] = Field(default_factory=list)
    by_frequency: list[RankedValue] = Field(default_factory=list)


class DailySpend(BaseModel):
    day: date
    amount: Decimal


class PaymentMethodCount(BaseModel):
    name: str
    value: int = 0
    total_amount: Optional[Decimal] = None
