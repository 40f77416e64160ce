"""
Input Validation

DESIGN DECISION: Every operation validates ALL of its input before the first
store write. A failed precondition therefore never leaves a half-written
ledger behind.

Amounts arrive from forms as strings, floats or Decimals. They are normalized
here to Decimal once, so the rest of the system never compares floats.

IMPORTANT: Validation NEVER silently fixes issues (no clamping, no rounding).
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from budget_ledger.config import MONTH_KEY_PATTERN, get_settings
from budget_ledger.errors import InvalidAmountError, InvalidBudgetError
from budget_ledger.models.budget import BudgetCategory


def parse_amount(
    value: Any,
    field: str = "amount",
    allow_zero: bool = False,
    max_amount: Optional[Decimal] = None,
) -> Decimal:
    """
    Convert user input to a positive Decimal.

    Raises:
        InvalidAmountError: non-numeric, NaN/infinite, negative, zero
            (unless allow_zero) or above the configured sanity limit
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(f"{field} must be a number", value)

    try:
        if isinstance(value, float):
            # str() avoids binary float artifacts: 0.1 -> "0.1"
            amount = Decimal(str(value))
        else:
            amount = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"{field} must be a number, got {value!r}", value)

    if not amount.is_finite():
        raise InvalidAmountError(f"{field} must be finite, got {value!r}", value)
    if amount < 0 or (amount == 0 and not allow_zero):
        qualifier = "zero or more" if allow_zero else "greater than zero"
        raise InvalidAmountError(f"{field} must be {qualifier}, got {amount}", value)

    if max_amount is None:
        max_amount = Decimal(str(get_settings().app.max_amount))
    if amount > max_amount:
        raise InvalidAmountError(f"{field} {amount} exceeds the limit of {max_amount}", value)

    return amount


def validate_month(month: str) -> str:
    if not isinstance(month, str) or not MONTH_KEY_PATTERN.match(month):
        raise InvalidBudgetError(f"Budget month must look like YYYY-MM, got {month!r}")
    return month


def validate_budget_input(
    month: str,
    categories: Iterable[Any],
    total_debited: Any,
) -> tuple[list[BudgetCategory], Decimal]:
    """
    Validate a new budget before it is saved.

    Categories may be BudgetCategory instances or dicts with name /
    planned_amount (or plannedAmount / amount) / notes / tag.

    Returns:
        (categories, total_debited)

    Raises:
        InvalidBudgetError: listing every problem found, not just the first
    """
    validate_month(month)
    problems: list[str] = []
    parsed: list[BudgetCategory] = []
    seen: set[str] = set()

    for index, raw in enumerate(categories):
        try:
            category = raw if isinstance(raw, BudgetCategory) else BudgetCategory.model_validate(raw)
        except ValidationError as e:
            problems.append(f"category #{index + 1}: {e.errors()[0]['msg']}")
            continue
        if category.name in seen:
            problems.append(f"category {category.name!r} appears more than once")
            continue
        seen.add(category.name)
        parsed.append(category)

    if not parsed and not problems:
        problems.append("a budget needs at least one category")

    try:
        debited = parse_amount(total_debited, field="total_debited", allow_zero=True)
    except InvalidAmountError as e:
        problems.append(str(e))
        debited = Decimal("0")

    if problems:
        raise InvalidBudgetError(f"Budget {month} is invalid: " + "; ".join(problems))

    return parsed, debited
