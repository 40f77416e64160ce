"""Input validation package."""

from budget_ledger.validation.validator import (
    parse_amount,
    validate_budget_input,
    validate_month,
)

__all__ = ["parse_amount", "validate_budget_input", "validate_month"]
