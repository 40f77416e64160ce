"""
Budget and Transaction Models

These are the source-of-truth documents the ledgers derive from.

DESIGN DECISION: Stored documents keep the original camelCase field names
(budgetMonth, totalDebited, ...). Field aliases map them onto snake_case
attributes, so documents written before this library existed load unchanged.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from budget_ledger.config.settings import MONTH_KEY_PATTERN


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_month_key(value: str) -> str:
    """Budget months are keyed "YYYY-MM"."""
    if not MONTH_KEY_PATTERN.match(value):
        raise ValueError(f"Budget month must look like YYYY-MM, got {value!r}")
    return value


class DocumentModel(BaseModel):
    """Base for models persisted as documents in the store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_document(self) -> dict:
        """Serialize to a JSON-safe document (the id is the document key, not a field)."""
        return self.model_dump(by_alias=True, mode="json", exclude={"id"})


# =============================================================================
# ENUMS
# =============================================================================

class CategoryTag(str, Enum):
    """
    Semantic role of a budget category in analysis.

    Older budgets have no tag; for those the role is inferred from the
    category name (see BudgetCategory.effective_tag).
    """
    EXPENSE = "expense"
    SAVINGS = "savings"
    LOST = "lost"
    RECOVERED = "recovered"


class PaymentMethod(str, Enum):
    """How a transaction was paid."""
    MPESA = "MPESA"
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"


# =============================================================================
# BUDGET
# =============================================================================

class BudgetCategory(DocumentModel):
    """A planned spending line within a monthly budget."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name, unique within the budget"
    )
    planned_amount: Decimal = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("plannedAmount", "planned_amount", "amount"),
        serialization_alias="plannedAmount",
        description="Planned amount for the month"
    )
    notes: str = Field(
        default="",
        max_length=500
    )
    tag: Optional[CategoryTag] = Field(
        default=None,
        description="Explicit semantic tag; inferred from the name when absent"
    )

    @property
    def effective_tag(self) -> CategoryTag:
        """
        Explicit tag if set, otherwise a case-insensitive name match.

        "Money Lost" -> LOST, "Money Recovered" -> RECOVERED,
        "Savings" -> SAVINGS, anything else -> EXPENSE.
        """
        if self.tag is not None:
            return self.tag
        lowered = self.name.lower()
        if "lost" in lowered:
            return CategoryTag.LOST
        if "recovered" in lowered:
            return CategoryTag.RECOVERED
        if "saving" in lowered:
            return CategoryTag.SAVINGS
        return CategoryTag.EXPENSE


class Budget(DocumentModel):
    """
    One budget per user per month.

    CRITICAL: categories, total_planned and total_debited are write-once.
    closed is the only field that ever changes, and only false -> true.
    """

    month: str = Field(
        ...,
        exclude=True,
        description="Month key, also the document id"
    )
    categories: list[BudgetCategory] = Field(default_factory=list)
    total_planned: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("totalPlanned", "total_planned", "total"),
        serialization_alias="totalPlanned",
        description="Sum of planned amounts at save time (denormalized)"
    )
    total_debited: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Total debited from the funding account that month"
    )
    closed: bool = False

    @field_validator('month')
    @classmethod
    def validate_month(cls, v: str) -> str:
        return validate_month_key(v)

    @model_validator(mode='after')
    def validate_unique_categories(self) -> 'Budget':
        seen = set()
        for category in self.categories:
            if category.name in seen:
                raise ValueError(f"Duplicate category name in budget: {category.name}")
            seen.add(category.name)
        return self

    @property
    def surplus(self) -> Decimal:
        """Funding received minus amount allocated to categories (may be negative)."""
        return self.total_debited - self.total_planned

    def get_category(self, name: str) -> Optional[BudgetCategory]:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(DocumentModel):
    """
    A recorded spend (or recovery) against a budget month.

    Immutable once created, except adjusted / adjustment_note which only the
    chama correction migration sets.
    """

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned document id"
    )
    category: str = Field(
        ...,
        min_length=1,
        description="Budget category name (not enforced by the store)"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Always positive; meaning comes from the category"
    )
    budget_month: str
    date_of_transaction: date = Field(
        default_factory=lambda: utc_now().date(),
        validation_alias=AliasChoices("dateOfTransaction", "date_of_transaction", "date"),
        serialization_alias="dateOfTransaction",
    )
    paid_through: PaymentMethod = PaymentMethod.MPESA
    note: str = ""
    created_at: datetime = Field(default_factory=utc_now)

    # Set only by migrations
    adjusted: bool = False
    adjustment_note: Optional[str] = None
    source: Optional[str] = None
    related_transaction_id: Optional[str] = None

    @field_validator('budget_month')
    @classmethod
    def validate_budget_month(cls, v: str) -> str:
        return validate_month_key(v)

    @field_validator('date_of_transaction', mode='before')
    @classmethod
    def take_date_of_datetime(cls, v):
        """Older documents store a full ISO timestamp; keep its UTC calendar date."""
        if isinstance(v, str) and "T" in v:
            v = datetime.fromisoformat(v.replace("Z", "+00:00"))
        if isinstance(v, datetime):
            if v.tzinfo is not None:
                v = v.astimezone(timezone.utc)
            return v.date()
        return v

    @property
    def timestamp_millis(self) -> int:
        """Epoch millis of the transaction date (UTC midnight)."""
        moment = datetime(
            self.date_of_transaction.year,
            self.date_of_transaction.month,
            self.date_of_transaction.day,
            tzinfo=timezone.utc,
        )
        return int(moment.timestamp() * 1000)
