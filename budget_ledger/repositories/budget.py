"""
Budget Repository

Budgets are write-once documents keyed by month. The only permitted change
after creation is closing the month, and closing is one-way.
"""

from decimal import Decimal
from typing import Optional

import structlog

from budget_ledger.errors import BudgetExistsError, NotFoundError
from budget_ledger.models.budget import Budget, BudgetCategory
from budget_ledger.services.storage import DocumentStoreInterface, DuplicateError


logger = structlog.get_logger(__name__)

BUDGETS_COLLECTION = "budgets"


class BudgetRepository:
    """Source-of-truth monthly budget documents."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    async def create(
        self,
        user_id: str,
        month: str,
        categories: list[BudgetCategory],
        total_debited: Decimal,
    ) -> Budget:
        """
        Save a new monthly budget.

        total_planned is computed here, once, and stored alongside the
        categories; it is never recomputed afterwards.

        Raises:
            BudgetExistsError: a budget for this month was already saved
        """
        budget = Budget(
            month=month,
            categories=categories,
            total_planned=sum((c.planned_amount for c in categories), Decimal("0")),
            total_debited=total_debited,
            closed=False,
        )
        try:
            await self._store.insert_document(
                user_id,
                BUDGETS_COLLECTION,
                budget.to_document(),
                doc_id=month,
            )
        except DuplicateError:
            raise BudgetExistsError(month)
        return budget

    async def get(self, user_id: str, month: str) -> Optional[Budget]:
        document = await self._store.get_document(user_id, BUDGETS_COLLECTION, month)
        if document is None:
            return None
        return Budget.model_validate({**document.data, "month": document.id})

    async def require(self, user_id: str, month: str) -> Budget:
        budget = await self.get(user_id, month)
        if budget is None:
            raise NotFoundError("budget", month)
        return budget

    async def list_all(self, user_id: str) -> list[Budget]:
        """All budgets for a user, oldest month first."""
        budgets = [
            Budget.model_validate({**document.data, "month": document.id})
            for document in await self._store.list_documents(user_id, BUDGETS_COLLECTION)
        ]
        budgets.sort(key=lambda b: b.month)
        return budgets

    async def close(self, user_id: str, month: str) -> Budget:
        """
        Close a budget month. Closing an already-closed budget is a no-op.

        Closing only blocks new transactions; it has no ledger effect.
        """
        budget = await self.require(user_id, month)
        if budget.closed:
            return budget
        await self._store.update_document(user_id, BUDGETS_COLLECTION, month, {"closed": True})
        logger.info("budget_closed", user_id=user_id, month=month)
        return budget.model_copy(update={"closed": True})
