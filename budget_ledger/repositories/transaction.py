"""
Transaction Repository

Transactions are immutable once created. The single exception is the
adjusted / adjustment_note pair, written only by the chama correction
migration through mark_adjusted().
"""

from typing import Optional
from uuid import NAMESPACE_URL, uuid5

import structlog

from budget_ledger.errors import ClosedBudgetError, NotFoundError
from budget_ledger.models.budget import Transaction
from budget_ledger.repositories.budget import BudgetRepository
from budget_ledger.services.storage import DocumentNotFoundError, DocumentStoreInterface


logger = structlog.get_logger(__name__)

TRANSACTIONS_COLLECTION = "transactions"

_TRANSACTION_ID_NAMESPACE = uuid5(NAMESPACE_URL, "budget-ledger/transactions")


def derive_transaction_id(reference: str, purpose: str) -> str:
    """Deterministic transaction id for writes that must land at most once."""
    return uuid5(_TRANSACTION_ID_NAMESPACE, f"{purpose}:{reference}").hex


class TransactionRepository:
    """Source-of-truth transaction documents."""

    def __init__(self, store: DocumentStoreInterface, budgets: BudgetRepository):
        self._store = store
        self._budgets = budgets

    async def create(
        self,
        user_id: str,
        transaction: Transaction,
        enforce_open_budget: bool = True,
        transaction_id: Optional[str] = None,
    ) -> Transaction:
        """
        Persist a new transaction and return it with its store id.

        Args:
            enforce_open_budget: Reject closed budget months. Migrations that
                book corrections into a fixed month pass False.
            transaction_id: Caller-chosen id; a second create with the same id
                raises DuplicateError.

        Raises:
            NotFoundError: the budget month has no budget
            ClosedBudgetError: the budget month is closed
            DuplicateError: transaction_id is already taken
        """
        budget = await self._budgets.require(user_id, transaction.budget_month)
        if enforce_open_budget and budget.closed:
            raise ClosedBudgetError(transaction.budget_month)
        if budget.get_category(transaction.category) is None:
            # Category names are references, not foreign keys
            logger.warning(
                "transaction_category_not_in_budget",
                user_id=user_id,
                category=transaction.category,
                budget_month=transaction.budget_month,
            )

        new_id = await self._store.insert_document(
            user_id,
            TRANSACTIONS_COLLECTION,
            transaction.to_document(),
            doc_id=transaction_id,
        )
        return transaction.model_copy(update={"id": new_id})

    async def get(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        document = await self._store.get_document(user_id, TRANSACTIONS_COLLECTION, transaction_id)
        if document is None:
            return None
        return Transaction.model_validate({**document.data, "id": document.id})

    async def require(self, user_id: str, transaction_id: str) -> Transaction:
        transaction = await self.get(user_id, transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)
        return transaction

    async def list_all(
        self,
        user_id: str,
        budget_month: Optional[str] = None,
    ) -> list[Transaction]:
        """All transactions for a user, optionally for one budget month."""
        transactions = [
            Transaction.model_validate({**document.data, "id": document.id})
            for document in await self._store.list_documents(user_id, TRANSACTIONS_COLLECTION)
        ]
        if budget_month is not None:
            transactions = [t for t in transactions if t.budget_month == budget_month]
        return transactions

    async def mark_adjusted(self, user_id: str, transaction_id: str, note: str) -> None:
        """Flag a transaction as corrected by a migration."""
        try:
            await self._store.update_document(
                user_id,
                TRANSACTIONS_COLLECTION,
                transaction_id,
                {"adjusted": True, "adjustmentNote": note},
            )
        except DocumentNotFoundError:
            raise NotFoundError("transaction", transaction_id)
