"""Chama Repository - chamas have a soft lifecycle and are never deleted."""

from typing import Optional

from budget_ledger.errors import NotFoundError
from budget_ledger.models.ledger import Chama, ChamaStatus
from budget_ledger.services.storage import DocumentNotFoundError, DocumentStoreInterface


CHAMAS_COLLECTION = "chamas"


class ChamaRepository:

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    async def create(self, user_id: str, chama: Chama) -> Chama:
        new_id = await self._store.insert_document(user_id, CHAMAS_COLLECTION, chama.to_document())
        return chama.model_copy(update={"id": new_id})

    async def get(self, user_id: str, chama_id: str) -> Optional[Chama]:
        document = await self._store.get_document(user_id, CHAMAS_COLLECTION, chama_id)
        if document is None:
            return None
        return Chama.model_validate({**document.data, "id": document.id})

    async def require(self, user_id: str, chama_id: str) -> Chama:
        chama = await self.get(user_id, chama_id)
        if chama is None:
            raise NotFoundError("chama", chama_id)
        return chama

    async def list_all(self, user_id: str) -> list[Chama]:
        """All chamas, oldest first."""
        chamas = [
            Chama.model_validate({**document.data, "id": document.id})
            for document in await self._store.list_documents(user_id, CHAMAS_COLLECTION)
        ]
        chamas.sort(key=lambda c: c.created_at)
        return chamas

    async def set_status(self, user_id: str, chama_id: str, status: ChamaStatus) -> None:
        try:
            await self._store.update_document(
                user_id,
                CHAMAS_COLLECTION,
                chama_id,
                {"status": ChamaStatus(status).value},
            )
        except DocumentNotFoundError:
            raise NotFoundError("chama", chama_id)
