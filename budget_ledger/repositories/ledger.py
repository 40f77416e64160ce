"""
Ledger Entry Repository

Typed, append-only access to one ledger kind for one store.

CRITICAL: There is deliberately no update or delete here. A wrong entry is
corrected by appending an offsetting entry, never by editing history.
"""

from typing import Optional, Union
from uuid import NAMESPACE_URL, uuid5

import structlog
from pydantic import ValidationError

from budget_ledger.errors import InvalidPoolError
from budget_ledger.models.ledger import ENTRY_MODELS, LedgerEntry, LedgerKind
from budget_ledger.services.storage import DocumentStoreInterface


logger = structlog.get_logger(__name__)

_ENTRY_ID_NAMESPACE = uuid5(NAMESPACE_URL, "budget-ledger/entries")


class _AllPartitions:
    """Sentinel: no partition filter (None already means the chama pool)."""

    def __repr__(self) -> str:
        return "ALL_PARTITIONS"


ALL_PARTITIONS = _AllPartitions()

PartitionFilter = Union[Optional[str], _AllPartitions]


def derive_entry_id(kind: LedgerKind, reference: str, purpose: str) -> str:
    """
    Deterministic entry id used as an idempotency key.

    The same (ledger, reference, purpose) always maps to the same id, so a
    second write of "the savings deposit for transaction X" collides in the
    store instead of silently doubling the balance.
    """
    return uuid5(_ENTRY_ID_NAMESPACE, f"{kind.value}:{purpose}:{reference}").hex


class LedgerRepository:
    """Append-only repository for one ledger kind."""

    def __init__(self, store: DocumentStoreInterface, kind: LedgerKind):
        self._store = store
        self.kind = kind
        self._model = ENTRY_MODELS[kind]

    async def list_entries(
        self,
        user_id: str,
        partition: PartitionFilter = ALL_PARTITIONS,
    ) -> list[LedgerEntry]:
        """
        All entries of this ledger for a user, optionally for one partition.

        Malformed documents are skipped with a warning rather than failing
        the whole read; they show up in the logs for manual repair.
        """
        if partition is not ALL_PARTITIONS and partition is not None and not self.kind.is_partitioned:
            raise InvalidPoolError(f"The {self.kind.value} ledger has no partitions")

        entries = []
        for document in await self._store.list_documents(user_id, self.kind.collection):
            try:
                entry = self._model.model_validate({**document.data, "id": document.id})
            except ValidationError as e:
                logger.warning(
                    "malformed_ledger_entry",
                    ledger=self.kind.value,
                    user_id=user_id,
                    entry_id=document.id,
                    error=str(e),
                )
                continue
            if partition is ALL_PARTITIONS or entry.partition == partition:
                entries.append(entry)
        return entries

    async def get_entry(self, user_id: str, entry_id: str) -> Optional[LedgerEntry]:
        document = await self._store.get_document(user_id, self.kind.collection, entry_id)
        if document is None:
            return None
        return self._model.model_validate({**document.data, "id": document.id})

    async def append(
        self,
        user_id: str,
        entry: LedgerEntry,
        entry_id: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Persist a new entry and return it with its store id.

        Raises:
            DuplicateError: entry_id was given and already exists
            StorageError: the write failed
        """
        if entry.kind is not self.kind:
            raise ValueError(f"Cannot append a {entry.kind.value} entry to the {self.kind.value} ledger")

        new_id = await self._store.insert_document(
            user_id,
            self.kind.collection,
            entry.to_document(),
            doc_id=entry_id,
        )
        logger.debug(
            "ledger_entry_appended",
            ledger=self.kind.value,
            user_id=user_id,
            entry_id=new_id,
            type=entry.type,
            amount=str(entry.amount),
        )
        return entry.model_copy(update={"id": new_id})


class LedgerRegistry:
    """One LedgerRepository per ledger kind, sharing a store."""

    def __init__(self, store: DocumentStoreInterface):
        self._repositories = {kind: LedgerRepository(store, kind) for kind in LedgerKind}

    def for_kind(self, kind: LedgerKind) -> LedgerRepository:
        return self._repositories[LedgerKind(kind)]

    @property
    def savings(self) -> LedgerRepository:
        return self._repositories[LedgerKind.SAVINGS]

    @property
    def chama(self) -> LedgerRepository:
        return self._repositories[LedgerKind.CHAMA]

    @property
    def unallocated(self) -> LedgerRepository:
        return self._repositories[LedgerKind.UNALLOCATED]
