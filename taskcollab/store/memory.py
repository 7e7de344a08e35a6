"""MemoryDocumentStore — in-process store, used for local mode and tests."""

from __future__ import annotations

import copy

from taskcollab.store.base import Document, DocumentStore


class MemoryDocumentStore(DocumentStore):
    """Documents kept in nested dicts, in insertion order."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._collections: dict[str, dict[str, Document]] = {}

    def _open(self) -> None:
        pass

    def _close(self) -> None:
        self._collections.clear()

    def _load(self, collection: str, doc_id: str) -> Document | None:
        body = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(body) if body is not None else None

    def _save(self, collection: str, doc_id: str, body: Document) -> None:
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(body)

    def _remove(self, collection: str, doc_id: str) -> bool:
        return self._collections.get(collection, {}).pop(doc_id, None) is not None

    def _scan(self, collection: str) -> list[Document]:
        return [
            {"id": doc_id, **copy.deepcopy(body)}
            for doc_id, body in self._collections.get(collection, {}).items()
        ]
