"""NullDocumentStore — stands in when no store is configured."""

from __future__ import annotations

import logging

from taskcollab.errors import StoreUnavailable
from taskcollab.store.base import Document, DocumentStore

logger = logging.getLogger(__name__)


class NullDocumentStore(DocumentStore):
    """Never becomes ready: every operation raises StoreUnavailable.

    Adapters catch that and degrade to local-only no-ops.
    """

    def initialize(self) -> None:
        logger.warning("No document store configured, running local-only")

    def _open(self) -> None:
        raise StoreUnavailable("no document store configured")

    def _close(self) -> None:
        pass

    def _load(self, collection: str, doc_id: str) -> Document | None:
        return None

    def _save(self, collection: str, doc_id: str, body: Document) -> None:
        raise StoreUnavailable("no document store configured")

    def _remove(self, collection: str, doc_id: str) -> bool:
        return False

    def _scan(self, collection: str) -> list[Document]:
        return []
