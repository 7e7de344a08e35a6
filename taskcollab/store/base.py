"""Abstract realtime document store.

The collaboration layer only talks to the store through the async primitives
defined here: ``write``, ``update``, ``transform``, ``batch_update``,
``delete``, ``get``, ``query`` and ``subscribe``.  Back-ends implement five
small storage hooks; listener fan-out, server timestamps and the
initialize/teardown lifecycle live in this base class.
"""

from __future__ import annotations

import abc
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from taskcollab.errors import StoreUnavailable

logger = logging.getLogger(__name__)

Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], None]
Unsubscribe = Callable[[], None]


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


class ServerClock:
    """Monotonically increasing UTC timestamps.

    Two writes in the same microsecond still get distinct, ordered stamps.
    """

    def __init__(self) -> None:
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            ts = datetime.now(timezone.utc)
            if self._last is not None and ts <= self._last:
                ts = self._last + timedelta(microseconds=1)
            self._last = ts
            return ts


@dataclass
class _Listener:
    collection: str
    where: dict[str, Any]
    callback: SnapshotCallback
    active: bool = True


class DocumentStore(abc.ABC):
    """Base class for all document store back-ends."""

    def __init__(self, clock: ServerClock | None = None) -> None:
        self._clock = clock or ServerClock()
        self._ready = False
        self._lock = threading.RLock()
        self._listeners: dict[int, _Listener] = {}
        self._next_listener_id = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        """Open the back-end.  Safe to call more than once."""
        if self._ready:
            return
        self._open()
        self._ready = True
        logger.debug("%s initialized", type(self).__name__)

    def teardown(self) -> None:
        """Drop every listener and close the back-end."""
        if not self._ready:
            return
        self._ready = False
        with self._lock:
            for listener in self._listeners.values():
                listener.active = False
            self._listeners.clear()
        self._close()
        logger.debug("%s torn down", type(self).__name__)

    def _require_ready(self) -> None:
        if not self._ready:
            raise StoreUnavailable(f"{type(self).__name__} is not initialized")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def write(
        self,
        collection: str,
        doc_id: Optional[str],
        doc: Document,
    ) -> Document:
        """Create or replace a document.  Returns the stored snapshot."""
        self._require_ready()
        with self._lock:
            existing = self._load(collection, doc_id) if doc_id else None
            now = self._clock.now().isoformat(timespec="microseconds")
            body = {k: v for k, v in doc.items() if k != "id"}
            body["created_at"] = existing["created_at"] if existing else now
            body["updated_at"] = now
            doc_id = doc_id or new_document_id()
            self._save(collection, doc_id, body)
        self._notify(collection)
        return {"id": doc_id, **body}

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
    ) -> Document | None:
        """Merge *fields* into an existing document.  None if it is missing."""
        return await self.transform(collection, doc_id, lambda body: {**body, **fields})

    async def transform(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Document], Document | None],
    ) -> Document | None:
        """Apply *fn* to one document as a single atomic mutation.

        *fn* receives a copy of the current body and returns the new body,
        or None to leave the document untouched.  Returns the stored
        snapshot, or None when the document does not exist.
        """
        self._require_ready()
        with self._lock:
            existing = self._load(collection, doc_id)
            if existing is None:
                return None
            new_body = fn(dict(existing))
            if new_body is None:
                return {"id": doc_id, **existing}
            new_body = {k: v for k, v in new_body.items() if k != "id"}
            new_body["created_at"] = existing["created_at"]
            new_body["updated_at"] = self._clock.now().isoformat(timespec="microseconds")
            self._save(collection, doc_id, new_body)
        self._notify(collection)
        return {"id": doc_id, **new_body}

    async def batch_update(
        self,
        collection: str,
        updates: dict[str, Document],
    ) -> int:
        """Merge fields into several documents at once.

        Returns the number of documents changed; missing ids are skipped.
        """
        self._require_ready()
        changed = 0
        with self._lock:
            now = self._clock.now().isoformat(timespec="microseconds")
            for doc_id, fields in updates.items():
                existing = self._load(collection, doc_id)
                if existing is None:
                    continue
                body = {**existing, **fields, "created_at": existing["created_at"], "updated_at": now}
                self._save(collection, doc_id, body)
                changed += 1
        if changed:
            self._notify(collection)
        return changed

    async def delete(self, collection: str, doc_id: str) -> bool:
        self._require_ready()
        with self._lock:
            removed = self._remove(collection, doc_id)
        if removed:
            self._notify(collection)
        return removed

    async def get(self, collection: str, doc_id: str) -> Document | None:
        self._require_ready()
        with self._lock:
            body = self._load(collection, doc_id)
        return {"id": doc_id, **body} if body is not None else None

    async def query(self, collection: str, **where: Any) -> list[Document]:
        """All documents in *collection* whose fields equal *where*."""
        self._require_ready()
        return self._select(collection, where)

    def subscribe(
        self,
        collection: str,
        where: dict[str, Any],
        callback: SnapshotCallback,
    ) -> Unsubscribe:
        """Deliver the matching snapshot now and after every change.

        Returns an idempotent unsubscribe function.
        """
        self._require_ready()
        with self._lock:
            listener_id = self._next_listener_id
            self._next_listener_id += 1
            listener = _Listener(collection, dict(where), callback)
            self._listeners[listener_id] = listener

        self._deliver(listener)

        def unsubscribe() -> None:
            listener.active = False
            with self._lock:
                self._listeners.pop(listener_id, None)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select(self, collection: str, where: dict[str, Any]) -> list[Document]:
        with self._lock:
            docs = self._scan(collection)
        return [
            d for d in docs
            if all(d.get(k) == v for k, v in where.items())
        ]

    def _notify(self, collection: str) -> None:
        with self._lock:
            listeners = [
                l for l in self._listeners.values() if l.collection == collection
            ]
        for listener in listeners:
            self._deliver(listener)

    def _deliver(self, listener: _Listener) -> None:
        if not listener.active or not self._ready:
            return
        snapshot = self._select(listener.collection, listener.where)
        try:
            listener.callback(snapshot)
        except Exception:
            logger.warning(
                "Snapshot listener on %s failed", listener.collection, exc_info=True,
            )

    # -- Storage hooks --------------------------------------------------------

    @abc.abstractmethod
    def _open(self) -> None:
        """Acquire back-end resources."""

    @abc.abstractmethod
    def _close(self) -> None:
        """Release back-end resources."""

    @abc.abstractmethod
    def _load(self, collection: str, doc_id: str) -> Document | None:
        """Return a copy of the stored body (without id), or None."""

    @abc.abstractmethod
    def _save(self, collection: str, doc_id: str, body: Document) -> None:
        """Insert or replace a document body."""

    @abc.abstractmethod
    def _remove(self, collection: str, doc_id: str) -> bool:
        """Remove a document.  Returns True if it existed."""

    @abc.abstractmethod
    def _scan(self, collection: str) -> list[Document]:
        """Copies of every document in *collection*, each including its id."""
