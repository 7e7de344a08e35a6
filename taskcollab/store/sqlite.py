"""SQLiteDocumentStore — durable single-file document store."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from taskcollab.errors import StoreUnavailable
from taskcollab.store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS documents (
    seq         INTEGER PRIMARY KEY AUTOINCREMENT,
    collection  TEXT    NOT NULL,
    doc_id      TEXT    NOT NULL,
    body        TEXT    NOT NULL,
    UNIQUE (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
"""


class SQLiteDocumentStore(DocumentStore):
    """Documents stored as JSON bodies in one SQLite table.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Defaults to ``':memory:'``.
    """

    def __init__(self, db_path: str | Path = ":memory:", **kwargs) -> None:
        super().__init__(**kwargs)
        self._db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    def _open(self) -> None:
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailable(f"SQLite store at {self._db_path} is closed")
        return self._conn

    def _load(self, collection: str, doc_id: str) -> Document | None:
        row = self._db.execute(
            "SELECT body FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        return json.loads(row[0]) if row else None

    def _save(self, collection: str, doc_id: str, body: Document) -> None:
        # Upsert keeps the original seq, so scan order stays insertion order.
        self._db.execute(
            "INSERT INTO documents (collection, doc_id, body) VALUES (?, ?, ?) "
            "ON CONFLICT (collection, doc_id) DO UPDATE SET body = excluded.body",
            (collection, doc_id, json.dumps(body)),
        )
        self._db.commit()

    def _remove(self, collection: str, doc_id: str) -> bool:
        cur = self._db.execute(
            "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )
        self._db.commit()
        return cur.rowcount > 0

    def _scan(self, collection: str) -> list[Document]:
        rows = self._db.execute(
            "SELECT doc_id, body FROM documents WHERE collection = ? ORDER BY seq",
            (collection,),
        ).fetchall()
        return [{"id": r[0], **json.loads(r[1])} for r in rows]
