"""
SQLite-backed bucket implementation.

One database file holds the documents, the design documents and the version
token counter. Any number of processes may open the same file; SQLite
serializes their writes, which is all the design document synchronizer
relies on.

Invariants:
    - One connection per operation
    - Writes that compare or allocate a version token run in BEGIN IMMEDIATE
    - The cas counter only ever increases, across all processes

Table schema:
    documents:
        - key TEXT PRIMARY KEY
        - body_json TEXT
        - flags INTEGER
        - cas INTEGER
        - expires_at REAL (Unix seconds, NULL = never)

    design_documents:
        - name TEXT PRIMARY KEY
        - body_json TEXT

    cas_counter:
        - id INTEGER PRIMARY KEY (always 1)
        - value INTEGER
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import AlreadyExistsError, ConflictError, NotFoundError
from .base import StoredValue, design_doc_name
from .views import ViewEngine

logger = logging.getLogger(__name__)


class SqliteBucket:
    """File-backed implementation of the Bucket protocol.

    Attributes:
        path: Database file
        views: Compiled views used by query_view()

    Example:
        >>> bucket = SqliteBucket("/tmp/blog.db")
        >>> bucket.add("post-1", {"title": "Hello"})
        1
    """

    def __init__(
        self,
        path: str | Path,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the bucket and create its schema.

        Args:
            path: SQLite database file
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self.views = ViewEngine()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            self._create_schema(conn)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                key TEXT PRIMARY KEY,
                body_json TEXT NOT NULL,
                flags INTEGER NOT NULL DEFAULT 0,
                cas INTEGER NOT NULL,
                expires_at REAL
            );

            CREATE TABLE IF NOT EXISTS design_documents (
                name TEXT PRIMARY KEY,
                body_json TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS cas_counter (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                value INTEGER NOT NULL
            );

            INSERT OR IGNORE INTO cas_counter (id, value) VALUES (1, 0);
        """)

    @staticmethod
    def _next_cas(conn: sqlite3.Connection) -> int:
        conn.execute("UPDATE cas_counter SET value = value + 1 WHERE id = 1")
        return conn.execute("SELECT value FROM cas_counter WHERE id = 1").fetchone()["value"]

    @staticmethod
    def _live_row(conn: sqlite3.Connection, key: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            """
            SELECT body_json, flags, cas FROM documents
            WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)
            """,
            (key, time.time()),
        ).fetchone()

    @staticmethod
    def _expiry(ttl: Optional[float]) -> Optional[float]:
        return time.time() + ttl if ttl else None

    def get(self, key: str, *, quiet: bool = False) -> Optional[StoredValue]:
        with self._get_connection() as conn:
            row = self._live_row(conn, key)
        if row is None:
            if quiet:
                return None
            raise NotFoundError(f"Key not found: {key}", key=key)
        return StoredValue(value=json.loads(row["body_json"]), flags=row["flags"], cas=row["cas"])

    def add(
        self,
        key: str,
        value: Any,
        *,
        flags: int = 0,
        ttl: Optional[float] = None,
    ) -> int:
        body = json.dumps(value)
        with self._transaction() as conn:
            if self._live_row(conn, key) is not None:
                raise AlreadyExistsError(f"Key already exists: {key}", key=key)
            cas = self._next_cas(conn)
            conn.execute(
                """
                INSERT OR REPLACE INTO documents (key, body_json, flags, cas, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (key, body, flags, cas, self._expiry(ttl)),
            )

        logger.debug("Document added", extra={"path": str(self.path), "key": key, "cas": cas})
        return cas

    def set(
        self,
        key: str,
        value: Any,
        *,
        cas: Optional[int] = None,
        flags: int = 0,
        ttl: Optional[float] = None,
    ) -> int:
        body = json.dumps(value)
        with self._transaction() as conn:
            if cas is not None:
                current = self._live_row(conn, key)
                if current is None:
                    raise NotFoundError(f"Key not found: {key}", key=key)
                if current["cas"] != cas:
                    raise ConflictError(
                        f"Version mismatch for {key}",
                        key=key,
                        expected_cas=cas,
                        actual_cas=current["cas"],
                    )
            new_cas = self._next_cas(conn)
            conn.execute(
                """
                INSERT OR REPLACE INTO documents (key, body_json, flags, cas, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (key, body, flags, new_cas, self._expiry(ttl)),
            )

        logger.debug("Document set", extra={"path": str(self.path), "key": key, "cas": new_cas})
        return new_cas

    def delete(self, key: str, *, quiet: bool = False) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                (key, time.time()),
            )
            deleted = cursor.rowcount > 0

        if not deleted and not quiet:
            raise NotFoundError(f"Key not found: {key}", key=key)
        if deleted:
            logger.debug("Document deleted", extra={"path": str(self.path), "key": key})
        return deleted

    def get_design_doc(self, name: str) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT body_json FROM design_documents WHERE name = ?", (name,)
            ).fetchone()
        return json.loads(row["body_json"]) if row is not None else None

    def save_design_doc(self, doc: Dict[str, Any]) -> None:
        name = design_doc_name(doc["_id"])
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO design_documents (name, body_json) VALUES (?, ?)",
                (name, json.dumps(doc)),
            )
        logger.debug("Design document saved", extra={"path": str(self.path), "design": name})

    def query_view(self, design: str, view: str, **params: Any) -> Iterator[Dict[str, Any]]:
        design_doc = self.get_design_doc(design)
        if design_doc is None:
            raise NotFoundError(
                f"Design document not found: {design}", key=design, resource_type="design"
            )
        if view not in design_doc.get("views", {}):
            raise NotFoundError(
                f"View not found: {design}/{view}", key=view, resource_type="view"
            )
        compiled = self.views.get(design, view)
        if compiled is None:
            raise NotFoundError(
                f"No map function registered for {design}/{view}", key=view, resource_type="view"
            )

        yield from self.views.execute(compiled, self._snapshot(), params)

    def _snapshot(self) -> List[Tuple[str, StoredValue]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT key, body_json, flags, cas FROM documents
                WHERE expires_at IS NULL OR expires_at > ?
                ORDER BY key
                """,
                (time.time(),),
            ).fetchall()
        return [
            (row["key"], StoredValue(json.loads(row["body_json"]), row["flags"], row["cas"]))
            for row in rows
        ]
