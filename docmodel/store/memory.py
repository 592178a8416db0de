"""
In-memory bucket implementation.

This module provides a dict-backed bucket for:
- Unit tests
- Local development without a running store
- Single-process applications

Invariants:
    - All data is lost on process exit
    - Values are JSON-encoded on write, so readers never share objects
    - Thread-safe for concurrent access

Example:
    >>> bucket = InMemoryBucket()
    >>> cas = bucket.set("k", {"a": 1})
    >>> bucket.get("k")
    StoredValue(value={'a': 1}, flags=0, cas=1)
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import AlreadyExistsError, ConflictError, NotFoundError
from .base import StoredValue, design_doc_name
from .views import ViewEngine

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    body: str
    flags: int
    cas: int
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def stored(self) -> StoredValue:
        return StoredValue(value=json.loads(self.body), flags=self.flags, cas=self.cas)


class InMemoryBucket:
    """In-memory implementation of the Bucket protocol.

    Attributes:
        name: Bucket name, informational
        views: Compiled views used by query_view()

    Thread safety:
        A single lock guards documents, design documents and the cas counter.
    """

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self.views = ViewEngine()
        self._docs: Dict[str, _Entry] = {}
        self._design_docs: Dict[str, str] = {}
        self._cas = 0
        self._lock = threading.RLock()

    def _next_cas(self) -> int:
        self._cas += 1
        return self._cas

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._docs.get(key)
        if entry is not None and entry.expired(time.time()):
            del self._docs[key]
            return None
        return entry

    @staticmethod
    def _expiry(ttl: Optional[float]) -> Optional[float]:
        return time.time() + ttl if ttl else None

    def get(self, key: str, *, quiet: bool = False) -> Optional[StoredValue]:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                if quiet:
                    return None
                raise NotFoundError(f"Key not found: {key}", key=key)
            return entry.stored()

    def add(
        self,
        key: str,
        value: Any,
        *,
        flags: int = 0,
        ttl: Optional[float] = None,
    ) -> int:
        body = json.dumps(value)
        with self._lock:
            if self._live(key) is not None:
                raise AlreadyExistsError(f"Key already exists: {key}", key=key)
            cas = self._next_cas()
            self._docs[key] = _Entry(body, flags, cas, self._expiry(ttl))

        logger.debug("Document added", extra={"bucket": self.name, "key": key, "cas": cas})
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
        with self._lock:
            if cas is not None:
                current = self._live(key)
                if current is None:
                    raise NotFoundError(f"Key not found: {key}", key=key)
                if current.cas != cas:
                    raise ConflictError(
                        f"Version mismatch for {key}",
                        key=key,
                        expected_cas=cas,
                        actual_cas=current.cas,
                    )
            new_cas = self._next_cas()
            self._docs[key] = _Entry(body, flags, new_cas, self._expiry(ttl))

        logger.debug("Document set", extra={"bucket": self.name, "key": key, "cas": new_cas})
        return new_cas

    def delete(self, key: str, *, quiet: bool = False) -> bool:
        with self._lock:
            if self._live(key) is None:
                if quiet:
                    return False
                raise NotFoundError(f"Key not found: {key}", key=key)
            del self._docs[key]

        logger.debug("Document deleted", extra={"bucket": self.name, "key": key})
        return True

    def get_design_doc(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            body = self._design_docs.get(name)
        return json.loads(body) if body is not None else None

    def save_design_doc(self, doc: Dict[str, Any]) -> None:
        name = design_doc_name(doc["_id"])
        with self._lock:
            self._design_docs[name] = json.dumps(doc)
        logger.debug("Design document saved", extra={"bucket": self.name, "design": name})

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
        now = time.time()
        with self._lock:
            return [
                (key, entry.stored())
                for key, entry in sorted(self._docs.items())
                if not entry.expired(now)
            ]

    def __len__(self) -> int:
        now = time.time()
        with self._lock:
            return sum(1 for e in self._docs.values() if not e.expired(now))
