"""
Base protocol and types for the document store.

This module defines the Bucket protocol that every store backend must
implement. The mapper only talks to a bucket through this protocol; the
network transport and query engine of a real server live behind it.

Invariants:
    - Every successful write returns a new, strictly larger version token (cas)
    - add() never overwrites, set() without cas always overwrites
    - A quiet get/delete reports absence instead of raising
    - Included view documents carry store metadata under "$"-prefixed keys

How to change safely:
    - Protocol changes require updating all implementations
    - Keep error semantics identical across backends
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Protocol, runtime_checkable

DESIGN_PREFIX = "_design/"

# Prefix marking store metadata inside included view documents
META_PREFIX = "$"


@dataclass(frozen=True)
class StoredValue:
    """A value fetched from the store.

    Attributes:
        value: Decoded document body
        flags: Opaque client flags stored alongside the value
        cas: Version token of the stored revision
    """

    value: Any
    flags: int
    cas: int


def design_doc_name(doc_id: str) -> str:
    """Strip the _design/ prefix from a design document id."""
    if doc_id.startswith(DESIGN_PREFIX):
        return doc_id[len(DESIGN_PREFIX):]
    return doc_id


@runtime_checkable
class Bucket(Protocol):
    """Protocol for document store backends.

    Example:
        >>> bucket = InMemoryBucket()
        >>> cas = bucket.add("post-1", {"title": "Hello"})
        >>> bucket.get("post-1").value
        {'title': 'Hello'}
    """

    @abstractmethod
    def get(self, key: str, *, quiet: bool = False) -> Optional[StoredValue]:
        """Fetch a document.

        Args:
            key: Document key
            quiet: Return None instead of raising on a miss

        Raises:
            NotFoundError: If the key is missing and quiet is False
        """
        ...

    @abstractmethod
    def add(
        self,
        key: str,
        value: Any,
        *,
        flags: int = 0,
        ttl: Optional[float] = None,
    ) -> int:
        """Store a document only if the key is free.

        Returns:
            Version token of the new revision

        Raises:
            AlreadyExistsError: If the key exists
        """
        ...

    @abstractmethod
    def set(
        self,
        key: str,
        value: Any,
        *,
        cas: Optional[int] = None,
        flags: int = 0,
        ttl: Optional[float] = None,
    ) -> int:
        """Store a document, overwriting any current revision.

        When cas is given the write only succeeds if it matches the stored
        version token.

        Returns:
            Version token of the new revision

        Raises:
            ConflictError: If cas is given and does not match
            NotFoundError: If cas is given and the key is missing
        """
        ...

    @abstractmethod
    def delete(self, key: str, *, quiet: bool = False) -> bool:
        """Remove a document.

        Returns:
            True if a document was removed

        Raises:
            NotFoundError: If the key is missing and quiet is False
        """
        ...

    @abstractmethod
    def get_design_doc(self, name: str) -> Optional[Dict[str, Any]]:
        """Fetch a design document by name (without _design/), or None."""
        ...

    @abstractmethod
    def save_design_doc(self, doc: Dict[str, Any]) -> None:
        """Store a design document under doc["_id"], overwriting."""
        ...

    @abstractmethod
    def query_view(self, design: str, view: str, **params: Any) -> Iterator[Dict[str, Any]]:
        """Execute a stored view.

        Args:
            design: Design document name
            view: View name
            **params: Query parameters (include_docs, key, limit, ...)

        Yields:
            Rows with id, key, value and optionally doc

        Raises:
            NotFoundError: If the design document or view is not stored
        """
        ...
