"""
Design document synchronization.

Keeps the stored design document of a model consistent with its view
sources while avoiding redundant writes, both across repeated calls in one
process and across processes sharing one store.

Algorithm (ensure_current):
    1. Resolve map/reduce sources for every declared view.
    2. signature = md5 over all source texts in declaration order.
    3. timestamp = newest source modification time.
    4. If signature equals the one cached for this bucket and timestamp is
       not newer than the cached one, stop: this process already knows the
       document is current. No store calls are made.
    5. Read the stored design document.
    6. Push the candidate if nothing is stored, or if the stored signature
       differs and the candidate timestamp is strictly newer.
    7. Cache signature and timestamp of whichever document is authoritative.

Invariants:
    - A process with older view sources never overwrites a newer document
    - Steps 4-7 run under the schema lock, so the cache is never torn
    - Store errors propagate unchanged, nothing is retried here

Concurrency:
    Two processes with stale caches may both push. The store serializes
    the writes and the timestamp guard makes every process converge on the
    newest document. No distributed lock is taken.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config import Settings
from ..schema import EntitySchema, SyncState
from .document import DesignDocument, compute_signature
from .source import KINDS, ViewSourceProvider

logger = logging.getLogger(__name__)


class SyncOutcome(Enum):
    """Result of one ensure_current() call."""

    UNCHANGED = "unchanged"
    PUSHED = "pushed"
    ADOPTED = "adopted"


class DesignDocumentSynchronizer:
    """Builds design documents from view sources and pushes them when needed.

    Example:
        >>> sync = DesignDocumentSynchronizer(ViewSourceProvider.from_paths(["views"]))
        >>> sync.ensure_current(Post.__schema__)
        <SyncOutcome.PUSHED: 'pushed'>
    """

    def __init__(self, provider: ViewSourceProvider) -> None:
        self.provider = provider

    def build(self, schema: EntitySchema) -> DesignDocument:
        """Assemble the candidate design document without touching the store.

        Raises:
            ConfigurationMissingError: If the provider has no roots
        """
        self.provider.require_roots()
        name = schema.design_document_name()
        views: dict[str, dict[str, str]] = {}
        texts: list[str] = []
        mtime = 0

        for view in schema.views():
            functions = views.setdefault(view, {})
            for kind in KINDS:
                source = self.provider.resolve(name, view, kind)
                if source is None:
                    continue
                functions[kind] = source.text
                texts.append(source.text)
                mtime = max(mtime, source.mtime)
            if "map" not in functions:
                logger.warning(
                    "No map function found for view",
                    extra={"design": name, "view": view},
                )

        return DesignDocument(
            name=name,
            views=views,
            signature=compute_signature(texts),
            timestamp=mtime,
        )

    def ensure_current(self, schema: EntitySchema) -> SyncOutcome:
        """Make sure the store holds a current design document for schema.

        Returns:
            UNCHANGED if the local cache short-circuited, PUSHED if the
            candidate was written, ADOPTED if the stored document was kept

        Raises:
            ConfigurationMissingError: If the provider has no roots
        """
        candidate = self.build(schema)
        bucket = schema.bucket

        with schema.lock:
            cached = schema.sync_state_for(bucket)
            if candidate.signature == cached.signature and candidate.timestamp <= cached.timestamp:
                logger.debug(
                    "Design document known current",
                    extra={"design": candidate.name, "signature": candidate.signature},
                )
                return SyncOutcome.UNCHANGED

            raw = bucket.get_design_doc(candidate.name)
            stored = DesignDocument.from_dict(raw) if raw is not None else None

            if stored is None or (
                stored.signature != candidate.signature
                and candidate.timestamp > stored.timestamp
            ):
                bucket.save_design_doc(candidate.to_dict())
                schema.record_sync(SyncState(candidate.signature, candidate.timestamp), bucket)
                logger.info(
                    "Design document pushed",
                    extra={
                        "design": candidate.name,
                        "signature": candidate.signature,
                        "timestamp": candidate.timestamp,
                        "replaced": stored.signature if stored else None,
                    },
                )
                return SyncOutcome.PUSHED

            if stored.signature == candidate.signature:
                schema.record_sync(
                    SyncState(stored.signature, max(stored.timestamp, candidate.timestamp)),
                    bucket,
                )
                logger.debug(
                    "Stored design document matches view sources",
                    extra={"design": candidate.name, "signature": stored.signature},
                )
            else:
                schema.record_sync(SyncState(stored.signature, stored.timestamp), bucket)
                logger.warning(
                    "Stored design document is newer than local view sources, keeping it",
                    extra={
                        "design": candidate.name,
                        "stored_timestamp": stored.timestamp,
                        "local_timestamp": candidate.timestamp,
                    },
                )
            return SyncOutcome.ADOPTED


# Global synchronizer
_global_synchronizer: DesignDocumentSynchronizer | None = None
_synchronizer_lock = threading.Lock()


def get_synchronizer() -> DesignDocumentSynchronizer:
    """Get the process-wide synchronizer, built from Settings if needed."""
    global _global_synchronizer
    with _synchronizer_lock:
        if _global_synchronizer is None:
            paths = Settings().design_documents_paths
            _global_synchronizer = DesignDocumentSynchronizer(
                ViewSourceProvider.from_paths(paths)
            )
        return _global_synchronizer


def set_synchronizer(synchronizer: Optional[DesignDocumentSynchronizer]) -> None:
    """Install (or clear, with None) the process-wide synchronizer."""
    global _global_synchronizer
    with _synchronizer_lock:
        _global_synchronizer = synchronizer


def configure_design_documents(*paths: str | Path) -> DesignDocumentSynchronizer:
    """Install a synchronizer over directory roots searched in the given order."""
    synchronizer = DesignDocumentSynchronizer(ViewSourceProvider.from_paths(paths))
    set_synchronizer(synchronizer)
    return synchronizer

