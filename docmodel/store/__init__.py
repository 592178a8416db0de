"""
Store module for docmodel.

This module provides the document store abstraction:
- Bucket protocol consumed by models, views and the synchronizer
- InMemoryBucket for tests and single-process use
- SqliteBucket for a file shared between processes
- ViewEngine running compiled views in-process

Invariants:
    - Backends raise the same errors for the same situations
    - Version tokens are strictly increasing per bucket
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import DESIGN_PREFIX, META_PREFIX, Bucket, StoredValue, design_doc_name
from .memory import InMemoryBucket
from .sqlite import SqliteBucket
from .views import ViewEngine, collation_key

if TYPE_CHECKING:
    from ..config import Settings


def create_bucket(settings: "Settings") -> Bucket:
    """Factory function to create a bucket from configuration.

    Args:
        settings: docmodel settings

    Returns:
        Bucket implementation selected by settings.store_backend

    Raises:
        ValueError: If backend is not supported
    """
    if settings.store_backend == "memory":
        return InMemoryBucket()
    elif settings.store_backend == "sqlite":
        return SqliteBucket(settings.sqlite_path)
    else:
        raise ValueError(f"Unsupported store backend: {settings.store_backend}")


__all__ = [
    "Bucket",
    "StoredValue",
    "DESIGN_PREFIX",
    "META_PREFIX",
    "design_doc_name",
    "InMemoryBucket",
    "SqliteBucket",
    "ViewEngine",
    "collation_key",
    "create_bucket",
]
