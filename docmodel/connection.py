"""
Process-wide default bucket.

Models that were never bound to a bucket resolve this one lazily on first
use. It is built from Settings (environment) unless connect() or
set_default_bucket() installed one first.

Example:
    >>> from docmodel import connect
    >>> bucket = connect(store_backend="sqlite", sqlite_path="/tmp/blog.db")
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from .config import Settings
from .store import Bucket, create_bucket

logger = logging.getLogger(__name__)

_default_bucket: Bucket | None = None
_bucket_lock = threading.Lock()


def connect(settings: Settings | None = None, **overrides: Any) -> Bucket:
    """Create a bucket and install it as the process default.

    Args:
        settings: Settings to use (loaded from environment if omitted)
        **overrides: Individual setting overrides

    Returns:
        The new default bucket
    """
    global _default_bucket
    if settings is None:
        settings = Settings(**overrides)
    elif overrides:
        settings = settings.model_copy(update=overrides)

    bucket = create_bucket(settings)
    with _bucket_lock:
        _default_bucket = bucket
    logger.info("Default bucket connected", extra={"store_backend": settings.store_backend})
    return bucket


def get_default_bucket() -> Bucket:
    """Get the default bucket, connecting from the environment if needed."""
    global _default_bucket
    with _bucket_lock:
        if _default_bucket is None:
            _default_bucket = create_bucket(Settings())
        return _default_bucket


def set_default_bucket(bucket: Bucket) -> None:
    """Install an existing bucket as the process default."""
    global _default_bucket
    with _bucket_lock:
        _default_bucket = bucket


def reset_default_bucket() -> None:
    """Forget the default bucket (for testing only)."""
    global _default_bucket
    with _bucket_lock:
        _default_bucket = None
