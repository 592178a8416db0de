"""
Design document module for docmodel.

This module keeps stored view definitions in step with their sources:
- View source roots and the first-match provider
- DesignDocument layout and signature computation
- The synchronizer deciding when to push

Invariants:
    - Signatures are deterministic and order-sensitive
    - Older view sources never overwrite a newer stored document
"""

from .document import DesignDocument, compute_signature
from .source import (
    DirectoryRoot,
    MappingRoot,
    ViewSource,
    ViewSourceProvider,
    ViewSourceRoot,
)
from .sync import (
    DesignDocumentSynchronizer,
    SyncOutcome,
    configure_design_documents,
    get_synchronizer,
    set_synchronizer,
)

__all__ = [
    # Document
    "DesignDocument",
    "compute_signature",
    # Sources
    "ViewSource",
    "ViewSourceRoot",
    "DirectoryRoot",
    "MappingRoot",
    "ViewSourceProvider",
    # Synchronizer
    "DesignDocumentSynchronizer",
    "SyncOutcome",
    "configure_design_documents",
    "get_synchronizer",
    "set_synchronizer",
]
