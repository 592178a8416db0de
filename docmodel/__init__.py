"""
docmodel - Declarative document models over a key-value document store.

This package maps Python classes onto JSON documents:
- Model base class with attribute() and view() declarations
- Identifier generation (sequential, utc_random, random)
- Design document synchronization from view source files
- View queries that turn result rows back into model instances

Example:
    >>> from docmodel import Model, attribute, view, configure_design_documents
    >>>
    >>> class Post(Model):
    ...     title = attribute()
    ...     draft = attribute(default=False)
    ...     by_author = view()
    >>>
    >>> configure_design_documents("app/views")
    >>> Post.ensure_design_document()
    >>> post = Post.new(title="Hello").create()
    >>> [p.title for p in Post.by_author(key="alice")]

Invariants:
    - One schema per model class, created at class definition
    - No identity map: two loads of one id give two objects
    - Store errors propagate unchanged

Version: 0.1.0
"""

__version__ = "0.1.0"

from .config import Settings, setup_logging
from .connection import connect, get_default_bucket, reset_default_bucket, set_default_bucket
from .design import (
    DesignDocument,
    DesignDocumentSynchronizer,
    DirectoryRoot,
    MappingRoot,
    SyncOutcome,
    ViewSourceProvider,
    configure_design_documents,
    get_synchronizer,
    set_synchronizer,
)
from .errors import (
    AlreadyExistsError,
    ConfigurationMissingError,
    ConflictError,
    DocModelError,
    MissingIdentifierError,
    NotFoundError,
    UnknownAlgorithmError,
)
from .ids import IdGenerator, get_generator
from .model import DocumentMeta, Model, attribute, view
from .schema import EntitySchema, ModelRegistry, get_registry
from .store import Bucket, InMemoryBucket, SqliteBucket, create_bucket
from .view import View

__all__ = [
    # Version
    "__version__",
    # Models
    "Model",
    "attribute",
    "view",
    "DocumentMeta",
    "View",
    # Schema
    "EntitySchema",
    "ModelRegistry",
    "get_registry",
    # Identifiers
    "IdGenerator",
    "get_generator",
    # Design documents
    "DesignDocument",
    "DesignDocumentSynchronizer",
    "DirectoryRoot",
    "MappingRoot",
    "SyncOutcome",
    "ViewSourceProvider",
    "configure_design_documents",
    "get_synchronizer",
    "set_synchronizer",
    # Store
    "Bucket",
    "InMemoryBucket",
    "SqliteBucket",
    "create_bucket",
    "connect",
    "get_default_bucket",
    "set_default_bucket",
    "reset_default_bucket",
    # Configuration
    "Settings",
    "setup_logging",
    # Errors
    "DocModelError",
    "NotFoundError",
    "AlreadyExistsError",
    "MissingIdentifierError",
    "UnknownAlgorithmError",
    "ConfigurationMissingError",
    "ConflictError",
]
