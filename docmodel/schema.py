"""
Entity schemas and the model registry.

Every model class owns exactly one EntitySchema, created when the class is
defined. The schema holds everything the class declares plus the state that
is shared by all instances of the type:
- Attribute defaults and declared views
- Design document name and identifier algorithm
- Bound bucket (falls back to the process default)
- Cached design document synchronization state

Invariants:
    - The design document name is computed once and never silently recomputed
    - Declarations are additive
    - Sync state is only written by the synchronizer, under the schema lock,
      and only counts for the bucket it was recorded against
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from .connection import get_default_bucket
from .ids import DEFAULT_ALGORITHM, get_generator
from .store.base import META_PREFIX, Bucket

if TYPE_CHECKING:
    from .model import Model

logger = logging.getLogger(__name__)


def canonical_name(qualname: str) -> str:
    """Derive a design document name from a class qualname.

    Example:
        >>> canonical_name("Blog.HTTPRequestLog")
        'blog_http_request_log'
    """
    name = qualname.rsplit("<locals>.", 1)[-1]
    name = name.replace(".", "_")
    name = re.sub(r"([A-Z\d]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
    return name.lower()


@dataclass(frozen=True)
class SyncState:
    """Last design document known to be current for this process.

    Attributes:
        signature: Signature of that document, None before the first sync
        timestamp: Its timestamp
    """

    signature: Optional[str] = None
    timestamp: int = 0


class EntitySchema:
    """Per-type metadata for a model.

    Example:
        >>> schema = EntitySchema("Post")
        >>> schema.declare_attribute("draft", default=False)
        >>> schema.declare_view("by_author")
        >>> schema.design_document_name()
        'post'
    """

    def __init__(
        self,
        type_name: str,
        model: Optional[type[Model]] = None,
        *,
        design_document: Optional[str] = None,
        id_algorithm: str = DEFAULT_ALGORITHM,
        optimistic_locking: bool = False,
    ) -> None:
        """Initialize a schema.

        Args:
            type_name: Qualified name of the model type
            model: Model class instances are built from
            design_document: Explicit design document name
            id_algorithm: Identifier algorithm tag
            optimistic_locking: Make save() a conditional write

        Raises:
            UnknownAlgorithmError: If id_algorithm is not registered
        """
        self.type_name = type_name
        self.model = model
        self.optimistic_locking = optimistic_locking
        self._attributes: Dict[str, Any] = {}
        self._views: List[str] = []
        self._design_document = str(design_document) if design_document else None
        self._id_algorithm = get_generator().check(id_algorithm)
        self._bucket: Optional[Bucket] = None
        self._sync_state = SyncState()
        self._synced_bucket: Optional[Bucket] = None
        self.lock = threading.Lock()

    def inherit(self, parent: EntitySchema) -> None:
        """Copy the parent's declarations into this schema."""
        self._attributes.update(parent._attributes)
        self._views.extend(parent._views)
        self.optimistic_locking = self.optimistic_locking or parent.optimistic_locking
        if parent._bucket is not None:
            self._bucket = parent._bucket

    def declare_attribute(self, name: str, default: Any = None) -> None:
        """Declare an attribute with its default value or default factory."""
        self._attributes[name] = default

    def declare_view(self, name: str) -> None:
        """Append a view name in declaration order."""
        self._views.append(name)

    def attributes(self) -> Dict[str, Any]:
        """Declared attribute names mapped to their defaults."""
        return dict(self._attributes)

    def views(self) -> List[str]:
        """Declared view names in declaration order."""
        return list(self._views)

    def has_attribute(self, name: str) -> bool:
        return name in self._attributes

    def default_for(self, name: str) -> Any:
        """Materialize the default of an attribute, calling factories."""
        default = self._attributes.get(name)
        return default() if callable(default) else default

    def design_document_name(self, name: Optional[str] = None) -> str:
        """Get, or set when name is given, the design document name."""
        if name:
            self._design_document = str(name)
        elif self._design_document is None:
            self._design_document = canonical_name(self.type_name)
        return self._design_document

    def identifier_algorithm(self, tag: Optional[str] = None) -> str:
        """Get, or set when tag is given, the identifier algorithm.

        Raises:
            UnknownAlgorithmError: If tag is not registered
        """
        if tag is not None:
            self._id_algorithm = get_generator().check(tag)
        return self._id_algorithm

    def bind(self, bucket: Bucket) -> None:
        """Bind this type to a bucket. The sync cache starts over."""
        with self.lock:
            self._bucket = bucket
            self._sync_state = SyncState()
            self._synced_bucket = None

    @property
    def bucket(self) -> Bucket:
        """Bound bucket, or the process default."""
        if self._bucket is None:
            return get_default_bucket()
        return self._bucket

    @property
    def sync_state(self) -> SyncState:
        return self._sync_state

    def sync_state_for(self, bucket: Bucket) -> SyncState:
        """Cached sync state if it was recorded against bucket, else an empty one."""
        if bucket is not self._synced_bucket:
            return SyncState()
        return self._sync_state

    def record_sync(self, state: SyncState, bucket: Bucket) -> None:
        """Replace the cached sync state for bucket. Callers must hold self.lock."""
        self._sync_state = state
        self._synced_bucket = bucket

    def wrap(self, row: Mapping[str, Any]) -> Model:
        """Build an instance from a view result row.

        A structured row value carrying "_id" overrides the row id. Fields
        of an included doc whose names start with "$" become meta entries,
        the rest become attributes.

        Args:
            row: Row with id, key, value and optionally doc

        Returns:
            Model instance
        """
        if self.model is None:
            raise TypeError(f"Schema '{self.type_name}' is not bound to a model class")

        reserved: Dict[str, Any] = {
            "id": row.get("id"),
            "_key": row.get("key"),
            "_value": row.get("value"),
        }
        value = row.get("value")
        if isinstance(value, Mapping) and value.get("_id"):
            reserved["id"] = value["_id"]

        fields: Dict[str, Any] = {}
        doc = row.get("doc")
        if doc:
            meta: Dict[str, Any] = {}
            for key, field_value in doc.items():
                if key.startswith(META_PREFIX):
                    meta[key[len(META_PREFIX):]] = field_value
                else:
                    fields[key] = field_value
            reserved["_meta"] = meta

        return self.model({**fields, **reserved})

    def __repr__(self) -> str:
        return (
            f"EntitySchema({self.type_name!r}, attributes={list(self._attributes)}, "
            f"views={self._views})"
        )


class ModelRegistry:
    """Registry of declared model classes.

    Model classes register themselves when defined. Tools such as the
    command line use the registry to find every model to synchronize.
    Redefining a class under the same qualified name replaces the entry.
    """

    def __init__(self) -> None:
        self._models: Dict[str, type[Model]] = {}
        self._lock = threading.Lock()

    def register(self, model: type[Model]) -> None:
        key = f"{model.__module__}.{model.__qualname__}"
        with self._lock:
            if key in self._models:
                logger.debug("Model re-registered", extra={"model": key})
            self._models[key] = model

    def get(self, name: str) -> Optional[type[Model]]:
        """Find a model by qualified name, class name or design document name."""
        with self._lock:
            models = list(self._models.items())
        for key, model in models:
            if name in (key, model.__qualname__, model.__name__):
                return model
        for _, model in models:
            if model.__schema__.design_document_name() == name:
                return model
        return None

    def models(self) -> Iterator[type[Model]]:
        with self._lock:
            models = list(self._models.values())
        yield from models

    def __len__(self) -> int:
        return len(self._models)


# Global registry
_global_registry: ModelRegistry | None = None
_registry_lock = threading.Lock()


def get_registry() -> ModelRegistry:
    """Get the global model registry."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = ModelRegistry()
        return _global_registry


def reset_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None
