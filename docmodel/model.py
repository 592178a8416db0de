"""
Declarative document models.

A model is a subclass of Model whose class body declares attributes and
views. Declarations are collected once, when the class is created, into the
class's EntitySchema; instances then read and write through data
descriptors backed by a plain attribute mapping.

Lifecycle:
    transient (no id) --create/save--> persisted --delete--> deleted (no id)

Invariants:
    - id is the sole identity, there is no identity map
    - Identifiers are only assigned by the identifier generator, at create time
    - Stored documents carry a "type" field equal to the design document name
    - Only declared attributes are stored

Example:
    >>> class Post(Model):
    ...     title = attribute()
    ...     draft = attribute(default=False)
    ...     by_author = view()
    >>> post = Post.new(title="Hello").create()
    >>> Post.find(post.id).draft
    False
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional

from .config import Settings
from .design.sync import DesignDocumentSynchronizer, SyncOutcome, get_synchronizer
from .errors import MissingIdentifierError
from .ids import DEFAULT_ALGORITHM, get_generator
from .schema import EntitySchema, get_registry
from .store import Bucket, StoredValue, create_bucket
from .view import View

logger = logging.getLogger(__name__)


class Attribute:
    """Data descriptor for one declared attribute."""

    def __init__(self, default: Any = None) -> None:
        self.default = default
        self.name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional[Model], owner: type) -> Any:
        if instance is None:
            return self
        return instance._read(self.name)

    def __set__(self, instance: Model, value: Any) -> None:
        instance._values[self.name] = value

    def __repr__(self) -> str:
        return f"attribute(name={self.name!r}, default={self.default!r})"


class ViewDef:
    """Declares a view; reading it from the class yields a query builder."""

    def __init__(self) -> None:
        self.name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional[Model], owner: type[Model]) -> Callable[..., View]:
        return functools.partial(owner.view_query, self.name)


def attribute(default: Any = None) -> Any:
    """Declare a model attribute.

    Args:
        default: Default value, or a callable invoked per instance on first read
    """
    return Attribute(default)


def view() -> Any:
    """Declare a model view. Calling it on the class returns a View."""
    return ViewDef()


@dataclass
class DocumentMeta:
    """Store metadata of a loaded document.

    Attributes:
        cas: Version token of the revision last read or written
        flags: Client flags stored with the document
        extra: Any other metadata delivered with an included view document
    """

    cas: Optional[int] = None
    flags: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DocumentMeta:
        extra = {k: v for k, v in data.items() if k not in ("cas", "flags")}
        return cls(cas=data.get("cas"), flags=data.get("flags"), extra=extra)


class _AttributesAccessor:
    """Model.attributes() lists declarations, instance.attributes holds values."""

    def __get__(self, instance: Optional[Model], owner: type[Model]) -> Any:
        if instance is None:
            return owner.__schema__.attributes
        return {name: instance._read(name) for name in owner.__schema__.attributes()}


class Model:
    """Base class for document models.

    Class keywords:
        design_document: Explicit design document name
        id_algorithm: Identifier algorithm tag (default "sequential")
        optimistic_locking: Make save() compare version tokens

    Attributes:
        id: Document identifier, None while transient
        meta: DocumentMeta when loaded from the store or a view, else None
        raw_key: Emitted key when built from a view row
        raw_value: Emitted value when built from a view row
    """

    __schema__: ClassVar[EntitySchema]

    attributes = _AttributesAccessor()

    def __init_subclass__(
        cls,
        *,
        design_document: Optional[str] = None,
        id_algorithm: Optional[str] = None,
        optimistic_locking: Optional[bool] = None,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        parent: Optional[EntitySchema] = getattr(cls, "__schema__", None)

        schema = EntitySchema(
            cls.__qualname__,
            cls,
            design_document=design_document,
            id_algorithm=id_algorithm or (parent.identifier_algorithm() if parent else DEFAULT_ALGORITHM),
            optimistic_locking=bool(optimistic_locking),
        )
        if parent is not None:
            schema.inherit(parent)
            if optimistic_locking is False:
                schema.optimistic_locking = False

        for name, member in vars(cls).items():
            if isinstance(member, Attribute):
                schema.declare_attribute(name, member.default)
            elif isinstance(member, ViewDef):
                schema.declare_view(name)

        cls.__schema__ = schema
        get_registry().register(cls)
        logger.debug(
            "Model declared",
            extra={
                "model": cls.__qualname__,
                "attributes": list(schema.attributes()),
                "views": schema.views(),
            },
        )

    def __init__(self, attrs: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:
        values = {**(attrs or {}), **kwargs}
        self.id: Optional[str] = values.pop("id", None)
        self.raw_key: Any = values.pop("_key", None)
        self.raw_value: Any = values.pop("_value", None)
        meta = values.pop("_meta", None)
        self.meta: Optional[DocumentMeta] = DocumentMeta.from_mapping(meta) if meta is not None else None
        self._values: Dict[str, Any] = {}
        self.update_attributes(values)

    @classmethod
    def new(cls, attrs: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Model:
        """Build a transient instance."""
        return cls(attrs, **kwargs)

    # Declarations

    @classmethod
    def declare_attribute(cls, name: str, default: Any = None) -> None:
        """Declare an attribute after class creation."""
        descriptor = Attribute(default)
        descriptor.__set_name__(cls, name)
        setattr(cls, name, descriptor)
        cls.__schema__.declare_attribute(name, default)

    @classmethod
    def declare_view(cls, name: str) -> None:
        """Declare a view after class creation."""
        descriptor = ViewDef()
        descriptor.__set_name__(cls, name)
        setattr(cls, name, descriptor)
        cls.__schema__.declare_view(name)

    @classmethod
    def design_document(cls, name: Optional[str] = None) -> str:
        return cls.__schema__.design_document_name(name)

    @classmethod
    def id_algorithm(cls, tag: Optional[str] = None) -> str:
        return cls.__schema__.identifier_algorithm(tag)

    @classmethod
    def views(cls) -> list[str]:
        return cls.__schema__.views()

    @classmethod
    def bind(cls, bucket: Bucket) -> None:
        """Use bucket for this model instead of the process default."""
        cls.__schema__.bind(bucket)

    @classmethod
    def connect(cls, **overrides: Any) -> Bucket:
        """Create a bucket from Settings plus overrides and bind this model to it."""
        bucket = create_bucket(Settings(**overrides))
        cls.bind(bucket)
        return bucket

    @classmethod
    def ensure_design_document(
        cls, synchronizer: Optional[DesignDocumentSynchronizer] = None
    ) -> SyncOutcome:
        """Push the design document if the view sources changed."""
        return (synchronizer or get_synchronizer()).ensure_current(cls.__schema__)

    # Queries

    @classmethod
    def view_query(cls, name: str, **params: Any) -> View:
        """Build a query over one of this model's views.

        Included documents are requested unless include_docs is passed.
        """
        params.setdefault("include_docs", True)
        schema = cls.__schema__
        return View(
            schema.bucket,
            schema.design_document_name(),
            name,
            wrapper=cls,
            **params,
        )

    @classmethod
    def wrap(cls, row: Mapping[str, Any]) -> Model:
        return cls.__schema__.wrap(row)

    @classmethod
    def find(cls, id: Optional[str]) -> Model:
        """Load a document, failing if it does not exist.

        Raises:
            MissingIdentifierError: If id is empty
            NotFoundError: If the document does not exist
        """
        if not id:
            raise MissingIdentifierError()
        return cls._from_stored(id, cls.__schema__.bucket.get(id))

    @classmethod
    def find_by_id(cls, id: Optional[str]) -> Optional[Model]:
        """Load a document, or return None if it does not exist."""
        if not id:
            return None
        stored = cls.__schema__.bucket.get(id, quiet=True)
        if stored is None:
            return None
        return cls._from_stored(id, stored)

    @classmethod
    def exists_by_id(cls, id: Optional[str]) -> bool:
        if not id:
            return False
        return cls.__schema__.bucket.get(id, quiet=True) is not None

    @classmethod
    def _from_stored(cls, id: str, stored: StoredValue) -> Model:
        value = stored.value if isinstance(stored.value, Mapping) else {}
        return cls({**value, "id": id, "_meta": {"cas": stored.cas, "flags": stored.flags}})

    # Instance state

    @property
    def is_new(self) -> bool:
        """True while no identifier is assigned. Says nothing about the store."""
        return not self.id

    def _read(self, name: str) -> Any:
        if name not in self._values:
            self._values[name] = self.__schema__.default_for(name)
        return self._values[name]

    def update_attributes(self, attrs: Mapping[str, Any]) -> Model:
        """Assign declared attributes from attrs. An "id" key replaces the id."""
        schema = self.__schema__
        for name, value in attrs.items():
            if name == "id":
                self.id = value
            elif schema.has_attribute(name):
                self._values[name] = value
        return self

    def to_document(self) -> Dict[str, Any]:
        """Body written to the store."""
        document = dict(self.attributes)
        document["type"] = self.__schema__.design_document_name()
        return document

    # Persistence

    def create(self, **options: Any) -> Model:
        """Write this document, failing if the id is taken.

        An id is generated first if none is set. A generated id is cleared
        again if the write fails, so the instance stays new.

        Args:
            **options: Passed to Bucket.add (flags, ttl)

        Raises:
            AlreadyExistsError: If a document with this id exists
        """
        schema = self.__schema__
        generated = not self.id
        if generated:
            self.id = get_generator().next(1, schema.identifier_algorithm())
        try:
            cas = schema.bucket.add(self.id, self.to_document(), **options)
        except Exception:
            if generated:
                self.id = None
            raise
        self._written(cas, options)
        logger.debug("Document created", extra={"model": schema.type_name, "id": self.id, "cas": cas})
        return self

    def save(self, *, cas: Optional[int] = None, **options: Any) -> Model:
        """Create if new, otherwise overwrite the stored document.

        The overwrite is unconditional unless cas is passed or the model
        uses optimistic locking, in which case the last known version token
        must still match.

        Args:
            cas: Version token the stored document must have
            **options: Passed to the bucket (flags, ttl)

        Raises:
            ConflictError: If the version token does not match
        """
        if self.is_new:
            return self.create(**options)

        schema = self.__schema__
        if cas is None and schema.optimistic_locking and self.meta is not None:
            cas = self.meta.cas
        new_cas = schema.bucket.set(self.id, self.to_document(), cas=cas, **options)
        self._written(new_cas, options)
        logger.debug(
            "Document saved",
            extra={"model": schema.type_name, "id": self.id, "cas": new_cas, "conditional": cas is not None},
        )
        return self

    def update(self, attrs: Optional[Mapping[str, Any]] = None, **options: Any) -> Model:
        """Merge attrs, then save() with options."""
        self.update_attributes(attrs or {})
        return self.save(**options)

    def delete(self) -> Model:
        """Remove the stored document and clear the id.

        Raises:
            MissingIdentifierError: If no id is set
            NotFoundError: If the document does not exist
        """
        if not self.id:
            raise MissingIdentifierError()
        self.__schema__.bucket.delete(self.id)
        logger.debug("Document deleted", extra={"model": self.__schema__.type_name, "id": self.id})
        self.id = None
        return self

    def reload(self) -> Model:
        """Replace attributes and meta with the stored state.

        Raises:
            MissingIdentifierError: If no id is set
            NotFoundError: If the document no longer exists
        """
        if not self.id:
            raise MissingIdentifierError()
        fresh = type(self).find(self.id)
        self._values = fresh._values
        self.meta = fresh.meta
        return self

    def exists(self) -> bool:
        return type(self).exists_by_id(self.id)

    def _written(self, cas: int, options: Mapping[str, Any]) -> None:
        flags = options.get("flags", 0)
        if self.meta is None:
            self.meta = DocumentMeta(cas=cas, flags=flags)
        else:
            self.meta.cas = cas
            self.meta.flags = flags

    def __repr__(self) -> str:
        values = ", ".join(
            f"{name}={value!r}" for name, value in sorted(self.attributes.items())
        )
        label = f"<{type(self).__name__}:{self.id or '?'}"
        return f"{label} {values}>" if values else f"{label}>"
