"""
Field Schema Registry

Process-wide map from model class to its immutable ClassSchema.

Each class only records its OWN declarations. The effective schema is the
union over the MRO, ancestors first, with subclass declarations replacing
same-named ancestor fields in place (parent order preserved, new fields
appended). Every build produces fresh containers, so no two classes ever
share a mutable field list.

Lifecycle:
    class definition  -> declare_field() for every FieldDescriptor attribute
    first make()      -> seal() the class and all its ancestors
    after sealing     -> declare_field() raises SchemaError

Reading is cheap: built schemas are cached per class and dropped whenever a
declaration on the class or one of its ancestors changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from docmesh.core.constants import ID_FIELD, SHARD_ID_FIELD, SUBMODEL_FIELD
from docmesh.core.errors import SchemaError
from docmesh.schema.fields import FieldDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassSchema:
    """
    Effective schema of one model class.

    Attributes:
        model: Owning class name
        fields: Ordered field name -> descriptor (read-only mapping)
        collection: Store collection name
        key_field: Field queried by get() for non-identifier expressions
        sharded: Instances live on named shards instead of meta
        discriminator: Name of the discriminator field for polymorphic classes
        submodel: The class's own discriminator value (None when abstract)
        indexes: Index specs passed through to the store
        async_computed: Names of @async_computed methods
    """

    model: str
    fields: Mapping[str, FieldDescriptor]
    collection: Optional[str] = None
    key_field: str = ID_FIELD
    sharded: bool = False
    discriminator: Optional[str] = None
    submodel: Optional[str] = None
    indexes: tuple[Any, ...] = ()
    async_computed: frozenset[str] = field(default_factory=frozenset)

    @property
    def field_names(self) -> list[str]:
        return list(self.fields)

    @property
    def restricted(self) -> frozenset[str]:
        return frozenset(n for n, d in self.fields.items() if d.restricted)

    @property
    def rejected(self) -> frozenset[str]:
        return frozenset(n for n, d in self.fields.items() if d.rejected)

    @property
    def required(self) -> frozenset[str]:
        return frozenset(n for n, d in self.fields.items() if d.required)

    @property
    def is_polymorphic(self) -> bool:
        return self.discriminator is not None

    @property
    def is_abstract(self) -> bool:
        return self.is_polymorphic and self.submodel is None

    def __contains__(self, name: object) -> bool:
        return name in self.fields


class SchemaRegistry:
    """
    Registry of per-class field declarations.

    Not thread-safe by itself: declarations happen at import time, reads
    afterwards only touch the cache.
    """

    __slots__ = ("_own", "_computed", "_cache", "_sealed")

    def __init__(self) -> None:
        self._own: dict[type, dict[str, FieldDescriptor]] = {}
        self._computed: dict[type, set[str]] = {}
        self._cache: dict[type, ClassSchema] = {}
        self._sealed: set[type] = set()

    # -------------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------------
    def declare_field(self, cls: type, name: str, descriptor: FieldDescriptor) -> None:
        """
        Add or replace a field on the class's own declarations.

        Raises:
            SchemaError: reserved shard_id on a sharded class, or sealed class
        """
        if cls in self._sealed:
            raise SchemaError.sealed(cls.__name__, name)
        if name == SHARD_ID_FIELD and getattr(cls, "__sharded__", False):
            raise SchemaError.reserved_name(cls.__name__, name)

        self._own.setdefault(cls, {})[name] = descriptor.named(name)
        self._invalidate(cls)

    def declare_computed(self, cls: type, name: str) -> None:
        if cls in self._sealed:
            raise SchemaError.sealed(cls.__name__, name)
        self._computed.setdefault(cls, set()).add(name)
        self._invalidate(cls)

    def register(self, cls: type) -> None:
        """Make `cls` known to the registry even when it declares nothing."""
        self._own.setdefault(cls, {})
        self._invalidate(cls)

    def _invalidate(self, cls: type) -> None:
        stale = [k for k in self._cache if cls in k.__mro__]
        for k in stale:
            del self._cache[k]

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------
    def schema_of(self, cls: type) -> ClassSchema:
        schema = self._cache.get(cls)
        if schema is None:
            schema = self._build(cls)
            self._cache[cls] = schema
        return schema

    def _build(self, cls: type) -> ClassSchema:
        merged: dict[str, FieldDescriptor] = {}
        computed: set[str] = set()

        for klass in reversed(cls.__mro__):
            own = self._own.get(klass)
            if own:
                # Dict assignment keeps the position of overridden names
                for name, descriptor in own.items():
                    merged[name] = descriptor
            computed.update(self._computed.get(klass, ()))

        sharded = bool(getattr(cls, "__sharded__", False))
        if sharded and SHARD_ID_FIELD in merged:
            raise SchemaError.reserved_name(cls.__name__, SHARD_ID_FIELD)

        polymorphic = bool(getattr(cls, "__polymorphic__", False))
        return ClassSchema(
            model=cls.__name__,
            fields=MappingProxyType(merged),
            collection=getattr(cls, "__collection__", None),
            key_field=getattr(cls, "__key_field__", ID_FIELD) or ID_FIELD,
            sharded=sharded,
            discriminator=SUBMODEL_FIELD if polymorphic else None,
            submodel=getattr(cls, "__submodel__", None) if polymorphic else None,
            indexes=tuple(getattr(cls, "__indexes__", ()) or ()),
            async_computed=frozenset(
                name
                for name in computed
                if getattr(getattr(cls, name, None), "__async_computed__", False)
            ),
        )

    # -------------------------------------------------------------------------
    # Sealing
    # -------------------------------------------------------------------------
    def seal(self, cls: type) -> None:
        """Freeze `cls` and every ancestor against further declarations."""
        if cls in self._sealed:
            return
        for klass in cls.__mro__:
            if klass in self._own and klass not in self._sealed:
                self._sealed.add(klass)
                logger.debug(f"Schema sealed: {klass.__qualname__}")

    def is_sealed(self, cls: type) -> bool:
        return cls in self._sealed


# Process-wide registry used by every model class
registry = SchemaRegistry()


def declare_field(cls: type, name: str, descriptor: FieldDescriptor) -> None:
    registry.declare_field(cls, name, descriptor)


def schema_of(cls: type) -> ClassSchema:
    return registry.schema_of(cls)


def seal(cls: type) -> None:
    registry.seal(cls)
