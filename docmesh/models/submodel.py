"""
Submodels: Single-Table Inheritance

A family is an abstract base deriving from StorableSubmodel (or
ShardedSubmodel) plus concrete subclasses, each with its own discriminator
value stored in the `submodel` field. Every member shares the base's
collection.

    class Shape(StorableSubmodel):
        color = StringField()

    class Circle(Shape):
        __submodel__ = "circle"
        radius = NumberField()

    class Square(Shape):
        __submodel__ = "square"
        side = NumberField()

    Shape.register_submodel("circle", Circle)
    Shape.register_submodel("square", Square)

    await Circle.make({"radius": 2}).save()
    shapes = await Shape.find().all()    # mixed Circle / Square instances
    circles = await Circle.find().all()  # narrowed to submodel == "circle"

Queries through an abstract class below the family base are narrowed to the
registered members deriving from it.

Rules:
- make() on an abstract class (no __submodel__)          -> SubmodelError
- make() with an explicit "submodel" key                 -> SubmodelError
- loading without a discriminator                        -> MissingSubmodel
- loading through an abstract base, unregistered value   -> UnknownSubmodel
- loading through a concrete class, different value      -> WrongSubmodel
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional, TypeVar

from docmesh.core.constants import SUBMODEL_FIELD
from docmesh.core.errors import (
    MissingSubmodel,
    SubmodelError,
    UnknownSubmodel,
    WrongModelType,
    WrongSubmodel,
)
from docmesh.models.storable import ShardedModel, StorableModel
from docmesh.schema.fields import StringField
from docmesh.storage.protocols import Query

logger = logging.getLogger(__name__)

M = TypeVar("M")


# =============================================================================
# RESOLVER
# =============================================================================
class SubmodelResolver:
    """
    Discriminator -> class tables, one per family base.

    A lookup through a class consults its own table, then the tables of its
    ancestors, and only accepts classes deriving from the class looked up.
    """

    __slots__ = ("_loaders",)

    def __init__(self) -> None:
        self._loaders: dict[type, dict[str, type]] = {}

    def register(self, base: type, name: str, ctor: type) -> None:
        """
        Raises:
            WrongModelType: base is not a submodel class, or ctor does not derive from it
            SubmodelError: base is concrete, name is taken, or ctor.__submodel__ != name
        """
        if not getattr(base, "__polymorphic__", False):
            raise WrongModelType.because(
                base.__name__, "Attempted to register a submodel with a non-submodel class"
            )
        if not (isinstance(ctor, type) and issubclass(ctor, base)):
            raise WrongModelType.because(
                base.__name__, f"{ctor!r} is not a subclass of {base.__name__}"
            )
        if base.__submodel__ is not None:
            raise SubmodelError.because(
                "Attempted to register a submodel with another submodel",
                model=base.__name__,
                submodel=name,
            )
        loaders = self._loaders.setdefault(base, {})
        if name in loaders:
            raise SubmodelError.because(
                f"Submodel {name} is already registered with {base.__name__}",
                model=base.__name__,
                submodel=name,
            )
        if ctor.__submodel__ != name:
            raise SubmodelError.because(
                f"{ctor.__name__} declares submodel {ctor.__submodel__!r}, "
                f"can't register it as {name!r}",
                model=ctor.__name__,
                submodel=name,
            )
        loaders[name] = ctor
        logger.debug(f"Submodel registered: {base.__name__}[{name!r}] -> {ctor.__name__}")

    def lookup(self, base: type, name: Any) -> Optional[type]:
        for klass in base.__mro__:
            ctor = self._loaders.get(klass, {}).get(name)
            if ctor is not None and issubclass(ctor, base):
                return ctor
        return None

    def registered(self, base: type) -> dict[str, type]:
        return dict(self._loaders.get(base, {}))

    def names_under(self, base: type) -> list[str]:
        """Discriminators reachable from base whose classes derive from it."""
        names: list[str] = []
        for klass in base.__mro__:
            for name, ctor in self._loaders.get(klass, {}).items():
                if issubclass(ctor, base) and name not in names:
                    names.append(name)
        return names


resolver = SubmodelResolver()


# =============================================================================
# FAMILY BEHAVIOUR
# =============================================================================
class _SubmodelMixin:
    """Discriminator enforcement shared by both family roots."""

    __polymorphic__ = True
    __submodel__: Optional[str] = None

    submodel: Optional[str]

    @classmethod
    def family_base(cls) -> Optional[type]:
        """The abstract class directly deriving from a family root."""
        for klass in cls.__mro__:
            if any(b.__dict__.get("__family_root__", False) for b in klass.__bases__):
                return klass
        return None

    @classmethod
    def _default_collection(cls) -> str:
        base = cls.family_base()
        if base is not None and base is not cls:
            return base.__collection__  # type: ignore[attr-defined,no-any-return]
        return super()._default_collection()  # type: ignore[misc,no-any-return]

    @classmethod
    def is_abstract(cls) -> bool:
        return cls.__submodel__ is None

    @classmethod
    def register_submodel(cls, name: str, ctor: type) -> None:
        resolver.register(cls, name, ctor)

    @classmethod
    def _prepare_new(cls, values: dict[str, Any]) -> None:
        if cls.__submodel__ is None:
            raise SubmodelError.because(
                f"Attempted to create an object of abstract model {cls.__name__}",
                model=cls.__name__,
            )
        if SUBMODEL_FIELD in values:
            raise SubmodelError.because(
                "Attempt to override submodel for a new object",
                model=cls.__name__,
                submodel=values[SUBMODEL_FIELD],
            )
        values[SUBMODEL_FIELD] = cls.__submodel__

    @classmethod
    def _loader_for(cls, values: Mapping[str, Any]) -> type:
        name = values.get(SUBMODEL_FIELD)
        if not name:
            raise MissingSubmodel.for_model(cls.__name__)
        if cls.__submodel__ is not None:
            return cls
        ctor = resolver.lookup(cls, name)
        if ctor is None:
            raise UnknownSubmodel.for_name(cls.__name__, name)
        return ctor

    def _check_loaded(self) -> None:
        self._check_submodel()

    def _check_submodel(self) -> None:
        expected = type(self).__submodel__
        if self.submodel != expected:
            raise WrongSubmodel.mismatch(type(self).__name__, self.submodel, expected)

    @classmethod
    def _preprocess_query(cls, query: Optional[Query]) -> Query:
        narrowed = super()._preprocess_query(query)  # type: ignore[misc]
        if cls.__submodel__ is not None:
            narrowed[SUBMODEL_FIELD] = cls.__submodel__
        elif cls.family_base() not in (None, cls):
            # Intermediate abstract class: only members deriving from it
            members = {SUBMODEL_FIELD: {"$in": resolver.names_under(cls)}}
            if SUBMODEL_FIELD in narrowed:
                return {"$and": [narrowed, members]}
            narrowed.update(members)
        return narrowed  # type: ignore[no-any-return]


class StorableSubmodel(_SubmodelMixin, StorableModel):
    """Family root for polymorphic models in the meta partition."""

    __family_root__ = True

    submodel = StringField(required=True)


class ShardedSubmodel(_SubmodelMixin, ShardedModel):
    """Family root for polymorphic models in named shards."""

    __family_root__ = True

    submodel = StringField(required=True)
