"""
Model Instance Lifecycle

BaseModel turns a plain class body into a schema-aware record:

    class User(BaseModel):
        username = StringField(required=True)
        password = StringField(restricted=True)

        @async_computed
        async def avatar_url(self):
            ...

    user = User.make({"username": " bob "})
    user.validate()          # trims username to "bob"
    user.to_object()         # {"_id": None, "username": "bob"}

State machine:
    Uninitialized --make()--> New --validate()--> Valid | Invalid
    Valid --save()--> Persisted --destroy()--> Destroyed (_id is None again)

Construction:
    Instances come from make() (new) or from_document() (loaded). Calling
    the class directly raises TypeError.

Schema:
    FieldDescriptor attributes are collected in definition order when the
    class is created and removed from the class namespace; field values
    live as plain instance attributes. The first make()/from_document() of
    a class seals its schema and the schema of every ancestor.

BaseModel itself does not persist anything (_save_to_db/_delete_from_db
are no-ops); see docmesh.models.storable.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import re
from collections.abc import Mapping
from typing import Any, Callable, ClassVar, Iterable, Optional, TypeVar

from docmesh.core.constants import ID_FIELD, SHARD_ID_FIELD
from docmesh.core.errors import (
    ModelSaveRequired,
    SubmodelError,
    ValidationError,
    WrongModelType,
)
from docmesh.models.cursor import ModelCursor
from docmesh.schema.fields import FieldDescriptor, IdentifierField
from docmesh.schema.registry import ClassSchema, registry
from docmesh.schema.validator import validate_value

logger = logging.getLogger(__name__)

M = TypeVar("M", bound="BaseModel")
F = TypeVar("F", bound=Callable[..., Any])

_MAKE_TOKEN = object()
_MISSING = object()

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    """UserProfile -> user_profile"""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


# =============================================================================
# DECORATORS
# =============================================================================
def async_computed(func: F) -> F:
    """
    Mark an async method as a computed property resolved by async_object().

    Raises:
        TypeError: func is not a coroutine function
    """
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"@async_computed requires an async function, got {func!r}")
    func.__async_computed__ = True  # type: ignore[attr-defined]
    return func


def save_required(func: F) -> F:
    """Raise ModelSaveRequired when the method is called on a new instance."""
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(self: BaseModel, *args: Any, **kwargs: Any) -> Any:
            if self.is_new:
                raise ModelSaveRequired.for_method(type(self).__name__, func.__name__)
            return await func(self, *args, **kwargs)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def wrapper(self: BaseModel, *args: Any, **kwargs: Any) -> Any:
        if self.is_new:
            raise ModelSaveRequired.for_method(type(self).__name__, func.__name__)
        return func(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.to_object()
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


# =============================================================================
# BASE MODEL
# =============================================================================
class BaseModel:
    """Schema-aware in-memory record with lifecycle hooks."""

    __collection__: ClassVar[Optional[str]] = None
    __key_field__: ClassVar[str] = ID_FIELD
    __indexes__: ClassVar[Iterable[Any]] = ()
    __sharded__: ClassVar[bool] = False
    __polymorphic__: ClassVar[bool] = False
    __submodel__: ClassVar[Optional[str]] = None

    _id: Any

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        registry.register(cls)

        if "__collection__" not in cls.__dict__:
            cls.__collection__ = cls._default_collection()

        for name, value in list(cls.__dict__.items()):
            if isinstance(value, FieldDescriptor):
                registry.declare_field(cls, name, value)
                delattr(cls, name)
            elif getattr(value, "__async_computed__", False):
                registry.declare_computed(cls, name)

        # Builds eagerly so declaration errors surface at class definition
        registry.schema_of(cls)

    @classmethod
    def _default_collection(cls) -> str:
        return snake_case(cls.__name__)

    def __init__(self, token: object = None) -> None:
        if token is not _MAKE_TOKEN:
            raise TypeError(
                f"{type(self).__name__} can't be instantiated directly, "
                f"use {type(self).__name__}.make()"
            )
        self._id = None
        self._shard_id: Optional[str] = None

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------
    @classmethod
    def schema(cls) -> ClassSchema:
        return registry.schema_of(cls)

    @classmethod
    def make(cls: type[M], data: Optional[Mapping[str, Any]] = None) -> M:
        """
        Create a new (unsaved) instance.

        Declared fields take data[field] when present and not None, else
        the descriptor default, else None. _id is always None. Unknown keys
        are ignored.
        """
        values = dict(data or {})
        cls._prepare_new(values)
        instance = cls._instantiate(values)
        instance._id = None
        return instance

    @classmethod
    def from_document(
        cls: type[M], document: Mapping[str, Any], shard_id: Optional[str] = None
    ) -> M:
        """Rebuild a persisted instance from a stored document."""
        values = dict(document)
        if shard_id is not None:
            values[SHARD_ID_FIELD] = shard_id
        target = cls._loader_for(values)
        instance = target._instantiate(values)
        instance._id = values.get(ID_FIELD)
        instance._check_loaded()
        return instance

    @classmethod
    def _instantiate(cls: type[M], values: dict[str, Any]) -> M:
        schema = registry.schema_of(cls)
        registry.seal(cls)
        instance = cls(_MAKE_TOKEN)
        if schema.sharded:
            instance._shard_id = values.pop(SHARD_ID_FIELD, None)
        instance._fill(values, schema)
        return instance

    def _fill(self, values: Mapping[str, Any], schema: ClassSchema) -> None:
        for name, descriptor in schema.fields.items():
            if name == ID_FIELD:
                continue
            value = values.get(name)
            if value is None:
                value = descriptor.initial_value()
            setattr(self, name, value)

    @classmethod
    def _prepare_new(cls, values: dict[str, Any]) -> None:
        """Hook: adjust input data of a new instance."""

    @classmethod
    def _loader_for(cls: type[M], values: Mapping[str, Any]) -> type[M]:
        """Hook: class used to rebuild a stored document."""
        return cls

    def _check_loaded(self) -> None:
        """Hook: verify an instance rebuilt from storage."""

    def _check_submodel(self) -> None:
        """Hook: discriminator consistency check run by validate()."""

    @classmethod
    def register_submodel(cls, name: str, ctor: type) -> None:
        raise WrongModelType.because(
            cls.__name__, "Attempted to register a submodel with a non-submodel class"
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------
    @property
    def is_new(self) -> bool:
        return self._id is None

    def validate(self) -> None:
        """
        Validate every field but _id, trimming strings in place.

        Raises:
            FieldRequired, InvalidFieldType, WrongSubmodel
        """
        for name, descriptor in registry.schema_of(type(self)).fields.items():
            if name == ID_FIELD:
                continue
            value = validate_value(descriptor, getattr(self, name, None))
            setattr(self, name, value)
        self._check_submodel()

    def is_valid(self) -> bool:
        try:
            self.validate()
        except (ValidationError, SubmodelError):
            return False
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def save(self: M, skip_callbacks: bool = False) -> M:
        is_new = self.is_new
        if not skip_callbacks:
            await self._before_validation()
        self.validate()
        if not skip_callbacks:
            await self._before_save()
        await self._save_to_db()
        if not skip_callbacks:
            await self._after_save(is_new)
        return self

    async def update(
        self: M, partial: Mapping[str, Any], skip_callbacks: bool = False
    ) -> M:
        """Assign declared, non-rejected fields from `partial`, then save()."""
        schema = registry.schema_of(type(self))
        for name, descriptor in schema.fields.items():
            if name not in partial or name == ID_FIELD or descriptor.rejected:
                continue
            if name == schema.discriminator:
                continue
            setattr(self, name, partial[name])
        return await self.save(skip_callbacks)

    async def destroy(self: M, skip_callbacks: bool = False) -> M:
        if self.is_new:
            return self
        if not skip_callbacks:
            await self._before_delete()
        await self._delete_from_db()
        if not skip_callbacks:
            await self._after_delete()
        self._id = None
        return self

    async def _save_to_db(self) -> None:
        pass

    async def _delete_from_db(self) -> None:
        pass

    # Hooks
    async def _before_validation(self) -> None:
        pass

    async def _before_save(self) -> None:
        pass

    async def _after_save(self, is_new: bool) -> None:
        pass

    async def _before_delete(self) -> None:
        pass

    async def _after_delete(self) -> None:
        pass

    async def invalidate(self) -> None:
        """Drop cached data derived from this instance. Called by db_update()."""

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------
    def to_object(
        self,
        fields: Optional[Iterable[str]] = None,
        include_restricted: bool = False,
    ) -> dict[str, Any]:
        """
        Plain dict of the requested (default: all declared) names.

        Restricted fields are omitted unless include_restricted; missing and
        callable attributes are always omitted.
        """
        schema = registry.schema_of(type(self))
        names = schema.field_names if fields is None else list(fields)
        restricted = schema.restricted

        result: dict[str, Any] = {}
        for name in names:
            if name in restricted and not include_restricted:
                continue
            value = getattr(self, name, _MISSING)
            if value is _MISSING or callable(value):
                continue
            result[name] = value
        return result

    async def async_object(
        self,
        fields: Optional[Iterable[str]] = None,
        include_restricted: bool = False,
    ) -> dict[str, Any]:
        """
        Like to_object(), also resolving async computed properties, cursors
        and awaitables, concurrently. The default name list is every
        declared field followed by every async computed property.
        """
        schema = registry.schema_of(type(self))
        if fields is None:
            names = schema.field_names + sorted(schema.async_computed)
        else:
            names = list(fields)
        restricted = schema.restricted

        result: dict[str, Any] = {}
        pending_names: list[str] = []
        pending: list[Any] = []

        for name in names:
            if name in schema.async_computed:
                pending_names.append(name)
                pending.append(getattr(self, name)())
                result[name] = None
                continue
            if name in restricted and not include_restricted:
                continue
            value = getattr(self, name, _MISSING)
            if value is _MISSING or callable(value):
                continue
            if isinstance(value, ModelCursor):
                pending_names.append(name)
                pending.append(value.all())
                result[name] = None
            elif inspect.isawaitable(value):
                pending_names.append(name)
                pending.append(value)
                result[name] = None
            else:
                result[name] = value

        if pending:
            values = await asyncio.gather(*pending)
            for name, value in zip(pending_names, values):
                result[name] = _plain(value)
        return result

    def __repr__(self) -> str:
        parts = [
            f"{name}={value!r}"
            for name, value in self.to_object(include_restricted=True).items()
        ]
        return f"<{type(self).__name__} {' '.join(parts)}>"


registry.register(BaseModel)
registry.declare_field(BaseModel, ID_FIELD, IdentifierField())
BaseModel.__collection__ = snake_case(BaseModel.__name__)
