"""
Field Descriptors

A model class declares its persisted fields as class attributes holding a
FieldDescriptor:

    class User(StorableModel):
        username = StringField(required=True)
        password = StringField(restricted=True)
        created_at = DatetimeField(rejected=True, default_factory=utcnow)
        tags = ArrayField(default=[])

Flags:
- required:   None (or an empty string after trimming) fails validation
- restricted: omitted by to_object() unless explicitly included
- rejected:   settable at creation only, ignored by update()
- auto_trim:  strings are stripped before the required check

Defaults:
- default:          static value; list/dict/set values are shallow-copied per instance
- default_factory:  zero-argument callable invoked per instance
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Optional


class _NoDefault:
    """Marker for a field declared without a static default."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "NO_DEFAULT"


NO_DEFAULT: Any = _NoDefault()


class FieldType(Enum):
    """Semantic type of a field value."""

    ANY = "any"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    DATETIME = "datetime"
    IDENTIFIER = "identifier"


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Immutable metadata of one declared field.

    `name` is filled in by the schema registry when the owning class is
    defined; descriptors created by the field factories start unnamed.
    """

    field_type: ClassVar[FieldType] = FieldType.ANY

    required: bool = False
    restricted: bool = False
    rejected: bool = False
    auto_trim: bool = True
    default: Any = NO_DEFAULT
    default_factory: Optional[Callable[[], Any]] = None
    name: str = ""

    def __post_init__(self) -> None:
        if self.default is not NO_DEFAULT and self.default_factory is not None:
            raise ValueError("cannot specify both default and default_factory")
        if self.default_factory is not None and not callable(self.default_factory):
            raise ValueError("default_factory must be callable")

    def named(self, name: str) -> FieldDescriptor:
        """Copy of this descriptor bound to a field name."""
        return dataclasses.replace(self, name=name)

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT or self.default_factory is not None

    @property
    def trims(self) -> bool:
        return self.auto_trim and self.field_type is FieldType.STRING

    def initial_value(self) -> Any:
        """
        Value used when the input data has no (or a None) value.

        Container defaults are copied so instances never share them.
        """
        if self.default_factory is not None:
            return self.default_factory()
        if self.default is NO_DEFAULT:
            return None
        if isinstance(self.default, (list, dict, set)):
            return self.default.copy()
        return self.default

    def __repr__(self) -> str:
        flags = [
            flag
            for flag in ("required", "restricted", "rejected")
            if getattr(self, flag)
        ]
        inner = ", ".join([self.name or "?", *flags])
        return f"{type(self).__name__}({inner})"


# =============================================================================
# FIELD FACTORIES
# =============================================================================
class AnyField(FieldDescriptor):
    field_type = FieldType.ANY


class NumberField(FieldDescriptor):
    field_type = FieldType.NUMBER


class StringField(FieldDescriptor):
    field_type = FieldType.STRING


class BooleanField(FieldDescriptor):
    field_type = FieldType.BOOLEAN


class ArrayField(FieldDescriptor):
    field_type = FieldType.ARRAY


class ObjectField(FieldDescriptor):
    field_type = FieldType.OBJECT


class DatetimeField(FieldDescriptor):
    field_type = FieldType.DATETIME


class IdentifierField(FieldDescriptor):
    field_type = FieldType.IDENTIFIER
