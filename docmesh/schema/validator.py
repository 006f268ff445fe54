"""
Field Validator

Pure checks of a single value against its FieldDescriptor.

Order of checks (per field):
    1. auto-trim strings (the only normalization performed)
    2. None on a required field           -> FieldRequired
    3. None on an optional field          -> accepted, whatever the type
    4. value of the wrong semantic type   -> InvalidFieldType
    5. required string empty after trim   -> FieldRequired

Booleans are never accepted as numbers.
"""

from __future__ import annotations

import datetime
import numbers
from collections.abc import Mapping
from typing import Any, Callable

from docmesh.core.errors import FieldRequired, InvalidFieldType
from docmesh.core.types import DocumentId
from docmesh.schema.fields import FieldDescriptor, FieldType


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


_TYPE_CHECKS: dict[FieldType, Callable[[Any], bool]] = {
    FieldType.ANY: lambda value: True,
    FieldType.NUMBER: _is_number,
    FieldType.STRING: lambda value: isinstance(value, str),
    FieldType.BOOLEAN: lambda value: isinstance(value, bool),
    FieldType.ARRAY: lambda value: isinstance(value, (list, tuple)),
    FieldType.OBJECT: lambda value: isinstance(value, Mapping),
    FieldType.DATETIME: lambda value: isinstance(value, datetime.datetime),
    FieldType.IDENTIFIER: lambda value: isinstance(value, DocumentId),
}


def matches_type(descriptor: FieldDescriptor, value: Any) -> bool:
    """True if a non-None value has the descriptor's semantic type."""
    return _TYPE_CHECKS[descriptor.field_type](value)


def normalize(descriptor: FieldDescriptor, value: Any) -> Any:
    """Apply auto-trim; every other value is returned unchanged."""
    if descriptor.trims and isinstance(value, str):
        return value.strip()
    return value


def validate_value(descriptor: FieldDescriptor, value: Any) -> Any:
    """
    Validate one field value.

    Returns:
        The normalized value, to be written back onto the instance

    Raises:
        FieldRequired: missing or empty required value
        InvalidFieldType: value of the wrong type
    """
    value = normalize(descriptor, value)

    if value is None:
        if descriptor.required:
            raise FieldRequired.for_field(descriptor.name)
        return None

    if not matches_type(descriptor, value):
        raise InvalidFieldType.for_value(
            descriptor.name, descriptor.field_type.value, value
        )

    if descriptor.required and isinstance(value, str) and not value:
        raise FieldRequired.for_field(descriptor.name)

    return value
