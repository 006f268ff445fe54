"""
Schema module: field declarations, per-class schema registry, validator.
"""

from docmesh.schema.fields import (
    NO_DEFAULT,
    FieldType,
    FieldDescriptor,
    AnyField,
    NumberField,
    StringField,
    BooleanField,
    ArrayField,
    ObjectField,
    DatetimeField,
    IdentifierField,
)
from docmesh.schema.registry import (
    ClassSchema,
    SchemaRegistry,
    registry,
    declare_field,
    schema_of,
    seal,
)
from docmesh.schema.validator import matches_type, normalize, validate_value

__all__ = [
    "NO_DEFAULT",
    "FieldType",
    "FieldDescriptor",
    "AnyField",
    "NumberField",
    "StringField",
    "BooleanField",
    "ArrayField",
    "ObjectField",
    "DatetimeField",
    "IdentifierField",
    "ClassSchema",
    "SchemaRegistry",
    "registry",
    "declare_field",
    "schema_of",
    "seal",
    "matches_type",
    "normalize",
    "validate_value",
]
