"""
Error Hierarchy for the Document Mesh

Design Principles:
- Lifecycle failures are raised, never swallowed or retried
- Every error carries a unique code for programmatic handling
- Context dict keeps the offending field/shard/submodel for debugging
- Store and cache backend errors are NOT wrapped: they propagate unchanged

Each error type includes:
- Unique error code
- Human-readable message
- Timestamp and error id for log correlation

Usage:
    try:
        await user.save()
    except FieldRequired as e:
        report(e.context["field"])
    except ShardIsReadOnly:
        ...
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from docmesh.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Validation / schema errors
    - 2xxx: Model lifecycle errors
    - 3xxx: Sharding / routing errors
    - 4xxx: Submodel errors
    - 9xxx: Configuration errors
    """

    # Validation (1xxx)
    FIELD_REQUIRED = 1001
    INVALID_FIELD_TYPE = 1002
    SCHEMA_DECLARATION = 1003
    SCHEMA_SEALED = 1004

    # Model lifecycle (2xxx)
    MODEL_SAVE_REQUIRED = 2001
    MODEL_DESTROYED = 2002
    WRONG_MODEL_TYPE = 2003
    MODEL_NOT_FOUND = 2004

    # Sharding (3xxx)
    INVALID_SHARD_ID = 3001
    SHARD_IS_READ_ONLY = 3002
    NO_WRITABLE_SHARD = 3003
    MISSING_SHARD_ID = 3004
    DATABASE_NOT_READY = 3005

    # Submodels (4xxx)
    SUBMODEL_ERROR = 4001
    WRONG_SUBMODEL = 4002
    MISSING_SUBMODEL = 4003
    UNKNOWN_SUBMODEL = 4004

    # Configuration (9xxx)
    CONFIGURATION_ERROR = 9001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass(eq=False)
class DocMeshError(Exception):
    """
    Base class for all document mesh errors.

    Provides:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Context dict with the subject of the failure
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> DocMeshError:
        """Add context to error (returns new instance of the same class)."""
        return dataclasses.replace(self, context={**self.context, **kwargs})

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r})"
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================
@dataclass(eq=False)
class ValidationError(DocMeshError):
    """Field value rejected by the validator."""


@dataclass(eq=False)
class FieldRequired(ValidationError):
    """Required field is None or empty."""

    @classmethod
    def for_field(cls, field_name: str) -> FieldRequired:
        return cls(
            code=ErrorCode.FIELD_REQUIRED,
            message=f'Field "{field_name}" can not be empty',
            context={"field": field_name},
        )


@dataclass(eq=False)
class InvalidFieldType(ValidationError):
    """Field value does not match the declared semantic type."""

    @classmethod
    def for_value(cls, field_name: str, expected: str, value: Any) -> InvalidFieldType:
        actual = type(value).__name__
        return cls(
            code=ErrorCode.INVALID_FIELD_TYPE,
            message=f'Field "{field_name}" must be {expected}, got {actual}',
            context={"field": field_name, "expected": expected, "actual": actual},
        )


@dataclass(eq=False)
class SchemaError(DocMeshError):
    """Invalid field declaration, raised at class definition time."""

    @classmethod
    def reserved_name(cls, model: str, field_name: str) -> SchemaError:
        return cls(
            code=ErrorCode.SCHEMA_DECLARATION,
            message=(
                f"'{field_name}' name is reserved for sharded models "
                f"so can't be used as a field name on {model}"
            ),
            context={"model": model, "field": field_name},
        )

    @classmethod
    def sealed(cls, model: str, field_name: str) -> SchemaError:
        return cls(
            code=ErrorCode.SCHEMA_SEALED,
            message=(
                f"Schema of {model} is sealed, "
                f"can't declare field '{field_name}' after instances were made"
            ),
            context={"model": model, "field": field_name},
        )


# =============================================================================
# MODEL LIFECYCLE ERRORS
# =============================================================================
@dataclass(eq=False)
class ModelError(DocMeshError):
    """Operation is not valid for the instance's current lifecycle state."""


@dataclass(eq=False)
class ModelSaveRequired(ModelError):
    @classmethod
    def for_method(cls, model: str, method: str) -> ModelSaveRequired:
        return cls(
            code=ErrorCode.MODEL_SAVE_REQUIRED,
            message=f"{model}.{method}() requires the model to be saved first",
            context={"model": model, "method": method},
        )


@dataclass(eq=False)
class ModelDestroyed(ModelError):
    @classmethod
    def for_id(cls, model: str, doc_id: Any) -> ModelDestroyed:
        return cls(
            code=ErrorCode.MODEL_DESTROYED,
            message=f"{model} {doc_id} no longer exists in the database",
            context={"model": model, "id": str(doc_id)},
        )


@dataclass(eq=False)
class WrongModelType(ModelError):
    @classmethod
    def because(cls, model: str, reason: str) -> WrongModelType:
        return cls(
            code=ErrorCode.WRONG_MODEL_TYPE,
            message=f"{model}: {reason}",
            context={"model": model},
        )


@dataclass(eq=False)
class ModelNotFound(ModelError):
    @classmethod
    def with_message(cls, model: str, message: str) -> ModelNotFound:
        return cls(
            code=ErrorCode.MODEL_NOT_FOUND,
            message=message,
            context={"model": model},
        )


# =============================================================================
# SHARDING ERRORS
# =============================================================================
@dataclass(eq=False)
class ShardingError(DocMeshError):
    """Partition resolution or partition capability failure."""


@dataclass(eq=False)
class InvalidShardId(ShardingError):
    @classmethod
    def for_shard(cls, shard_id: str) -> InvalidShardId:
        return cls(
            code=ErrorCode.INVALID_SHARD_ID,
            message=f'Shard "{shard_id}" doesn\'t exist',
            context={"shard_id": shard_id},
        )


@dataclass(eq=False)
class ShardIsReadOnly(ShardingError):
    @classmethod
    def for_shard(cls, shard_id: Optional[str], operation: str) -> ShardIsReadOnly:
        name = shard_id or "meta"
        return cls(
            code=ErrorCode.SHARD_IS_READ_ONLY,
            message=f'Shard "{name}" is read-only, {operation} rejected',
            context={"shard_id": name, "operation": operation},
        )


@dataclass(eq=False)
class NoWritableShard(ShardingError):
    @classmethod
    def among(cls, shard_ids: list[str]) -> NoWritableShard:
        return cls(
            code=ErrorCode.NO_WRITABLE_SHARD,
            message="No writable shard available",
            context={"shard_ids": shard_ids},
        )


@dataclass(eq=False)
class MissingShardId(ShardingError):
    @classmethod
    def for_model(cls, model: str) -> MissingShardId:
        return cls(
            code=ErrorCode.MISSING_SHARD_ID,
            message=f"{model} model uses shards, however shard_id is not provided",
            context={"model": model},
        )


@dataclass(eq=False)
class DatabaseNotReady(ShardingError):
    @classmethod
    def in_state(cls, state: str, detail: str = "") -> DatabaseNotReady:
        suffix = f": {detail}" if detail else ""
        return cls(
            code=ErrorCode.DATABASE_NOT_READY,
            message=f"Database context is {state}{suffix}",
            context={"state": state},
        )


# =============================================================================
# SUBMODEL ERRORS
# =============================================================================
@dataclass(eq=False)
class SubmodelError(DocMeshError):
    """
    Single-table-inheritance rule violated.

    Raised directly for abstract construction, discriminator override and
    invalid registrations; the subclasses cover the load-time failures.
    """

    @classmethod
    def because(cls, reason: str, **context: Any) -> SubmodelError:
        return cls(code=ErrorCode.SUBMODEL_ERROR, message=reason, context=context)


@dataclass(eq=False)
class WrongSubmodel(SubmodelError):
    @classmethod
    def mismatch(cls, model: str, stored: Any, expected: Optional[str]) -> WrongSubmodel:
        return cls(
            code=ErrorCode.WRONG_SUBMODEL,
            message=(
                f"Attempted to load {stored} as {model}. "
                f"Correct submodel would be {expected}"
            ),
            context={"model": model, "stored": stored, "expected": expected},
        )


@dataclass(eq=False)
class MissingSubmodel(SubmodelError):
    @classmethod
    def for_model(cls, model: str) -> MissingSubmodel:
        return cls(
            code=ErrorCode.MISSING_SUBMODEL,
            message=f"{model} document has no submodel in the database",
            context={"model": model},
        )


@dataclass(eq=False)
class UnknownSubmodel(SubmodelError):
    @classmethod
    def for_name(cls, model: str, name: Any) -> UnknownSubmodel:
        return cls(
            code=ErrorCode.UNKNOWN_SUBMODEL,
            message=f"Submodel {name} is not registered with {model}",
            context={"model": model, "submodel": name},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass(eq=False)
class ConfigurationError(DocMeshError):
    @classmethod
    def invalid(cls, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=f"Configuration error: {reason}",
            context={"reason": reason},
        )
