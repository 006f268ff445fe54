"""
Core Type Definitions for the Document Mesh

Implements a small Result/Either monad for fallible parsing and configuration
checks, and the identity/time types shared by every subsystem.

Design Principles:
- Parsing never raises: it returns Ok/Err
- Identifiers are immutable and hashable (usable as dict keys and in queries)
- Timestamps carry nanosecond precision for TTL bookkeeping

Lifecycle errors (validation, sharding, submodels) are raised as exceptions;
see docmesh.core.errors.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Literal,
    TypeVar,
    Union,
)
from uuid import UUID, uuid4

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success variant of Result."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result.

    Carries the error description for the caller to handle or raise.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# DOCUMENT IDENTIFIER
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class DocumentId:
    """
    Identifier of a persisted document.

    Assigned by the store on first insert and stored as the `_id` field.
    Equality and hashing follow the wrapped UUID, so a DocumentId can be used
    directly inside query filters.
    """

    value: UUID

    @classmethod
    def generate(cls) -> DocumentId:
        """Generate a fresh random identifier."""
        return cls(value=uuid4())

    @classmethod
    def from_string(cls, s: str) -> Result[DocumentId, str]:
        """
        Parse a DocumentId from its string representation.

        Returns:
            Ok[DocumentId]: Valid parsed identifier
            Err[str]: Validation error message
        """
        if not isinstance(s, str):
            return Err(f"Invalid DocumentId: expected str, got {type(s).__name__}")
        try:
            return Ok(cls(value=UUID(s)))
        except ValueError as e:
            return Err(f"Invalid DocumentId format: {e}")

    @property
    def hex(self) -> str:
        return self.value.hex

    # Immutable: copies share the instance
    def __copy__(self) -> DocumentId:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> DocumentId:
        return self

    def __str__(self) -> str:
        return self.value.hex

    def __repr__(self) -> str:
        return f"DocumentId({self.value.hex!r})"


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    High-precision timestamp.

    Stores nanoseconds since Unix epoch. Used for error correlation and
    cache entry expiry.
    """

    nanos: int

    NANOS_PER_SECOND: ClassVar[int] = 1_000_000_000

    @classmethod
    def now(cls) -> Timestamp:
        """Capture current time with nanosecond precision."""
        return cls(nanos=time.time_ns())

    @classmethod
    def after_seconds(cls, seconds: float) -> Timestamp:
        """Timestamp `seconds` from now."""
        return cls(nanos=time.time_ns() + int(seconds * cls.NANOS_PER_SECOND))

    @property
    def seconds(self) -> float:
        return self.nanos / self.NANOS_PER_SECOND

    def is_past(self) -> bool:
        return time.time_ns() > self.nanos

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"
