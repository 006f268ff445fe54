"""
Document Store Protocol Definitions

Structural subtyping protocols (PEP 544) for the document-store collaborator:
- DocumentStoreProtocol: one connected database (connect/close/collection)
- CollectionProtocol: per-collection CRUD primitives
- CursorProtocol: lazily evaluated query result

Design Principles:
    - Async-first: every primitive suspends the caller, none blocks the loop
    - Documents are plain dicts; the identifier lives under "_id"
    - Driver errors propagate unchanged, nothing here retries
    - Write primitives return WriteResult metadata with latency

Queries and updates use the MongoDB operator vocabulary
($eq, $in, $set, $inc, ...); the in-memory store implements the subset
documented in docmesh.storage.memory.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from docmesh.core.config import ShardConfig
from docmesh.core.types import DocumentId

Document = dict[str, Any]
Query = dict[str, Any]
Update = dict[str, Any]
IndexSpec = Union[str, Sequence[Any]]

ASCENDING = 1
DESCENDING = -1


# =============================================================================
# OPERATION TYPE
# =============================================================================
class OperationType(Enum):
    """Store operation types for logging."""

    INSERT = "insert"
    REPLACE = "replace"
    UPDATE = "update"
    DELETE = "delete"
    FIND = "find"
    INDEX = "index"


# =============================================================================
# WRITE RESULT METADATA
# =============================================================================
@dataclass(frozen=True, slots=True)
class WriteResult:
    """
    Metadata returned by every write primitive.

    Immutable to prevent accidental modification after return.
    """

    operation: OperationType
    latency_ns: int
    matched_count: int = 0
    modified_count: int = 0
    deleted_count: int = 0
    inserted_id: Optional[DocumentId] = None
    upserted: bool = False

    @property
    def latency_ms(self) -> float:
        """Latency in milliseconds."""
        return self.latency_ns / 1_000_000

    @property
    def acknowledged(self) -> bool:
        return True


# =============================================================================
# CURSOR PROTOCOL
# =============================================================================
@runtime_checkable
class CursorProtocol(Protocol):
    """
    Lazily evaluated query result.

    skip/limit/sort return the cursor itself for chaining and must be called
    before iteration starts.
    """

    def skip(self, count: int) -> CursorProtocol:
        ...

    def limit(self, count: int) -> CursorProtocol:
        ...

    def sort(self, key: str, direction: int = ASCENDING) -> CursorProtocol:
        ...

    async def to_list(self) -> list[Document]:
        ...

    async def count(self) -> int:
        """Number of matching documents, ignoring skip and limit."""
        ...

    def rewind(self) -> CursorProtocol:
        """Reset iteration so the next pass starts from the first document."""
        ...

    def __aiter__(self) -> AsyncIterator[Document]:
        ...


# =============================================================================
# COLLECTION PROTOCOL
# =============================================================================
@runtime_checkable
class CollectionProtocol(Protocol):
    """Per-collection primitives required by the persistence adapter."""

    name: str

    async def find_one(self, query: Query) -> Optional[Document]:
        ...

    def find(self, query: Query) -> CursorProtocol:
        ...

    async def insert_one(self, document: Document) -> WriteResult:
        """Insert and assign a fresh DocumentId when `_id` is absent."""
        ...

    async def replace_one(
        self, query: Query, document: Document, upsert: bool = False
    ) -> WriteResult:
        ...

    async def delete_one(self, query: Query) -> WriteResult:
        ...

    async def delete_many(self, query: Query) -> WriteResult:
        ...

    async def update_many(self, query: Query, update: Update) -> WriteResult:
        ...

    async def find_one_and_update(
        self, query: Query, update: Update
    ) -> Optional[Document]:
        """Apply `update` to the first match and return the updated document."""
        ...

    async def create_index(self, spec: IndexSpec, **options: Any) -> str:
        ...


# =============================================================================
# STORE PROTOCOL
# =============================================================================
@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """One connected database of the document store."""

    dbname: str

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def collection(self, name: str) -> CollectionProtocol:
        ...


StoreFactory = Callable[[ShardConfig], DocumentStoreProtocol]
