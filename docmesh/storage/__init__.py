"""
Storage Module: Partitions, Routing and the Document Store Seam
================================================================

Provides:
- Protocol definitions for the document-store collaborator
- In-memory store for development/testing (memory:// URIs)
- Shard: persistence adapter over one store handle
- DatabaseContext: partition router with an explicit lifecycle

Design Principles:
-----------------
1. **Backend Agnostic**: models only see Shard, never the driver
2. **Injectable**: DatabaseContext takes a store factory per ShardConfig
3. **Fail Fast**: read-only partitions reject writes before any I/O

Example:
    >>> config = DatabaseConfig.from_dict({
    ...     "meta": {"uri": "memory://meta", "dbname": "app"},
    ...     "shards": {"s1": {"uri": "memory://s1", "dbname": "app_s1"}},
    ... })
    >>> async with DatabaseContext(config).bind(StorableModel) as ctx:
    ...     ...
"""

from docmesh.storage.protocols import (
    ASCENDING,
    DESCENDING,
    CollectionProtocol,
    CursorProtocol,
    Document,
    DocumentStoreProtocol,
    OperationType,
    Query,
    StoreFactory,
    Update,
    WriteResult,
)
from docmesh.storage.memory import (
    InMemoryCollection,
    InMemoryCursor,
    InMemoryDocumentStore,
    apply_update,
    matches,
    memory_store_factory,
)
from docmesh.storage.shard import Shard
from docmesh.storage.context import ContextState, DatabaseContext

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "CollectionProtocol",
    "CursorProtocol",
    "Document",
    "DocumentStoreProtocol",
    "OperationType",
    "Query",
    "StoreFactory",
    "Update",
    "WriteResult",
    "InMemoryCollection",
    "InMemoryCursor",
    "InMemoryDocumentStore",
    "apply_update",
    "matches",
    "memory_store_factory",
    "Shard",
    "ContextState",
    "DatabaseContext",
]
