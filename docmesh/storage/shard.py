"""
Partition: Persistence Adapter over one Document Store

A Shard wraps one DocumentStoreProtocol handle and exposes the primitives
model instances are persisted with. Either the meta partition
(shard_id=None) or a named shard.

Guarantees:
- Mutating primitives on a read-only shard raise ShardIsReadOnly before
  the store is touched; reads stay available
- shard_id is stripped from every document written, and documents read
  from a named shard are tagged with it
- Store errors propagate unchanged

Query logging (DatabaseConfig.log_queries) goes through a StructuredLogger
bound to the shard name.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from docmesh.core.config import ShardConfig
from docmesh.core.constants import ID_FIELD, QUERY_LOGGER_NAME, SHARD_ID_FIELD
from docmesh.core.errors import ShardIsReadOnly
from docmesh.core.types import DocumentId
from docmesh.observability.logging import StructuredLogger
from docmesh.storage.protocols import (
    CollectionProtocol,
    CursorProtocol,
    Document,
    DocumentStoreProtocol,
    IndexSpec,
    Query,
    Update,
    WriteResult,
)

logger = logging.getLogger(__name__)


class Shard:
    """
    One storage partition.

    Example:
        shard = Shard(config, store, shard_id="s1")
        await shard.connect()
        result = await shard.insert("user", {"username": "bob"})
        doc = await shard.find_one("user", {"_id": result.inserted_id})
        doc["shard_id"]  # "s1"
    """

    __slots__ = ("shard_id", "config", "_store", "_log_queries", "_query_log")

    def __init__(
        self,
        config: ShardConfig,
        store: DocumentStoreProtocol,
        shard_id: Optional[str] = None,
        log_queries: bool = False,
    ) -> None:
        self.shard_id = shard_id
        self.config = config
        self._store = store
        self._log_queries = log_queries
        self._query_log = StructuredLogger(QUERY_LOGGER_NAME).with_extra(
            shard=self.name, dbname=config.dbname
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def name(self) -> str:
        return self.shard_id or "meta"

    @property
    def is_meta(self) -> bool:
        return self.shard_id is None

    @property
    def is_writable(self) -> bool:
        return self.config.open

    @property
    def dbname(self) -> str:
        return self.config.dbname

    @property
    def store(self) -> DocumentStoreProtocol:
        return self._store

    def __repr__(self) -> str:
        mode = "rw" if self.is_writable else "ro"
        return f"Shard({self.name}, db={self.dbname}, {mode})"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def connect(self) -> None:
        await self._store.connect()
        logger.debug(f"{self!r} connected")

    async def close(self) -> None:
        await self._store.close()
        logger.debug(f"{self!r} closed")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------
    def collection(self, name: str) -> CollectionProtocol:
        return self._store.collection(name)

    def _check_writable(self, operation: str) -> None:
        if not self.is_writable:
            raise ShardIsReadOnly.for_shard(self.shard_id, operation)

    def _trace(self, operation: str, collection: str, **details: Any) -> None:
        if self._log_queries:
            self._query_log.debug(
                f"Shard[{self.name}].{operation}({collection})",
                operation=operation,
                collection=collection,
                **details,
            )

    def tag(self, document: Optional[Document]) -> Optional[Document]:
        """Mark a document read from this partition with its shard id."""
        if document is not None and self.shard_id is not None:
            document[SHARD_ID_FIELD] = self.shard_id
        return document

    @staticmethod
    def _strip(document: Document) -> Document:
        return {k: v for k, v in document.items() if k != SHARD_ID_FIELD}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def find_one(self, collection: str, query: Query) -> Optional[Document]:
        self._trace("find_one", collection, query=query)
        document = await self.collection(collection).find_one(query)
        return self.tag(document)

    def find(self, collection: str, query: Query) -> CursorProtocol:
        """Raw store cursor; callers tag documents with tag()."""
        self._trace("find", collection, query=query)
        return self.collection(collection).find(query)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    async def insert(self, collection: str, document: Document) -> WriteResult:
        self._check_writable("insert")
        self._trace("insert", collection)
        data = self._strip(document)
        data.pop(ID_FIELD, None)
        return await self.collection(collection).insert_one(data)

    async def replace(
        self, collection: str, doc_id: DocumentId, document: Document
    ) -> WriteResult:
        """Full replace by identifier, inserting when the document is gone."""
        self._check_writable("replace")
        self._trace("replace", collection, id=str(doc_id))
        data = self._strip(document)
        data[ID_FIELD] = doc_id
        return await self.collection(collection).replace_one(
            {ID_FIELD: doc_id}, data, upsert=True
        )

    async def delete_one(self, collection: str, query: Query) -> WriteResult:
        self._check_writable("delete_one")
        self._trace("delete_one", collection, query=query)
        return await self.collection(collection).delete_one(query)

    async def delete_many(self, collection: str, query: Query) -> WriteResult:
        self._check_writable("delete_many")
        self._trace("delete_many", collection, query=query)
        return await self.collection(collection).delete_many(query)

    async def update_many(
        self, collection: str, query: Query, update: Update
    ) -> WriteResult:
        self._check_writable("update_many")
        self._trace("update_many", collection, query=query, update=update)
        return await self.collection(collection).update_many(query, update)

    async def find_one_and_update(
        self, collection: str, query: Query, update: Update
    ) -> Optional[Document]:
        self._check_writable("find_one_and_update")
        self._trace("find_one_and_update", collection, query=query, update=update)
        document = await self.collection(collection).find_one_and_update(query, update)
        return self.tag(document)

    async def create_index(
        self, collection: str, spec: IndexSpec, **options: Any
    ) -> str:
        self._check_writable("create_index")
        self._trace("create_index", collection, spec=spec)
        return await self.collection(collection).create_index(spec, **options)
