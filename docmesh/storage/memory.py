"""
In-Memory Document Store: Development and Testing Implementation

Implements the document store protocols without a server:
- InMemoryDocumentStore: one database, collections created lazily
- InMemoryCollection: CRUD primitives over insertion-ordered documents
- InMemoryCursor: skip/limit/sort, async iteration

Query subset:
    {"field": value}                equality (dotted paths, array membership,
                                    None matches missing fields)
    $eq $ne $gt $gte $lt $lte $in $nin $exists
    $and $or

Update subset:
    $set $unset $inc $push (with optional $each)
    A dict without operators is treated as {"$set": ...}

Design Principles:
    - Documents are deep-copied on the way in and on the way out,
      so callers never alias stored state
    - All operations of one store are serialized by an asyncio.Lock
    - Errors (bad operators, duplicate ids) raise immediately

Performance Characteristics:
    - find_one/find: O(n) scan of the collection
    - insert: O(1)
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Mapping
from typing import Any, AsyncIterator, Callable, Optional

from docmesh.core.config import ShardConfig
from docmesh.core.constants import ID_FIELD, MEMORY_URI_SCHEME
from docmesh.core.errors import ConfigurationError
from docmesh.core.types import DocumentId
from docmesh.storage.protocols import (
    ASCENDING,
    Document,
    IndexSpec,
    OperationType,
    Query,
    Update,
    WriteResult,
)

logger = logging.getLogger(__name__)

_MISSING = object()


# =============================================================================
# QUERY MATCHING
# =============================================================================
def get_path(document: Any, path: str) -> Any:
    """Resolve a dotted path; returns _MISSING when any segment is absent."""
    current = document
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _equals(actual: Any, expected: Any) -> bool:
    if actual is _MISSING:
        return expected is None
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        if actual is _MISSING or actual is None:
            return False
        try:
            return op(actual, expected)
        except TypeError:
            return False

    return check


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _equals,
    "$ne": lambda actual, expected: not _equals(actual, expected),
    "$gt": _compare(lambda a, b: a > b),
    "$gte": _compare(lambda a, b: a >= b),
    "$lt": _compare(lambda a, b: a < b),
    "$lte": _compare(lambda a, b: a <= b),
    "$in": lambda actual, options: any(_equals(actual, o) for o in options),
    "$nin": lambda actual, options: not any(_equals(actual, o) for o in options),
    "$exists": lambda actual, flag: (actual is not _MISSING) == bool(flag),
}


def _is_operator_doc(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and bool(value)
        and all(isinstance(k, str) and k.startswith("$") for k in value)
    )


def matches(document: Document, query: Query) -> bool:
    """True if `document` satisfies every clause of `query`."""
    for key, condition in query.items():
        if key == "$and":
            if not all(matches(document, q) for q in condition):
                return False
            continue
        if key == "$or":
            if not any(matches(document, q) for q in condition):
                return False
            continue
        if key.startswith("$"):
            raise ValueError(f"unsupported query operator: {key}")

        actual = get_path(document, key)
        if _is_operator_doc(condition):
            for op, argument in condition.items():
                check = _OPERATORS.get(op)
                if check is None:
                    raise ValueError(f"unsupported query operator: {op}")
                if not check(actual, argument):
                    return False
        elif not _equals(actual, condition):
            return False
    return True


# =============================================================================
# UPDATE OPERATORS
# =============================================================================
def _parent_of(document: Document, path: str, create: bool) -> tuple[Any, str]:
    parts = path.split(".")
    current: Any = document
    for part in parts[:-1]:
        if part not in current or not isinstance(current[part], dict):
            if not create:
                return None, parts[-1]
            current[part] = {}
        current = current[part]
    return current, parts[-1]


def _op_set(document: Document, path: str, value: Any) -> None:
    parent, leaf = _parent_of(document, path, create=True)
    parent[leaf] = copy.deepcopy(value)


def _op_unset(document: Document, path: str, value: Any) -> None:
    parent, leaf = _parent_of(document, path, create=False)
    if parent is not None:
        parent.pop(leaf, None)


def _op_inc(document: Document, path: str, value: Any) -> None:
    parent, leaf = _parent_of(document, path, create=True)
    parent[leaf] = parent.get(leaf, 0) + value


def _op_push(document: Document, path: str, value: Any) -> None:
    parent, leaf = _parent_of(document, path, create=True)
    items = value["$each"] if _is_operator_doc(value) and "$each" in value else [value]
    target = parent.setdefault(leaf, [])
    if not isinstance(target, list):
        raise ValueError(f"$push target {path!r} is not an array")
    target.extend(copy.deepcopy(items))


_UPDATE_OPERATORS: dict[str, Callable[[Document, str, Any], None]] = {
    "$set": _op_set,
    "$unset": _op_unset,
    "$inc": _op_inc,
    "$push": _op_push,
}


def apply_update(document: Document, update: Update) -> Document:
    """Return a new document with `update` applied."""
    if not _is_operator_doc(update):
        update = {"$set": update}

    result = copy.deepcopy(document)
    for op, fields in update.items():
        handler = _UPDATE_OPERATORS.get(op)
        if handler is None:
            raise ValueError(f"unsupported update operator: {op}")
        for path, value in fields.items():
            if path == ID_FIELD:
                raise ValueError("_id is immutable")
            handler(result, path, value)
    return result


def _sort_key(path: str) -> Callable[[Document], tuple[int, Any]]:
    def key(document: Document) -> tuple[int, Any]:
        value = get_path(document, path)
        if value is _MISSING or value is None:
            return (0, 0)
        return (1, value)

    return key


# =============================================================================
# CURSOR
# =============================================================================
class InMemoryCursor:
    """
    Lazily evaluated result of InMemoryCollection.find().

    The query runs when the cursor is first consumed.
    """

    __slots__ = ("_collection", "_query", "_skip", "_limit", "_sort")

    def __init__(self, collection: InMemoryCollection, query: Query) -> None:
        self._collection = collection
        self._query = query
        self._skip = 0
        self._limit = 0
        self._sort: list[tuple[str, int]] = []

    def skip(self, count: int) -> InMemoryCursor:
        if count < 0:
            raise ValueError("skip must be >= 0")
        self._skip = count
        return self

    def limit(self, count: int) -> InMemoryCursor:
        if count < 0:
            raise ValueError("limit must be >= 0")
        self._limit = count
        return self

    def sort(self, key: str, direction: int = ASCENDING) -> InMemoryCursor:
        self._sort.append((key, direction))
        return self

    async def to_list(self) -> list[Document]:
        documents = await self._collection._select(self._query)
        # Stable sorts applied last key first give multi-key ordering
        for key, direction in reversed(self._sort):
            documents.sort(key=_sort_key(key), reverse=direction < 0)
        documents = documents[self._skip:]
        if self._limit:
            documents = documents[: self._limit]
        return documents

    async def count(self) -> int:
        return len(await self._collection._select(self._query))

    def rewind(self) -> InMemoryCursor:
        # Every iteration re-runs the query
        return self

    def __aiter__(self) -> AsyncIterator[Document]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Document]:
        for document in await self.to_list():
            yield document


# =============================================================================
# COLLECTION
# =============================================================================
class InMemoryCollection:
    """
    One collection of an InMemoryDocumentStore.

    Thread Safety:
        Shares the owning store's asyncio.Lock.
    """

    __slots__ = ("name", "_documents", "_indexes", "_lock")

    def __init__(self, name: str, lock: asyncio.Lock) -> None:
        self.name = name
        self._documents: dict[DocumentId, Document] = {}
        self._indexes: dict[str, tuple[Any, dict[str, Any]]] = {}
        self._lock = lock

    def __len__(self) -> int:
        return len(self._documents)

    @staticmethod
    def _measure_time() -> int:
        return time.time_ns()

    def _first_match(self, query: Query) -> Optional[Document]:
        for document in self._documents.values():
            if matches(document, query):
                return document
        return None

    async def _select(self, query: Query) -> list[Document]:
        async with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._documents.values()
                if matches(doc, query)
            ]

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def find_one(self, query: Query) -> Optional[Document]:
        async with self._lock:
            document = self._first_match(query)
            return copy.deepcopy(document) if document is not None else None

    def find(self, query: Query) -> InMemoryCursor:
        return InMemoryCursor(self, query)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    async def insert_one(self, document: Document) -> WriteResult:
        start_ns = self._measure_time()
        async with self._lock:
            stored = copy.deepcopy(document)
            doc_id = stored.get(ID_FIELD) or DocumentId.generate()
            if doc_id in self._documents:
                raise ValueError(f"duplicate key {ID_FIELD}={doc_id} in {self.name}")
            stored[ID_FIELD] = doc_id
            self._documents[doc_id] = stored

            return WriteResult(
                operation=OperationType.INSERT,
                latency_ns=self._measure_time() - start_ns,
                inserted_id=doc_id,
            )

    async def replace_one(
        self, query: Query, document: Document, upsert: bool = False
    ) -> WriteResult:
        start_ns = self._measure_time()
        async with self._lock:
            current = self._first_match(query)
            stored = copy.deepcopy(document)

            if current is not None:
                doc_id = current[ID_FIELD]
                stored[ID_FIELD] = doc_id
                self._documents[doc_id] = stored
                return WriteResult(
                    operation=OperationType.REPLACE,
                    latency_ns=self._measure_time() - start_ns,
                    matched_count=1,
                    modified_count=1,
                )

            if not upsert:
                return WriteResult(
                    operation=OperationType.REPLACE,
                    latency_ns=self._measure_time() - start_ns,
                )

            doc_id = stored.get(ID_FIELD)
            if doc_id is None and isinstance(query.get(ID_FIELD), DocumentId):
                doc_id = query[ID_FIELD]
            doc_id = doc_id or DocumentId.generate()
            stored[ID_FIELD] = doc_id
            self._documents[doc_id] = stored
            return WriteResult(
                operation=OperationType.REPLACE,
                latency_ns=self._measure_time() - start_ns,
                inserted_id=doc_id,
                upserted=True,
            )

    async def delete_one(self, query: Query) -> WriteResult:
        start_ns = self._measure_time()
        async with self._lock:
            current = self._first_match(query)
            if current is not None:
                del self._documents[current[ID_FIELD]]
            return WriteResult(
                operation=OperationType.DELETE,
                latency_ns=self._measure_time() - start_ns,
                deleted_count=0 if current is None else 1,
            )

    async def delete_many(self, query: Query) -> WriteResult:
        start_ns = self._measure_time()
        async with self._lock:
            doomed = [k for k, doc in self._documents.items() if matches(doc, query)]
            for doc_id in doomed:
                del self._documents[doc_id]
            return WriteResult(
                operation=OperationType.DELETE,
                latency_ns=self._measure_time() - start_ns,
                deleted_count=len(doomed),
            )

    async def update_many(self, query: Query, update: Update) -> WriteResult:
        start_ns = self._measure_time()
        async with self._lock:
            matched = [k for k, doc in self._documents.items() if matches(doc, query)]
            modified = 0
            for doc_id in matched:
                updated = apply_update(self._documents[doc_id], update)
                if updated != self._documents[doc_id]:
                    modified += 1
                self._documents[doc_id] = updated
            return WriteResult(
                operation=OperationType.UPDATE,
                latency_ns=self._measure_time() - start_ns,
                matched_count=len(matched),
                modified_count=modified,
            )

    async def find_one_and_update(
        self, query: Query, update: Update
    ) -> Optional[Document]:
        async with self._lock:
            current = self._first_match(query)
            if current is None:
                return None
            updated = apply_update(current, update)
            self._documents[current[ID_FIELD]] = updated
            return copy.deepcopy(updated)

    async def create_index(self, spec: IndexSpec, **options: Any) -> str:
        if isinstance(spec, str):
            keys = [(spec, ASCENDING)]
        else:
            keys = [
                (item, ASCENDING) if isinstance(item, str) else tuple(item)
                for item in spec
            ]
        name = options.get("name") or "_".join(f"{k}_{d}" for k, d in keys)
        async with self._lock:
            self._indexes[name] = (keys, dict(options))
        return name

    def index_information(self) -> dict[str, tuple[Any, dict[str, Any]]]:
        return dict(self._indexes)


# =============================================================================
# STORE
# =============================================================================
class InMemoryDocumentStore:
    """
    In-memory database implementing DocumentStoreProtocol.

    Example:
        store = InMemoryDocumentStore("app")
        await store.connect()
        users = store.collection("user")
        result = await users.insert_one({"username": "bob"})
        await users.find_one({"_id": result.inserted_id})
    """

    __slots__ = ("uri", "dbname", "_collections", "_lock", "_connected")

    def __init__(self, dbname: str, uri: str = MEMORY_URI_SCHEME) -> None:
        self.uri = uri
        self.dbname = dbname
        self._collections: dict[str, InMemoryCollection] = {}
        self._lock = asyncio.Lock()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.debug(f"In-memory store connected: {self.uri} db={self.dbname}")

    async def close(self) -> None:
        self._connected = False

    def collection(self, name: str) -> InMemoryCollection:
        coll = self._collections.get(name)
        if coll is None:
            coll = InMemoryCollection(name, self._lock)
            self._collections[name] = coll
        return coll

    def collection_names(self) -> list[str]:
        return list(self._collections)

    async def drop(self) -> None:
        """Remove every collection."""
        async with self._lock:
            self._collections.clear()


def memory_store_factory(config: ShardConfig) -> InMemoryDocumentStore:
    """
    Default store factory: serves memory:// URIs only.

    Raises:
        ConfigurationError: for any other URI scheme
    """
    if not config.uri.startswith(MEMORY_URI_SCHEME):
        raise ConfigurationError.invalid(
            f"no store driver for {config.uri!r}; pass store_factory to DatabaseContext"
        )
    return InMemoryDocumentStore(config.dbname, uri=config.uri)
