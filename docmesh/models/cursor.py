"""
Model Cursor

Lazily turns the documents of a store cursor into model instances.
Documents are tagged with the partition's shard id and built through
Model.from_document(), so abstract submodel bases yield mixed concrete
instances.
"""

from __future__ import annotations

import inspect
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Callable,
    Generic,
    Optional,
    TypeVar,
)

from docmesh.storage.protocols import ASCENDING, CursorProtocol, Document

if TYPE_CHECKING:
    from docmesh.storage.shard import Shard

M = TypeVar("M")


class ModelCursor(Generic[M]):
    """
    Chainable query result.

    Example:
        cursor = User.find({"active": True}).sort("username").limit(10)
        users = await cursor.all()
        async for user in User.find():
            ...
    """

    __slots__ = ("_cursor", "_model", "_shard", "_iterator", "_pending")

    def __init__(self, cursor: CursorProtocol, model: type[M], shard: Shard) -> None:
        self._cursor = cursor
        self._model = model
        self._shard = shard
        self._iterator: Optional[AsyncIterator[Document]] = None
        self._pending: Optional[Document] = None

    @property
    def model(self) -> type[M]:
        return self._model

    def _build(self, document: Document) -> M:
        return self._model.from_document(self._shard.tag(document))  # type: ignore[attr-defined]

    # -------------------------------------------------------------------------
    # Chaining
    # -------------------------------------------------------------------------
    def skip(self, count: int) -> ModelCursor[M]:
        self._cursor.skip(count)
        return self

    def limit(self, count: int) -> ModelCursor[M]:
        self._cursor.limit(count)
        return self

    def sort(self, key: str, direction: int = ASCENDING) -> ModelCursor[M]:
        self._cursor.sort(key, direction)
        return self

    # -------------------------------------------------------------------------
    # Consumption
    # -------------------------------------------------------------------------
    async def all(self) -> list[M]:
        return [self._build(doc) for doc in await self._cursor.to_list()]

    async def _fetch(self) -> Optional[Document]:
        if self._pending is not None:
            document, self._pending = self._pending, None
            return document
        if self._iterator is None:
            self._iterator = self._cursor.__aiter__()
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            return None

    async def next(self) -> Optional[M]:
        """Next instance, or None when the cursor is exhausted."""
        document = await self._fetch()
        if document is None:
            return None
        return self._build(document)

    async def has_next(self) -> bool:
        """True if next() would return an instance. Does not consume it."""
        if self._pending is None:
            self._pending = await self._fetch()
        return self._pending is not None

    def rewind(self) -> ModelCursor[M]:
        """Restart next()/has_next() from the first matching document."""
        self._cursor.rewind()
        self._iterator = None
        self._pending = None
        return self

    async def count(self) -> int:
        """Number of matching documents, ignoring skip and limit."""
        return await self._cursor.count()

    async def for_each(self, callback: Callable[[M, int], Any]) -> None:
        """Call `callback(instance, index)`; awaits it when it returns an awaitable."""
        index = 0
        async for instance in self:
            outcome = callback(instance, index)
            if inspect.isawaitable(outcome):
                await outcome
            index += 1

    def __aiter__(self) -> AsyncIterator[M]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[M]:
        async for document in self._cursor:
            yield self._build(document)

    def __repr__(self) -> str:
        return f"ModelCursor({self._model.__name__} @ {self._shard.name})"
