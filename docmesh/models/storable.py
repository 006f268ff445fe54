"""
Storable and Sharded Models

StorableModel persists instances in the meta partition of the bound
DatabaseContext; ShardedModel persists them in a named shard chosen per
instance (make({"shard_id": ...})) and per query (shard_id=...).

    ctx.bind(StorableModel)

    user = await User.make({"username": "bob"}).save()
    same = await User.get(user._id)
    await User.update_many({"active": False}, {"$set": {"archived": True}})

    event = await Event.make({"shard_id": "s1", "kind": "login"}).save()
    await Event.find({"kind": "login"}, shard_id="s1").all()

Every query passes through _preprocess_query(), which concrete submodels
use to narrow results to their discriminator.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Optional, TypeVar, Union

from docmesh.core.constants import ID_FIELD
from docmesh.core.errors import DatabaseNotReady, ModelDestroyed, ModelNotFound
from docmesh.core.types import DocumentId
from docmesh.models.base import BaseModel, save_required
from docmesh.models.cursor import ModelCursor
from docmesh.schema.registry import registry
from docmesh.storage.protocols import Query, Update, WriteResult

if TYPE_CHECKING:
    from docmesh.storage.context import DatabaseContext
    from docmesh.storage.shard import Shard

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="StorableModel")


def _index_parts(spec: Any) -> tuple[Any, dict[str, Any]]:
    """Accept either a bare index spec or {"index": spec, "options": {...}}."""
    if isinstance(spec, Mapping) and "index" in spec:
        return spec["index"], dict(spec.get("options") or {})
    return spec, {}


class StorableModel(BaseModel):
    """Model persisted in the meta partition."""

    __context__: ClassVar[Optional[DatabaseContext]] = None

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------
    @classmethod
    def context(cls) -> DatabaseContext:
        ctx = cls.__context__
        if ctx is None:
            raise DatabaseNotReady.in_state(
                "unbound", f"{cls.__name__} is not bound to a DatabaseContext"
            )
        return ctx

    @classmethod
    def get_shard(cls, shard_id: Optional[str] = None) -> Shard:
        return cls.context().resolve_partition(cls, shard_id)

    def db(self) -> Shard:
        """Partition this instance lives in."""
        return type(self).get_shard(self._shard_id)

    @classmethod
    def _preprocess_query(cls, query: Optional[Query]) -> Query:
        return dict(query or {})

    @classmethod
    def _query_for(cls, expression: Any) -> Query:
        if isinstance(expression, DocumentId):
            return {ID_FIELD: expression}
        if isinstance(expression, str):
            parsed = DocumentId.from_string(expression)
            if parsed.is_ok():
                return {ID_FIELD: parsed.unwrap()}
        return {cls.schema().key_field: expression}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------
    @classmethod
    async def find_one(
        cls: type[S], query: Query, shard_id: Optional[str] = None
    ) -> Optional[S]:
        shard = cls.get_shard(shard_id)
        document = await shard.find_one(cls.__collection__, cls._preprocess_query(query))
        if document is None:
            return None
        return cls.from_document(document)

    @classmethod
    async def get(
        cls: type[S],
        expression: Any,
        raise_error: Union[str, BaseException, None] = None,
        shard_id: Optional[str] = None,
    ) -> Optional[S]:
        """
        Fetch by identifier, or by the key field for anything that does not
        parse as a DocumentId.

        Args:
            raise_error: message for ModelNotFound, or an exception instance
                to raise, when nothing matches
        """
        if expression is None:
            return None
        result = await cls.find_one(cls._query_for(expression), shard_id)
        if result is None and raise_error is not None:
            if isinstance(raise_error, BaseException):
                raise raise_error
            raise ModelNotFound.with_message(cls.__name__, str(raise_error))
        return result

    @classmethod
    def find(
        cls: type[S], query: Optional[Query] = None, shard_id: Optional[str] = None
    ) -> ModelCursor[S]:
        shard = cls.get_shard(shard_id)
        cursor = shard.find(cls.__collection__, cls._preprocess_query(query))
        return ModelCursor(cursor, cls, shard)

    @classmethod
    async def update_many(
        cls, query: Query, update: Update, shard_id: Optional[str] = None
    ) -> WriteResult:
        shard = cls.get_shard(shard_id)
        return await shard.update_many(
            cls.__collection__, cls._preprocess_query(query), update
        )

    @classmethod
    async def destroy_many(
        cls, query: Query, shard_id: Optional[str] = None
    ) -> WriteResult:
        shard = cls.get_shard(shard_id)
        return await shard.delete_many(cls.__collection__, cls._preprocess_query(query))

    @classmethod
    async def destroy_all(cls, shard_id: Optional[str] = None) -> WriteResult:
        return await cls.destroy_many({}, shard_id)

    @classmethod
    async def ensure_indexes(cls) -> list[str]:
        """Create every declared index on each writable partition of the class."""
        created: list[str] = []
        indexes = cls.schema().indexes
        if not indexes:
            return created
        for shard in cls.context().partitions_for(cls):
            if not shard.is_writable:
                logger.debug(f"Skipping indexes of {cls.__name__} on read-only {shard!r}")
                continue
            for spec in indexes:
                index, options = _index_parts(spec)
                created.append(await shard.create_index(cls.__collection__, index, **options))
        return created

    # -------------------------------------------------------------------------
    # Instance persistence
    # -------------------------------------------------------------------------
    async def reload(self: S) -> S:
        """
        Overwrite every non-_id field with the stored values.

        Raises:
            ModelDestroyed: the document no longer exists
        """
        if self.is_new:
            return self
        fresh = await type(self).find_one({ID_FIELD: self._id}, self._shard_id)
        if fresh is None:
            raise ModelDestroyed.for_id(type(self).__name__, self._id)
        self._fill(fresh.to_object(include_restricted=True), registry.schema_of(type(self)))
        return self

    @save_required
    async def db_update(
        self,
        update: Update,
        when: Optional[Query] = None,
        reload: bool = True,
        invalidate_cache: bool = True,
    ) -> bool:
        """
        Atomically apply `update` to the stored document, optionally only
        when it also matches `when`.

        Returns:
            True if a document matched and was updated
        """
        query = {**(when or {}), ID_FIELD: self._id}
        document = await self.db().find_one_and_update(self.__collection__, query, update)
        if document is None:
            return False
        if invalidate_cache:
            await self.invalidate()
        if reload:
            self._fill(document, registry.schema_of(type(self)))
        return True

    async def _save_to_db(self) -> None:
        shard = self.db()
        data = self.to_object(include_restricted=True)
        if self.is_new:
            result = await shard.insert(self.__collection__, data)
            self._id = result.inserted_id
        else:
            await shard.replace(self.__collection__, self._id, data)

    async def _delete_from_db(self) -> None:
        await self.db().delete_one(self.__collection__, {ID_FIELD: self._id})


class ShardedModel(StorableModel):
    """
    Model persisted in a named shard.

    The shard id comes from make({"shard_id": ...}) or from the partition a
    document was loaded from, and never changes afterwards. It is not a
    field and is never written to the document.
    """

    __sharded__ = True

    @property
    def shard_id(self) -> Optional[str]:
        return self._shard_id
