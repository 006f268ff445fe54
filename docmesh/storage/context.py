"""
Database Context: Shard Router and Connection Lifecycle

Owns the meta partition, the named shards and the optional cache adapter,
and routes model classes to partitions.

Lifecycle:
    UNINITIALIZED --init()--> INITIALIZING --> READY --close()--> CLOSED

Accessors (meta, shards, cache, get_shard, resolve_partition) raise
DatabaseNotReady outside READY. A failed init() closes whatever was opened
and returns to UNINITIALIZED.

Models find their context through the `__context__` class attribute set by
bind(); binding a base class binds every subclass that does not override it.

Usage:
    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))
    ctx.bind(StorableModel)
    async with ctx:
        await User.make({"username": "bob"}).save()
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from typing import Any, Optional

from docmesh.cache.adapters import CacheAdapter, create_cache_adapter
from docmesh.core.config import DatabaseConfig
from docmesh.core.errors import (
    ConfigurationError,
    DatabaseNotReady,
    InvalidShardId,
    MissingShardId,
    NoWritableShard,
)
from docmesh.schema.registry import schema_of
from docmesh.storage.memory import memory_store_factory
from docmesh.storage.protocols import StoreFactory
from docmesh.storage.shard import Shard

logger = logging.getLogger(__name__)


class ContextState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


class DatabaseContext:
    """
    Explicit holder of store and cache connections.

    Args:
        config: Partition and cache configuration
        store_factory: Builds a store handle per ShardConfig
            (default: in-memory store for memory:// URIs)
        cache: Pre-built cache adapter, overriding config.cache
    """

    __slots__ = (
        "config",
        "_store_factory",
        "_cache_override",
        "_state",
        "_meta",
        "_shards",
        "_cache",
    )

    def __init__(
        self,
        config: DatabaseConfig,
        store_factory: Optional[StoreFactory] = None,
        cache: Optional[CacheAdapter] = None,
    ) -> None:
        self.config = config
        self._store_factory = store_factory or memory_store_factory
        self._cache_override = cache
        self._state = ContextState.UNINITIALIZED
        self._meta: Optional[Shard] = None
        self._shards: dict[str, Shard] = {}
        self._cache: Optional[CacheAdapter] = None

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ContextState.READY

    def __repr__(self) -> str:
        return (
            f"DatabaseContext(state={self._state.value}, "
            f"shards={list(self.config.shards)})"
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def init(self) -> DatabaseContext:
        """
        Connect every partition and the cache.

        Raises:
            DatabaseNotReady: init() on a context that is not UNINITIALIZED
            ConfigurationError: invalid configuration or unsupported URI
        """
        if self._state is not ContextState.UNINITIALIZED:
            raise DatabaseNotReady.in_state(self._state.value, "init() not allowed")

        validation = self.config.validate()
        if validation.is_err():
            raise ConfigurationError.invalid(validation.error)

        self._state = ContextState.INITIALIZING
        try:
            log_queries = self.config.log_queries
            meta = Shard(
                self.config.meta,
                self._store_factory(self.config.meta),
                log_queries=log_queries,
            )
            await meta.connect()
            self._meta = meta

            for shard_id, shard_config in self.config.shards.items():
                shard = Shard(
                    shard_config,
                    self._store_factory(shard_config),
                    shard_id=shard_id,
                    log_queries=log_queries,
                )
                await shard.connect()
                self._shards[shard_id] = shard

            cache = self._cache_override
            if cache is None and self.config.cache is not None:
                cache = create_cache_adapter(self.config.cache)
            if cache is not None:
                await cache.init()
            self._cache = cache
        except BaseException:
            await self._release()
            self._state = ContextState.UNINITIALIZED
            raise

        self._state = ContextState.READY
        logger.info(
            f"Database context ready: meta={self.config.meta.dbname} "
            f"shards={list(self._shards)} cache={type(self._cache).__name__ if self._cache is not None else None}"
        )
        return self

    async def close(self) -> None:
        """Close every connection. Idempotent."""
        if self._state in (ContextState.CLOSED, ContextState.UNINITIALIZED):
            return
        await self._release()
        self._state = ContextState.CLOSED
        logger.info("Database context closed")

    async def _release(self) -> None:
        if self._cache is not None:
            await self._cache.close()
        for shard in self._shards.values():
            await shard.close()
        if self._meta is not None:
            await self._meta.close()
        self._cache = None
        self._shards = {}
        self._meta = None

    async def __aenter__(self) -> DatabaseContext:
        return await self.init()

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def bind(self, *model_classes: type) -> DatabaseContext:
        """Route the given model classes (and their subclasses) to this context."""
        for model_cls in model_classes:
            model_cls.__context__ = self
        return self

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------
    def _require_ready(self) -> None:
        if self._state is not ContextState.READY:
            raise DatabaseNotReady.in_state(self._state.value)

    @property
    def meta(self) -> Shard:
        self._require_ready()
        if self._meta is None:
            raise DatabaseNotReady.in_state(self._state.value)
        return self._meta

    @property
    def shards(self) -> dict[str, Shard]:
        self._require_ready()
        return dict(self._shards)

    @property
    def cache(self) -> Optional[CacheAdapter]:
        self._require_ready()
        return self._cache

    def get_shard(self, shard_id: str) -> Shard:
        self._require_ready()
        shard = self._shards.get(shard_id)
        if shard is None:
            raise InvalidShardId.for_shard(shard_id)
        return shard

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------
    def resolve_partition(self, model_cls: type, shard_id: Optional[str] = None) -> Shard:
        """
        Partition a model class lives in.

        Non-sharded classes always use meta, whatever shard_id says.

        Raises:
            MissingShardId: sharded class without shard_id
            InvalidShardId: unknown shard_id
        """
        if not schema_of(model_cls).sharded:
            return self.meta
        if not shard_id:
            raise MissingShardId.for_model(model_cls.__name__)
        return self.get_shard(shard_id)

    def partitions_for(self, model_cls: type) -> list[Shard]:
        """Every partition the class may live in."""
        if schema_of(model_cls).sharded:
            return list(self.shards.values())
        return [self.meta]

    def random_writable_shard_id(self) -> str:
        """
        Pick a named shard accepting writes.

        Raises:
            NoWritableShard: every shard is read-only (or none exist)
        """
        candidates = [sid for sid, shard in self.shards.items() if shard.is_writable]
        if not candidates:
            raise NoWritableShard.among(list(self._shards))
        return random.choice(candidates)
