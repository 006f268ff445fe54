"""
Configuration and DatabaseContext Test Suite.

Run: python -m pytest docmesh/tests/test_config_context.py -v
"""

from __future__ import annotations

import logging

import pytest

from docmesh.cache import RedisCacheAdapter, SimpleCacheAdapter, create_cache_adapter
from docmesh.core.config import CacheConfig, CacheType, DatabaseConfig, ShardConfig
from docmesh.core.constants import QUERY_LOGGER_NAME
from docmesh.core.errors import (
    ConfigurationError,
    DatabaseNotReady,
    InvalidShardId,
    NoWritableShard,
)
from docmesh.models import StorableModel
from docmesh.schema import StringField
from docmesh.storage import ContextState, DatabaseContext, InMemoryDocumentStore


class Tag(StorableModel):
    label = StringField(required=True)


# =============================================================================
# TEST: CONFIGURATION
# =============================================================================
def test_shard_config_requires_uri_and_dbname():
    with pytest.raises(ValueError):
        ShardConfig(uri="", dbname="db")
    with pytest.raises(ValueError):
        ShardConfig(uri="memory://", dbname="")


def test_cache_config_validation():
    with pytest.raises(ValueError):
        CacheConfig(default_ttl=0)
    with pytest.raises(ValueError):
        CacheConfig(type=CacheType.REDIS, backends=("no-port",))


def test_from_dict(settings):
    settings["cache"] = {"type": "redis", "backends": "a:6379, b:6380"}
    config = DatabaseConfig.from_dict(settings)

    assert config.meta.dbname == "test"
    assert list(config.shards) == ["s1", "s2", "ro"]
    assert not config.shards["ro"].open
    assert config.cache.type is CacheType.REDIS
    assert config.cache.backends == ("a:6379", "b:6380")
    assert config.writable_shard_ids == ["s1", "s2"]


def test_from_dict_memcached_selects_network_cache(settings):
    settings["cache"] = {"type": "memcached", "backends": ["localhost:11211"]}
    config = DatabaseConfig.from_dict(settings)

    assert config.cache.type is CacheType.REDIS
    assert config.cache.backends == ("localhost:11211",)
    assert config.validate().is_ok()

    adapter = create_cache_adapter(config.cache)
    assert isinstance(adapter, RedisCacheAdapter)


def test_from_dict_unknown_cache_type(settings):
    settings["cache"] = {"type": "couchbase"}
    with pytest.raises(ConfigurationError):
        DatabaseConfig.from_dict(settings)


def test_from_dict_without_meta():
    with pytest.raises(ConfigurationError) as exc:
        DatabaseConfig.from_dict({"shards": {}})
    assert "meta partition is not configured" in str(exc.value)


def test_from_dict_malformed_shard():
    with pytest.raises(ConfigurationError):
        DatabaseConfig.from_dict(
            {"meta": {"uri": "memory://m", "dbname": "m"}, "shards": {"s1": {"uri": "x"}}}
        )


def test_from_env(monkeypatch):
    monkeypatch.setenv("DOCMESH_META_URI", "memory://main")
    monkeypatch.setenv("DOCMESH_SHARDS", "eu, us")
    monkeypatch.setenv("DOCMESH_SHARD_US_OPEN", "false")
    monkeypatch.setenv("DOCMESH_CACHE_TYPE", "simple")
    monkeypatch.setenv("DOCMESH_CACHE_TTL", "30")

    config = DatabaseConfig.from_env().unwrap()

    assert config.meta.uri == "memory://main"
    assert config.meta.dbname == "docmesh"
    assert config.shards["eu"].uri == "memory://eu"
    assert config.shards["eu"].dbname == "docmesh_eu"
    assert not config.shards["us"].open
    assert config.cache.default_ttl == 30


def test_from_env_defaults_have_no_cache(monkeypatch):
    for name in ("DOCMESH_CACHE_TYPE", "DOCMESH_SHARDS"):
        monkeypatch.delenv(name, raising=False)

    config = DatabaseConfig.from_env().unwrap()
    assert config.cache is None
    assert config.shards == {}


def test_from_env_invalid_value(monkeypatch):
    monkeypatch.setenv("DOCMESH_CACHE_TYPE", "couchbase")
    assert DatabaseConfig.from_env().is_err()


def test_validate_redis_needs_backends():
    config = DatabaseConfig(
        meta=ShardConfig(uri="memory://m", dbname="m"),
        cache=CacheConfig(type=CacheType.REDIS),
    )
    assert config.validate().is_err()


# =============================================================================
# TEST: CONTEXT LIFECYCLE
# =============================================================================
async def test_accessors_require_ready(settings):
    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))

    assert ctx.state is ContextState.UNINITIALIZED
    with pytest.raises(DatabaseNotReady):
        ctx.meta
    with pytest.raises(DatabaseNotReady):
        ctx.get_shard("s1")

    await ctx.init()
    assert ctx.is_ready
    assert ctx.meta.is_meta

    await ctx.close()
    assert ctx.state is ContextState.CLOSED
    with pytest.raises(DatabaseNotReady):
        ctx.shards
    with pytest.raises(DatabaseNotReady):
        ctx.meta


def test_meta_without_partition_raises_not_ready(settings):
    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))
    ctx._state = ContextState.READY

    with pytest.raises(DatabaseNotReady):
        ctx.meta


async def test_init_twice_and_close_twice(settings):
    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))
    await ctx.init()
    with pytest.raises(DatabaseNotReady):
        await ctx.init()

    await ctx.close()
    await ctx.close()

    with pytest.raises(DatabaseNotReady):
        await ctx.init()


async def test_async_context_manager(settings):
    async with DatabaseContext(DatabaseConfig.from_dict(settings)) as ctx:
        assert ctx.is_ready
        assert isinstance(ctx.cache, SimpleCacheAdapter)
    assert ctx.state is ContextState.CLOSED


async def test_get_shard_unknown(context):
    with pytest.raises(InvalidShardId):
        context.get_shard("nope")


async def test_shards_returns_copy(context):
    context.shards.pop("s1")
    assert "s1" in context.shards


async def test_invalid_config_does_not_init():
    config = DatabaseConfig(
        meta=ShardConfig(uri="memory://m", dbname="m"),
        cache=CacheConfig(type=CacheType.REDIS),
    )
    ctx = DatabaseContext(config)

    with pytest.raises(ConfigurationError):
        await ctx.init()
    assert ctx.state is ContextState.UNINITIALIZED


async def test_failed_init_releases_opened_stores(settings):
    opened = []

    def factory(shard_config):
        if shard_config.dbname == "test_s2":
            raise ConfigurationError.invalid("s2 unreachable")
        store = InMemoryDocumentStore(shard_config.dbname, uri=shard_config.uri)
        opened.append(store)
        return store

    ctx = DatabaseContext(DatabaseConfig.from_dict(settings), store_factory=factory)

    with pytest.raises(ConfigurationError):
        await ctx.init()

    assert ctx.state is ContextState.UNINITIALIZED
    assert [s.dbname for s in opened] == ["test", "test_s1"]
    assert not any(store.is_connected for store in opened)


async def test_unsupported_uri(settings):
    settings["shards"]["s1"]["uri"] = "mongodb://localhost"
    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))

    with pytest.raises(ConfigurationError):
        await ctx.init()


async def test_cache_override(settings):
    cache = SimpleCacheAdapter(default_ttl=5)
    async with DatabaseContext(DatabaseConfig.from_dict(settings), cache=cache) as ctx:
        assert ctx.cache is cache


async def test_no_writable_shard(settings):
    for shard in settings["shards"].values():
        shard["open"] = False
    async with DatabaseContext(DatabaseConfig.from_dict(settings)) as ctx:
        with pytest.raises(NoWritableShard):
            ctx.random_writable_shard_id()


async def test_bind_routes_models(settings):
    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))
    ctx.bind(Tag)
    try:
        async with ctx:
            tag = await Tag.make({"label": "x"}).save()
            assert (await Tag.get(tag._id)).label == "x"
            assert Tag.context() is ctx
    finally:
        del Tag.__context__


# =============================================================================
# TEST: QUERY LOGGING
# =============================================================================
async def test_log_queries(settings, caplog):
    settings["log_queries"] = True
    caplog.set_level(logging.DEBUG, logger=QUERY_LOGGER_NAME)

    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))
    async with ctx:
        await ctx.get_shard("s1").find_one("events", {"kind": "x"})

    records = [r for r in caplog.records if r.name == QUERY_LOGGER_NAME]
    assert len(records) == 1
    assert records[0].operation == "find_one"
    assert records[0].shard == "s1"
    assert records[0].query == {"kind": "x"}


async def test_queries_not_logged_by_default(context, caplog):
    caplog.set_level(logging.DEBUG, logger=QUERY_LOGGER_NAME)
    await context.meta.find_one("events", {})
    assert not [r for r in caplog.records if r.name == QUERY_LOGGER_NAME]
