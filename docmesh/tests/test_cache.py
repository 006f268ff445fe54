"""
Cache Test Suite: adapters, payload codec, memoization wrapper.

The Redis adapter is exercised against an injected in-process client
exposing the subset of redis.asyncio.Redis it calls.

Run: python -m pytest docmesh/tests/test_cache.py -v
"""

from __future__ import annotations

import types

import pytest
import pytest_asyncio

import docmesh.core.types as core_types
from docmesh.cache import (
    RedisCacheAdapter,
    SimpleCacheAdapter,
    cached_method,
    create_cache_adapter,
    create_key,
    decode_value,
    encode_value,
    memoize,
    qualified_name,
)
from docmesh.cache.adapters import parse_backend
from docmesh.core import constants as C
from docmesh.core.config import CacheConfig, CacheType
from docmesh.core.errors import ConfigurationError


class FakeRedis:
    """Minimal async stand-in for redis.asyncio.Redis."""

    def __init__(self):
        self.data = {}
        self.expiries = {}
        self.closed = False
        self.fail = False

    async def ping(self):
        return True

    async def get(self, key):
        if self.fail:
            raise ConnectionError("redis is down")
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiries[key] = ex
        return True

    async def exists(self, key):
        return int(key in self.data)

    async def delete(self, key):
        return int(self.data.pop(key, None) is not None)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock(monkeypatch):
    """Controllable time source for Timestamp."""
    state = types.SimpleNamespace(now=1_000 * C.NS_PER_S)
    fake_time = types.SimpleNamespace(time_ns=lambda: state.now)
    monkeypatch.setattr(core_types, "time", fake_time)

    def advance(seconds):
        state.now += int(seconds * C.NS_PER_S)

    return advance


@pytest_asyncio.fixture
async def redis_adapter():
    adapter = RedisCacheAdapter(["localhost:6379"], client=FakeRedis(), default_ttl=120)
    await adapter.init()
    return adapter


# =============================================================================
# TEST: KEYS
# =============================================================================
def test_create_key_without_args():
    assert create_key("cf", "User.friends", ()) == "cf.User.friends()"


def test_create_key_is_deterministic():
    assert create_key("cf", "f", (1, "a")) == create_key("cf", "f", [1, "a"])
    assert create_key("cf", "f", (1,)) != create_key("cf", "f", (2,))


def test_create_key_concatenation_collides():
    assert create_key("cf", "f", ("ab", "c")) == create_key("cf", "f", ("a", "bc"))


def test_qualified_name():
    class Owner:
        async def method(self):
            return None

    async def local():
        return None

    assert qualified_name(Owner.method) == "Owner.method"
    assert qualified_name(local).endswith("local")


# =============================================================================
# TEST: SIMPLE ADAPTER
# =============================================================================
async def test_simple_adapter_roundtrip():
    cache = SimpleCacheAdapter()
    await cache.set("k", {"a": 1})

    assert await cache.has("k")
    assert await cache.get("k") == {"a": 1}
    assert await cache.delete("k")
    assert not await cache.delete("k")
    assert await cache.get("k") is None


async def test_simple_adapters_are_isolated():
    first, second = SimpleCacheAdapter(), SimpleCacheAdapter()
    await first.set("k", 1)
    assert await second.get("k") is None


async def test_simple_adapter_expiry(clock):
    cache = SimpleCacheAdapter(default_ttl=10)
    await cache.set("short", 1, ttl_seconds=1)
    await cache.set("long", 2)

    clock(5)

    assert await cache.get("short") is None
    assert not await cache.has("short")
    assert await cache.get("long") == 2


async def test_simple_adapter_purge_expired(clock):
    cache = SimpleCacheAdapter(default_ttl=10)
    for i in range(3):
        await cache.set(f"k{i}", i, ttl_seconds=1)
    await cache.set("keep", 1)

    clock(2)

    assert cache.purge_expired() == 3
    assert len(cache) == 1


# =============================================================================
# TEST: REDIS ADAPTER
# =============================================================================
def test_payload_codec_compresses_large_values():
    small = encode_value({"a": 1})
    large = encode_value({"blob": "x" * (4 * C.KB)})

    assert small[:1] == C.PLAIN_MARKER
    assert large[:1] == C.COMPRESSED_MARKER
    assert len(large) < 4 * C.KB
    assert decode_value(large) == {"blob": "x" * (4 * C.KB)}


def test_payload_codec_rejects_unknown_marker():
    with pytest.raises(ValueError):
        decode_value(b"\x07{}")


def test_parse_backend():
    assert parse_backend("cache.local:7000") == ("cache.local", 7000)
    assert parse_backend("cache.local") == ("cache.local", C.DEFAULT_REDIS_PORT)


def test_redis_adapter_requires_backends():
    with pytest.raises(ConfigurationError):
        RedisCacheAdapter([])


async def test_redis_adapter_roundtrip(redis_adapter):
    await redis_adapter.set("k", {"a": [1, 2]})

    assert await redis_adapter.has("k")
    assert await redis_adapter.get("k") == {"a": [1, 2]}
    assert redis_adapter.client.expiries["k"] == 120
    assert await redis_adapter.delete("k")
    assert await redis_adapter.get("k") is None


async def test_redis_adapter_keeps_injected_client_open(redis_adapter):
    client = redis_adapter.client
    await redis_adapter.close()
    assert not client.closed


def test_create_cache_adapter():
    simple = create_cache_adapter(CacheConfig(type=CacheType.SIMPLE, default_ttl=30))
    redis = create_cache_adapter(
        CacheConfig(type=CacheType.REDIS, backends=("a:6379", "b:6379"))
    )

    assert isinstance(simple, SimpleCacheAdapter)
    assert simple.default_ttl == 30
    assert isinstance(redis, RedisCacheAdapter)
    assert redis.backends == ("a:6379", "b:6379")


# =============================================================================
# TEST: MEMOIZE
# =============================================================================
async def test_memoize_hit_and_miss():
    cache = SimpleCacheAdapter()
    calls = []

    async def square(x):
        calls.append(x)
        return x * x

    cached = memoize(square, cache=cache)

    assert await cached(3) == 9
    assert await cached(3) == 9
    assert await cached(4) == 16
    assert calls == [3, 4]


async def test_memoize_does_not_store_none():
    cache = SimpleCacheAdapter()
    calls = []

    async def lookup():
        calls.append(1)
        return None

    cached = memoize(lookup, cache=cache)
    await cached()
    await cached()

    assert len(calls) == 2
    assert len(cache) == 0


async def test_memoize_kwargs_are_part_of_key():
    cache = SimpleCacheAdapter()

    async def greet(name, punctuation="!"):
        return f"hi {name}{punctuation}"

    cached = memoize(greet, cache=cache)

    assert await cached("bob") == "hi bob!"
    assert await cached("bob", punctuation="?") == "hi bob?"
    assert cached.cache_key("bob") != cached.cache_key("bob", punctuation="?")


async def test_memoize_ttl_resolved_at_call_time(redis_adapter):
    async def value(x):
        return x

    default_ttl = memoize(value, cache=redis_adapter)
    explicit_ttl = memoize(value, cache=redis_adapter, ttl=7, prefix="other")

    await default_ttl(1)
    redis_adapter.default_ttl = 5
    await default_ttl(2)
    await explicit_ttl(3)

    expiries = redis_adapter.client.expiries
    assert expiries[default_ttl.cache_key(1)] == 120
    assert expiries[default_ttl.cache_key(2)] == 5
    assert expiries[explicit_ttl.cache_key(3)] == 7


async def test_memoize_accepts_cache_callable():
    cache = SimpleCacheAdapter()

    async def one():
        return 1

    cached = memoize(one, cache=lambda: cache)
    await cached()

    assert await cache.get(cached.cache_key()) == 1


async def test_memoize_invalidate():
    cache = SimpleCacheAdapter()
    counter = {"n": 0}

    async def bump():
        counter["n"] += 1
        return counter["n"]

    cached = memoize(bump, cache=cache)

    assert await cached() == 1
    assert await cached.invalidate()
    assert await cached() == 2


async def test_memoize_propagates_backend_errors(redis_adapter):
    async def value():
        return 1

    cached = memoize(value, cache=redis_adapter)
    redis_adapter.client.fail = True

    with pytest.raises(ConnectionError):
        await cached()


def test_memoize_rejects_sync_functions():
    with pytest.raises(TypeError):
        memoize(lambda: 1, cache=SimpleCacheAdapter())


def test_memoize_plain_function_requires_cache():
    async def f():
        return 1

    with pytest.raises(ValueError):
        memoize(f)


async def test_cached_method_shares_key_across_instances():
    cache = SimpleCacheAdapter()

    class Counter:
        calls = 0

        def __init__(self, step):
            self.step = step

        @cached_method(cache=cache)
        async def total(self, base):
            type(self).calls += 1
            return base + self.step

    assert await Counter(1).total(10) == 11
    # self is not part of the key
    assert await Counter(2).total(10) == 11
    assert Counter.calls == 1


async def test_cached_method_key_helpers_take_call_arguments():
    cache = SimpleCacheAdapter()

    class Greeter:
        @cached_method(cache=cache)
        async def greet(self, name):
            return f"hi {name}"

    greeter = Greeter()
    await greeter.greet("bob")

    key = Greeter.greet.cache_key(greeter, "bob")
    assert key == Greeter.greet.cache_key(Greeter(), "bob")
    assert await cache.has(key)
    assert await Greeter.greet.invalidate(greeter, "bob")
    assert not await cache.has(key)

    with pytest.raises(TypeError):
        Greeter.greet.cache_key()
    with pytest.raises(TypeError):
        await Greeter.greet.invalidate()


async def test_cached_method_without_any_cache():
    class Orphan:
        @cached_method()
        async def value(self):
            return 1

    with pytest.raises(ConfigurationError):
        await Orphan().value()
