"""
Cache Adapters

CacheAdapter is the capability surface the memoizer depends on:
    init(), has(key), get(key), set(key, value, ttl_seconds), delete(key), close()
plus a `default_ttl` attribute read at call time.

Implementations:
- SimpleCacheAdapter: in-process dict of expiring entries
    * lazy expiry: an entry is dropped when read after its deadline
    * no background sweep, so memory grows with distinct keys;
      purge_expired() sweeps on demand
    * stores the Python object itself (no serialization)
- RedisCacheAdapter: network cache over redis.asyncio
    * values JSON-encoded, LZ4-compressed above COMPRESSION_THRESHOLD
    * TTL enforced by the server (SET ... EX)
    * connection and protocol errors propagate unchanged

A cache miss is None, never an exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

import lz4.frame

from docmesh.core import constants as C
from docmesh.core.config import CacheConfig, CacheType
from docmesh.core.errors import ConfigurationError
from docmesh.core.types import Timestamp

logger = logging.getLogger(__name__)


# =============================================================================
# PROTOCOL
# =============================================================================
@runtime_checkable
class CacheAdapter(Protocol):
    """Key-value cache with per-entry TTL."""

    default_ttl: int

    async def init(self) -> None:
        ...

    async def has(self, key: str) -> bool:
        ...

    async def get(self, key: str) -> Any:
        """Cached value, or None on miss/expiry."""
        ...

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> bool:
        """True if a live entry was removed."""
        ...

    async def close(self) -> None:
        ...


# =============================================================================
# IN-PROCESS ADAPTER
# =============================================================================
@dataclass(slots=True)
class ExpirableValue:
    """Cache entry with an absolute deadline."""

    value: Any
    expires_at: Timestamp

    @classmethod
    def with_ttl(cls, value: Any, ttl_seconds: float) -> ExpirableValue:
        return cls(value=value, expires_at=Timestamp.after_seconds(ttl_seconds))

    @property
    def expired(self) -> bool:
        return self.expires_at.is_past()

    @property
    def ttl_remaining_seconds(self) -> float:
        remaining = self.expires_at.nanos - Timestamp.now().nanos
        return max(0.0, remaining / C.NS_PER_S)


class SimpleCacheAdapter:
    """
    In-process expiring map.

    Each adapter owns its store; two adapters never see each other's keys.

    Example:
        cache = SimpleCacheAdapter(default_ttl=60)
        await cache.set("k", {"a": 1})
        await cache.get("k")  # {"a": 1}
    """

    __slots__ = ("default_ttl", "_store")

    def __init__(self, default_ttl: int = C.DEFAULT_TTL_SECONDS) -> None:
        self.default_ttl = default_ttl
        self._store: dict[str, ExpirableValue] = {}

    def __len__(self) -> int:
        return len(self._store)

    async def init(self) -> None:
        return None

    async def has(self, key: str) -> bool:
        item = self._store.get(key)
        if item is None:
            return False
        if item.expired:
            del self._store[key]
            return False
        return True

    async def get(self, key: str) -> Any:
        item = self._store.get(key)
        if item is None:
            return None
        if item.expired:
            del self._store[key]
            return None
        return item.value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._store[key] = ExpirableValue.with_ttl(value, ttl)

    async def delete(self, key: str) -> bool:
        item = self._store.pop(key, None)
        return item is not None and not item.expired

    async def close(self) -> None:
        self._store.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        doomed = [key for key, item in self._store.items() if item.expired]
        for key in doomed:
            del self._store[key]
        if doomed:
            logger.debug(f"Purged {len(doomed)} expired cache entries")
        return len(doomed)


# =============================================================================
# REDIS ADAPTER
# =============================================================================
def encode_value(value: Any) -> bytes:
    """JSON-encode, compressing payloads larger than COMPRESSION_THRESHOLD."""
    raw = json.dumps(value, default=str, separators=(",", ":")).encode("utf-8")
    if len(raw) > C.COMPRESSION_THRESHOLD:
        return C.COMPRESSED_MARKER + lz4.frame.compress(raw)
    return C.PLAIN_MARKER + raw


def decode_value(payload: bytes) -> Any:
    marker, body = payload[:1], payload[1:]
    if marker == C.COMPRESSED_MARKER:
        body = lz4.frame.decompress(body)
    elif marker != C.PLAIN_MARKER:
        raise ValueError(f"unknown cache payload marker: {marker!r}")
    return json.loads(body.decode("utf-8"))


def parse_backend(backend: str) -> tuple[str, int]:
    host, _, port = backend.rpartition(":")
    if not host:
        return backend, C.DEFAULT_REDIS_PORT
    return host, int(port)


class RedisCacheAdapter:
    """
    Network cache over redis.asyncio.

    One backend connects a standalone client, several backends a cluster
    client seeded with every address. A pre-built client may be injected.

    Values must be JSON-serializable; anything else is stored as str().
    """

    __slots__ = ("backends", "options", "default_ttl", "_client", "_owns_client")

    def __init__(
        self,
        backends: Sequence[str],
        options: Optional[dict[str, Any]] = None,
        default_ttl: int = C.DEFAULT_TTL_SECONDS,
        client: Any = None,
    ) -> None:
        if not backends and client is None:
            raise ConfigurationError.invalid("backends is mandatory for the redis cache")
        self.backends = tuple(backends)
        self.options = dict(options or {})
        self.default_ttl = default_ttl
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> Any:
        if self._client is None:
            raise RuntimeError("RedisCacheAdapter.init() has not been called")
        return self._client

    def get_connection_kwargs(self) -> dict[str, Any]:
        # Payloads are bytes (marker + body)
        return {**self.options, "decode_responses": False}

    async def init(self) -> None:
        if self._client is None:
            import redis.asyncio as aioredis

            kwargs = self.get_connection_kwargs()
            if len(self.backends) > 1:
                from redis.asyncio.cluster import ClusterNode, RedisCluster

                nodes = [ClusterNode(*parse_backend(b)) for b in self.backends]
                self._client = RedisCluster(startup_nodes=nodes, **kwargs)
            else:
                host, port = parse_backend(self.backends[0])
                self._client = aioredis.Redis(host=host, port=port, **kwargs)
        await self._client.ping()
        logger.info(f"Redis cache connected: {list(self.backends)}")

    async def has(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def get(self, key: str) -> Any:
        payload = await self.client.get(key)
        if payload is None:
            return None
        return decode_value(payload)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        await self.client.set(key, encode_value(value), ex=ttl)

    async def delete(self, key: str) -> bool:
        return bool(await self.client.delete(key))

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# FACTORY
# =============================================================================
def create_cache_adapter(config: CacheConfig) -> CacheAdapter:
    """Build the adapter selected by CacheConfig.type."""
    if config.type is CacheType.SIMPLE:
        return SimpleCacheAdapter(default_ttl=config.default_ttl)
    if config.type is CacheType.REDIS:
        return RedisCacheAdapter(
            config.backends,
            options=config.options,
            default_ttl=config.default_ttl,
        )
    raise ConfigurationError.invalid(f"unsupported cache type: {config.type}")
