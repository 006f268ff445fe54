"""
Configuration Management for the Document Mesh

Describes the meta partition, the named shards and the optional cache.

Design:
- Immutable after construction (frozen dataclasses)
- Fail-fast on malformed values (__post_init__ raises ValueError)
- Cross-field checks return Result via validate()
- Loadable from a plain mapping or from DOCMESH_* environment variables
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from docmesh.core import constants as C
from docmesh.core.errors import ConfigurationError
from docmesh.core.types import Err, Ok, Result

_CACHE_TYPE_ALIASES = {"memcached": "redis"}


class CacheType(Enum):
    """
    Cache backend selector.

    "memcached" names the shared network cache and selects REDIS, which is the
    wire backend for it.
    """

    SIMPLE = "simple"
    REDIS = "redis"

    @classmethod
    def parse(cls, value: Any) -> CacheType:
        if isinstance(value, CacheType):
            return value
        name = str(value).lower()
        try:
            return cls(_CACHE_TYPE_ALIASES.get(name, name))
        except ValueError:
            raise ValueError(f"unknown cache type: {value!r}") from None


@dataclass(frozen=True)
class ShardConfig:
    """
    One partition of the store.

    Attributes:
        uri: Store connection URI (memory://... for the in-memory store).
        dbname: Database name inside the store.
        options: Driver options passed through untouched.
        open: False makes the partition read-only.
    """

    uri: str
    dbname: str
    options: dict[str, Any] = field(default_factory=dict)
    open: bool = True

    def __post_init__(self) -> None:
        if not self.uri:
            raise ValueError("uri must be non-empty")
        if not self.dbname:
            raise ValueError("dbname must be non-empty")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ShardConfig:
        return cls(
            uri=data.get("uri", ""),
            dbname=data.get("dbname", ""),
            options=dict(data.get("options") or {}),
            open=bool(data.get("open", True)),
        )


@dataclass(frozen=True)
class CacheConfig:
    """
    Cache backend configuration.

    Attributes:
        type: SIMPLE (in-process) or REDIS ("memcached" also selects REDIS).
        backends: "host:port" addresses of the network cache.
        options: Client options passed to the backend client.
        default_ttl: Seconds a memoized value lives when no TTL is given.
    """

    type: CacheType = CacheType.SIMPLE
    backends: tuple[str, ...] = ()
    options: dict[str, Any] = field(default_factory=dict)
    default_ttl: int = C.DEFAULT_TTL_SECONDS

    def __post_init__(self) -> None:
        if self.default_ttl <= 0:
            raise ValueError(f"default_ttl must be > 0, got {self.default_ttl}")
        for backend in self.backends:
            host, _, port = backend.rpartition(":")
            if not host or not port.isdigit():
                raise ValueError(f"backend must be host:port, got {backend!r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CacheConfig:
        backends = data.get("backends") or ()
        if isinstance(backends, str):
            backends = [b.strip() for b in backends.split(",") if b.strip()]
        return cls(
            type=CacheType.parse(data.get("type", CacheType.SIMPLE)),
            backends=tuple(backends),
            options=dict(data.get("options") or {}),
            default_ttl=int(data.get("default_ttl", C.DEFAULT_TTL_SECONDS)),
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """Root configuration: meta partition, named shards, optional cache."""

    meta: ShardConfig
    shards: dict[str, ShardConfig] = field(default_factory=dict)
    cache: Optional[CacheConfig] = None
    log_queries: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DatabaseConfig:
        """
        Build configuration from the {meta, shards, cache?} mapping shape.

        Raises:
            ConfigurationError: If the mapping is malformed
        """
        if "meta" not in data:
            raise ConfigurationError.invalid("meta partition is not configured")
        try:
            meta = ShardConfig.from_mapping(data["meta"])
            shards = {
                str(shard_id): ShardConfig.from_mapping(shard)
                for shard_id, shard in (data.get("shards") or {}).items()
            }
            cache = None
            if data.get("cache") is not None:
                cache = CacheConfig.from_mapping(data["cache"])
        except (ValueError, TypeError, AttributeError) as e:
            raise ConfigurationError.invalid(str(e)) from e
        return cls(
            meta=meta,
            shards=shards,
            cache=cache,
            log_queries=bool(data.get("log_queries", False)),
        )

    @classmethod
    def from_env(cls, prefix: str = C.ENV_PREFIX) -> Result[DatabaseConfig, str]:
        """
        Load configuration from environment variables.

        Environment Variables:
        - {prefix}_META_URI / {prefix}_META_DBNAME: meta partition
        - {prefix}_SHARDS: comma-separated shard ids
        - {prefix}_SHARD_<ID>_URI / _DBNAME / _OPEN: per-shard settings
        - {prefix}_CACHE_TYPE: simple|redis|memcached (cache disabled when unset)
        - {prefix}_CACHE_BACKENDS: comma-separated host:port pairs
        - {prefix}_CACHE_TTL: default TTL in seconds
        - {prefix}_LOG_QUERIES: log every store query
        """

        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        def _get_bool(key: str, default: bool) -> bool:
            val = _get(key).lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        try:
            meta = ShardConfig(
                uri=_get("META_URI", "memory://meta"),
                dbname=_get("META_DBNAME", "docmesh"),
            )

            shards: dict[str, ShardConfig] = {}
            for shard_id in (s.strip() for s in _get("SHARDS").split(",")):
                if not shard_id:
                    continue
                key = f"SHARD_{shard_id.upper()}"
                shards[shard_id] = ShardConfig(
                    uri=_get(f"{key}_URI", f"memory://{shard_id}"),
                    dbname=_get(f"{key}_DBNAME", f"docmesh_{shard_id}"),
                    open=_get_bool(f"{key}_OPEN", True),
                )

            cache = None
            cache_type = _get("CACHE_TYPE")
            if cache_type:
                backends = tuple(
                    b.strip() for b in _get("CACHE_BACKENDS").split(",") if b.strip()
                )
                cache = CacheConfig(
                    type=CacheType.parse(cache_type),
                    backends=backends,
                    default_ttl=_get_int("CACHE_TTL", C.DEFAULT_TTL_SECONDS),
                )

            return Ok(
                cls(
                    meta=meta,
                    shards=shards,
                    cache=cache,
                    log_queries=_get_bool("LOG_QUERIES", False),
                )
            )
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate cross-field invariants."""
        for shard_id in self.shards:
            if not shard_id:
                return Err("shard ids must be non-empty")
        if self.cache is not None and self.cache.type is CacheType.REDIS:
            if not self.cache.backends:
                return Err("redis cache requires at least one backend")
        return Ok(None)

    @property
    def writable_shard_ids(self) -> list[str]:
        return [shard_id for shard_id, shard in self.shards.items() if shard.open]
