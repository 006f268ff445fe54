"""
Cache module: cache adapters and the memoization wrapper.
"""

from docmesh.cache.adapters import (
    CacheAdapter,
    ExpirableValue,
    SimpleCacheAdapter,
    RedisCacheAdapter,
    create_cache_adapter,
    encode_value,
    decode_value,
)
from docmesh.cache.memoize import (
    cached_method,
    create_key,
    memoize,
    qualified_name,
)

__all__ = [
    "CacheAdapter",
    "ExpirableValue",
    "SimpleCacheAdapter",
    "RedisCacheAdapter",
    "create_cache_adapter",
    "encode_value",
    "decode_value",
    "cached_method",
    "create_key",
    "memoize",
    "qualified_name",
]
