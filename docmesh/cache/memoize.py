"""
Memoization Wrapper

Wraps an async function so its result is served from a CacheAdapter:

    async def load_stats(user_id): ...
    load_stats = memoize(load_stats, cache=adapter, ttl=60)

    class User(StorableModel):
        @cached_method(ttl=300)
        async def friends_count(self): ...

Keys:
    "<prefix>.<Owner>.<method>(<md5 hex>)"
    The digest covers the concatenated str() of every positional argument
    (self/cls excluded for methods); it is empty when there are none.
    Arguments are concatenated without a delimiter or type tag, so
    ("ab", "c") and ("a", "bc") share a key. Pass a `key` function when
    that matters.

Semantics:
    - hit: cached value returned, wrapped function not invoked
    - miss: function awaited, result stored, result returned
    - None results are never stored (None is the miss marker)
    - TTL is resolved at call time: the explicit ttl, else the adapter's
      current default_ttl
    - no single-flight: concurrent misses on one key all compute
    - invalidation is explicit: wrapper.invalidate(...) takes the call's
      arguments, as does wrapper.cache_key(...); methods pass the instance first
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from docmesh.cache.adapters import CacheAdapter
from docmesh.core.constants import DEFAULT_CACHE_PREFIX, NS_PER_MS
from docmesh.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheSource = Union[CacheAdapter, Callable[[], CacheAdapter]]


def create_key(prefix: str, func_name: str, args: tuple[Any, ...] | list[Any]) -> str:
    """Deterministic cache key for a call."""
    digest = ""
    if args:
        md5 = hashlib.md5()
        for arg in args:
            md5.update(str(arg).encode("utf-8"))
        digest = md5.hexdigest()
    return f"{prefix}.{func_name}({digest})"


def qualified_name(func: Callable[..., Any]) -> str:
    """'Owner.method' for methods, the bare name for module functions."""
    parts = [p for p in func.__qualname__.split(".") if p != "<locals>"]
    return ".".join(parts[-2:])


def _key_args(args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[Any, ...]:
    if not kwargs:
        return args
    return args + tuple(f"{k}={v}" for k, v in sorted(kwargs.items()))


def _resolve_cache(cache: Optional[CacheSource], owner: Any) -> CacheAdapter:
    if cache is None:
        context = getattr(owner, "__context__", None)
        adapter = context.cache if context is not None else None
        if adapter is None:
            raise ConfigurationError.invalid(
                f"no cache available for {type(owner).__name__}: "
                "bind a context with a cache or pass cache="
            )
        return adapter
    if isinstance(cache, CacheAdapter):
        return cache
    return cache()


def memoize(
    func: Callable[..., Awaitable[T]],
    *,
    cache: Optional[CacheSource] = None,
    ttl: Optional[int] = None,
    prefix: str = DEFAULT_CACHE_PREFIX,
    key: Optional[Callable[..., str]] = None,
    method: bool = False,
) -> Callable[..., Awaitable[T]]:
    """
    Wrap an async function with a cache lookup.

    Args:
        func: Coroutine function to wrap
        cache: Adapter, or zero-argument callable returning one. Methods
            may omit it to use the owner's bound context cache.
        ttl: Seconds to keep results; None uses adapter.default_ttl
        prefix: Key prefix
        key: Custom key derivation, called with the key arguments
        method: First positional argument is self/cls and is not hashed

    Raises:
        TypeError: func is not a coroutine function
        ValueError: no cache given for a plain function
    """
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"memoize can only wrap async functions, got {func!r}")
    if cache is None and not method:
        raise ValueError("cache is required when memoizing a plain function")

    name = qualified_name(func)

    def derive(*args: Any, **kwargs: Any) -> str:
        if key is not None:
            return key(*args, **kwargs)
        return create_key(prefix, name, _key_args(args, kwargs))

    def split(args: tuple[Any, ...]) -> tuple[Any, tuple[Any, ...]]:
        if method:
            if not args:
                raise TypeError(f"{name} is a method: pass the instance or class first")
            return args[0], args[1:]
        return None, args

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        start_ns = time.perf_counter_ns()
        owner, key_args = split(args)
        entry_key = derive(*key_args, **kwargs)
        adapter = _resolve_cache(cache, owner)

        cached = await adapter.get(entry_key)
        if cached is not None:
            elapsed = (time.perf_counter_ns() - start_ns) / NS_PER_MS
            logger.debug(f"HIT {entry_key} {elapsed:.2f}ms")
            return cached

        result = await func(*args, **kwargs)
        if result is not None:
            await adapter.set(
                entry_key, result, ttl if ttl is not None else adapter.default_ttl
            )
        elapsed = (time.perf_counter_ns() - start_ns) / NS_PER_MS
        logger.debug(f"MISS {entry_key} {elapsed:.2f}ms")
        return result

    def cache_key(*args: Any, **kwargs: Any) -> str:
        """Key of a call made with the same arguments (self/cls included for methods)."""
        _, key_args = split(args)
        return derive(*key_args, **kwargs)

    async def invalidate(*args: Any, **kwargs: Any) -> bool:
        """Delete the entry for a call made with the same arguments."""
        owner, key_args = split(args)
        adapter = _resolve_cache(cache, owner)
        return await adapter.delete(derive(*key_args, **kwargs))

    wrapper.cache_key = cache_key  # type: ignore[attr-defined]
    wrapper.invalidate = invalidate  # type: ignore[attr-defined]
    wrapper.__wrapped__ = func  # type: ignore[attr-defined]
    return wrapper


def cached_method(
    prefix: str = DEFAULT_CACHE_PREFIX,
    ttl: Optional[int] = None,
    cache: Optional[CacheSource] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of memoize() for async methods."""

    def decorate(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        return memoize(func, cache=cache, ttl=ttl, prefix=prefix, method=True)

    return decorate
