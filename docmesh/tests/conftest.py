"""
Shared fixtures: a fully initialized in-memory DatabaseContext.

Layout of the `context` fixture:
    meta          memory://meta
    s1, s2        writable named shards
    ro            read-only named shard (open=False)
    cache         SimpleCacheAdapter, default TTL 60s

StorableModel (and so every model class) is bound to it for the duration
of one test, then unbound.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from docmesh.core.config import DatabaseConfig
from docmesh.models import StorableModel
from docmesh.storage.context import DatabaseContext

SETTINGS = {
    "meta": {"uri": "memory://meta", "dbname": "test"},
    "shards": {
        "s1": {"uri": "memory://s1", "dbname": "test_s1"},
        "s2": {"uri": "memory://s2", "dbname": "test_s2"},
        "ro": {"uri": "memory://ro", "dbname": "test_ro", "open": False},
    },
    "cache": {"type": "simple", "default_ttl": 60},
}


@pytest.fixture
def settings() -> dict:
    return {
        "meta": dict(SETTINGS["meta"]),
        "shards": {k: dict(v) for k, v in SETTINGS["shards"].items()},
        "cache": dict(SETTINGS["cache"]),
    }


@pytest_asyncio.fixture
async def context(settings):
    ctx = DatabaseContext(DatabaseConfig.from_dict(settings))
    ctx.bind(StorableModel)
    await ctx.init()
    try:
        yield ctx
    finally:
        await ctx.close()
        StorableModel.__context__ = None
