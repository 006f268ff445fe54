"""
System-Wide Constants for the Document Mesh

Reserved document field names, cache defaults and logging names are
centralized here so that every subsystem agrees on them.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024

NS_PER_MS: Final[int] = 1_000_000
NS_PER_S: Final[int] = 1_000_000_000

# =============================================================================
# RESERVED DOCUMENT FIELDS
# =============================================================================
ID_FIELD: Final[str] = "_id"
SHARD_ID_FIELD: Final[str] = "shard_id"
SUBMODEL_FIELD: Final[str] = "submodel"

# =============================================================================
# CACHE
# =============================================================================
DEFAULT_TTL_SECONDS: Final[int] = 600
DEFAULT_CACHE_PREFIX: Final[str] = "cf"
DEFAULT_REDIS_PORT: Final[int] = 6379
COMPRESSION_THRESHOLD: Final[int] = 1 * KB  # Compress cached values > 1KB
COMPRESSED_MARKER: Final[bytes] = b"\x01"
PLAIN_MARKER: Final[bytes] = b"\x00"

# =============================================================================
# CONFIGURATION
# =============================================================================
ENV_PREFIX: Final[str] = "DOCMESH"
MEMORY_URI_SCHEME: Final[str] = "memory://"

# =============================================================================
# OBSERVABILITY
# =============================================================================
QUERY_LOGGER_NAME: Final[str] = "docmesh.queries"
