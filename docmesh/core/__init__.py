"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the document mesh:
- Result/Either monad for fallible parsing
- Document identifiers and timestamps
- Error hierarchy with programmatic error codes
- Configuration management with validation
"""

from docmesh.core.types import (
    Result,
    Ok,
    Err,
    DocumentId,
    Timestamp,
)
from docmesh.core.errors import (
    ErrorCode,
    DocMeshError,
    ValidationError,
    FieldRequired,
    InvalidFieldType,
    SchemaError,
    ModelError,
    ModelSaveRequired,
    ModelDestroyed,
    WrongModelType,
    ModelNotFound,
    ShardingError,
    InvalidShardId,
    ShardIsReadOnly,
    NoWritableShard,
    MissingShardId,
    DatabaseNotReady,
    SubmodelError,
    WrongSubmodel,
    MissingSubmodel,
    UnknownSubmodel,
    ConfigurationError,
)
from docmesh.core.config import (
    CacheConfig,
    CacheType,
    DatabaseConfig,
    ShardConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "DocumentId",
    "Timestamp",
    "ErrorCode",
    "DocMeshError",
    "ValidationError",
    "FieldRequired",
    "InvalidFieldType",
    "SchemaError",
    "ModelError",
    "ModelSaveRequired",
    "ModelDestroyed",
    "WrongModelType",
    "ModelNotFound",
    "ShardingError",
    "InvalidShardId",
    "ShardIsReadOnly",
    "NoWritableShard",
    "MissingShardId",
    "DatabaseNotReady",
    "SubmodelError",
    "WrongSubmodel",
    "MissingSubmodel",
    "UnknownSubmodel",
    "ConfigurationError",
    "CacheConfig",
    "CacheType",
    "DatabaseConfig",
    "ShardConfig",
]
