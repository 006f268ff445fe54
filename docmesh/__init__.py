"""
DocMesh: Sharded Document Models with Schemas, Submodels and Memoization

An async object-document layer over a document store:
- Schema: declarative fields with required/restricted/rejected flags
- Models: validated in-memory records with lifecycle hooks
- Storage: a meta partition plus named shards, some of them read-only
- Submodels: polymorphic families sharing one collection
- Cache: memoized coroutines backed by an in-process or Redis cache

Example:
    class User(StorableModel):
        username = StringField(required=True)
        password = StringField(restricted=True)

    async with DatabaseContext(DatabaseConfig.from_dict(settings)).bind(StorableModel):
        user = await User.make({"username": "bob"}).save()
        await User.get("bob")
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
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
from docmesh.core.config import CacheConfig, CacheType, DatabaseConfig, ShardConfig

from docmesh.schema import (
    AnyField,
    ArrayField,
    BooleanField,
    DatetimeField,
    FieldDescriptor,
    IdentifierField,
    NumberField,
    ObjectField,
    StringField,
    declare_field,
    schema_of,
)
from docmesh.storage import DatabaseContext, InMemoryDocumentStore, Shard
from docmesh.cache import (
    RedisCacheAdapter,
    SimpleCacheAdapter,
    cached_method,
    memoize,
)
from docmesh.models import (
    BaseModel,
    ModelCursor,
    ShardedModel,
    ShardedSubmodel,
    StorableModel,
    StorableSubmodel,
    async_computed,
    save_required,
)

__all__ = [
    # Version
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    # Identity types
    "DocumentId",
    "Timestamp",
    # Errors
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
    # Config
    "CacheConfig",
    "CacheType",
    "DatabaseConfig",
    "ShardConfig",
    # Schema
    "AnyField",
    "ArrayField",
    "BooleanField",
    "DatetimeField",
    "FieldDescriptor",
    "IdentifierField",
    "NumberField",
    "ObjectField",
    "StringField",
    "declare_field",
    "schema_of",
    # Storage
    "DatabaseContext",
    "InMemoryDocumentStore",
    "Shard",
    # Cache
    "RedisCacheAdapter",
    "SimpleCacheAdapter",
    "cached_method",
    "memoize",
    # Models
    "BaseModel",
    "ModelCursor",
    "ShardedModel",
    "ShardedSubmodel",
    "StorableModel",
    "StorableSubmodel",
    "async_computed",
    "save_required",
]
