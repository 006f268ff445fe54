"""
Models module: instance lifecycle, storable/sharded models, submodels.
"""

from docmesh.models.base import (
    BaseModel,
    async_computed,
    save_required,
    snake_case,
)
from docmesh.models.cursor import ModelCursor
from docmesh.models.storable import ShardedModel, StorableModel
from docmesh.models.submodel import (
    ShardedSubmodel,
    StorableSubmodel,
    SubmodelResolver,
    resolver,
)

__all__ = [
    "BaseModel",
    "async_computed",
    "save_required",
    "snake_case",
    "ModelCursor",
    "ShardedModel",
    "StorableModel",
    "ShardedSubmodel",
    "StorableSubmodel",
    "SubmodelResolver",
    "resolver",
]
