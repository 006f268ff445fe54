"""
Observability module: structured logging.
"""

from docmesh.observability.logging import (
    JsonFormatter,
    StructuredLogger,
    setup_logging,
)

__all__ = [
    "JsonFormatter",
    "StructuredLogger",
    "setup_logging",
]
