"""
Structured Logging

JSON log lines for the document mesh. Query tracing (log_queries) writes
through a StructuredLogger bound to the partition, so every line carries
`shard` and `dbname` plus whatever the call site adds (operation,
collection, query).

Fields scoped with StructuredLogger.context() are attached to every line
logged inside the block, from any logger, in the same task.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, TextIO, Union

from docmesh.core.constants import QUERY_LOGGER_NAME
from docmesh.core.errors import DocMeshError

_scoped_fields: ContextVar[dict[str, Any]] = ContextVar("docmesh_log_fields", default={})

# Present on every logging.LogRecord; anything else came in through `extra`
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    Scoped fields are overridden by record extras. A DocMeshError in
    exc_info is emitted under "error" as its to_dict(); document ids and
    other non-JSON values fall back to str().
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_scoped_fields.get())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        )
        if record.exc_info:
            exc = record.exc_info[1]
            if isinstance(exc, DocMeshError):
                payload["error"] = exc.to_dict()
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StructuredLogger:
    """
    Logger carrying default fields.

    Usage:
        log = StructuredLogger("docmesh.queries").with_extra(shard="s1")

        with log.context(model="User"):
            log.debug("find_one", collection="user")
    """

    __slots__ = ("_logger", "_fields")

    def __init__(self, name: str, level: Optional[int] = None) -> None:
        self._logger = logging.getLogger(name)
        if level is not None:
            self._logger.setLevel(level)
        self._fields: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def _emit(self, level: int, message: str, fields: dict[str, Any]) -> None:
        # Skip building the extra mapping for disabled levels
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, extra={**self._fields, **fields})

    def with_extra(self, **fields: Any) -> StructuredLogger:
        """Child logger with additional default fields."""
        child = StructuredLogger(self._logger.name)
        child._fields = {**self._fields, **fields}
        return child

    @staticmethod
    @contextmanager
    def context(**fields: Any) -> Iterator[None]:
        """Attach fields to every line logged inside the block."""
        token = _scoped_fields.set({**_scoped_fields.get(), **fields})
        try:
            yield
        finally:
            _scoped_fields.reset(token)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
    log_queries: bool = False,
) -> logging.Handler:
    """
    Install one handler on the root logger and return it.

    Args:
        level: Minimum level for the root logger
        json_output: JsonFormatter instead of a plain text line
        stream: Output stream (default: stderr)
        log_queries: Let query traces (DEBUG on docmesh.queries) through
            regardless of `level`
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
        )
    root.addHandler(handler)

    if log_queries:
        logging.getLogger(QUERY_LOGGER_NAME).setLevel(logging.DEBUG)
    logging.getLogger("redis").setLevel(logging.WARNING)
    return handler
