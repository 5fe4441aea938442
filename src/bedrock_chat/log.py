"""Leveled log sink used by the invocation core.

The core never writes to a logging backend directly; it reports through a
``LogSink`` so hosts can route messages into their own output channel.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

#: Record attribute carrying the structured context on forwarded log records.
CONTEXT_ATTR = "bedrock_chat_context"


@runtime_checkable
class LogSink(Protocol):
    """Duck-typed protocol for log sinks."""

    def log(  # noqa: D102
        self, level: int, message: str, context: Mapping[str, Any]
    ) -> None: ...


class LoggingSink:
    """Forward sink calls to a standard-library logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("bedrock_chat")

    def log(self, level: int, message: str, context: Mapping[str, Any]) -> None:
        """Emit *message* with *context* attached to the record."""
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, message, extra={CONTEXT_ATTR: dict(context)})

