"""Test helpers (small, reusable doubles and raw event builders).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off transports and sinks as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bedrock_chat.transport.mock import ScriptedTransport

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Mapping

    from bedrock_chat.auth import CredentialContext
    from bedrock_chat.cancellation import CancellationToken
    from bedrock_chat.events import StreamEvent
    from bedrock_chat.transport.models import ConverseRequest

# =============================================================================
# Raw Converse event builders
# =============================================================================


def text(value: str, index: int = 0) -> dict[str, Any]:
    return {"contentBlockDelta": {"delta": {"text": value}, "contentBlockIndex": index}}


def tool_start(call_id: str, name: str, index: int = 1) -> dict[str, Any]:
    return {
        "contentBlockStart": {
            "start": {"toolUse": {"toolUseId": call_id, "name": name}},
            "contentBlockIndex": index,
        }
    }


def tool_input(fragment: str, index: int = 1) -> dict[str, Any]:
    return {
        "contentBlockDelta": {
            "delta": {"toolUse": {"input": fragment}},
            "contentBlockIndex": index,
        }
    }


def block_stop(index: int) -> dict[str, Any]:
    return {"contentBlockStop": {"contentBlockIndex": index}}


def message_stop(reason: str = "end_turn") -> dict[str, Any]:
    return {"messageStop": {"stopReason": reason}}


async def drain(events: AsyncIterable[StreamEvent]) -> list[StreamEvent]:
    return [event async for event in events]


async def agen(items: list[Any]) -> AsyncIterator[Any]:
    """Yield *items*, raising exception items at their position."""
    for item in items:
        if isinstance(item, BaseException):
            raise item
        yield item


# =============================================================================
# Doubles
# =============================================================================


@dataclass
class RecordingSink:
    """LogSink that keeps every record for assertions."""

    records: list[tuple[int, str, dict[str, Any]]] = field(default_factory=list)

    def log(self, level: int, message: str, context: Mapping[str, Any]) -> None:
        self.records.append((level, message, dict(context)))

    def messages(self) -> list[str]:
        return [message for _, message, _ in self.records]


@dataclass
class CountingTransport(ScriptedTransport):
    """ScriptedTransport that counts credential releases and keeps contexts."""

    releases: int = 0
    contexts: list[CredentialContext] = field(default_factory=list)

    def _on_release(self) -> None:
        self.releases += 1

    async def open_stream(
        self,
        request: ConverseRequest,
        credentials: CredentialContext,
        cancellation: CancellationToken,
    ) -> AsyncIterator[Mapping[str, Any]]:
        if not any(ctx is credentials for ctx in self.contexts):
            self.contexts.append(credentials)
            credentials.add_release_callback(self._on_release)
        return await super().open_stream(request, credentials, cancellation)


@dataclass
class GateTransport(CountingTransport):
    """Emits the script, then blocks until ``release`` is set.

    ``reached_gate`` is set once every scripted event has been handed out, so
    tests can cancel at a deterministic point mid-stream.
    """

    reached_gate: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)
    closed: bool = False

    async def _iterate(
        self,
        items: list[Mapping[str, Any] | BaseException],
        cancellation: CancellationToken,
    ) -> AsyncIterator[Mapping[str, Any]]:
        try:
            for item in items:
                if isinstance(item, BaseException):
                    raise item
                self.events_sent += 1
                yield item
            self.reached_gate.set()
            await self.release.wait()
            yield {"messageStop": {"stopReason": "end_turn"}}
        finally:
            self.closed = True
