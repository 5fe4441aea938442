"""Scripted transport for tests and offline runs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import TransportError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from bedrock_chat.auth import CredentialContext
    from bedrock_chat.cancellation import CancellationToken
    from bedrock_chat.transport.models import ConverseRequest


@dataclass
class ScriptedTransport:
    """Replay a fixed script of raw events without network calls.

    Script items are raw event mappings or exceptions; an exception is raised
    from the iterator at that position. ``open_errors`` are raised, one per
    call, before a stream is returned. With no script the transport echoes the
    last user text back as a short Converse stream.
    """

    script: list[Mapping[str, Any] | BaseException] | None = None
    open_errors: list[TransportError] = field(default_factory=list)
    #: Seconds to pause before each event, to leave room for cancellation.
    delay_s: float = 0.0
    open_calls: int = 0
    requests: list[ConverseRequest] = field(default_factory=list)
    events_sent: int = 0

    async def open_stream(
        self,
        request: ConverseRequest,
        credentials: CredentialContext,
        cancellation: CancellationToken,
    ) -> AsyncIterator[Mapping[str, Any]]:
        """Return an iterator over the script (or an echo of the request)."""
        del credentials
        self.open_calls += 1
        self.requests.append(request)
        if self.open_errors:
            raise self.open_errors.pop(0)
        items = list(self.script) if self.script is not None else _echo_script(request)
        return self._iterate(items, cancellation)

    async def _iterate(
        self,
        items: list[Mapping[str, Any] | BaseException],
        cancellation: CancellationToken,
    ) -> AsyncIterator[Mapping[str, Any]]:
        for item in items:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            if cancellation.cancelled:
                return
            if isinstance(item, BaseException):
                raise item
            self.events_sent += 1
            yield item


def _echo_script(request: ConverseRequest) -> list[Mapping[str, Any] | BaseException]:
    text = ""
    for message in reversed(request.messages):
        if message.get("role") != "user":
            continue
        text = " ".join(
            block["text"] for block in message.get("content", []) if "text" in block
        )
        break
    return [
        {"messageStart": {"role": "assistant"}},
        {
            "contentBlockDelta": {
                "delta": {"text": f"echo: {text[:100]}"},
                "contentBlockIndex": 0,
            }
        },
        {"contentBlockStop": {"contentBlockIndex": 0}},
        {"messageStop": {"stopReason": "end_turn"}},
    ]
