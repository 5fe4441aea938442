"""Fold a stream of events into a single result, for callers that do not render
incrementally."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from bedrock_chat.events import (
    GuardrailIntervention,
    StreamEnd,
    StreamError,
    StreamErrorKind,
    TextDelta,
    ToolCallComplete,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

    from bedrock_chat.events import StreamEvent

Status = Literal["ok", "guardrail", "cancelled", "error", "incomplete"]


@dataclass
class InvocationResult:
    """Everything one invocation produced.

    ``status`` is ``"ok"`` after ``StreamEnd``, ``"guardrail"`` after a
    guardrail intervention, ``"cancelled"`` or ``"error"`` after the matching
    ``StreamError``, and ``"incomplete"`` when the sequence ended with no
    terminal event (a clean cancellation).
    """

    text: str = ""
    tool_calls: list[ToolCallComplete] = field(default_factory=list)
    stop_reason: str | None = None
    terminal: StreamEvent | None = None
    status: Status = "incomplete"


async def collect(events: AsyncIterable[StreamEvent]) -> InvocationResult:
    """Consume *events* and return the accumulated ``InvocationResult``."""
    parts: list[str] = []
    result = InvocationResult()
    async for event in events:
        if isinstance(event, TextDelta):
            parts.append(event.value)
        elif isinstance(event, ToolCallComplete):
            result.tool_calls.append(event)
        elif isinstance(event, StreamEnd):
            result.terminal = event
            result.stop_reason = event.stop_reason
            result.status = "ok"
        elif isinstance(event, GuardrailIntervention):
            result.terminal = event
            result.stop_reason = event.reason
            result.status = "guardrail"
        elif isinstance(event, StreamError):
            result.terminal = event
            result.status = (
                "cancelled" if event.kind is StreamErrorKind.CANCELLED else "error"
            )
    result.text = "".join(parts)
    return result
