"""Normalized stream events emitted to callers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class StreamErrorKind(StrEnum):
    """Kinds carried by a terminal ``StreamError``.

    Transport kinds share their values with ``TransportErrorKind`` and tool-call
    buffer kinds with ``ToolBufferErrorKind``.
    """

    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    MALFORMED_ENVELOPE = "malformed_envelope"
    THROTTLED = "throttled"
    SERVICE_ERROR = "service_error"
    DUPLICATE_ID = "duplicate_id"
    UNKNOWN_ID = "unknown_id"
    ALREADY_COMPLETE = "already_complete"
    INPUT_TOO_LARGE = "input_too_large"
    INCOMPLETE_STREAM = "incomplete_stream"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


@dataclass(frozen=True)
class TextDelta:
    """A piece of assistant text, emitted as soon as it arrives."""

    value: str


@dataclass(frozen=True)
class ToolCallStart:
    """The model began a tool call; arguments follow."""

    id: str
    name: str


@dataclass(frozen=True)
class ToolCallComplete:
    """A fully reassembled tool call.

    ``input`` is the parsed JSON value, or ``{"raw": arguments}`` when the
    argument text did not parse.
    """

    id: str
    name: str
    input: Any
    arguments: str = ""


@dataclass(frozen=True)
class GuardrailIntervention:
    """The provider's guardrail stopped the response. Terminal."""

    reason: str


@dataclass(frozen=True)
class StreamEnd:
    """The model finished normally. Terminal."""

    stop_reason: str


@dataclass(frozen=True)
class StreamError:
    """The stream failed or was cancelled. Terminal."""

    kind: StreamErrorKind
    message: str


StreamEvent = (
    TextDelta
    | ToolCallStart
    | ToolCallComplete
    | GuardrailIntervention
    | StreamEnd
    | StreamError
)

TERMINAL_EVENTS: tuple[type, ...] = (GuardrailIntervention, StreamEnd, StreamError)


def is_terminal(event: StreamEvent) -> bool:
    """Return True when *event* ends the sequence."""
    return isinstance(event, TERMINAL_EVENTS)
