"""Reassembly of fragmented tool-call arguments.

Tool-call arguments arrive as JSON text split across many stream events. The
buffer keeps one accumulator per call id, moves it through an explicit state
machine, and turns the concatenated text into a ``ToolCallComplete`` event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Any

from bedrock_chat.errors import ToolBufferError, ToolBufferErrorKind
from bedrock_chat.events import ToolCallComplete

#: Default bound on the cumulative argument text for one call id.
DEFAULT_MAX_TOOL_INPUT_CHARS = 1024 * 1024


def parse_tool_input(arguments: str) -> Any:
    """Parse tool-call argument text, degrading to ``{"raw": arguments}``.

    Empty argument text means the model called the tool with no input.
    """
    # Blank text is the one unparseable input that does not become {"raw": ...}:
    # Bedrock streams zero-argument tool calls with no input fragments.
    if not arguments.strip():
        return {}
    try:
        return json.loads(arguments)
    except ValueError:
        return {"raw": arguments}


class ToolCallState(Enum):
    STARTED = "started"
    ACCUMULATING = "accumulating"
    COMPLETED = "completed"


@dataclass
class ToolCallAccumulator:
    """Fragments received so far for one tool call."""

    id: str
    name: str
    fragments: list[str] = field(default_factory=list)
    state: ToolCallState = ToolCallState.STARTED
    size: int = 0

    @property
    def is_complete(self) -> bool:
        return self.state is ToolCallState.COMPLETED


class ToolCallBuffer:
    """Id-keyed accumulators for the tool calls of a single invocation.

    Not shared across invocations and not thread-safe; every operation runs to
    completion without suspending.
    """

    def __init__(
        self, *, max_input_chars: int | None = DEFAULT_MAX_TOOL_INPUT_CHARS
    ) -> None:
        if max_input_chars is not None and max_input_chars < 0:
            raise ValueError("max_input_chars must be >= 0 or None")
        self.max_input_chars = max_input_chars
        self._calls: dict[str, ToolCallAccumulator] = {}

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)

    def get(self, call_id: str) -> ToolCallAccumulator | None:
        return self._calls.get(call_id)

    def start(self, call_id: str, name: str) -> ToolCallAccumulator:
        """Create the accumulator for *call_id*."""
        if call_id in self._calls:
            raise ToolBufferError(
                ToolBufferErrorKind.DUPLICATE_ID,
                f"Tool call {call_id!r} was already started",
                call_id=call_id,
            )
        acc = ToolCallAccumulator(id=call_id, name=name)
        self._calls[call_id] = acc
        return acc

    def append_fragment(self, call_id: str, fragment: str) -> None:
        """Append *fragment* to *call_id* in arrival order.

        An oversized fragment is rejected whole; the accumulator keeps only
        what it held before the call.
        """
        acc = self._require(call_id)
        if acc.is_complete:
            raise ToolBufferError(
                ToolBufferErrorKind.ALREADY_COMPLETE,
                f"Tool call {call_id!r} is already complete",
                call_id=call_id,
            )
        new_size = acc.size + len(fragment)
        if self.max_input_chars is not None and new_size > self.max_input_chars:
            raise ToolBufferError(
                ToolBufferErrorKind.INPUT_TOO_LARGE,
                f"Tool call {call_id!r} input exceeds "
                f"{self.max_input_chars} characters",
                call_id=call_id,
            )
        acc.fragments.append(fragment)
        acc.size = new_size
        acc.state = ToolCallState.ACCUMULATING

    def complete(self, call_id: str) -> ToolCallComplete:
        """Finish *call_id* and build its completion event.

        Argument text that is not valid JSON is returned as ``{"raw": text}``
        rather than raised.
        """
        acc = self._require(call_id)
        if acc.is_complete:
            raise ToolBufferError(
                ToolBufferErrorKind.ALREADY_COMPLETE,
                f"Tool call {call_id!r} is already complete",
                call_id=call_id,
            )
        arguments = "".join(acc.fragments)
        acc.state = ToolCallState.COMPLETED
        acc.fragments = []
        return ToolCallComplete(
            id=acc.id,
            name=acc.name,
            input=parse_tool_input(arguments),
            arguments=arguments,
        )

    def pending(self) -> list[ToolCallAccumulator]:
        """Return accumulators that have not completed, in start order."""
        return [acc for acc in self._calls.values() if not acc.is_complete]

    def discard_pending(self) -> list[str]:
        """Drop every incomplete accumulator and return the dropped ids."""
        dropped = [acc.id for acc in self.pending()]
        for call_id in dropped:
            del self._calls[call_id]
        return dropped

    def _require(self, call_id: str) -> ToolCallAccumulator:
        acc = self._calls.get(call_id)
        if acc is None:
            raise ToolBufferError(
                ToolBufferErrorKind.UNKNOWN_ID,
                f"Tool call {call_id!r} was never started",
                call_id=call_id,
            )
        return acc
