"""Stream event processing: raw Converse events into normalized stream events.

Text deltas are emitted as soon as they arrive. Tool-call argument fragments
are held in a ``ToolCallBuffer`` and emitted as a single ``ToolCallComplete``
when the provider closes that content block. A stop signal, an error, or
cancellation ends the sequence; tool calls still accumulating at that point
are discarded rather than completed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bedrock_chat.errors import (
    InternalError,
    InvocationCancelled,
    ToolBufferError,
    ToolBufferErrorKind,
    TransportError,
    TransportErrorKind,
)
from bedrock_chat.events import (
    GuardrailIntervention,
    StreamEnd,
    StreamError,
    StreamErrorKind,
    TextDelta,
    ToolCallStart,
)
from bedrock_chat.log import LoggingSink
from bedrock_chat.tool_buffer import DEFAULT_MAX_TOOL_INPUT_CHARS, ToolCallBuffer
from bedrock_chat.transport._errors import (
    STREAM_EXCEPTION_EVENTS,
    stream_exception_error,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

    from bedrock_chat.cancellation import CancellationToken
    from bedrock_chat.events import StreamEvent
    from bedrock_chat.log import LogSink

GUARDRAIL_STOP_REASONS = frozenset({"guardrail_intervened", "content_filtered"})
_IGNORED_EVENTS = frozenset({"messageStart", "metadata"})


class StreamEventProcessor:
    """Drive one invocation's raw event stream. Not restartable."""

    def __init__(
        self,
        *,
        max_tool_input_chars: int | None = DEFAULT_MAX_TOOL_INPUT_CHARS,
        log_sink: LogSink | None = None,
    ) -> None:
        self.buffer = ToolCallBuffer(max_input_chars=max_tool_input_chars)
        self._block_ids: dict[int, str] = {}
        self._log = log_sink or LoggingSink()
        self._started = False
        self.finished = False
        self.emitted = 0

    def handle(self, raw: Any) -> list[StreamEvent]:
        """Map one raw event to zero or more stream events.

        Raises ``TransportError`` for malformed envelopes and in-band provider
        exceptions, and ``ToolBufferError`` for inconsistent tool-call
        signals. Never suspends.
        """
        if self.finished:
            raise InternalError("Stream already reached a terminal event")
        name, payload = _unwrap(raw)

        if name == "contentBlockDelta":
            return self._on_delta(payload)
        if name == "contentBlockStart":
            return self._on_block_start(payload)
        if name == "contentBlockStop":
            return self._on_block_stop(payload)
        if name == "messageStop":
            return [self._on_message_stop(payload)]
        if name in STREAM_EXCEPTION_EVENTS:
            raise stream_exception_error(name, payload)
        if name not in _IGNORED_EVENTS:
            self._log.log(
                logging.DEBUG, "Skipping unknown stream event", {"event": name}
            )
        return []

    async def process(
        self,
        raw_events: AsyncIterable[Any],
        cancellation: CancellationToken,
    ) -> AsyncIterator[StreamEvent]:
        """Yield stream events until a terminal event, error, or cancellation.

        Mid-stream failures become a final ``StreamError``. Cancellation ends
        the sequence with ``StreamError(CANCELLED)`` when partial output was
        already produced, and silently otherwise.
        """
        if self._started:
            raise InternalError(
                "StreamEventProcessor is not restartable",
                hint="Start a new invocation to stream again.",
            )
        self._started = True
        iterator = aiter(raw_events)
        try:
            while True:
                try:
                    raw = await cancellation.race(anext(iterator))
                except StopAsyncIteration:
                    yield self._fail(
                        StreamErrorKind.INCOMPLETE_STREAM,
                        "Stream ended without a stop signal",
                    )
                    return
                except InvocationCancelled:
                    event = self._on_cancel()
                    if event is not None:
                        yield event
                    return
                except TransportError as exc:
                    yield self._fail(StreamErrorKind(exc.kind.value), str(exc))
                    return

                try:
                    events = self.handle(raw)
                except TransportError as exc:
                    yield self._fail(StreamErrorKind(exc.kind.value), str(exc))
                    return
                except ToolBufferError as exc:
                    yield self._fail(StreamErrorKind(exc.kind.value), str(exc))
                    return

                for event in events:
                    self.emitted += 1
                    yield event
                if self.finished:
                    return
        finally:
            aclose = getattr(iterator, "aclose", None)
            if callable(aclose):
                await aclose()

    def _on_delta(self, payload: dict[str, Any]) -> list[StreamEvent]:
        index = _block_index(payload)
        delta = payload.get("delta")
        if not isinstance(delta, dict):
            raise _malformed("contentBlockDelta without a delta")

        if "text" in delta:
            text = delta["text"]
            if not isinstance(text, str):
                raise _malformed("text delta is not a string")
            return [TextDelta(text)] if text else []

        if "toolUse" in delta:
            tool = delta["toolUse"]
            fragment = tool.get("input", "") if isinstance(tool, dict) else None
            if not isinstance(fragment, str):
                raise _malformed("tool input delta is not a string")
            call_id = self._block_ids.get(index)
            if call_id is None:
                raise ToolBufferError(
                    ToolBufferErrorKind.UNKNOWN_ID,
                    f"Tool input for content block {index} arrived before its start",
                )
            self.buffer.append_fragment(call_id, fragment)
            return []

        self._log.log(
            logging.DEBUG,
            "Skipping unsupported delta",
            {"delta_types": sorted(delta), "content_block_index": index},
        )
        return []

    def _on_block_start(self, payload: dict[str, Any]) -> list[StreamEvent]:
        index = _block_index(payload)
        start = payload.get("start")
        tool = start.get("toolUse") if isinstance(start, dict) else None
        if tool is None:
            return []
        call_id = tool.get("toolUseId") if isinstance(tool, dict) else None
        name = tool.get("name") if isinstance(tool, dict) else None
        if not isinstance(call_id, str) or not call_id:
            raise _malformed("toolUse start without a toolUseId")
        if not isinstance(name, str) or not name:
            raise _malformed("toolUse start without a name")

        self.buffer.start(call_id, name)
        self._block_ids[index] = call_id
        self._log.log(
            logging.DEBUG, "Tool call started", {"call_id": call_id, "name": name}
        )
        return [ToolCallStart(id=call_id, name=name)]

    def _on_block_stop(self, payload: dict[str, Any]) -> list[StreamEvent]:
        call_id = self._block_ids.pop(_block_index(payload), None)
        if call_id is None:
            # End of a text block.
            return []
        event = self.buffer.complete(call_id)
        self._log.log(
            logging.DEBUG,
            "Tool call complete",
            {"call_id": call_id, "name": event.name, "chars": len(event.arguments)},
        )
        return [event]

    def _on_message_stop(self, payload: dict[str, Any]) -> StreamEvent:
        reason = payload.get("stopReason")
        if not isinstance(reason, str) or not reason:
            raise _malformed("messageStop without a stopReason")
        self._finish()
        if reason in GUARDRAIL_STOP_REASONS:
            self._log.log(logging.INFO, "Guardrail intervened", {"reason": reason})
            return GuardrailIntervention(reason=reason)
        return StreamEnd(stop_reason=reason)

    def _on_cancel(self) -> StreamEvent | None:
        had_pending = bool(self.buffer.pending())
        self._finish()
        if self.emitted or had_pending:
            return StreamError(StreamErrorKind.CANCELLED, "Invocation cancelled")
        return None

    def _fail(self, kind: StreamErrorKind, message: str) -> StreamEvent:
        self._finish()
        self._log.log(logging.WARNING, "Stream failed", {"kind": kind.value})
        return StreamError(kind, message)

    def _finish(self) -> None:
        self.finished = True
        self._block_ids.clear()
        dropped = self.buffer.discard_pending()
        if dropped:
            self._log.log(
                logging.INFO,
                "Discarded incomplete tool calls",
                {"call_ids": dropped},
            )


def _unwrap(raw: Any) -> tuple[str, dict[str, Any]]:
    if not isinstance(raw, dict) or len(raw) != 1:
        raise _malformed("event must be a mapping with exactly one key")
    ((name, payload),) = raw.items()
    if not isinstance(name, str) or not isinstance(payload, dict):
        raise _malformed(f"event {name!r} has a non-mapping payload")
    return name, payload


def _block_index(payload: dict[str, Any]) -> int:
    index = payload.get("contentBlockIndex")
    if not isinstance(index, int) or isinstance(index, bool):
        raise _malformed("missing contentBlockIndex")
    return index


def _malformed(detail: str) -> TransportError:
    return TransportError(
        TransportErrorKind.MALFORMED_ENVELOPE,
        f"Malformed stream envelope: {detail}",
        phase="stream",
    )
