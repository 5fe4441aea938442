"""Invocation lifecycle: validate, resolve credentials, stream, release.

``invoke()`` is the whole caller-facing surface of the core. Validation runs
before ``invoke()`` returns; credential resolution happens when iteration
starts and before any network call. Credentials are released exactly once on
every exit path, including cancellation and the caller closing the iterator
early.
"""

from __future__ import annotations

from contextlib import aclosing
import logging
from typing import TYPE_CHECKING, Any

from bedrock_chat.auth import resolve
from bedrock_chat.cancellation import CancellationToken
from bedrock_chat.config import ChatConfig
from bedrock_chat.errors import InvocationCancelled, TransportError
from bedrock_chat.events import StreamError, StreamErrorKind, is_terminal
from bedrock_chat.log import LoggingSink
from bedrock_chat.request import build_request
from bedrock_chat.retry import retry_async, should_retry_open
from bedrock_chat.stream import StreamEventProcessor
from bedrock_chat.transport.bedrock import BedrockTransport
from bedrock_chat.transport.mock import ScriptedTransport
from bedrock_chat.validation import validate_messages

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Mapping

    from bedrock_chat.auth import AuthConfig, CredentialContext
    from bedrock_chat.events import StreamEvent
    from bedrock_chat.log import LogSink
    from bedrock_chat.messages import ConversationMessage
    from bedrock_chat.options import InvokeOptions
    from bedrock_chat.profiles import ProfileSource
    from bedrock_chat.transport.base import Transport
    from bedrock_chat.transport.models import ConverseRequest

logger = logging.getLogger(__name__)


def _default_transport(config: ChatConfig) -> Transport:
    if config.use_mock:
        return ScriptedTransport()
    return BedrockTransport(
        connect_timeout_s=config.connect_timeout_s,
        read_timeout_s=config.read_timeout_s,
    )


class InvocationOrchestrator:
    """Run invocations against one transport with shared configuration.

    Holds no per-invocation state, so concurrent invocations do not interfere;
    each gets its own credential context and stream processor.
    """

    def __init__(
        self,
        config: ChatConfig,
        *,
        transport: Transport | None = None,
        profiles: ProfileSource | None = None,
        log_sink: LogSink | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.transport = (
            transport if transport is not None else _default_transport(config)
        )
        self._profiles = profiles
        self._log = log_sink or LoggingSink()
        self._environ = environ

    def invoke(
        self,
        messages: Iterable[ConversationMessage],
        auth_config: AuthConfig,
        cancellation: CancellationToken | None = None,
        *,
        options: InvokeOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Start an invocation and return its lazy event sequence.

        Raises ``ValidationError`` immediately for a malformed history. The
        returned iterator raises ``AuthError`` on first iteration when
        credentials cannot be resolved; every later failure is reported as a
        terminal ``StreamError`` event.
        """
        history = tuple(messages)
        validate_messages(history)
        request = build_request(self.config, history, options)
        token = cancellation if cancellation is not None else CancellationToken()
        return self._run(request, auth_config, token)

    async def _run(
        self,
        request: ConverseRequest,
        auth_config: AuthConfig,
        token: CancellationToken,
    ) -> AsyncIterator[StreamEvent]:
        if token.cancelled:
            self._log.log(logging.INFO, "Invocation cancelled before start", {})
            return

        with resolve(
            auth_config, profiles=self._profiles, environ=self._environ
        ) as credentials:
            context: dict[str, Any] = {
                "model_id": request.model_id,
                "auth_method": credentials.method.value,
                "region": credentials.region,
                "message_count": len(request.messages),
            }
            self._log.log(logging.INFO, "Invocation started", context)
            terminal: StreamEvent | None = None
            try:
                try:
                    raw_events = await token.race(
                        self._open(request, credentials, token, context)
                    )
                except InvocationCancelled:
                    self._log.log(
                        logging.INFO, "Invocation cancelled while opening", context
                    )
                    return
                except TransportError as exc:
                    terminal = StreamError(StreamErrorKind(exc.kind.value), str(exc))
                    self._log.log(
                        logging.WARNING,
                        "Opening stream failed",
                        {
                            **context,
                            "kind": exc.kind.value,
                            "status_code": exc.status_code,
                        },
                    )
                    yield terminal
                    return

                processor = StreamEventProcessor(
                    max_tool_input_chars=self.config.max_tool_input_chars,
                    log_sink=self._log,
                )
                try:
                    stream = processor.process(raw_events, token)
                    async with aclosing(stream) as events:
                        async for event in events:
                            if is_terminal(event):
                                terminal = event
                            yield event
                except Exception as exc:
                    logger.exception("Unexpected streaming failure")
                    terminal = StreamError(StreamErrorKind.INTERNAL, str(exc))
                    yield terminal
            finally:
                self._log.log(
                    logging.INFO,
                    "Invocation finished",
                    {
                        **context,
                        "terminal": type(terminal).__name__ if terminal else None,
                    },
                )

    async def _open(
        self,
        request: ConverseRequest,
        credentials: CredentialContext,
        token: CancellationToken,
        context: dict[str, Any],
    ) -> AsyncIterator[Any]:
        def on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            self._log.log(
                logging.INFO,
                "Retrying stream open",
                {
                    **context,
                    "attempt": attempt,
                    "delay_s": round(delay, 3),
                    "error": str(exc),
                },
            )

        return await retry_async(
            lambda: self.transport.open_stream(request, credentials, token),
            policy=self.config.retry,
            should_retry=should_retry_open,
            on_retry=on_retry,
        )


def invoke(
    messages: Iterable[ConversationMessage],
    auth_config: AuthConfig,
    cancellation: CancellationToken | None = None,
    *,
    config: ChatConfig | None = None,
    options: InvokeOptions | None = None,
    transport: Transport | None = None,
    log_sink: LogSink | None = None,
) -> AsyncIterator[StreamEvent]:
    """Stream one model invocation.

    Args:
        messages: Conversation history, alternating user/assistant, user first.
        auth_config: The credential variant to use for this call only.
        cancellation: Optional token; cancelling it aborts the open stream.
        config: Shared configuration (defaults to ``ChatConfig()``).
        options: Optional inference features (system prompt, tools, guardrail).
        transport: Transport override, mainly for tests.
        log_sink: Where to report lifecycle logs (defaults to stdlib logging).

    Example:
        token = CancellationToken()
        async for event in invoke(
            [ConversationMessage.user("hi")],
            BearerToken(api_key=key, region="us-east-1"),
            token,
            config=ChatConfig(model_id="anthropic.claude-3-haiku-20240307-v1:0"),
        ):
            if isinstance(event, TextDelta):
                print(event.value, end="")
    """
    orchestrator = InvocationOrchestrator(
        config if config is not None else ChatConfig(),
        transport=transport,
        log_sink=log_sink,
    )
    return orchestrator.invoke(messages, auth_config, cancellation, options=options)
