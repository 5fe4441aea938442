"""Transport characterization tests.

These tests pin the mapping from botocore exceptions to ``TransportError`` and
the exact ``converse_stream`` arguments, using fake clients instead of network
calls.
"""

from __future__ import annotations

import asyncio
import os
import threading
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

from botocore import UNSIGNED
from botocore.eventstream import ParserError
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    EventStreamError,
    ReadTimeoutError,
)
from botocore.parsers import ResponseParserError
import pytest

from bedrock_chat.auth import AuthMethod, CredentialContext
from bedrock_chat.cancellation import CancellationToken
from bedrock_chat.errors import TransportError, TransportErrorKind
from bedrock_chat.transport import BedrockTransport, ConverseRequest
from bedrock_chat.transport._errors import (
    extract_retry_after_s,
    stream_exception_error,
    wrap_transport_error,
)

pytestmark = pytest.mark.contract


def _client_error(
    code: str,
    status: int | None,
    *,
    headers: dict[str, str] | None = None,
    cls: type[ClientError] = ClientError,
) -> ClientError:
    response: dict[str, Any] = {"Error": {"Code": code, "Message": f"{code} raised"}}
    if status is not None:
        response["ResponseMetadata"] = {
            "HTTPStatusCode": status,
            "HTTPHeaders": headers or {},
        }
    return cls(response, "ConverseStream")


def _bearer_ctx() -> CredentialContext:
    return CredentialContext(
        AuthMethod.BEARER_TOKEN, "us-east-1", bearer_token="k-secret"
    )


def _keys_ctx() -> CredentialContext:
    return CredentialContext(
        AuthMethod.EXPLICIT_KEYS,
        "eu-west-1",
        access_key_id="AKIAEXAMPLE",
        secret_access_key="secret",
    )


# =============================================================================
# Error Mapping (Contract)
# =============================================================================


@pytest.mark.parametrize(
    ("exc", "kind", "retryable"),
    [
        (
            ReadTimeoutError(endpoint_url="https://bedrock"),
            TransportErrorKind.TIMEOUT,
            True,
        ),
        (
            ConnectTimeoutError(endpoint_url="https://bedrock"),
            TransportErrorKind.TIMEOUT,
            True,
        ),
        (
            EndpointConnectionError(endpoint_url="https://bedrock"),
            TransportErrorKind.CONNECTION_FAILED,
            True,
        ),
        (ParserError("bad prelude crc"), TransportErrorKind.MALFORMED_ENVELOPE, False),
        (
            ResponseParserError("unexpected body"),
            TransportErrorKind.MALFORMED_ENVELOPE,
            False,
        ),
        (
            _client_error("ThrottlingException", 429),
            TransportErrorKind.THROTTLED,
            True,
        ),
        (
            _client_error("ServiceUnavailableException", 503),
            TransportErrorKind.SERVICE_ERROR,
            True,
        ),
        (
            _client_error("ValidationException", 400),
            TransportErrorKind.SERVICE_ERROR,
            False,
        ),
        (
            _client_error("modelStreamErrorException", None, cls=EventStreamError),
            TransportErrorKind.SERVICE_ERROR,
            False,
        ),
        (
            _client_error("throttlingException", None, cls=EventStreamError),
            TransportErrorKind.THROTTLED,
            True,
        ),
    ],
)
def test_wrap_transport_error_classifies_botocore_errors(
    exc: BaseException, kind: TransportErrorKind, retryable: bool
) -> None:
    err = wrap_transport_error(exc, phase="open")

    assert isinstance(err, TransportError)
    assert err.kind is kind
    assert err.retryable is retryable
    assert err.phase == "open"


def test_wrap_transport_error_keeps_status_and_auth_hint() -> None:
    err = wrap_transport_error(
        _client_error("AccessDeniedException", 403),
        phase="open",
        message="Bedrock ConverseStream failed",
    )

    assert err.status_code == 403
    assert err.retryable is False
    assert err.hint is not None
    assert "credentials" in err.hint.lower()
    assert str(err).startswith("Bedrock ConverseStream failed (status=403)")


def test_retry_after_header_makes_error_retryable() -> None:
    exc = _client_error(
        "ServiceQuotaExceededException", 400, headers={"retry-after": "3"}
    )

    err = wrap_transport_error(exc, phase="open")

    assert extract_retry_after_s(exc) == 3.0
    assert err.retry_after_s == 3.0
    assert err.retryable is True


def test_wrap_transport_error_walks_exception_chain() -> None:
    outer = RuntimeError("request failed")
    outer.__cause__ = ConnectTimeoutError(endpoint_url="https://bedrock")

    assert wrap_transport_error(outer, phase="open").kind is TransportErrorKind.TIMEOUT


def test_wrap_transport_error_passes_transport_errors_through() -> None:
    original = TransportError(TransportErrorKind.THROTTLED, "slow", retryable=True)

    err = wrap_transport_error(original, phase="stream")

    assert err is original
    assert err.phase == "stream"


def test_wrap_transport_error_reraises_cancellation() -> None:
    with pytest.raises(asyncio.CancelledError):
        wrap_transport_error(asyncio.CancelledError(), phase="stream")


def test_stream_exception_event_mapping() -> None:
    err = stream_exception_error("internalServerException", {"message": "oops"})
    assert err.kind is TransportErrorKind.SERVICE_ERROR
    assert err.retryable is True
    assert str(err) == "internalServerException: oops"

    unknown = stream_exception_error("brandNewException", {})
    assert unknown.kind is TransportErrorKind.SERVICE_ERROR
    assert unknown.retryable is False


# =============================================================================
# Fake client helpers
# =============================================================================


class _FakeStream:
    def __init__(self, items: list[Any]) -> None:
        self._items = list(items)
        self.closed = False

    def __iter__(self):
        for item in self._items:
            if isinstance(item, BaseException):
                raise item
            yield item

    def close(self) -> None:
        self.closed = True


class _BlockingStream:
    """Yields one event, then blocks until closed, like a stalled socket."""

    def __init__(self) -> None:
        self.closed = False
        self._unblock = threading.Event()

    def __iter__(self):
        yield {"contentBlockDelta": {"delta": {"text": "he"}, "contentBlockIndex": 0}}
        self._unblock.wait(timeout=10)
        raise ConnectionError("stream closed")

    def close(self) -> None:
        self.closed = True
        self._unblock.set()


def _transport_with(client: Any) -> BedrockTransport:
    transport = BedrockTransport()
    transport.build_client = lambda credentials: client  # type: ignore[method-assign]
    return transport


def _request() -> ConverseRequest:
    return ConverseRequest(
        model_id="anthropic.claude-3-haiku-20240307-v1:0",
        messages=[{"role": "user", "content": [{"text": "hi"}]}],
        inference_config={"maxTokens": 16},
    )


async def _drain(iterator) -> list[Any]:
    return [item async for item in iterator]


# =============================================================================
# BedrockTransport (Contract)
# =============================================================================


@pytest.mark.asyncio
async def test_open_stream_sends_converse_kwargs_and_closes_stream() -> None:
    events = [
        {"messageStart": {"role": "assistant"}},
        {"messageStop": {"stopReason": "end_turn"}},
    ]
    stream = _FakeStream(events)
    client = MagicMock()
    client.converse_stream.return_value = {"stream": stream}

    iterator = await _transport_with(client).open_stream(
        _request(), _bearer_ctx(), CancellationToken()
    )
    received = await _drain(iterator)

    client.converse_stream.assert_called_once_with(
        modelId="anthropic.claude-3-haiku-20240307-v1:0",
        messages=[{"role": "user", "content": [{"text": "hi"}]}],
        inferenceConfig={"maxTokens": 16},
    )
    assert received == events
    assert stream.closed


@pytest.mark.asyncio
async def test_open_failure_is_wrapped_with_open_phase() -> None:
    client = MagicMock()
    client.converse_stream.side_effect = _client_error("ThrottlingException", 429)

    with pytest.raises(TransportError) as exc:
        await _transport_with(client).open_stream(
            _request(), _bearer_ctx(), CancellationToken()
        )

    assert exc.value.kind is TransportErrorKind.THROTTLED
    assert exc.value.phase == "open"
    assert exc.value.retryable is True


@pytest.mark.asyncio
async def test_response_without_stream_is_malformed() -> None:
    client = MagicMock()
    client.converse_stream.return_value = {"ResponseMetadata": {}}

    with pytest.raises(TransportError) as exc:
        await _transport_with(client).open_stream(
            _request(), _bearer_ctx(), CancellationToken()
        )

    assert exc.value.kind is TransportErrorKind.MALFORMED_ENVELOPE


@pytest.mark.asyncio
async def test_mid_stream_failure_is_wrapped_with_stream_phase() -> None:
    stream = _FakeStream(
        [
            {"messageStart": {"role": "assistant"}},
            ReadTimeoutError(endpoint_url="https://bedrock"),
        ]
    )
    client = MagicMock()
    client.converse_stream.return_value = {"stream": stream}
    iterator = await _transport_with(client).open_stream(
        _request(), _bearer_ctx(), CancellationToken()
    )

    with pytest.raises(TransportError) as exc:
        await _drain(iterator)

    assert exc.value.kind is TransportErrorKind.TIMEOUT
    assert exc.value.phase == "stream"
    assert stream.closed


@pytest.mark.asyncio
async def test_stream_opened_after_cancellation_is_closed() -> None:
    stream = _FakeStream([{"messageStop": {"stopReason": "end_turn"}}])
    entered = threading.Event()
    unblock = threading.Event()

    def slow_converse_stream(**_: Any) -> dict[str, Any]:
        entered.set()
        unblock.wait(timeout=5)
        return {"stream": stream}

    client = MagicMock()
    client.converse_stream.side_effect = slow_converse_stream
    opening = asyncio.create_task(
        _transport_with(client).open_stream(
            _request(), _bearer_ctx(), CancellationToken()
        )
    )

    await asyncio.to_thread(entered.wait, 5)
    opening.cancel()
    with pytest.raises(asyncio.CancelledError):
        await opening
    assert not stream.closed

    unblock.set()
    for _ in range(100):
        if stream.closed:
            break
        await asyncio.sleep(0.01)
    assert stream.closed


@pytest.mark.asyncio
async def test_cancellation_closes_a_blocked_stream() -> None:
    stream = _BlockingStream()
    client = MagicMock()
    client.converse_stream.return_value = {"stream": stream}
    token = CancellationToken()
    iterator = await _transport_with(client).open_stream(
        _request(), _bearer_ctx(), token
    )

    first = await anext(iterator)
    pending = asyncio.create_task(_drain(iterator))
    await asyncio.sleep(0.05)
    token.cancel()
    rest = await asyncio.wait_for(pending, timeout=5)

    assert "contentBlockDelta" in first
    assert rest == []
    assert stream.closed


# =============================================================================
# Client construction
# =============================================================================


def test_bearer_client_is_unsigned_and_sends_authorization_header() -> None:
    ctx = _bearer_ctx()
    before = dict(os.environ)

    client = BedrockTransport().build_client(ctx)
    request = SimpleNamespace(headers={})
    client.meta.events.emit(
        "before-send.bedrock-runtime.ConverseStream", request=request
    )

    assert client.meta.config.signature_version is UNSIGNED
    assert client.meta.region_name == "us-east-1"
    assert request.headers["Authorization"] == "Bearer k-secret"
    assert dict(os.environ) == before
    ctx.release()


def test_explicit_keys_client_uses_context_credentials() -> None:
    ctx = _keys_ctx()

    client = BedrockTransport().build_client(ctx)
    creds = client._request_signer._credentials

    assert creds.access_key == "AKIAEXAMPLE"
    assert creds.secret_key == "secret"
    assert client.meta.region_name == "eu-west-1"
    ctx.release()


def test_client_is_closed_when_credentials_are_released(monkeypatch) -> None:
    fake_client = MagicMock()
    session = MagicMock()
    session.client.return_value = fake_client
    transport = BedrockTransport(connect_timeout_s=2.0, read_timeout_s=30.0)
    monkeypatch.setattr(transport, "_session_for", lambda credentials: session)
    ctx = _keys_ctx()

    assert transport.build_client(ctx) is fake_client
    fake_client.close.assert_not_called()
    ctx.release()
    ctx.release()

    fake_client.close.assert_called_once_with()
    kwargs = session.client.call_args.kwargs
    assert session.client.call_args.args == ("bedrock-runtime",)
    assert kwargs["region_name"] == "eu-west-1"
    assert kwargs["config"].connect_timeout == 2.0
    assert kwargs["config"].read_timeout == 30.0
