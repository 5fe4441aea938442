"""Shared transport-side error helpers.

Transports attach retry metadata via ``TransportError`` so the orchestrator's
open-phase retry stays bounded and deterministic without substring matching.
"""

from __future__ import annotations

import asyncio
from typing import Any

from botocore.eventstream import ParserError
from botocore.exceptions import (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    EventStreamError,
    HTTPClientError,
    ReadTimeoutError,
)
from botocore.parsers import ResponseParserError

from bedrock_chat.errors import (
    TransportError,
    TransportErrorKind,
    _walk_exception_chain,
)

_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

_THROTTLING_CODES = frozenset(
    {"ThrottlingException", "throttlingException", "TooManyRequestsException"}
)

#: In-band exception events a Converse stream can deliver instead of data.
STREAM_EXCEPTION_EVENTS: dict[str, tuple[TransportErrorKind, bool]] = {
    "throttlingException": (TransportErrorKind.THROTTLED, True),
    "serviceUnavailableException": (TransportErrorKind.SERVICE_ERROR, True),
    "internalServerException": (TransportErrorKind.SERVICE_ERROR, True),
    "modelStreamErrorException": (TransportErrorKind.SERVICE_ERROR, False),
    "validationException": (TransportErrorKind.SERVICE_ERROR, False),
}


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response: Any = getattr(e, "response", None)
        if isinstance(response, dict):
            value = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if isinstance(value, int) and 100 <= value <= 599:
                return value
    return None


def extract_error_code(exc: BaseException) -> str | None:
    """Return the service error code (``ClientError.response['Error']['Code']``)."""
    for e in _walk_exception_chain(exc):
        response: Any = getattr(e, "response", None)
        if isinstance(response, dict):
            code = response.get("Error", {}).get("Code")
            if isinstance(code, str) and code:
                return code
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Walk the exception chain to find a Retry-After delay in seconds."""
    for e in _walk_exception_chain(exc):
        response: Any = getattr(e, "response", None)
        if not isinstance(response, dict):
            continue
        headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
        raw = headers.get("retry-after") if isinstance(headers, dict) else None
        if isinstance(raw, str) and raw.strip():
            try:
                seconds = float(raw)
            except ValueError:
                continue
            if seconds >= 0:
                return seconds
    return None


def _auth_hint(status_code: int | None) -> str | None:
    if status_code in {401, 403}:
        return (
            "Check credentials/permissions (API key, access keys, or profile) "
            "and that the model is enabled in this region."
        )
    return None


def _classify(exc: BaseException) -> tuple[TransportErrorKind, bool] | None:
    for e in _walk_exception_chain(exc):
        if isinstance(e, (ReadTimeoutError, ConnectTimeoutError, TimeoutError)):
            return TransportErrorKind.TIMEOUT, True
        if isinstance(
            e, (EndpointConnectionError, ConnectionClosedError, HTTPClientError)
        ):
            return TransportErrorKind.CONNECTION_FAILED, True
        if isinstance(e, (ParserError, ResponseParserError)):
            return TransportErrorKind.MALFORMED_ENVELOPE, False
        if isinstance(e, (ConnectionError, OSError)):
            return TransportErrorKind.CONNECTION_FAILED, True
    return None


def wrap_transport_error(
    exc: BaseException,
    *,
    phase: str,
    message: str | None = None,
) -> TransportError:
    """Map SDK exceptions into ``TransportError`` with stable retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, TransportError):
        if exc.phase is None:
            exc.phase = phase
        return exc

    status_code = extract_status_code(exc)
    retry_after_s = extract_retry_after_s(exc)
    error_code = extract_error_code(exc)

    classified = _classify(exc)
    if classified is not None:
        kind, retryable = classified
    elif error_code in _THROTTLING_CODES or status_code == 429:
        kind, retryable = TransportErrorKind.THROTTLED, True
    elif isinstance(exc, EventStreamError) and error_code in STREAM_EXCEPTION_EVENTS:
        kind, retryable = STREAM_EXCEPTION_EVENTS[error_code]
    else:
        kind = TransportErrorKind.SERVICE_ERROR
        retryable = (
            isinstance(status_code, int) and status_code in _RETRYABLE_STATUS_CODES
        )
    if retry_after_s is not None and kind is not TransportErrorKind.MALFORMED_ENVELOPE:
        retryable = True

    msg = message or f"bedrock {phase} failed"
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    cause = str(exc)
    return TransportError(
        kind,
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=_auth_hint(status_code),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        phase=phase,
    )


def stream_exception_error(name: str, payload: Any) -> TransportError:
    """Build the ``TransportError`` for an in-band stream exception event."""
    kind, retryable = STREAM_EXCEPTION_EVENTS.get(
        name, (TransportErrorKind.SERVICE_ERROR, False)
    )
    detail = payload.get("message") if isinstance(payload, dict) else None
    return TransportError(
        kind,
        f"{name}: {detail}" if detail else name,
        retryable=retryable,
        phase="stream",
    )
