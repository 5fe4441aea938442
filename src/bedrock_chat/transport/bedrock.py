"""Amazon Bedrock ``ConverseStream`` transport built on boto3."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import boto3
from botocore import UNSIGNED
from botocore.config import Config as BotoConfig

from bedrock_chat._concurrency import offload, to_thread_limited
from bedrock_chat.auth import AuthMethod
from bedrock_chat.errors import InternalError, TransportError, TransportErrorKind
from bedrock_chat.transport._errors import wrap_transport_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator, Mapping

    from bedrock_chat.auth import CredentialContext
    from bedrock_chat.cancellation import CancellationToken
    from bedrock_chat.transport.models import ConverseRequest

logger = logging.getLogger(__name__)

_SERVICE_NAME = "bedrock-runtime"
_END = object()


class BedrockTransport:
    """Stream Converse responses from Bedrock Runtime.

    A boto3 client is built per credential context from that context alone and
    closed when the context is released. Bearer tokens are attached by a hook
    registered on that one client; nothing is written to the process
    environment. Blocking boto3 calls run in a bounded thread pool.
    """

    def __init__(
        self,
        *,
        connect_timeout_s: float = 10.0,
        read_timeout_s: float = 300.0,
        endpoint_url: str | None = None,
    ) -> None:
        self.connect_timeout_s = connect_timeout_s
        self.read_timeout_s = read_timeout_s
        self.endpoint_url = endpoint_url

    def _boto_config(self, *, unsigned: bool) -> BotoConfig:
        # Retries are owned by the orchestrator's open-phase policy.
        kwargs: dict[str, Any] = {
            "connect_timeout": self.connect_timeout_s,
            "read_timeout": self.read_timeout_s,
            "retries": {"max_attempts": 1, "mode": "standard"},
        }
        if unsigned:
            kwargs["signature_version"] = UNSIGNED
        return BotoConfig(**kwargs)

    def _session_for(self, credentials: CredentialContext) -> boto3.session.Session:
        method = credentials.method
        if method is AuthMethod.EXPLICIT_KEYS:
            return boto3.session.Session(
                aws_access_key_id=credentials.access_key_id,
                aws_secret_access_key=credentials.secret_access_key,
                aws_session_token=credentials.session_token,
                region_name=credentials.region,
            )
        if method is AuthMethod.PROFILE:
            return boto3.session.Session(
                profile_name=credentials.profile_name,
                region_name=credentials.region,
            )
        if method in (AuthMethod.DEFAULT_CHAIN, AuthMethod.BEARER_TOKEN):
            return boto3.session.Session(region_name=credentials.region)
        raise InternalError(f"Unsupported auth method: {method}")

    def build_client(self, credentials: CredentialContext) -> Any:
        """Create a ``bedrock-runtime`` client scoped to *credentials*."""
        bearer = credentials.method is AuthMethod.BEARER_TOKEN
        session = self._session_for(credentials)
        client = session.client(
            _SERVICE_NAME,
            region_name=credentials.region,
            endpoint_url=self.endpoint_url,
            config=self._boto_config(unsigned=bearer),
        )
        if bearer:
            token = credentials.bearer_token

            def add_bearer(request: Any, **_: Any) -> None:
                request.headers["Authorization"] = f"Bearer {token}"

            client.meta.events.register(f"before-send.{_SERVICE_NAME}.*", add_bearer)
        credentials.add_release_callback(client.close)
        return client

    async def open_stream(
        self,
        request: ConverseRequest,
        credentials: CredentialContext,
        cancellation: CancellationToken,
    ) -> AsyncIterator[Mapping[str, Any]]:
        """Call ``converse_stream`` and return an async iterator over its events."""
        client = self.build_client(credentials)
        call = await offload(client.converse_stream, **request.to_api_kwargs())
        try:
            response = await asyncio.shield(call)
        except asyncio.CancelledError:
            # The call keeps running in its thread; close what it returns.
            call.add_done_callback(_close_abandoned_response)
            raise
        except Exception as e:
            raise wrap_transport_error(
                e, phase="open", message="Bedrock ConverseStream failed"
            ) from e

        stream = response.get("stream") if isinstance(response, dict) else None
        if stream is None:
            raise TransportError(
                TransportErrorKind.MALFORMED_ENVELOPE,
                "ConverseStream response has no event stream",
                phase="open",
            )
        return self._iterate(stream, cancellation)

    async def _iterate(
        self, stream: Any, cancellation: CancellationToken
    ) -> AsyncIterator[Mapping[str, Any]]:
        # Closing the stream unblocks a worker thread waiting on the socket.
        unregister = cancellation.add_callback(stream.close)
        iterator: Iterator[Any] = iter(stream)
        try:
            while not cancellation.cancelled:
                try:
                    event = await to_thread_limited(next, iterator, _END)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if cancellation.cancelled:
                        return
                    raise wrap_transport_error(
                        e, phase="stream", message="Bedrock event stream failed"
                    ) from e
                if event is _END:
                    return
                yield event
        finally:
            unregister()
            try:
                stream.close()
            except Exception:
                logger.debug("Closing event stream failed", exc_info=True)


def _close_abandoned_response(call: asyncio.Future[Any]) -> None:
    if call.cancelled() or call.exception() is not None:
        return
    response = call.result()
    stream = response.get("stream") if isinstance(response, dict) else None
    if stream is None:
        return
    try:
        stream.close()
    except Exception:
        logger.debug("Closing abandoned event stream failed", exc_info=True)
