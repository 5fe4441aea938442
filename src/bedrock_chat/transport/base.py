"""Transport protocol: the single operation the core needs from a provider."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from bedrock_chat.auth import CredentialContext
    from bedrock_chat.cancellation import CancellationToken
    from bedrock_chat.transport.models import ConverseRequest


@runtime_checkable
class Transport(Protocol):
    """Open a streaming invocation and yield raw provider events."""

    async def open_stream(
        self,
        request: ConverseRequest,
        credentials: CredentialContext,
        cancellation: CancellationToken,
    ) -> AsyncIterator[Mapping[str, Any]]:
        """Open the stream.

        Raises ``TransportError`` when the stream cannot be opened. The
        returned iterator raises ``TransportError`` on mid-stream failures and
        stops promptly once *cancellation* fires.
        """
        ...
