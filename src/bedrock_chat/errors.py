"""Exception hierarchy for bedrock-chat."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class BedrockChatError(Exception):
    """Base exception for all bedrock-chat errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(BedrockChatError):
    """Configuration validation or resolution failed."""


class InternalError(BedrockChatError):
    """A bedrock-chat internal error (bug) or invariant violation."""


class InvocationCancelled(BedrockChatError):
    """The cancellation token fired while an operation was waiting."""


class AuthErrorKind(StrEnum):
    MISSING_FIELD = "missing_field"
    PROFILE_NOT_FOUND = "profile_not_found"


class AuthError(BedrockChatError):
    """Credential resolution failed before any network call."""

    def __init__(
        self,
        kind: AuthErrorKind,
        message: str,
        *,
        field: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.kind = kind
        self.field = field


class ValidationErrorKind(StrEnum):
    EMPTY = "empty"
    WRONG_FIRST_ROLE = "wrong_first_role"
    CONSECUTIVE_SAME_ROLE = "consecutive_same_role"
    EMPTY_CONTENT = "empty_content"


class ValidationError(BedrockChatError):
    """Conversation history broke an ordering or shape invariant.

    ``index`` points at the offending message (``None`` for an empty history).
    """

    def __init__(
        self,
        kind: ValidationErrorKind,
        message: str,
        *,
        index: int | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.kind = kind
        self.index = index


class ToolBufferErrorKind(StrEnum):
    DUPLICATE_ID = "duplicate_id"
    UNKNOWN_ID = "unknown_id"
    ALREADY_COMPLETE = "already_complete"
    INPUT_TOO_LARGE = "input_too_large"


class ToolBufferError(BedrockChatError):
    """Tool-call reassembly rejected an operation."""

    def __init__(
        self,
        kind: ToolBufferErrorKind,
        message: str,
        *,
        call_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.call_id = call_id


class TransportErrorKind(StrEnum):
    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    MALFORMED_ENVELOPE = "malformed_envelope"
    THROTTLED = "throttled"
    SERVICE_ERROR = "service_error"


class TransportError(BedrockChatError):
    """Opening or reading the provider stream failed.

    Transports attach retry metadata so the orchestrator can retry opening the
    stream without brittle substring matching.
    """

    def __init__(
        self,
        kind: TransportErrorKind,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool = False,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.kind = kind
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.phase = phase


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, skipping cycles."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
