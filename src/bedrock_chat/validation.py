"""Conversation-history invariants checked before any network call."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bedrock_chat.errors import ValidationError, ValidationErrorKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bedrock_chat.messages import ConversationMessage


def validate_messages(messages: Sequence[ConversationMessage]) -> None:
    """Raise ``ValidationError`` unless *messages* is a well-formed history.

    A valid history is non-empty, starts with a user turn, strictly alternates
    roles, and has at least one content block per message. Pure: the input is
    only read.
    """
    if not messages:
        raise ValidationError(
            ValidationErrorKind.EMPTY,
            "Conversation history is empty",
            hint="Pass at least one user message.",
        )

    if messages[0].role != "user":
        raise ValidationError(
            ValidationErrorKind.WRONG_FIRST_ROLE,
            f"First message must have role 'user', got {messages[0].role!r}",
            index=0,
        )

    previous_role: str | None = None
    for index, message in enumerate(messages):
        if message.role == previous_role:
            raise ValidationError(
                ValidationErrorKind.CONSECUTIVE_SAME_ROLE,
                f"Messages {index - 1} and {index} both have role {message.role!r}",
                index=index,
                hint="Roles must alternate user/assistant.",
            )
        if not message.content:
            raise ValidationError(
                ValidationErrorKind.EMPTY_CONTENT,
                f"Message {index} has no content blocks",
                index=index,
            )
        previous_role = message.role
