"""Conversation history model and its provider wire rendering."""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Literal

from bedrock_chat.errors import ConfigurationError
from bedrock_chat.tool_buffer import parse_tool_input

Role = Literal["user", "assistant"]
_ROLES: frozenset[str] = frozenset({"user", "assistant"})


@dataclass(frozen=True)
class TextBlock:
    """Plain text content."""

    value: str


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool call made by the assistant.

    ``input`` is either the parsed argument value or the raw (possibly
    partial) argument text.
    """

    id: str
    name: str
    input: Any = None


@dataclass(frozen=True)
class ToolResultBlock:
    """The result of a tool call, sent back on a user turn."""

    tool_use_id: str
    content: Any
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


@dataclass(frozen=True)
class ConversationMessage:
    """One turn of conversation history."""

    role: Role
    content: tuple[ContentBlock, ...]

    def __post_init__(self) -> None:
        """Reject unknown roles and normalize content to a tuple."""
        if self.role not in _ROLES:
            raise ConfigurationError(
                f"Unknown message role: {self.role!r}",
                hint="Messages use role='user' or role='assistant'.",
            )
        if not isinstance(self.content, tuple):
            object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def user(cls, *blocks: ContentBlock | str) -> ConversationMessage:
        """Build a user turn; bare strings become ``TextBlock``."""
        return cls("user", _coerce_blocks(blocks))

    @classmethod
    def assistant(cls, *blocks: ContentBlock | str) -> ConversationMessage:
        """Build an assistant turn; bare strings become ``TextBlock``."""
        return cls("assistant", _coerce_blocks(blocks))


def _coerce_blocks(blocks: tuple[ContentBlock | str, ...]) -> tuple[ContentBlock, ...]:
    return tuple(TextBlock(b) if isinstance(b, str) else b for b in blocks)


def to_converse_messages(
    messages: list[ConversationMessage] | tuple[ConversationMessage, ...],
) -> list[dict[str, Any]]:
    """Render validated history into Converse API ``messages``."""
    return [
        {"role": message.role, "content": [_render_block(b) for b in message.content]}
        for message in messages
    ]


def _render_block(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"text": block.value}
    if isinstance(block, ToolUseBlock):
        return {
            "toolUse": {
                "toolUseId": block.id,
                "name": block.name,
                "input": _tool_use_input(block.input),
            }
        }
    if isinstance(block, ToolResultBlock):
        return {
            "toolResult": {
                "toolUseId": block.tool_use_id,
                "content": _tool_result_content(block.content),
                "status": "error" if block.is_error else "success",
            }
        }
    raise ConfigurationError(
        f"Unsupported content block: {type(block).__name__}",
        hint="Use TextBlock, ToolUseBlock, or ToolResultBlock.",
    )


def _tool_use_input(value: Any) -> Any:
    # Partial argument text is replayed through the same fallback as the stream.
    if value is None:
        return {}
    if isinstance(value, str):
        value = parse_tool_input(value)
    if not isinstance(value, dict):
        return {"value": value}
    return value


def _tool_result_content(content: Any) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"text": content}]
    if isinstance(content, dict):
        return [{"json": content}]
    if isinstance(content, (list, tuple)):
        rendered: list[dict[str, Any]] = []
        for item in content:
            if isinstance(item, str):
                rendered.append({"text": item})
            elif isinstance(item, dict):
                rendered.append({"json": item})
            else:
                rendered.append({"text": json.dumps(item, default=str)})
        return rendered
    return [{"text": json.dumps(content, default=str)}]
