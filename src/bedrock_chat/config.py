"""Configuration: frozen ChatConfig with an explicit model requirement."""

from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from bedrock_chat.errors import ConfigurationError
from bedrock_chat.retry import RetryPolicy
from bedrock_chat.tool_buffer import DEFAULT_MAX_TOOL_INPUT_CHARS

load_dotenv()

_MODEL_ID_ENV_VAR = "BEDROCK_CHAT_MODEL_ID"


@dataclass(frozen=True)
class ChatConfig:
    """Immutable configuration shared by invocations.

    Credentials are not part of the config; each invocation receives its own
    ``AuthConfig``.

    Example:
        config = ChatConfig(model_id="anthropic.claude-3-5-sonnet-20240620-v1:0")
        # or set BEDROCK_CHAT_MODEL_ID and use ChatConfig()
    """

    #: Auto-resolved from ``BEDROCK_CHAT_MODEL_ID`` when *None*.
    model_id: str | None = None
    #: Upper bound on reassembled tool-call argument text; *None* disables it.
    max_tool_input_chars: int | None = DEFAULT_MAX_TOOL_INPUT_CHARS
    connect_timeout_s: float = 10.0
    read_timeout_s: float = 300.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    use_mock: bool = False

    def __post_init__(self) -> None:
        """Auto-resolve the model id and validate configuration."""
        if self.model_id is None:
            object.__setattr__(self, "model_id", os.environ.get(_MODEL_ID_ENV_VAR))

        if not self.model_id or not self.model_id.strip():
            if not self.use_mock:
                raise ConfigurationError(
                    "model_id is required",
                    hint=f"Set {_MODEL_ID_ENV_VAR} or pass model_id=...",
                )
            object.__setattr__(self, "model_id", "mock")
        else:
            object.__setattr__(self, "model_id", self.model_id.strip())

        if self.max_tool_input_chars is not None and self.max_tool_input_chars < 1:
            raise ConfigurationError(
                "max_tool_input_chars must be ≥ 1 or None, "
                f"got {self.max_tool_input_chars}",
                hint="This bounds memory used to reassemble tool-call arguments.",
            )
        if self.connect_timeout_s <= 0 or self.read_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s and read_timeout_s must be > 0",
                hint="These are the only timeouts applied to a stream.",
            )
