"""bedrock-chat: streaming conversational invocations against Amazon Bedrock.

Public API:
    - invoke(): Stream one invocation as normalized events
    - collect(): Fold an event stream into an InvocationResult
    - ConversationMessage: Conversation history turns
    - BearerToken / ExplicitKeys / Profile / DefaultChain: Auth variants
    - ChatConfig / InvokeOptions: Configuration
    - CancellationToken: Cooperative cancellation
"""

from __future__ import annotations

import logging

from bedrock_chat.auth import (
    AuthConfig,
    BearerToken,
    CredentialContext,
    DefaultChain,
    ExplicitKeys,
    Profile,
    resolve,
)
from bedrock_chat.cancellation import CancellationToken
from bedrock_chat.config import ChatConfig
from bedrock_chat.errors import (
    AuthError,
    AuthErrorKind,
    BedrockChatError,
    ConfigurationError,
    InternalError,
    ToolBufferError,
    ToolBufferErrorKind,
    TransportError,
    TransportErrorKind,
    ValidationError,
    ValidationErrorKind,
)
from bedrock_chat.events import (
    GuardrailIntervention,
    StreamEnd,
    StreamError,
    StreamErrorKind,
    StreamEvent,
    TextDelta,
    ToolCallComplete,
    ToolCallStart,
)
from bedrock_chat.messages import (
    ConversationMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from bedrock_chat.options import GuardrailConfig, InvokeOptions
from bedrock_chat.orchestrator import InvocationOrchestrator, invoke
from bedrock_chat.result import InvocationResult, collect
from bedrock_chat.retry import RetryPolicy
from bedrock_chat.validation import validate_messages

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("bedrock-chat")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("bedrock_chat").addHandler(logging.NullHandler())

__all__ = [
    "AuthConfig",
    "AuthError",
    "AuthErrorKind",
    "BearerToken",
    "BedrockChatError",
    "CancellationToken",
    "ChatConfig",
    "ConfigurationError",
    "ConversationMessage",
    "CredentialContext",
    "DefaultChain",
    "ExplicitKeys",
    "GuardrailConfig",
    "GuardrailIntervention",
    "InternalError",
    "InvocationOrchestrator",
    "InvocationResult",
    "InvokeOptions",
    "Profile",
    "RetryPolicy",
    "StreamEnd",
    "StreamError",
    "StreamErrorKind",
    "StreamEvent",
    "TextBlock",
    "TextDelta",
    "ToolBufferError",
    "ToolBufferErrorKind",
    "ToolCallComplete",
    "ToolCallStart",
    "ToolResultBlock",
    "ToolUseBlock",
    "TransportError",
    "TransportErrorKind",
    "ValidationError",
    "ValidationErrorKind",
    "collect",
    "invoke",
    "resolve",
    "validate_messages",
]
