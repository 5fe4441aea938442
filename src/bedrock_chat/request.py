"""Build the provider request for one invocation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bedrock_chat.messages import to_converse_messages
from bedrock_chat.options import InvokeOptions
from bedrock_chat.transport.models import ConverseRequest

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bedrock_chat.config import ChatConfig
    from bedrock_chat.messages import ConversationMessage


def build_request(
    config: ChatConfig,
    messages: Sequence[ConversationMessage],
    options: InvokeOptions | None = None,
) -> ConverseRequest:
    """Combine config, validated history and options into a ``ConverseRequest``."""
    opts = options or InvokeOptions()
    guardrail = None
    if opts.guardrail is not None:
        guardrail = {
            "guardrailIdentifier": opts.guardrail.identifier,
            "guardrailVersion": opts.guardrail.version,
            "trace": "enabled" if opts.guardrail.trace else "disabled",
        }
    return ConverseRequest(
        model_id=config.model_id or "",
        messages=to_converse_messages(list(messages)),
        system=(
            [{"text": opts.system_instruction}] if opts.system_instruction else None
        ),
        inference_config=opts.inference_config(),
        tool_config=opts.tool_config(),
        guardrail_config=guardrail,
    )
