"""Domain models for the transport layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ConverseRequest:
    """A provider-ready streaming request.

    Carries no credential material; credentials travel separately as a
    ``CredentialContext``.
    """

    model_id: str
    messages: list[dict[str, Any]]
    system: list[dict[str, Any]] | None = None
    inference_config: dict[str, Any] | None = None
    tool_config: dict[str, Any] | None = None
    guardrail_config: dict[str, Any] | None = None

    def to_api_kwargs(self) -> dict[str, Any]:
        """Return keyword arguments for ``converse_stream``."""
        kwargs: dict[str, Any] = {"modelId": self.model_id, "messages": self.messages}
        if self.system:
            kwargs["system"] = self.system
        if self.inference_config:
            kwargs["inferenceConfig"] = self.inference_config
        if self.tool_config:
            kwargs["toolConfig"] = self.tool_config
        if self.guardrail_config:
            kwargs["guardrailConfig"] = self.guardrail_config
        return kwargs
