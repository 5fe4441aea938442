"""Per-invocation inference options."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel

from bedrock_chat.errors import ConfigurationError

ToolChoice = Literal["auto", "any"] | dict[str, Any]
ToolParameters = type[BaseModel] | dict[str, Any]


@dataclass(frozen=True)
class GuardrailConfig:
    """Bedrock guardrail applied to the streamed response."""

    identifier: str
    version: str
    #: Request guardrail trace data in stream metadata.
    trace: bool = False

    def __post_init__(self) -> None:
        """Require both identifier and version."""
        if not self.identifier.strip() or not self.version.strip():
            raise ConfigurationError(
                "guardrail identifier and version must be non-empty",
                hint="Pass GuardrailConfig(identifier='gr-123', version='1').",
            )


@dataclass(frozen=True)
class InvokeOptions:
    """Optional inference features for one invocation."""

    system_instruction: str | None = None
    #: Dicts with ``name``, optional ``description`` and ``parameters``
    #: (a JSON Schema dict or a Pydantic ``BaseModel`` subclass).
    tools: list[dict[str, Any]] | None = None
    tool_choice: ToolChoice | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] = ()
    guardrail: GuardrailConfig | None = None

    def __post_init__(self) -> None:
        """Validate option shapes early for clear errors."""
        if self.system_instruction is not None and not isinstance(
            self.system_instruction, str
        ):
            raise ConfigurationError(
                "system_instruction must be a string",
                hint="Pass system_instruction='You are a concise assistant.'",
            )

        if self.max_tokens is not None and (
            not isinstance(self.max_tokens, int) or self.max_tokens <= 0
        ):
            raise ConfigurationError(
                "max_tokens must be a positive integer",
                hint="Pass max_tokens=4096.",
            )

        if self.temperature is not None and not 0 <= self.temperature <= 1:
            raise ConfigurationError(
                f"temperature must be within [0, 1], got {self.temperature}"
            )
        if self.top_p is not None and not 0 <= self.top_p <= 1:
            raise ConfigurationError(f"top_p must be within [0, 1], got {self.top_p}")

        if self.tools is not None:
            for tool in self.tools:
                if not isinstance(tool, dict) or not isinstance(tool.get("name"), str):
                    raise ConfigurationError(
                        "tools must be dicts with a string 'name' field",
                        hint="Pass tools=[{'name': 'lookup', 'parameters': {...}}].",
                    )
                params = tool.get("parameters")
                if params is not None and not (
                    isinstance(params, dict)
                    or (isinstance(params, type) and issubclass(params, BaseModel))
                ):
                    raise ConfigurationError(
                        f"parameters for tool {tool['name']!r} must be a JSON schema "
                        "dict or a Pydantic model class"
                    )

        if self.tool_choice is not None:
            if self.tool_choice not in ("auto", "any") and not (
                isinstance(self.tool_choice, dict)
                and isinstance(self.tool_choice.get("name"), str)
            ):
                raise ConfigurationError(
                    f"Unsupported tool_choice: {self.tool_choice!r}",
                    hint="Use 'auto', 'any', or {'name': 'tool_name'}.",
                )
            if not self.tools:
                raise ConfigurationError(
                    "tool_choice requires tools",
                    hint="Pass tools=[...] together with tool_choice.",
                )

    def tool_config(self) -> dict[str, Any] | None:
        """Return the Converse ``toolConfig`` for these options."""
        if not self.tools:
            return None
        specs = [
            {
                "toolSpec": {
                    "name": tool["name"],
                    "description": tool.get("description") or tool["name"],
                    "inputSchema": {"json": _schema_json(tool.get("parameters"))},
                }
            }
            for tool in self.tools
        ]
        config: dict[str, Any] = {"tools": specs}
        if self.tool_choice == "auto":
            config["toolChoice"] = {"auto": {}}
        elif self.tool_choice == "any":
            config["toolChoice"] = {"any": {}}
        elif isinstance(self.tool_choice, dict):
            config["toolChoice"] = {"tool": {"name": self.tool_choice["name"]}}
        return config

    def inference_config(self) -> dict[str, Any] | None:
        """Return the Converse ``inferenceConfig`` for these options."""
        config: dict[str, Any] = {}
        if self.max_tokens is not None:
            config["maxTokens"] = self.max_tokens
        if self.temperature is not None:
            config["temperature"] = self.temperature
        if self.top_p is not None:
            config["topP"] = self.top_p
        if self.stop_sequences:
            config["stopSequences"] = list(self.stop_sequences)
        return config or None


def _schema_json(params: ToolParameters | None) -> dict[str, Any]:
    if params is None:
        return {"type": "object", "properties": {}}
    if isinstance(params, dict):
        return params
    return params.model_json_schema()
