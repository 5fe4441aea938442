"""Transport implementations."""

from .base import Transport
from .bedrock import BedrockTransport
from .mock import ScriptedTransport
from .models import ConverseRequest

__all__ = [
    "BedrockTransport",
    "ConverseRequest",
    "ScriptedTransport",
    "Transport",
]
