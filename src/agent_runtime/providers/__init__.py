"""Model gateways: pluggable backends for the agent runtime."""

from .anthropic_provider import AnthropicGateway
from .base import Credential, ModelGateway

__all__ = [
    "Credential",
    "ModelGateway",
    "AnthropicGateway",
]
