"""Abstract model gateway interface for the agent runtime."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

from ..models import ConversationLog, ModelResponse, ToolDef


@dataclass(frozen=True)
class Credential:
    """What a gateway authenticates with."""

    scheme: Literal["api_key", "bearer"]
    token: str

    def __repr__(self) -> str:
        return f"Credential(scheme={self.scheme!r}, token='***')"


class ModelGateway(ABC):
    """
    Stateless request/response client for the model endpoint.

    The orchestrator only depends on this interface. All conversational state
    lives in the ConversationLog the caller passes in; gateways never mutate it.
    """

    def __init__(self, credential: Credential) -> None:
        self.credential = credential

    @abstractmethod
    async def send_turn(
        self,
        log: ConversationLog,
        *,
        system_prompt: str,
        tools: list[ToolDef],
    ) -> ModelResponse:
        """
        Send the full log plus the tool catalog; return the parsed reply.

        Raises TransportError, ApiError or MalformedResponse.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by this gateway."""
        return None
