"""Error taxonomy for the runtime.

Callers branch on the exception type (or ``retryable``), never on message text.
"""

from __future__ import annotations


class AgentRuntimeError(Exception):
    """Base class for every failure the runtime classifies."""

    retryable: bool = False


class GatewayError(AgentRuntimeError):
    """A model call that produced no usable response."""


class TransportError(GatewayError):
    """Connectivity or I/O failure; no response was obtained."""

    retryable = True


class ApiError(GatewayError):
    """The endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"API error {status_code}: {body}")
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code == 429 or self.status_code >= 500


class MalformedResponse(GatewayError):
    """The response is missing required structure."""


class SessionExpired(AgentRuntimeError):
    """No valid credential can be obtained without the user logging in again."""


class ToolExecutionError(AgentRuntimeError):
    """Failure inside a single tool; converted to text at the dispatch boundary."""


class AuthError(AgentRuntimeError):
    """The login handshake was used out of order (e.g. exchange without a verifier)."""


__all__ = [
    "AgentRuntimeError",
    "GatewayError",
    "TransportError",
    "ApiError",
    "MalformedResponse",
    "SessionExpired",
    "ToolExecutionError",
    "AuthError",
]
