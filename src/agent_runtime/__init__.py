"""Agent runtime: model and tool turn loop with typed wire model and tool dispatch."""

from .auth import ApiKeyAuth, CredentialProvider, OAuthAuth, Session, Unauthenticated
from .errors import (
    AgentRuntimeError,
    ApiError,
    AuthError,
    MalformedResponse,
    SessionExpired,
    ToolExecutionError,
    TransportError,
)
from .loop import LoopOptions, Orchestrator, RunState
from .models import (
    ConversationLog,
    DisplayMessage,
    ModelResponse,
    OtherBlock,
    TextBlock,
    ToolDef,
    ToolResult,
    ToolResultEntry,
    ToolUseBlock,
    Turn,
    UsageCounters,
    parse_response,
)
from .providers import AnthropicGateway, Credential, ModelGateway
from .runtime import get_orchestrator, set_orchestrator
from .tools import BaseTool, ToolRegistry, build_default_registry

__all__ = [
    "Orchestrator",
    "LoopOptions",
    "RunState",
    "Session",
    "Unauthenticated",
    "ApiKeyAuth",
    "OAuthAuth",
    "CredentialProvider",
    "ConversationLog",
    "Turn",
    "TextBlock",
    "ToolUseBlock",
    "OtherBlock",
    "ToolResultEntry",
    "ModelResponse",
    "UsageCounters",
    "DisplayMessage",
    "ToolDef",
    "ToolResult",
    "parse_response",
    "ModelGateway",
    "AnthropicGateway",
    "Credential",
    "BaseTool",
    "ToolRegistry",
    "build_default_registry",
    "AgentRuntimeError",
    "TransportError",
    "ApiError",
    "MalformedResponse",
    "SessionExpired",
    "ToolExecutionError",
    "AuthError",
    "get_orchestrator",
    "set_orchestrator",
]
