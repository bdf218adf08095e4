"""Data models for the wire protocol, the conversation log, and tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict

from .errors import MalformedResponse


# ---------------------------------------------------------------------------
# Content blocks (model response)
# ---------------------------------------------------------------------------


class TextBlock(BaseModel):
    """Plain text emitted by the model."""

    model_config = ConfigDict(frozen=True)

    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


class ToolUseBlock(BaseModel):
    """A model-requested invocation of a named tool."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str | None = None
    arguments: dict[str, Any] | None = None

    @property
    def is_dispatchable(self) -> bool:
        return bool(self.name) and self.arguments is not None

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": self.arguments if self.arguments is not None else {},
        }


class OtherBlock(BaseModel):
    """A block type this runtime does not interpret. Kept, never dispatched."""

    model_config = ConfigDict(frozen=True)

    raw_type: str
    raw: dict[str, Any]


ContentBlock = Union[TextBlock, ToolUseBlock, OtherBlock]


class ToolResultEntry(BaseModel):
    """Answer to one tool_use block, sent back to the model in a user turn."""

    model_config = ConfigDict(frozen=True)

    tool_use_id: str
    content: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}


TurnEntry = Union[TextBlock, ToolUseBlock, ToolResultEntry]


# ---------------------------------------------------------------------------
# Conversation log
# ---------------------------------------------------------------------------


class Turn(BaseModel):
    """One role-tagged entry in the conversation log."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: Union[str, tuple[TurnEntry, ...]]

    @property
    def tool_use_ids(self) -> list[str]:
        if isinstance(self.content, str):
            return []
        return [e.id for e in self.content if isinstance(e, ToolUseBlock)]

    @property
    def tool_result_ids(self) -> list[str]:
        if isinstance(self.content, str):
            return []
        return [e.tool_use_id for e in self.content if isinstance(e, ToolResultEntry)]

    @property
    def is_tool_result(self) -> bool:
        return self.role == "user" and bool(self.tool_result_ids)

    def to_wire(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [e.to_wire() for e in self.content]}


class ConversationLog:
    """
    Append-only sequence of turns, owned by the orchestrator.

    Roles alternate; a tool-result turn may only answer the tool_use ids of the
    assistant turn directly before it. The gateway only ever reads ``to_wire()``.
    """

    def __init__(self) -> None:
        self._turns: list[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def append(self, turn: Turn) -> None:
        last = self.last
        if last is None and turn.role != "user":
            raise ValueError("conversation must start with a user turn")
        if last is not None and last.role == turn.role:
            raise ValueError(f"two consecutive {turn.role} turns")
        if turn.tool_result_ids:
            expected = set(last.tool_use_ids) if last is not None else set()
            unknown = [i for i in turn.tool_result_ids if i not in expected]
            if unknown:
                raise ValueError(f"tool_result references unknown tool_use ids: {unknown}")
        self._turns.append(turn)

    def append_user_text(self, text: str) -> None:
        """Append free-text user input, merging into a trailing tool-result turn."""
        last = self.last
        if last is not None and last.is_tool_result and not isinstance(last.content, str):
            self._turns[-1] = Turn(role="user", content=last.content + (TextBlock(text=text),))
            return
        self.append(Turn(role="user", content=text))

    def checkpoint(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def restore(self, checkpoint: tuple[Turn, ...]) -> None:
        """Return to a state captured by ``checkpoint()`` (used to undo a failed run)."""
        self._turns = list(checkpoint)

    def clear(self) -> None:
        self._turns = []

    def to_wire(self) -> list[dict[str, Any]]:
        return [t.to_wire() for t in self._turns]


# ---------------------------------------------------------------------------
# Usage and responses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UsageCounters:
    """Token counts; cumulative when held by the orchestrator, a delta when parsed."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: UsageCounters) -> UsageCounters:
        return UsageCounters(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(frozen=True)
class ModelResponse:
    """Parsed reply from the model endpoint."""

    content: tuple[ContentBlock, ...]
    stop_reason: str
    usage: UsageCounters

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]


def _parse_block(raw: Any) -> ContentBlock:
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise MalformedResponse(f"content block without a type: {raw!r}")
    block_type = raw["type"]
    if block_type == "text":
        text = raw.get("text")
        if not isinstance(text, str):
            raise MalformedResponse("text block without text")
        return TextBlock(text=text)
    if block_type == "tool_use":
        name = raw.get("name")
        arguments = raw.get("input")
        return ToolUseBlock(
            id=str(raw.get("id") or ""),
            name=name if isinstance(name, str) and name else None,
            arguments=arguments if isinstance(arguments, dict) else None,
        )
    return OtherBlock(raw_type=block_type, raw=dict(raw))


def parse_response(payload: Any) -> ModelResponse:
    """Build a ModelResponse from a decoded JSON body; raise MalformedResponse if incomplete."""
    if not isinstance(payload, dict):
        raise MalformedResponse("response body is not a JSON object")
    content = payload.get("content")
    if not isinstance(content, list):
        raise MalformedResponse("response has no content array")
    stop_reason = payload.get("stop_reason")
    if not isinstance(stop_reason, str):
        raise MalformedResponse("response has no stop_reason")
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        raise MalformedResponse("response has no usage")
    input_tokens = usage.get("input_tokens")
    output_tokens = usage.get("output_tokens")
    if not isinstance(input_tokens, int) or not isinstance(output_tokens, int):
        raise MalformedResponse("usage is missing token counts")
    return ModelResponse(
        content=tuple(_parse_block(b) for b in content),
        stop_reason=stop_reason,
        usage=UsageCounters(input_tokens=input_tokens, output_tokens=output_tokens),
    )


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


class DisplayMessage(BaseModel):
    """A presentation-facing entry; derived from, but separate from, the log."""

    role: str  # "user" | "assistant" | "tool"
    text: str
    tool_name: str | None = None
    is_tool_result: bool = False
    is_error: bool = False


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    """Result of a single tool execution."""

    success: bool
    content: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_text(self) -> str:
        if self.success:
            return self.content or ""
        return f"Error: {self.error}"


@dataclass
class ToolDef:
    """Tool definition advertised to the model."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema

    def to_tool_schema(self) -> dict[str, Any]:
        """Messages API tool entry: name, description, input_schema."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }
