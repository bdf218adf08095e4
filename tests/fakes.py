"""Scripted collaborators shared by the runtime tests."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Union

from src.agent_runtime.auth import CredentialProvider
from src.agent_runtime.models import (
    ConversationLog,
    ModelResponse,
    TextBlock,
    ToolDef,
    ToolResult,
    ToolUseBlock,
    UsageCounters,
)
from src.agent_runtime.providers import Credential, ModelGateway
from src.agent_runtime.tools import BaseTool

Step = Union[ModelResponse, Exception, Callable[[], Any]]


def text_reply(text: str, usage: tuple[int, int] = (1, 1), stop: str = "end_turn") -> ModelResponse:
    return ModelResponse(
        content=(TextBlock(text=text),),
        stop_reason=stop,
        usage=UsageCounters(*usage),
    )


def tool_reply(
    *calls: tuple[str, str | None, dict[str, Any] | None],
    text: str | None = None,
    usage: tuple[int, int] = (1, 1),
    stop: str = "tool_use",
) -> ModelResponse:
    blocks: list[Any] = []
    if text is not None:
        blocks.append(TextBlock(text=text))
    for call_id, name, arguments in calls:
        blocks.append(ToolUseBlock(id=call_id, name=name, arguments=arguments))
    return ModelResponse(content=tuple(blocks), stop_reason=stop, usage=UsageCounters(*usage))


class ScriptedGateway(ModelGateway):
    """Replays a script of responses; an exception in the script is raised instead."""

    def __init__(self, script: list[Step], repeat_last: bool = False) -> None:
        super().__init__(Credential(scheme="api_key", token="test-key"))
        self.script = list(script)
        self.repeat_last = repeat_last
        self.calls = 0
        self.sent_logs: list[list[dict[str, Any]]] = []
        self.sent_tools: list[list[str]] = []
        self.closed = False
        self.gate: asyncio.Event | None = None

    def factory(self, credential: Credential) -> ScriptedGateway:
        self.credential = credential
        return self

    async def send_turn(
        self,
        log: ConversationLog,
        *,
        system_prompt: str,
        tools: list[ToolDef],
    ) -> ModelResponse:
        self.calls += 1
        self.sent_logs.append(log.to_wire())
        self.sent_tools.append([t.name for t in tools])
        if self.gate is not None:
            await self.gate.wait()
        if self.repeat_last and len(self.script) == 1:
            step = self.script[0]
        else:
            step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step()
        return step

    async def aclose(self) -> None:
        self.closed = True


class EchoTool(BaseTool):
    """Returns a fixed output and records the order it was called in."""

    def __init__(self, name: str, output: str = "ok", calls: list[str] | None = None) -> None:
        self._name = name
        self._output = output
        self.calls = calls if calls is not None else []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"Test tool {self._name}"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"command": {"type": "string"}}, "required": []}

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        self.calls.append(self._name)
        return ToolResult(success=True, content=self._output)


class ExplodingTool(EchoTool):
    async def execute(self, params: dict[str, Any]) -> ToolResult:
        raise RuntimeError("disk on fire")


class StaticCredentialProvider(CredentialProvider):
    """Hands out a token, or raises the configured error."""

    def __init__(self, token: str = "access-1", error: Exception | None = None) -> None:
        self.token = token
        self.error = error
        self.forgotten = False

    def get_valid_credential(self) -> str:
        if self.error is not None:
            raise self.error
        return self.token

    def forget(self) -> None:
        self.forgotten = True
