"""Main agent/tool loop orchestrator."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .auth import Session
from .config import (
    DEFAULT_MAX_TOOL_ITERATIONS,
    STOP_REASON_TOOL_USE,
    TOOL_RESULT_MAX_CHARS,
    TOOL_RESULT_TRUNCATION_MARKER,
    WORKSPACE_DIR,
)
from .errors import AgentRuntimeError, SessionExpired
from .models import (
    ConversationLog,
    DisplayMessage,
    TextBlock,
    ToolResultEntry,
    ToolUseBlock,
    Turn,
    TurnEntry,
    UsageCounters,
)
from .system_prompt_loader import get_default_system_prompt
from .tools import ToolRegistry

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


@dataclass
class LoopOptions:
    """Options for the agent loop."""

    max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS
    tool_result_max_chars: int = TOOL_RESULT_MAX_CHARS
    system_prompt: str | None = None
    workspace: Path = WORKSPACE_DIR


StateListener = Callable[[RunState], None]


def truncate_tool_result(text: str, limit: int = TOOL_RESULT_MAX_CHARS) -> str:
    if len(text) > limit:
        return text[:limit] + TOOL_RESULT_TRUNCATION_MARKER
    return text


_PREVIEW_KEYS = {
    "bash": "command",
    "read_file": "path",
    "write_file": "path",
    "list_directory": "path",
}


def tool_input_preview(block: ToolUseBlock) -> str:
    """Short, tool-specific summary of a tool_use block for display."""
    name = block.name or ""
    key = _PREVIEW_KEYS.get(name)
    if block.arguments is None:
        return ""
    if key is None:
        return name
    value: Any = block.arguments.get(key, "")
    return value if isinstance(value, str) else str(value)


class Orchestrator:
    """
    Drives one conversation: user text -> model -> tools -> model ... until the
    model stops asking for tools, the iteration cap is hit, or a call fails.

    Only one run is active at a time. The log, display messages and usage are
    mutated solely by the run task; everything exposed here is a snapshot.
    """

    def __init__(
        self,
        session: Session,
        tools: ToolRegistry,
        options: LoopOptions | None = None,
    ) -> None:
        self.session = session
        self.tools = tools
        self.options = options or LoopOptions()
        if self.options.system_prompt is not None:
            self.system_prompt = self.options.system_prompt
        else:
            self.system_prompt = get_default_system_prompt(self.options.workspace)
        self._catalog = tools.catalog()
        self._log = ConversationLog()
        self._messages: list[DisplayMessage] = []
        self._usage = UsageCounters()
        self._state = RunState.IDLE
        self._last_error: Exception | None = None
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[StateListener] = []

    # -- observation ---------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is RunState.RUNNING

    @property
    def log(self) -> tuple[Turn, ...]:
        return self._log.turns

    def wire_log(self) -> list[dict[str, Any]]:
        return self._log.to_wire()

    @property
    def messages(self) -> tuple[DisplayMessage, ...]:
        return tuple(self._messages)

    @property
    def usage(self) -> UsageCounters:
        return self._usage

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def requires_login(self) -> bool:
        return not self.session.is_authenticated

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        self._listeners.remove(listener)

    def _set_state(self, state: RunState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed")

    # -- commands ------------------------------------------------------------

    def submit(self, text: str) -> bool:
        """
        Start a run for ``text`` on the current event loop.

        Returns False (and records nothing) for blank text, while a run is
        active, or when the session has no credential.
        """
        if not text or not text.strip():
            return False
        if self.is_running:
            logger.info("Rejecting message: a run is already active")
            return False
        if not self.session.is_authenticated:
            logger.info("Rejecting message: not authenticated")
            return False
        loop = asyncio.get_running_loop()

        checkpoint = self._log.checkpoint()
        self._log.append_user_text(text)
        self._messages.append(DisplayMessage(role="user", text=text))
        self._last_error = None
        self._set_state(RunState.RUNNING)
        self._task = loop.create_task(self._run(checkpoint))
        return True

    async def join(self) -> None:
        """Wait for the active run (if any) to finish."""
        if self._task is not None:
            await self._task

    def clear_history(self) -> bool:
        """Full reset of log, display messages and usage. Refused while running."""
        if self.is_running:
            return False
        self._log.clear()
        self._messages.clear()
        self._usage = UsageCounters()
        self._last_error = None
        self._set_state(RunState.IDLE)
        return True

    # -- run -----------------------------------------------------------------

    async def _run(self, checkpoint: tuple[Turn, ...]) -> None:
        try:
            calls = await self._turn_loop()
        except SessionExpired as e:
            await self.session.expire()
            self._fail(checkpoint, e)
        except AgentRuntimeError as e:
            self._fail(checkpoint, e)
        except Exception as e:
            logger.exception("Agent run failed unexpectedly")
            self._fail(checkpoint, e)
        else:
            logger.info(
                "Run finished after %d model call(s); usage %d in / %d out",
                calls,
                self._usage.input_tokens,
                self._usage.output_tokens,
            )
            self._set_state(RunState.IDLE)

    def _fail(self, checkpoint: tuple[Turn, ...], error: Exception) -> None:
        logger.warning("Run failed: %s: %s", type(error).__name__, error)
        self._log.restore(checkpoint)
        self._last_error = error
        self._messages.append(DisplayMessage(role="assistant", text=f"Error: {error}", is_error=True))
        self._set_state(RunState.FAILED)

    async def _turn_loop(self) -> int:
        """Run until the model stops asking for tools; return the number of model calls."""
        max_iterations = self.options.max_tool_iterations
        for iteration in range(1, max_iterations + 1):
            gateway = await self.session.acquire_gateway()
            response = await gateway.send_turn(
                self._log,
                system_prompt=self.system_prompt,
                tools=self._catalog,
            )
            self._usage = self._usage + response.usage

            entries: list[TurnEntry] = []
            tool_uses: list[ToolUseBlock] = []
            for block in response.content:
                if isinstance(block, TextBlock):
                    if block.text.strip():
                        self._messages.append(DisplayMessage(role="assistant", text=block.text))
                        entries.append(block)
                elif isinstance(block, ToolUseBlock):
                    tool_uses.append(block)
                    self._messages.append(
                        DisplayMessage(
                            role="assistant",
                            text=f"{block.name}: {tool_input_preview(block)}",
                            tool_name=block.name,
                        )
                    )
                    entries.append(block)
            self._log.append(Turn(role="assistant", content=tuple(entries)))

            dispatchable = [b for b in tool_uses if b.is_dispatchable]
            if not dispatchable or response.stop_reason != STOP_REASON_TOOL_USE:
                return iteration

            results: list[ToolResultEntry] = []
            for block in dispatchable:
                output = await self.tools.dispatch(block.name or "", block.arguments or {})
                output = truncate_tool_result(output, self.options.tool_result_max_chars)
                self._messages.append(
                    DisplayMessage(role="tool", text=output, tool_name=block.name, is_tool_result=True)
                )
                results.append(ToolResultEntry(tool_use_id=block.id, content=output))
            self._log.append(Turn(role="user", content=tuple(results)))

        logger.warning("Stopping after %d iterations (tool-use cap)", max_iterations)
        return max_iterations
