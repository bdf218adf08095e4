"""Tool protocol, dispatch registry, and the built-in device tools."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import platform
import shutil
import signal
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx

from .config import WORKSPACE_DIR
from .errors import ToolExecutionError
from .models import ToolDef, ToolResult

logger = logging.getLogger(__name__)


class BaseTool(ABC):
    """Base class for runtime tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for parameters."""
        ...

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> ToolResult:
        ...

    def to_def(self) -> ToolDef:
        return ToolDef(name=self.name, description=self.description, parameters=self.parameters)

    def to_tool_schema(self) -> dict[str, Any]:
        return self.to_def().to_tool_schema()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class _UnsupportedTool:
    """Sentinel resolved for names with no registered tool."""

    def __repr__(self) -> str:
        return "UNSUPPORTED_TOOL"


UNSUPPORTED_TOOL = _UnsupportedTool()


class ToolRegistry:
    """
    Name-keyed table of tools.

    ``dispatch`` never raises: unknown names and failures inside a tool come
    back as text so every tool_use still gets a tool_result.
    """

    def __init__(self, tools: list[BaseTool] | None = None) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def names(self) -> list[str]:
        return list(self._tools)

    def resolve(self, name: str) -> BaseTool | _UnsupportedTool:
        return self._tools.get(name, UNSUPPORTED_TOOL)

    def catalog(self) -> list[ToolDef]:
        """Static catalog advertised to the model, one entry per registered tool."""
        return [t.to_def() for t in self._tools.values()]

    async def dispatch(self, name: str, arguments: dict[str, Any]) -> str:
        tool = self.resolve(name)
        if isinstance(tool, _UnsupportedTool):
            logger.warning("Model requested unknown tool %r", name)
            return f"Error: Unknown tool '{name}'"
        try:
            result = await tool.execute(arguments)
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return f"Error executing {name}: {type(e).__name__}: {e}"
        return result.to_text()


def _require_str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str):
        raise ToolExecutionError(f"missing required string parameter '{key}'")
    return value


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------

BASH_TIMEOUT_SECONDS = 120
BASH_OUTPUT_LIMIT = 200_000
BASH_READ_CHUNK = 64 * 1024


class BashTool(BaseTool):
    """Runs a shell command in the workspace directory."""

    def __init__(self, workdir: Path = WORKSPACE_DIR, timeout: float = BASH_TIMEOUT_SECONDS):
        self._workdir = Path(workdir)
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return (
            "Execute a shell command on the device. Use this for system commands, git, "
            "file operations, etc. Commands run in the workspace directory."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The shell command to execute"},
            },
            "required": ["command"],
        }

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        """Kill the shell and everything it started."""
        try:
            if os.name == "posix":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass  # already exited

    def _run(self, command: str) -> str:
        self._workdir.mkdir(parents=True, exist_ok=True)
        env = dict(os.environ)
        env["WORKSPACE"] = str(self._workdir)
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=self._workdir,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=os.name == "posix",
        )
        timed_out = threading.Event()

        def _on_timeout() -> None:
            timed_out.set()
            self._kill(proc)

        timer = threading.Timer(self._timeout, _on_timeout)
        timer.daemon = True
        timer.start()

        chunks: list[bytes] = []
        size = 0
        truncated = False
        stdout = proc.stdout
        try:
            while stdout is not None:
                chunk = stdout.read1(BASH_READ_CHUNK)
                if not chunk:
                    break
                chunks.append(chunk)
                size += len(chunk)
                if size > BASH_OUTPUT_LIMIT:
                    # stop reading; the rest of the output is never buffered
                    truncated = True
                    self._kill(proc)
                    break
        finally:
            timer.cancel()
            if stdout is not None:
                stdout.close()
            proc.wait()

        output = b"".join(chunks).decode("utf-8", errors="replace")
        if truncated:
            return output[:BASH_OUTPUT_LIMIT] + "\n... [output truncated at 200KB]"
        if timed_out.is_set():
            return f"{output.rstrip()}\n[Timed out after {self._timeout:g}s]".lstrip()
        output = output.rstrip()
        if proc.returncode == 0:
            return output
        return f"{output}\n[Exit code: {proc.returncode}]"

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        command = _require_str(params, "command")
        content = await asyncio.to_thread(self._run, command)
        return ToolResult(success=True, content=content)


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------

READ_FILE_LIMIT = 1_000_000
READ_FILE_TRUNCATE_TO = 500_000


def _read_file(path: Path) -> ToolResult:
    if not path.exists():
        return ToolResult(success=False, error=f"File not found: {path}")
    if path.is_dir():
        return ToolResult(success=False, error=f"Path is a directory, not a file: {path}")
    if not os.access(path, os.R_OK):
        return ToolResult(success=False, error=f"Permission denied reading: {path}")
    size = path.stat().st_size
    text = path.read_text(encoding="utf-8", errors="replace")
    if size > READ_FILE_LIMIT:
        return ToolResult(
            success=True,
            content=f"{text[:READ_FILE_TRUNCATE_TO]}\n\n... [truncated - file is {size // 1024}KB]",
        )
    return ToolResult(success=True, content=text)


class ReadFileTool(BaseTool):
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a file. Returns the full text content."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Absolute path to the file to read"},
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        path = Path(_require_str(params, "path"))
        return await asyncio.to_thread(_read_file, path)


class WriteFileTool(BaseTool):
    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Write content to a file. Creates the file and any parent directories if they "
            "don't exist. Overwrites existing files."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Absolute path to write to"},
                "content": {"type": "string", "description": "The content to write"},
            },
            "required": ["path", "content"],
        }

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        path = Path(_require_str(params, "path"))
        content = _require_str(params, "content")

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return ToolResult(success=True, content=f"Written {len(content)} chars to {path}")


def _list_directory(path: Path) -> ToolResult:
    if not path.exists():
        return ToolResult(success=False, error=f"Directory not found: {path}")
    if not path.is_dir():
        return ToolResult(success=False, error=f"Not a directory: {path}")
    try:
        entries = sorted(path.iterdir(), key=lambda p: (not p.is_dir(), p.name))
    except PermissionError:
        return ToolResult(success=False, error="Cannot list directory (permission denied?)")
    if not entries:
        return ToolResult(success=True, content="(empty directory)")
    lines = []
    for entry in entries:
        if entry.is_dir():
            lines.append(f"d {entry.name}")
            continue
        size = entry.stat().st_size
        kb = size // 1024
        lines.append(f"- {entry.name} ({kb}KB)" if kb > 0 else f"- {entry.name} ({size}B)")
    return ToolResult(success=True, content="\n".join(lines))


class ListDirectoryTool(BaseTool):
    @property
    def name(self) -> str:
        return "list_directory"

    @property
    def description(self) -> str:
        return (
            "List files and directories at a path. Shows file type (d for directory, - for file) "
            "and size."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path to list"},
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        path = Path(_require_str(params, "path"))
        return await asyncio.to_thread(_list_directory, path)


# ---------------------------------------------------------------------------
# Device
# ---------------------------------------------------------------------------


class DeviceInfoTool(BaseTool):
    """Reports platform, storage and path information."""

    def __init__(self, workdir: Path = WORKSPACE_DIR):
        self._workdir = Path(workdir)

    @property
    def name(self) -> str:
        return "device_info"

    @property
    def description(self) -> str:
        return (
            "Get device information including OS, architecture, Python version, storage, "
            "and workspace paths."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}, "required": []}

    def _collect(self) -> str:
        lines = [
            "== Device ==",
            f"Host: {platform.node()}",
            f"System: {platform.system()} {platform.release()}",
            f"Architecture: {platform.machine()}",
            f"Python: {sys.version.split()[0]}",
            "",
            "== Storage ==",
        ]
        anchor = self._workdir if self._workdir.exists() else Path.home()
        usage = shutil.disk_usage(anchor)
        lines.append(f"Disk: {usage.free // (1024 * 1024)}MB free / {usage.total // (1024 * 1024)}MB total")
        lines += [
            "",
            "== Paths ==",
            f"Home: {Path.home()}",
            f"Workspace: {self._workdir}",
            f"Current directory: {Path.cwd()}",
        ]
        return "\n".join(lines)

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        return ToolResult(success=True, content=await asyncio.to_thread(self._collect))


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

HTTP_BODY_LIMIT = 100_000
_BODY_METHODS = ("POST", "PUT", "PATCH", "DELETE")


class HttpRequestTool(BaseTool):
    """Makes an HTTP request and returns status line plus body."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    @property
    def name(self) -> str:
        return "http_request"

    @property
    def description(self) -> str:
        return "Make an HTTP request. Returns the status code and response body."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "The URL to request"},
                "method": {
                    "type": "string",
                    "description": "HTTP method: GET, POST, PUT, DELETE, PATCH. Default: GET",
                },
                "headers": {
                    "type": "string",
                    "description": 'JSON object of headers as a string, e.g. {"Authorization": "Bearer xxx"}',
                },
                "body": {"type": "string", "description": "Request body for POST/PUT requests"},
            },
            "required": ["url"],
        }

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        url = _require_str(params, "url")
        method = str(params.get("method") or "GET").upper()
        if method not in _BODY_METHODS:
            method = "GET"
        body = params.get("body") or ""
        headers: dict[str, str] = {}
        raw_headers = params.get("headers")
        if isinstance(raw_headers, dict):
            headers = {str(k): str(v) for k, v in raw_headers.items()}
        elif isinstance(raw_headers, str) and raw_headers.strip():
            try:
                parsed = json.loads(raw_headers)
            except json.JSONDecodeError:
                parsed = {}
            if isinstance(parsed, dict):
                headers = {str(k): str(v) for k, v in parsed.items()}
        if body and method in _BODY_METHODS:
            headers.setdefault("content-type", "application/json")

        timeout = httpx.Timeout(60.0, connect=30.0)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            resp = await client.request(
                method,
                url,
                headers=headers,
                content=body if body and method in _BODY_METHODS else None,
            )
        text = resp.text
        if len(text) > HTTP_BODY_LIMIT:
            text = text[:HTTP_BODY_LIMIT] + "\n... [truncated]"
        return ToolResult(success=True, content=f"HTTP {resp.status_code} {resp.reason_phrase}\n\n{text}")


def get_default_tools(workdir: Path = WORKSPACE_DIR) -> list[BaseTool]:
    """Return the built-in tool list, bound to the given workspace."""
    return [
        BashTool(workdir),
        ReadFileTool(),
        WriteFileTool(),
        ListDirectoryTool(),
        DeviceInfoTool(workdir),
        HttpRequestTool(),
    ]


def build_default_registry(workdir: Path = WORKSPACE_DIR) -> ToolRegistry:
    return ToolRegistry(get_default_tools(workdir))
