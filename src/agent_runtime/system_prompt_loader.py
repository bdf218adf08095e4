"""Utilities for loading the default system prompt from disk."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import DEFAULT_SYSTEM_PROMPT_PATH, WORKSPACE_DIR

_cached_prompt: Optional[str] = None


def _read_file(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return ""
    return text.strip()


def render_system_prompt(template: str, workspace: Path) -> str:
    """Fill the ``{workspace}`` placeholder; other braces are left alone."""
    return template.replace("{workspace}", str(workspace))


def get_default_system_prompt(workspace: Path = WORKSPACE_DIR) -> str:
    """Return the default system prompt text, cached after first read.

    If the prompt file does not exist or cannot be read, returns an empty string.
    """
    global _cached_prompt
    if _cached_prompt is None:
        _cached_prompt = _read_file(DEFAULT_SYSTEM_PROMPT_PATH)
    return render_system_prompt(_cached_prompt, workspace) if _cached_prompt else ""
