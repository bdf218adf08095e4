"""Runtime configuration: paths and defaults."""

from __future__ import annotations

from pathlib import Path

from main_config import (
    CREDENTIALS_PATH as _CREDENTIALS_PATH,
    DB_DIR as _DB_DIR,
    DEFAULT_SYSTEM_PROMPT_PATH as _DEFAULT_SYSTEM_PROMPT_PATH,
    USER_DIR as _USER_DIR,
    WORKSPACE_DIR as _WORKSPACE_DIR,
)

# Path objects for use in this package (main_config uses os.path strings)
DB_DIR = Path(_DB_DIR)
USER_DIR = Path(_USER_DIR)
CREDENTIALS_PATH = Path(_CREDENTIALS_PATH)
WORKSPACE_DIR = Path(_WORKSPACE_DIR)
DEFAULT_SYSTEM_PROMPT_PATH = Path(_DEFAULT_SYSTEM_PROMPT_PATH)

# Model endpoint
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 16384
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OAUTH_BETA_HEADER = "oauth-2025-04-20"

# Seconds
CONNECT_TIMEOUT = 30.0
READ_TIMEOUT = 300.0
WRITE_TIMEOUT = 30.0

# Turn loop
STOP_REASON_TOOL_USE = "tool_use"
DEFAULT_MAX_TOOL_ITERATIONS = 30
TOOL_RESULT_MAX_CHARS = 80_000
TOOL_RESULT_TRUNCATION_MARKER = "\n... [truncated at 80KB]"

# OAuth (PKCE, public client)
OAUTH_CLIENT_ID = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
OAUTH_AUTHORIZE_URL = "https://claude.ai/oauth/authorize"
OAUTH_TOKEN_URL = "https://console.anthropic.com/v1/oauth/token"
OAUTH_REDIRECT_URI = "https://console.anthropic.com/oauth/code/callback"
OAUTH_SCOPES = "user:inference user:profile"
OAUTH_TIMEOUT = 15.0
OAUTH_DEFAULT_EXPIRES_IN = 28800
OAUTH_REFRESH_SKEW_SECONDS = 300


def ensure_dirs() -> None:
    """Create db, user, and workspace directories if they do not exist."""
    DB_DIR.mkdir(parents=True, exist_ok=True)
    USER_DIR.mkdir(parents=True, exist_ok=True)
    WORKSPACE_DIR.mkdir(parents=True, exist_ok=True)
