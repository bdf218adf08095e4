"""Credential load/save to db/user/credentials.json."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import CREDENTIALS_PATH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthTokens:
    """Tokens returned by the OAuth token endpoint; expires_at is epoch milliseconds."""

    access_token: str
    refresh_token: str
    expires_at: int


class CredentialStore:
    """
    JSON-file persistence for the API key, OAuth tokens and the pending PKCE
    verifier/state. Consulted once at session start to pick the auth mode.
    """

    def __init__(self, path: Path = CREDENTIALS_PATH) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable credential file %s: %s", self.path, e)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.chmod(self.path, 0o600)

    def _update(self, **changes: Any) -> None:
        with self._lock:
            data = self._read()
            for key, value in changes.items():
                if value is None:
                    data.pop(key, None)
                else:
                    data[key] = value
            self._write(data)

    # API key

    def get_api_key(self) -> str | None:
        return self._read().get("api_key") or None

    def save_api_key(self, key: str) -> None:
        self._update(api_key=key)

    def clear_api_key(self) -> None:
        self._update(api_key=None)

    # OAuth

    def get_oauth_tokens(self) -> OAuthTokens | None:
        raw = self._read().get("oauth")
        if not isinstance(raw, dict) or not raw.get("access_token"):
            return None
        return OAuthTokens(
            access_token=raw["access_token"],
            refresh_token=raw.get("refresh_token") or "",
            expires_at=int(raw.get("expires_at") or 0),
        )

    def save_oauth_tokens(self, tokens: OAuthTokens) -> None:
        self._update(
            oauth={
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "expires_at": tokens.expires_at,
            }
        )

    def clear_oauth(self) -> None:
        self._update(oauth=None, code_verifier=None, oauth_state=None)

    def get_pending_pkce(self) -> tuple[str | None, str | None]:
        data = self._read()
        return data.get("code_verifier"), data.get("oauth_state")

    def save_pending_pkce(self, verifier: str, state: str) -> None:
        self._update(code_verifier=verifier, oauth_state=state)

    def clear(self) -> None:
        """Forget every stored credential (logout)."""
        with self._lock:
            if self.path.exists():
                self.path.unlink()
