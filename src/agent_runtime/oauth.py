"""OAuth (PKCE) login and token refresh for the model endpoint."""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import time
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from .auth import CredentialProvider
from .config import (
    OAUTH_AUTHORIZE_URL,
    OAUTH_CLIENT_ID,
    OAUTH_DEFAULT_EXPIRES_IN,
    OAUTH_REDIRECT_URI,
    OAUTH_REFRESH_SKEW_SECONDS,
    OAUTH_SCOPES,
    OAUTH_TIMEOUT,
    OAUTH_TOKEN_URL,
)
from .credential_store import CredentialStore, OAuthTokens
from .errors import ApiError, AuthError, MalformedResponse, SessionExpired, TransportError

logger = logging.getLogger(__name__)

_VERIFIER_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"


def _random_string(length: int) -> str:
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))


def code_challenge(verifier: str) -> str:
    """S256 PKCE challenge for a verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class OAuthManager(CredentialProvider):
    """Credential provider backed by stored OAuth tokens."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._transport = transport
        self._clock = clock

    @property
    def is_logged_in(self) -> bool:
        return self._store.get_oauth_tokens() is not None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def build_auth_url(self) -> str:
        """Start a login: persist a fresh verifier/state and return the authorize URL."""
        verifier = _random_string(64)
        state = _random_string(32)
        self._store.save_pending_pkce(verifier, state)
        query = {
            "code": "true",
            "client_id": OAUTH_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": OAUTH_REDIRECT_URI,
            "scope": OAUTH_SCOPES,
            "code_challenge": code_challenge(verifier),
            "code_challenge_method": "S256",
            "state": state,
        }
        return f"{OAUTH_AUTHORIZE_URL}?{urlencode(query)}"

    def _post_token(self, form: dict[str, str]) -> httpx.Response:
        try:
            with httpx.Client(timeout=OAUTH_TIMEOUT, transport=self._transport) as client:
                return client.post(OAUTH_TOKEN_URL, data=form)
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    def _tokens_from(self, resp: httpx.Response, fallback_refresh: str | None = None) -> OAuthTokens:
        try:
            payload: Any = resp.json()
        except ValueError as e:
            raise MalformedResponse(f"token endpoint returned non-JSON: {e}") from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise MalformedResponse("token endpoint response has no access_token")
        refresh = payload.get("refresh_token") or fallback_refresh
        if not refresh:
            raise MalformedResponse("token endpoint response has no refresh_token")
        expires_in = payload.get("expires_in") or OAUTH_DEFAULT_EXPIRES_IN
        return OAuthTokens(
            access_token=payload["access_token"],
            refresh_token=refresh,
            expires_at=self._now_ms() + int(expires_in) * 1000,
        )

    def exchange_code(self, authorization_code: str) -> OAuthTokens:
        """Finish a login with the code pasted back from the callback page."""
        verifier, expected_state = self._store.get_pending_pkce()
        if not verifier:
            raise AuthError("No code verifier found - restart OAuth flow")
        code, _, state = authorization_code.strip().partition("#")
        if state and expected_state and state != expected_state:
            raise AuthError("OAuth state mismatch - restart OAuth flow")

        resp = self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": OAUTH_REDIRECT_URI,
                "client_id": OAUTH_CLIENT_ID,
                "code_verifier": verifier,
            }
        )
        if not resp.is_success:
            raise ApiError(resp.status_code, resp.text)
        tokens = self._tokens_from(resp)
        self._store.save_oauth_tokens(tokens)
        logger.info("OAuth login complete")
        return tokens

    def refresh_tokens(self) -> OAuthTokens:
        current = self._store.get_oauth_tokens()
        if current is None or not current.refresh_token:
            raise SessionExpired("No refresh token - please log in again")

        resp = self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": current.refresh_token,
                "client_id": OAUTH_CLIENT_ID,
            }
        )
        if not resp.is_success:
            if resp.status_code in (400, 401):
                self.forget()
                raise SessionExpired("Session expired - please log in again")
            raise ApiError(resp.status_code, resp.text)
        tokens = self._tokens_from(resp, fallback_refresh=current.refresh_token)
        self._store.save_oauth_tokens(tokens)
        logger.info("Refreshed OAuth access token")
        return tokens

    def is_token_expired(self) -> bool:
        tokens = self._store.get_oauth_tokens()
        if tokens is None:
            return True
        return self._now_ms() > tokens.expires_at - OAUTH_REFRESH_SKEW_SECONDS * 1000

    def get_valid_credential(self) -> str:
        tokens = self._store.get_oauth_tokens()
        if tokens is None:
            raise SessionExpired("Not logged in")
        if self.is_token_expired():
            return self.refresh_tokens().access_token
        return tokens.access_token

    def forget(self) -> None:
        self._store.clear_oauth()
