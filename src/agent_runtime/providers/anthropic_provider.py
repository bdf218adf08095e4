"""Anthropic Messages API gateway."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx
from dotenv import load_dotenv

from ..config import (
    ANTHROPIC_API_URL,
    ANTHROPIC_VERSION,
    CONNECT_TIMEOUT,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    OAUTH_BETA_HEADER,
    READ_TIMEOUT,
    WRITE_TIMEOUT,
)
from ..errors import ApiError, MalformedResponse, TransportError
from ..models import ConversationLog, ModelResponse, ToolDef, parse_response
from .base import Credential, ModelGateway

load_dotenv()

logger = logging.getLogger(__name__)


def default_timeout() -> httpx.Timeout:
    """Short connect, long read: responses can take minutes to generate."""
    return httpx.Timeout(
        connect=CONNECT_TIMEOUT,
        read=READ_TIMEOUT,
        write=WRITE_TIMEOUT,
        pool=CONNECT_TIMEOUT,
    )


class AnthropicGateway(ModelGateway):
    """Gateway speaking the Messages API over httpx."""

    def __init__(
        self,
        credential: Credential,
        *,
        model: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        super().__init__(credential)
        self.model = model or os.getenv("AGENT_MODEL") or DEFAULT_MODEL
        self.max_tokens = max_tokens
        self.url = base_url or os.getenv("ANTHROPIC_BASE_URL") or ANTHROPIC_API_URL
        self.timeout = timeout or default_timeout()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        if self.credential.scheme == "bearer":
            headers["authorization"] = f"Bearer {self.credential.token}"
            headers["anthropic-beta"] = OAUTH_BETA_HEADER
        else:
            headers["x-api-key"] = self.credential.token
        return headers

    def build_request_body(
        self,
        log: ConversationLog,
        system_prompt: str,
        tools: list[ToolDef],
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": log.to_wire(),
            "tools": [t.to_tool_schema() for t in tools],
        }

    async def send_turn(
        self,
        log: ConversationLog,
        *,
        system_prompt: str,
        tools: list[ToolDef],
    ) -> ModelResponse:
        body = self.build_request_body(log, system_prompt, tools)
        client = self._get_client()
        try:
            resp = await client.post(self.url, headers=self._headers(), json=body)
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise ApiError(resp.status_code, resp.text)

        try:
            payload = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponse(f"response body is not JSON: {e}") from e

        response = parse_response(payload)
        logger.debug(
            "Model replied stop_reason=%s blocks=%d usage=%s/%s",
            response.stop_reason,
            len(response.content),
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        return response

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
