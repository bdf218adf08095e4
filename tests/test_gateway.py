"""Tests for the Messages API gateway against a mock transport."""
from __future__ import annotations

import json
import unittest

import httpx

from src.agent_runtime.config import ANTHROPIC_VERSION, DEFAULT_MAX_TOKENS, OAUTH_BETA_HEADER
from src.agent_runtime.errors import ApiError, MalformedResponse, TransportError
from src.agent_runtime.models import ConversationLog, TextBlock, ToolDef, UsageCounters
from src.agent_runtime.providers import AnthropicGateway, Credential
from src.agent_runtime.providers.anthropic_provider import default_timeout

_OK_BODY = {
    "id": "msg_1",
    "type": "message",
    "role": "assistant",
    "content": [{"type": "text", "text": "Hello!"}],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 7, "output_tokens": 2},
}

_TOOLS = [
    ToolDef(
        name="bash",
        description="Run a command",
        parameters={"type": "object", "properties": {"command": {"type": "string"}}, "required": ["command"]},
    )
]


def _log() -> ConversationLog:
    log = ConversationLog()
    log.append_user_text("hi")
    return log


class TestAnthropicGateway(unittest.IsolatedAsyncioTestCase):
    def _gateway(self, handler, scheme: str = "api_key") -> AnthropicGateway:
        gateway = AnthropicGateway(
            Credential(scheme=scheme, token="secret-token"),
            model="test-model",
            base_url="https://api.test/v1/messages",
            transport=httpx.MockTransport(handler),
        )
        self.addAsyncCleanup(gateway.aclose)
        return gateway

    async def test_request_carries_full_log_and_catalog(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_OK_BODY)

        gateway = self._gateway(handler)
        response = await gateway.send_turn(_log(), system_prompt="be brief", tools=_TOOLS)

        self.assertEqual(response.content, (TextBlock(text="Hello!"),))
        self.assertEqual(response.usage, UsageCounters(7, 2))
        request = seen[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), "https://api.test/v1/messages")
        body = json.loads(request.content)
        self.assertEqual(body["model"], "test-model")
        self.assertEqual(body["max_tokens"], DEFAULT_MAX_TOKENS)
        self.assertEqual(body["system"], "be brief")
        self.assertEqual(body["messages"], [{"role": "user", "content": "hi"}])
        self.assertEqual(body["tools"], [t.to_tool_schema() for t in _TOOLS])

    async def test_api_key_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_OK_BODY)

        await self._gateway(handler).send_turn(_log(), system_prompt="", tools=[])
        headers = seen[0].headers
        self.assertEqual(headers["x-api-key"], "secret-token")
        self.assertEqual(headers["anthropic-version"], ANTHROPIC_VERSION)
        self.assertNotIn("authorization", headers)
        self.assertNotIn("anthropic-beta", headers)

    async def test_bearer_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_OK_BODY)

        await self._gateway(handler, scheme="bearer").send_turn(_log(), system_prompt="", tools=[])
        headers = seen[0].headers
        self.assertEqual(headers["authorization"], "Bearer secret-token")
        self.assertEqual(headers["anthropic-beta"], OAUTH_BETA_HEADER)
        self.assertNotIn("x-api-key", headers)

    async def test_non_success_status_is_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text='{"error":{"type":"rate_limit_error"}}')

        with self.assertRaises(ApiError) as ctx:
            await self._gateway(handler).send_turn(_log(), system_prompt="", tools=[])
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("rate_limit_error", ctx.exception.body)
        self.assertTrue(ctx.exception.retryable)

    async def test_client_error_is_not_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="bad request")

        with self.assertRaises(ApiError) as ctx:
            await self._gateway(handler).send_turn(_log(), system_prompt="", tools=[])
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(str(ctx.exception), "API error 400: bad request")

    async def test_connection_failure_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(TransportError) as ctx:
            await self._gateway(handler).send_turn(_log(), system_prompt="", tools=[])
        self.assertTrue(ctx.exception.retryable)

    async def test_non_json_body_is_malformed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with self.assertRaises(MalformedResponse):
            await self._gateway(handler).send_turn(_log(), system_prompt="", tools=[])

    async def test_incomplete_body_is_malformed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"content": [], "stop_reason": "end_turn"})

        with self.assertRaises(MalformedResponse):
            await self._gateway(handler).send_turn(_log(), system_prompt="", tools=[])

    async def test_gateway_does_not_mutate_log(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_OK_BODY)

        log = _log()
        before = log.turns
        await self._gateway(handler).send_turn(log, system_prompt="", tools=[])
        self.assertEqual(log.turns, before)


class TestTimeouts(unittest.TestCase):
    def test_short_connect_long_read(self) -> None:
        timeout = default_timeout()
        self.assertEqual(timeout.connect, 30.0)
        self.assertEqual(timeout.read, 300.0)
        self.assertEqual(timeout.write, 30.0)


if __name__ == "__main__":
    unittest.main()
