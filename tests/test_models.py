"""Unit tests for response parsing and the conversation log."""
from __future__ import annotations

import unittest

from src.agent_runtime.errors import MalformedResponse
from src.agent_runtime.models import (
    ConversationLog,
    OtherBlock,
    TextBlock,
    ToolDef,
    ToolResult,
    ToolResultEntry,
    ToolUseBlock,
    Turn,
    UsageCounters,
    parse_response,
)


def _payload(**overrides):
    payload = {
        "content": [{"type": "text", "text": "hi"}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 12, "output_tokens": 3},
    }
    payload.update(overrides)
    return payload


class TestParseResponse(unittest.TestCase):
    def test_text_and_tool_use_blocks(self) -> None:
        response = parse_response(
            _payload(
                content=[
                    {"type": "text", "text": "Let me check."},
                    {"type": "tool_use", "id": "toolu_1", "name": "bash", "input": {"command": "ls"}},
                ],
                stop_reason="tool_use",
            )
        )
        self.assertEqual(
            response.content,
            (
                TextBlock(text="Let me check."),
                ToolUseBlock(id="toolu_1", name="bash", arguments={"command": "ls"}),
            ),
        )
        self.assertEqual(response.stop_reason, "tool_use")
        self.assertEqual(response.usage, UsageCounters(12, 3))
        self.assertEqual([b.id for b in response.tool_uses], ["toolu_1"])

    def test_unknown_block_types_are_kept_as_other(self) -> None:
        raw = {"type": "thinking", "thinking": "hmm", "signature": "abc"}
        response = parse_response(_payload(content=[raw]))
        self.assertEqual(response.content, (OtherBlock(raw_type="thinking", raw=raw),))
        self.assertEqual(response.tool_uses, [])

    def test_tool_use_missing_name_or_input_is_not_dispatchable(self) -> None:
        response = parse_response(
            _payload(
                content=[
                    {"type": "tool_use", "id": "a", "input": {}},
                    {"type": "tool_use", "id": "b", "name": "bash"},
                    {"type": "tool_use", "id": "c", "name": "bash", "input": {}},
                ]
            )
        )
        self.assertEqual([b.is_dispatchable for b in response.content], [False, False, True])

    def test_missing_required_fields_raise(self) -> None:
        bad_payloads = [
            "not a dict",
            _payload(content=None),
            _payload(stop_reason=None),
            _payload(usage=None),
            _payload(usage={"input_tokens": 1}),
            _payload(content=[{"text": "no type"}]),
            _payload(content=[{"type": "text"}]),
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(MalformedResponse):
                    parse_response(payload)

    def test_empty_content_is_valid(self) -> None:
        response = parse_response(_payload(content=[]))
        self.assertEqual(response.content, ())


class TestConversationLog(unittest.TestCase):
    def _with_tool_call(self) -> ConversationLog:
        log = ConversationLog()
        log.append(Turn(role="user", content="list files"))
        log.append(
            Turn(
                role="assistant",
                content=(ToolUseBlock(id="t1", name="bash", arguments={"command": "ls"}),),
            )
        )
        return log

    def test_first_turn_must_be_user(self) -> None:
        log = ConversationLog()
        with self.assertRaises(ValueError):
            log.append(Turn(role="assistant", content=(TextBlock(text="hi"),)))

    def test_roles_must_alternate(self) -> None:
        log = ConversationLog()
        log.append(Turn(role="user", content="a"))
        with self.assertRaises(ValueError):
            log.append(Turn(role="user", content="b"))
        self.assertEqual(len(log), 1)

    def test_tool_results_must_answer_previous_turn(self) -> None:
        log = self._with_tool_call()
        with self.assertRaises(ValueError):
            log.append(Turn(role="user", content=(ToolResultEntry(tool_use_id="t9", content="x"),)))
        log.append(Turn(role="user", content=(ToolResultEntry(tool_use_id="t1", content="a.txt"),)))
        self.assertTrue(log.last.is_tool_result)

    def test_user_text_merges_into_trailing_tool_result_turn(self) -> None:
        log = self._with_tool_call()
        log.append(Turn(role="user", content=(ToolResultEntry(tool_use_id="t1", content="a.txt"),)))
        log.append_user_text("thanks, now stop")

        self.assertEqual(len(log), 3)
        self.assertEqual(
            log.to_wire()[-1],
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": "t1", "content": "a.txt"},
                    {"type": "text", "text": "thanks, now stop"},
                ],
            },
        )

    def test_user_text_after_assistant_is_a_new_turn(self) -> None:
        log = ConversationLog()
        log.append_user_text("hi")
        log.append(Turn(role="assistant", content=(TextBlock(text="hello"),)))
        log.append_user_text("again")
        self.assertEqual([t.role for t in log], ["user", "assistant", "user"])
        self.assertEqual(log[2].content, "again")

    def test_restore_returns_to_checkpoint(self) -> None:
        log = ConversationLog()
        log.append_user_text("one")
        checkpoint = log.checkpoint()
        log.append(Turn(role="assistant", content=(TextBlock(text="two"),)))
        log.restore(checkpoint)
        self.assertEqual(log.turns, checkpoint)

    def test_wire_form_of_tool_use(self) -> None:
        log = self._with_tool_call()
        self.assertEqual(
            log.to_wire(),
            [
                {"role": "user", "content": "list files"},
                {
                    "role": "assistant",
                    "content": [{"type": "tool_use", "id": "t1", "name": "bash", "input": {"command": "ls"}}],
                },
            ],
        )

    def test_turns_snapshot_is_immutable(self) -> None:
        log = ConversationLog()
        log.append_user_text("one")
        snapshot = log.turns
        log.clear()
        self.assertEqual(len(snapshot), 1)
        self.assertEqual(len(log), 0)


class TestSmallTypes(unittest.TestCase):
    def test_usage_adds_fieldwise(self) -> None:
        self.assertEqual(UsageCounters(10, 5) + UsageCounters(3, 2), UsageCounters(13, 7))

    def test_tool_result_text(self) -> None:
        self.assertEqual(ToolResult(success=True, content="done").to_text(), "done")
        self.assertEqual(ToolResult(success=True).to_text(), "")
        self.assertEqual(ToolResult(success=False, error="nope").to_text(), "Error: nope")

    def test_tool_schema(self) -> None:
        schema = {"type": "object", "properties": {}, "required": []}
        self.assertEqual(
            ToolDef(name="device_info", description="info", parameters=schema).to_tool_schema(),
            {"name": "device_info", "description": "info", "input_schema": schema},
        )


if __name__ == "__main__":
    unittest.main()
