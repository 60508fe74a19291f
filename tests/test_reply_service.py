from __future__ import annotations

import json
import time
import unittest
from types import SimpleNamespace
from unittest import mock

from controller.reply_service import build_reply_messages
from controller.reply_service import decide_reply
from controller.reply_service import reply_to_message
from history.settings import HistorySettings
from tools.registry import ToolRegistry
from tools.registry import ToolSpec


def _tool_call(call_id: str, name: str, arguments: dict | str) -> SimpleNamespace:
    args = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=args))


def _response(content: str | None = None, tool_calls: list | None = None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content, tool_calls=tool_calls))])


class _DummyClient:
    def __init__(self, responses: list, *, delay: float = 0.0):
        self._responses = list(responses)
        self.delay = delay
        self.requests: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.delay:
            time.sleep(self.delay)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


RECENT = [
    {"role": "user", "author_name": "alice", "content": "anyone remember the budget?"},
    {"role": "assistant", "author_name": "Chatter", "content": "let me check"},
    {"role": "user", "author_name": "bob", "content": "   "},
]


class BuildReplyMessagesTests(unittest.TestCase):
    def test_prompt_layout(self):
        messages = build_reply_messages(system_prompt="be nice", recent_messages=RECENT)
        self.assertEqual(messages[0], {"role": "system", "content": "be nice"})
        self.assertEqual(messages[1], {"role": "user", "content": "alice: anyone remember the budget?"})
        self.assertEqual(messages[2], {"role": "assistant", "content": "let me check"})
        self.assertEqual(len(messages), 3)


class DecideReplyTests(unittest.IsolatedAsyncioTestCase):
    async def _decide(self, client, registry=None, **kwargs):
        with mock.patch("builtins.print"):
            return await decide_reply(
                client=client,
                model="test-model",
                system_prompt="sys",
                recent_messages=RECENT,
                registry=registry or ToolRegistry(),
                **kwargs,
            )

    async def test_reply_tool(self):
        client = _DummyClient([_response(tool_calls=[_tool_call("c1", "reply", {"content": "It was 10k."})])])
        decision = await self._decide(client)
        self.assertTrue(decision.should_reply)
        self.assertEqual(decision.content, "It was 10k.")
        names = [t["function"]["name"] for t in client.requests[0]["tools"]]
        self.assertIn("reply", names)
        self.assertIn("do_not_reply", names)

    async def test_do_not_reply_tool(self):
        client = _DummyClient([_response(tool_calls=[_tool_call("c1", "do_not_reply", {})])])
        decision = await self._decide(client)
        self.assertFalse(decision.should_reply)
        self.assertIsNone(decision.content)
        self.assertEqual(decision.reason, "do_not_reply")

    async def test_plain_text_counts_as_reply(self):
        decision = await self._decide(_DummyClient([_response(content="sure thing")]))
        self.assertTrue(decision.should_reply)
        self.assertEqual(decision.content, "sure thing")

    async def test_empty_text_is_no_reply(self):
        decision = await self._decide(_DummyClient([_response(content="  ")]))
        self.assertFalse(decision.should_reply)

    async def test_tool_round_trip_before_reply(self):
        seen: list[dict] = []

        async def _lookup(arguments: dict) -> str:
            seen.append(arguments)
            return "[1] budget was 10k"

        registry = ToolRegistry()
        registry.register(ToolSpec("search_history", "search", {"type": "object"}, _lookup))
        client = _DummyClient(
            [
                _response(tool_calls=[_tool_call("c1", "search_history", {"query": "budget"})]),
                _response(tool_calls=[_tool_call("c2", "reply", {"content": "10k!"})]),
            ]
        )
        decision = await self._decide(client, registry)
        self.assertEqual(decision.content, "10k!")
        self.assertEqual(seen, [{"query": "budget"}])

        second_messages = client.requests[1]["messages"]
        self.assertEqual(second_messages[-2]["role"], "assistant")
        self.assertEqual(second_messages[-2]["tool_calls"][0]["id"], "c1")
        self.assertEqual(second_messages[-1], {"role": "tool", "tool_call_id": "c1", "content": "[1] budget was 10k"})

    async def test_round_limit_means_no_reply(self):
        client = _DummyClient(
            [_response(tool_calls=[_tool_call(f"c{i}", "unknown_tool", {})]) for i in range(2)]
        )
        decision = await self._decide(client, max_tool_rounds=2)
        self.assertFalse(decision.should_reply)
        self.assertEqual(decision.reason, "max_tool_rounds")

    async def test_client_error_means_no_reply(self):
        decision = await self._decide(_DummyClient([RuntimeError("api down")]))
        self.assertFalse(decision.should_reply)
        self.assertEqual(decision.reason, "error")

    async def test_timeout_means_no_reply(self):
        client = _DummyClient([_response(content="too late")], delay=0.5)
        decision = await self._decide(client, timeout_seconds=0.05)
        self.assertFalse(decision.should_reply)
        self.assertEqual(decision.reason, "timeout")


class ReplyToMessageTests(unittest.IsolatedAsyncioTestCase):
    async def test_uses_recent_history_and_stored_roster(self):
        calls: dict = {}

        async def _recent(guild_id, channel_id, days, limit):
            calls["recent"] = (guild_id, channel_id, days, limit)
            return RECENT[:1]

        async def _members(channel_id):
            return {1, 2}

        history = SimpleNamespace(
            settings=HistorySettings(context_load_days=3, context_max_messages=10),
            recent_messages=_recent,
            members_of=_members,
        )
        message = SimpleNamespace(
            channel=SimpleNamespace(id=20),
            guild=SimpleNamespace(id=5),
        )
        client = _DummyClient([_response(tool_calls=[_tool_call("c1", "reply", {"content": "hey"})])])
        with mock.patch("builtins.print"):
            decision = await reply_to_message(
                message,
                history=history,
                client=client,
                model="m",
                system_prompt="sys",
                bot_user_id=99,
            )
        self.assertEqual(decision.content, "hey")
        self.assertEqual(calls["recent"], (5, 20, 3, 10))
        names = [t["function"]["name"] for t in client.requests[0]["tools"]]
        self.assertIn("search_history", names)


if __name__ == "__main__":
    unittest.main()
