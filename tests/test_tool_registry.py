from __future__ import annotations

import json
import unittest
from types import SimpleNamespace
from unittest import mock

from history.settings import HistorySettings
from retrieval.visibility import visibility_context_for_channel
from tools.history_tools import register_history_tools
from tools.registry import ToolRegistry
from tools.registry import ToolSpec


async def _echo(arguments: dict) -> str:
    return f"echo:{arguments.get('text', '')}"


async def _explode(arguments: dict) -> str:
    raise RuntimeError("kaboom")


class ToolRegistryTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.registry = ToolRegistry()
        self.registry.register(
            ToolSpec(
                name="echo",
                description="Echo text back.",
                parameters={"type": "object", "properties": {"text": {"type": "string"}}},
                handler=_echo,
            )
        )

    def test_openai_schema(self):
        tools = self.registry.openai_tools()
        self.assertEqual(tools[0]["type"], "function")
        self.assertEqual(tools[0]["function"]["name"], "echo")
        self.assertIn("properties", tools[0]["function"]["parameters"])
        self.assertIn("echo", self.registry)
        self.assertEqual(self.registry.names(), ["echo"])

    def test_duplicate_registration_raises(self):
        with self.assertRaises(ValueError):
            self.registry.register(ToolSpec("echo", "again", {}, _echo))

    async def test_call_decodes_arguments(self):
        self.assertEqual(await self.registry.call("echo", json.dumps({"text": "hi"})), "echo:hi")
        self.assertEqual(await self.registry.call("echo", ""), "echo:")

    async def test_unknown_tool_and_bad_json_return_errors(self):
        self.assertIn("unknown tool", await self.registry.call("nope", "{}"))
        self.assertIn("invalid arguments", await self.registry.call("echo", "{not json"))
        self.assertIn("JSON object", await self.registry.call("echo", "[1, 2]"))

    async def test_handler_errors_are_returned_not_raised(self):
        self.registry.register(ToolSpec("explode", "Fails.", {}, _explode))
        with mock.patch("builtins.print"):
            out = await self.registry.call("explode", "{}")
        self.assertIn("kaboom", out)


class HistoryToolTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.calls: list[dict] = []

        async def _search(query, **kwargs):
            self.calls.append({"query": query, **kwargs})
            return [
                {
                    "created_at_utc": "2026-09-21T08:05:00+00:00",
                    "author_name": "alice",
                    "role": "user",
                    "content": "budget is fine",
                    "relevance_score": 0.5,
                }
            ]

        self.history = SimpleNamespace(
            settings=HistorySettings(default_limit=5, max_limit=20),
            search=_search,
        )
        self.context = visibility_context_for_channel(20, 5, [1, 2])
        self.registry = ToolRegistry()
        register_history_tools(self.registry, history=self.history, context=self.context)

    async def test_search_is_bound_to_requester_context(self):
        out = await self.registry.call("search_history", json.dumps({"query": "budget", "days": 3}))
        self.assertIn("budget is fine", out)
        self.assertEqual(self.calls[0]["context"], self.context)
        self.assertEqual(self.calls[0]["guild_id"], 5)
        self.assertEqual(self.calls[0]["days"], 3)
        self.assertEqual(self.calls[0]["limit"], 5)

    async def test_limit_is_capped_and_bad_days_ignored(self):
        await self.registry.call("search_history", json.dumps({"query": "x", "limit": 500, "days": 0}))
        self.assertEqual(self.calls[0]["limit"], 20)
        self.assertIsNone(self.calls[0]["days"])

    async def test_missing_query(self):
        out = await self.registry.call("search_history", "{}")
        self.assertIn("query is required", out)
        self.assertEqual(self.calls, [])


if __name__ == "__main__":
    unittest.main()
