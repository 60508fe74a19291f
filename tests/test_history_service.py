from __future__ import annotations

import asyncio
import os
import sqlite3
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from db.migrate import apply_sqlite_migrations
from history.service import HistoryService
from history.settings import HistorySettings
from retrieval.vectors import decode_embedding


class _KeywordProvider:
    name = "fake"
    model = "fake-embed"
    vocabulary = ("budget", "music", "cat")

    def __init__(self):
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        low = text.lower()
        return [float(low.count(word)) for word in self.vocabulary] + [0.5]


class _BrokenProvider:
    name = "broken"
    model = "broken"

    def embed(self, text: str) -> list[float]:
        raise RuntimeError("provider unreachable")


class HistoryServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, os.path.join(os.getcwd(), "migrations"))
        self.db_lock = asyncio.Lock()
        self.provider = _KeywordProvider()
        self.history = HistoryService(
            db_lock=self.db_lock,
            db_conn=self.conn,
            embedding_provider=self.provider,
            settings=HistorySettings(embed_timeout_seconds=2.0),
        )

    async def asyncTearDown(self):
        self.conn.close()

    def _row(self, row_id: int) -> tuple:
        return self.conn.execute(
            "SELECT content, embedding, role, guild_id, created_ts FROM chat_messages WHERE id = ?",
            (row_id,),
        ).fetchone()

    async def _append(self, **overrides) -> int | None:
        kwargs = {
            "channel_id": 10,
            "author_id": 1001,
            "author_name": "alice",
            "role": "user",
            "content": "talking about the budget",
            "guild_id": 5,
        }
        kwargs.update(overrides)
        return await self.history.append_message(**kwargs)

    async def test_append_stores_embedding(self):
        with mock.patch("builtins.print"):
            row_id = await self._append()
        content, embedding, role, guild_id, _ = self._row(row_id)
        self.assertEqual(content, "talking about the budget")
        self.assertEqual(role, "user")
        self.assertEqual(guild_id, 5)
        self.assertEqual(decode_embedding(embedding), [1.0, 0.0, 0.0, 0.5])

    async def test_append_without_provider_stores_null_embedding(self):
        self.history.embedding_provider = None
        row_id = await self._append()
        self.assertIsNone(self._row(row_id)[1])

    async def test_append_with_failing_provider_still_persists(self):
        self.history.embedding_provider = _BrokenProvider()
        with mock.patch("builtins.print") as mocked_print:
            row_id = await self._append()
        self.assertIsNotNone(row_id)
        self.assertIsNone(self._row(row_id)[1])
        printed = " ".join(str(c.args[0]) for c in mocked_print.call_args_list)
        self.assertIn("[Embedding]", printed)

    async def test_append_rejects_blank_content_and_bad_role(self):
        with self.assertRaises(ValueError):
            await self._append(content="   ")
        with self.assertRaises(ValueError):
            await self._append(role="system")
        self.assertEqual(self.provider.calls, [])

    async def test_append_normalizes_created_at_to_utc(self):
        local = datetime(2026, 9, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        row_id = await self._append(created_at=local)
        self.assertEqual(self._row(row_id)[4], int(local.timestamp()))
        stored = self.conn.execute("SELECT created_at_utc FROM chat_messages WHERE id = ?", (row_id,)).fetchone()[0]
        self.assertTrue(stored.startswith("2026-09-01T10:00:00"))

    async def test_duplicate_message_id_is_ignored(self):
        with mock.patch("builtins.print"):
            first = await self._append(message_id=42)
            second = await self._append(message_id=42, content="again")
        self.assertIsNotNone(first)
        self.assertIsNone(second)

    async def test_update_regenerates_embedding(self):
        row_id = await self._append(message_id=42)
        with mock.patch("builtins.print"):
            changed = await self.history.update_message("now about music and a cat", message_id=42)
        self.assertTrue(changed)
        content, embedding, *_ = self._row(row_id)
        self.assertEqual(content, "now about music and a cat")
        self.assertEqual(decode_embedding(embedding), [0.0, 1.0, 1.0, 0.5])

    async def test_update_clears_embedding_when_regeneration_fails(self):
        row_id = await self._append(message_id=42)
        self.history.embedding_provider = _BrokenProvider()
        with mock.patch("builtins.print"):
            changed = await self.history.update_message("edited", message_id=42)
        self.assertTrue(changed)
        self.assertEqual(self._row(row_id)[:2], ("edited", None))

    async def test_update_by_content_match_hits_latest_only(self):
        older = await self._append(content="same words", created_at=datetime(2026, 9, 1, tzinfo=timezone.utc))
        newer = await self._append(content="same words", created_at=datetime(2026, 9, 2, tzinfo=timezone.utc))
        with mock.patch("builtins.print"):
            changed = await self.history.update_message(
                "changed words",
                channel_id=10,
                author_id=1001,
                old_content="same words",
            )
        self.assertTrue(changed)
        self.assertEqual(self._row(newer)[0], "changed words")
        self.assertEqual(self._row(older)[0], "same words")

    async def test_update_unknown_message_is_noop(self):
        await self._append(message_id=42)
        before = self.conn.execute("SELECT * FROM chat_messages").fetchall()
        changed = await self.history.update_message("whatever", message_id=999)
        self.assertFalse(changed)
        self.assertEqual(self.conn.execute("SELECT * FROM chat_messages").fetchall(), before)

    async def test_delete_and_teardown(self):
        await self._append(message_id=1, channel_id=10)
        await self._append(message_id=2, channel_id=20)
        await self._append(message_id=3, channel_id=90, guild_id=9)
        await self.history.refresh_channel(20, 5, True, [1001])

        with mock.patch("builtins.print"):
            self.assertTrue(await self.history.delete_message(message_id=1))
            self.assertFalse(await self.history.delete_message(message_id=1))
            self.assertEqual(await self.history.delete_channel(20), 1)
            self.assertEqual(await self.history.members_of(20), set())
            self.assertEqual(await self.history.delete_guild(9), 1)
        self.assertEqual(await self.history.counts(), (0, 0))

    async def test_refresh_channel_replaces_members(self):
        await self.history.refresh_channel(30, 5, False, [1, 2, 3])
        await self.history.refresh_channel(30, 5, False, [4])
        self.assertEqual(await self.history.members_of(30), {4})
        self.assertEqual(await self.history.members_of(31), set())

    async def test_recent_and_active(self):
        now = datetime.now(timezone.utc)
        await self._append(content="first", created_at=now - timedelta(hours=2))
        await self._append(content="second", created_at=now - timedelta(minutes=5))
        await self._append(content="stale", channel_id=11, created_at=now - timedelta(days=20))

        recent = await self.history.recent_messages(5, 10, 7)
        self.assertEqual([r["content"] for r in recent], ["first", "second"])
        self.assertEqual(await self.history.active_channels(5, 14), [10])


if __name__ == "__main__":
    unittest.main()
