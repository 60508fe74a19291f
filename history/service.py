from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable

from config.defaults import VALID_ROLES
from embeddings.provider import embed_text
from history.settings import HistorySettings
from history.store import count_chat_messages_sync
from history.store import delete_channel_history_sync
from history.store import delete_chat_message_sync
from history.store import delete_guild_history_sync
from history.store import fetch_active_channels_sync
from history.store import fetch_channel_members_sync
from history.store import fetch_recent_messages_sync
from history.store import find_chat_message_sync
from history.store import insert_chat_message_sync
from history.store import update_chat_message_sync
from history.store import upsert_channel_sync
from retrieval.service import search_history
from retrieval.vectors import encode_embedding
from retrieval.visibility import VisibilityContext


def _preview(text: str, n: int = 60) -> str:
    t = " ".join((text or "").split())
    return t if len(t) <= n else t[: n - 3] + "..."


class HistoryService:
    """
    Async facade over the chat history store.

    Store calls are short and serialized through db_lock on a worker thread.
    Embedding and scoring happen with the lock released.
    """

    def __init__(
        self,
        *,
        db_lock: asyncio.Lock,
        db_conn,
        embedding_provider=None,
        settings: HistorySettings | None = None,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.embedding_provider = embedding_provider
        self.settings = settings or HistorySettings()

    @property
    def semantic_enabled(self) -> bool:
        return self.embedding_provider is not None

    async def _run(self, fn, *args, **kwargs):
        async with self.db_lock:
            return await asyncio.to_thread(fn, self.db_conn, *args, **kwargs)

    async def _embedding_blob(self, text: str, purpose: str) -> bytes | None:
        vector = await embed_text(
            self.embedding_provider,
            text,
            timeout_seconds=self.settings.embed_timeout_seconds,
            purpose=purpose,
        )
        return encode_embedding(vector)

    # -------------------------
    # Message ledger
    # -------------------------

    async def append_message(
        self,
        *,
        channel_id: int,
        author_id: int,
        author_name: str,
        role: str,
        content: str,
        guild_id: int | None = None,
        message_id: int | None = None,
        created_at: datetime | None = None,
    ) -> int | None:
        if not (content or "").strip():
            raise ValueError("content must be non-empty")
        if role not in VALID_ROLES:
            raise ValueError(f"role must be one of {sorted(VALID_ROLES)}, got {role!r}")

        created = created_at or datetime.now(timezone.utc)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        created = created.astimezone(timezone.utc)

        embedding = await self._embedding_blob(content, "append")
        payload = {
            "message_id": int(message_id) if message_id is not None else None,
            "guild_id": int(guild_id) if guild_id is not None else None,
            "channel_id": int(channel_id),
            "author_id": int(author_id),
            "author_name": str(author_name or "unknown"),
            "role": role,
            "content": content,
            "embedding": embedding,
            "created_at_utc": created.isoformat(),
            "created_ts": int(created.timestamp()),
        }
        row_id = await self._run(insert_chat_message_sync, payload)
        if row_id is None:
            print(f"[History] duplicate message_id={message_id} ignored")
        return row_id

    async def update_message(
        self,
        new_content: str,
        *,
        message_id: int | None = None,
        channel_id: int | None = None,
        author_id: int | None = None,
        old_content: str | None = None,
    ) -> bool:
        """Overwrite the most recent matching record. Untracked messages are ignored."""
        found = await self._run(
            find_chat_message_sync,
            message_id=message_id,
            channel_id=channel_id,
            author_id=author_id,
            content=old_content,
        )
        if not found:
            return False
        if found["content"] == new_content:
            return False

        embedding = await self._embedding_blob(new_content, "update")
        changed = await self._run(update_chat_message_sync, found["id"], new_content, embedding)
        if changed:
            print(f"[History] updated row={found['id']} channel={found['channel_id']} text='{_preview(new_content)}'")
        return bool(changed)

    async def delete_message(
        self,
        *,
        message_id: int | None = None,
        channel_id: int | None = None,
        author_id: int | None = None,
        content: str | None = None,
    ) -> bool:
        deleted = await self._run(
            delete_chat_message_sync,
            message_id=message_id,
            channel_id=channel_id,
            author_id=author_id,
            content=content,
        )
        if deleted:
            print(f"[History] deleted message_id={message_id} channel={channel_id}")
        return bool(deleted)

    async def delete_channel(self, channel_id: int) -> int:
        deleted = await self._run(delete_channel_history_sync, channel_id)
        print(f"[History] channel teardown channel={channel_id} messages={deleted}")
        return deleted

    async def delete_guild(self, guild_id: int) -> int:
        deleted = await self._run(delete_guild_history_sync, guild_id)
        print(f"[History] guild teardown guild={guild_id} messages={deleted}")
        return deleted

    async def counts(self, guild_id: int | None = None) -> tuple[int, int]:
        return await self._run(count_chat_messages_sync, guild_id)

    # -------------------------
    # Channel directory
    # -------------------------

    async def refresh_channel(
        self,
        channel_id: int,
        guild_id: int | None,
        is_public: bool,
        member_ids: Iterable[int],
    ) -> None:
        await self._run(upsert_channel_sync, channel_id, guild_id, bool(is_public), list(member_ids))

    async def members_of(self, channel_id: int) -> set[int]:
        return await self._run(fetch_channel_members_sync, channel_id)

    # -------------------------
    # Queries
    # -------------------------

    async def search(
        self,
        query: str,
        *,
        context: VisibilityContext,
        guild_id: int | None = None,
        channel_id: int | None = None,
        days: int | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        results = await search_history(
            query,
            guild_id=guild_id,
            channel_id=channel_id,
            context=context,
            days=days,
            limit=limit if limit is not None else self.settings.default_limit,
            db_lock=self.db_lock,
            db_conn=self.db_conn,
            embedding_provider=self.embedding_provider,
            embed_timeout_seconds=self.settings.embed_timeout_seconds,
            candidate_window=self.settings.candidate_window,
        )
        print(f"[Search] query='{_preview(query, 40)}' guild={guild_id} results={len(results)}")
        return results

    async def recent_messages(
        self,
        guild_id: int | None,
        channel_id: int,
        days: int,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self._run(fetch_recent_messages_sync, guild_id, channel_id, days, limit)

    async def active_channels(self, guild_id: int | None, inactive_days: int) -> list[int]:
        return await self._run(fetch_active_channels_sync, guild_id, inactive_days)
