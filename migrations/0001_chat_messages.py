from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS chat_messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            message_id INTEGER,
            guild_id INTEGER,
            channel_id INTEGER NOT NULL,
            author_id INTEGER NOT NULL,
            author_name TEXT NOT NULL,
            role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
            content TEXT NOT NULL,
            embedding BLOB,
            created_at_utc TEXT NOT NULL,
            created_ts INTEGER NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_chat_messages_guild_channel
        ON chat_messages(guild_id, channel_id, created_ts DESC)
        """
    )
    cur.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_chat_messages_channel
        ON chat_messages(channel_id, created_ts DESC)
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_chat_messages_created ON chat_messages(created_ts)")
    # Re-delivered gateway events must not duplicate rows.
    cur.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_chat_messages_message_id
        ON chat_messages(message_id)
        WHERE message_id IS NOT NULL
        """
    )
    conn.commit()
