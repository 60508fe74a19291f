from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS channels (
            channel_id INTEGER PRIMARY KEY,
            guild_id INTEGER,
            is_public INTEGER NOT NULL DEFAULT 0,
            updated_at_utc TEXT
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_channels_guild ON channels(guild_id)")
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS channel_members (
            channel_id INTEGER NOT NULL,
            member_id INTEGER NOT NULL,
            PRIMARY KEY (channel_id, member_id)
        )
        """
    )
    conn.commit()
