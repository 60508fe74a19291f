from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timezone
from typing import Any, Iterable

MESSAGE_COLUMNS = (
    "id",
    "message_id",
    "guild_id",
    "channel_id",
    "author_id",
    "author_name",
    "role",
    "content",
    "created_at_utc",
    "created_ts",
)

_SELECT_MESSAGE = (
    "SELECT id, message_id, guild_id, channel_id, author_id, author_name, role, content, created_at_utc, created_ts "
    "FROM chat_messages"
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _cutoff_ts(days: int | float | None, now_ts: int | None = None) -> int | None:
    if days is None:
        return None
    now = int(now_ts if now_ts is not None else time.time())
    return now - int(float(days) * 86400)


def _row_to_message(row: tuple[Any, ...]) -> dict[str, Any]:
    out = dict(zip(MESSAGE_COLUMNS, row))
    out["id"] = int(out["id"])
    out["channel_id"] = int(out["channel_id"])
    out["author_id"] = int(out["author_id"])
    out["created_ts"] = int(out["created_ts"] or 0)
    return out


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# =========================
# Message ledger
# =========================


def insert_chat_message_sync(conn: sqlite3.Connection, payload: dict[str, Any]) -> int | None:
    """Insert one observed message. Returns the row id, or None when the external id was already stored."""
    cur = conn.cursor()
    cur.execute(
        """
        INSERT OR IGNORE INTO chat_messages (
            message_id, guild_id, channel_id,
            author_id, author_name, role, content,
            embedding, created_at_utc, created_ts
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            payload.get("message_id"),
            payload.get("guild_id"),
            int(payload["channel_id"]),
            int(payload["author_id"]),
            payload["author_name"],
            payload["role"],
            payload["content"],
            payload.get("embedding"),
            payload["created_at_utc"],
            int(payload["created_ts"]),
        ),
    )
    conn.commit()
    if cur.rowcount == 0:
        return None
    return int(cur.lastrowid)


def find_chat_message_sync(
    conn: sqlite3.Connection,
    *,
    message_id: int | None = None,
    channel_id: int | None = None,
    author_id: int | None = None,
    content: str | None = None,
) -> dict[str, Any] | None:
    """Locate the most recent record by external id, else by (channel, author, exact content)."""
    if message_id is not None:
        cur = conn.execute(
            f"{_SELECT_MESSAGE} WHERE message_id = ? ORDER BY created_ts DESC, id DESC LIMIT 1",
            (int(message_id),),
        )
    elif channel_id is not None and author_id is not None and content is not None:
        cur = conn.execute(
            f"""
            {_SELECT_MESSAGE}
            WHERE channel_id = ? AND author_id = ? AND content = ?
            ORDER BY created_ts DESC, id DESC
            LIMIT 1
            """,
            (int(channel_id), int(author_id), content),
        )
    else:
        return None
    row = cur.fetchone()
    return _row_to_message(row) if row else None


def update_chat_message_sync(
    conn: sqlite3.Connection,
    row_id: int,
    new_content: str,
    embedding: bytes | None,
) -> int:
    cur = conn.cursor()
    cur.execute(
        "UPDATE chat_messages SET content = ?, embedding = ? WHERE id = ?",
        (new_content, embedding, int(row_id)),
    )
    conn.commit()
    return int(cur.rowcount)


def delete_chat_message_sync(
    conn: sqlite3.Connection,
    *,
    message_id: int | None = None,
    channel_id: int | None = None,
    author_id: int | None = None,
    content: str | None = None,
) -> int:
    found = find_chat_message_sync(
        conn,
        message_id=message_id,
        channel_id=channel_id,
        author_id=author_id,
        content=content,
    )
    if not found:
        return 0
    cur = conn.cursor()
    cur.execute("DELETE FROM chat_messages WHERE id = ?", (found["id"],))
    conn.commit()
    return int(cur.rowcount)


def delete_channel_history_sync(conn: sqlite3.Connection, channel_id: int) -> int:
    channel_id = int(channel_id)
    with conn:
        cur = conn.execute("DELETE FROM chat_messages WHERE channel_id = ?", (channel_id,))
        deleted = int(cur.rowcount)
        conn.execute("DELETE FROM channel_members WHERE channel_id = ?", (channel_id,))
        conn.execute("DELETE FROM channels WHERE channel_id = ?", (channel_id,))
    return deleted


def delete_guild_history_sync(conn: sqlite3.Connection, guild_id: int) -> int:
    guild_id = int(guild_id)
    with conn:
        cur = conn.execute("DELETE FROM chat_messages WHERE guild_id = ?", (guild_id,))
        deleted = int(cur.rowcount)
        conn.execute(
            "DELETE FROM channel_members WHERE channel_id IN (SELECT channel_id FROM channels WHERE guild_id = ?)",
            (guild_id,),
        )
        conn.execute("DELETE FROM channels WHERE guild_id = ?", (guild_id,))
    return deleted


def count_chat_messages_sync(conn: sqlite3.Connection, guild_id: int | None = None) -> tuple[int, int]:
    """Returns (total, with_embedding)."""
    cur = conn.execute(
        """
        SELECT COUNT(*), COALESCE(SUM(CASE WHEN embedding IS NOT NULL THEN 1 ELSE 0 END), 0)
        FROM chat_messages
        WHERE (? IS NULL OR guild_id = ?)
        """,
        (guild_id, guild_id),
    )
    total, embedded = cur.fetchone()
    return (int(total or 0), int(embedded or 0))


# =========================
# Channel directory
# =========================


def upsert_channel_sync(
    conn: sqlite3.Connection,
    channel_id: int,
    guild_id: int | None,
    is_public: bool,
    member_ids: Iterable[int],
) -> None:
    channel_id = int(channel_id)
    members = sorted({int(m) for m in member_ids})
    # Descriptor and roster swap in one transaction so readers never see a mixed roster.
    with conn:
        conn.execute(
            """
            INSERT INTO channels (channel_id, guild_id, is_public, updated_at_utc)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(channel_id) DO UPDATE SET
                guild_id = excluded.guild_id,
                is_public = excluded.is_public,
                updated_at_utc = excluded.updated_at_utc
            """,
            (channel_id, guild_id, 1 if is_public else 0, _utc_now_iso()),
        )
        conn.execute("DELETE FROM channel_members WHERE channel_id = ?", (channel_id,))
        conn.executemany(
            "INSERT INTO channel_members (channel_id, member_id) VALUES (?, ?)",
            [(channel_id, m) for m in members],
        )


def fetch_channel_sync(conn: sqlite3.Connection, channel_id: int) -> dict[str, Any] | None:
    cur = conn.execute(
        "SELECT channel_id, guild_id, is_public, updated_at_utc FROM channels WHERE channel_id = ?",
        (int(channel_id),),
    )
    row = cur.fetchone()
    if not row:
        return None
    return {
        "channel_id": int(row[0]),
        "guild_id": int(row[1]) if row[1] is not None else None,
        "is_public": bool(row[2]),
        "updated_at_utc": row[3],
    }


def fetch_channel_members_sync(conn: sqlite3.Connection, channel_id: int) -> set[int]:
    cur = conn.execute("SELECT member_id FROM channel_members WHERE channel_id = ?", (int(channel_id),))
    return {int(r[0]) for r in cur.fetchall()}


def fetch_members_for_channels_sync(conn: sqlite3.Connection, channel_ids: Iterable[int]) -> dict[int, set[int]]:
    ids = sorted({int(c) for c in channel_ids})
    out: dict[int, set[int]] = {cid: set() for cid in ids}
    if not ids:
        return out
    placeholders = ",".join("?" for _ in ids)
    cur = conn.execute(
        f"SELECT channel_id, member_id FROM channel_members WHERE channel_id IN ({placeholders})",
        tuple(ids),
    )
    for channel_id, member_id in cur.fetchall():
        out[int(channel_id)].add(int(member_id))
    return out


# =========================
# Retrieval candidates
# =========================


def fetch_search_candidates_sync(
    conn: sqlite3.Connection,
    *,
    guild_id: int | None,
    channel_id: int | None,
    days: int | None,
    window: int,
    require_embedding: bool,
    text_query: str | None = None,
    now_ts: int | None = None,
) -> tuple[list[dict[str, Any]], dict[int, set[int]]]:
    """
    Read one bounded, recency-ordered candidate window plus the rosters of the channels it touches.

    Only the non-visibility filters are applied here (community/channel scope, age cutoff,
    embedding presence or substring match). A community scope also admits direct-message rows,
    which carry no community; the visibility check decides whether they may be shown.
    """
    clauses = [
        "(? IS NULL OR cm.guild_id = ? OR cm.guild_id IS NULL)",
        "(? IS NULL OR cm.channel_id = ?)",
    ]
    params: list[Any] = [guild_id, guild_id, channel_id, channel_id]

    cutoff = _cutoff_ts(days, now_ts)
    if cutoff is not None:
        clauses.append("cm.created_ts >= ?")
        params.append(cutoff)
    if require_embedding:
        clauses.append("cm.embedding IS NOT NULL")
    if text_query is not None:
        clauses.append("cm.content LIKE ? ESCAPE '\\'")
        params.append(f"%{escape_like(text_query)}%")

    params.append(max(1, int(window)))
    cur = conn.execute(
        f"""
        SELECT cm.id, cm.message_id, cm.guild_id, cm.channel_id,
               cm.author_id, cm.author_name, cm.role, cm.content,
               cm.created_at_utc, cm.created_ts,
               cm.embedding,
               ch.guild_id, ch.is_public
        FROM chat_messages cm
        LEFT JOIN channels ch ON ch.channel_id = cm.channel_id
        WHERE {" AND ".join(clauses)}
        ORDER BY cm.created_ts DESC, cm.id DESC
        LIMIT ?
        """,
        tuple(params),
    )

    rows: list[dict[str, Any]] = []
    for row in cur.fetchall():
        record = _row_to_message(row[:10])
        record["embedding"] = row[10]
        record["channel_guild_id"] = int(row[11]) if row[11] is not None else None
        record["channel_is_public"] = None if row[12] is None else bool(row[12])
        rows.append(record)

    members = fetch_members_for_channels_sync(conn, [r["channel_id"] for r in rows])
    return rows, members


# =========================
# Maintenance queries
# =========================


def fetch_recent_messages_sync(
    conn: sqlite3.Connection,
    guild_id: int | None,
    channel_id: int,
    days: int,
    limit: int | None = None,
    *,
    now_ts: int | None = None,
) -> list[dict[str, Any]]:
    """All records of one channel inside the window, oldest first. With limit, only the newest `limit`."""
    cutoff = _cutoff_ts(days, now_ts)
    cur = conn.execute(
        f"""
        {_SELECT_MESSAGE}
        WHERE channel_id = ?
          AND ((? IS NULL AND guild_id IS NULL) OR guild_id = ?)
          AND created_ts >= ?
        ORDER BY created_ts DESC, id DESC
        LIMIT ?
        """,
        (int(channel_id), guild_id, guild_id, cutoff, -1 if limit is None else max(0, int(limit))),
    )
    rows = [_row_to_message(r) for r in cur.fetchall()]
    rows.reverse()
    return rows


def fetch_active_channels_sync(
    conn: sqlite3.Connection,
    guild_id: int | None,
    inactive_days: int,
    *,
    now_ts: int | None = None,
) -> list[int]:
    cutoff = _cutoff_ts(inactive_days, now_ts)
    cur = conn.execute(
        """
        SELECT DISTINCT channel_id
        FROM chat_messages
        WHERE (? IS NULL OR guild_id = ?)
          AND created_ts >= ?
        ORDER BY channel_id
        """,
        (guild_id, guild_id, cutoff),
    )
    return [int(r[0]) for r in cur.fetchall()]
