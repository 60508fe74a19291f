from __future__ import annotations

import os
import sqlite3

from db.migrate import apply_sqlite_migrations

REQUIRED_COLUMNS: dict[str, list[str]] = {
    "chat_messages": [
        "message_id",
        "guild_id",
        "channel_id",
        "author_id",
        "author_name",
        "role",
        "content",
        "embedding",
        "created_at_utc",
        "created_ts",
    ],
    "channels": ["channel_id", "guild_id", "is_public"],
    "channel_members": ["channel_id", "member_id"],
}


def default_migrations_dir() -> str:
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(repo_root, "migrations")


def table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    # rows: (cid, name, type, notnull, dflt_value, pk)
    cur = conn.execute(f"PRAGMA table_info({table})")
    return [r[1] for r in cur.fetchall()]


def schema_has_columns(conn: sqlite3.Connection, table: str, required: list[str]) -> tuple[bool, list[str]]:
    cols = set(table_columns(conn, table))
    missing = [c for c in required if c not in cols]
    return (len(missing) == 0, missing)


def missing_schema_columns_sync(conn: sqlite3.Connection) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for table, required in REQUIRED_COLUMNS.items():
        _, missing = schema_has_columns(conn, table, required)
        if missing:
            out[table] = missing
    return out


def verify_schema(conn: sqlite3.Connection) -> dict[str, list[str]]:
    missing_by_table = missing_schema_columns_sync(conn)
    for table in REQUIRED_COLUMNS:
        missing = missing_by_table.get(table, [])
        print(f"[DB] {table} schema OK={not missing} missing={missing}")
    return missing_by_table


def init_db(db_path: str, migrations_dir: str | None = None) -> sqlite3.Connection:
    directory = os.path.dirname(db_path)
    if directory and not os.path.isdir(directory):
        os.makedirs(directory, exist_ok=True)

    # check_same_thread=False because the event loop hands the connection to asyncio.to_thread workers
    conn = sqlite3.connect(db_path, check_same_thread=False)
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    apply_sqlite_migrations(conn, migrations_dir or default_migrations_dir())

    missing = verify_schema(conn)
    if missing:
        conn.close()
        raise RuntimeError(f"Database schema is missing columns: {missing}")
    return conn
