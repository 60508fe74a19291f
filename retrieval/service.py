from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from embeddings.provider import embed_text
from history.store import fetch_search_candidates_sync
from retrieval.vectors import cosine_similarity, decode_embedding
from retrieval.visibility import ChannelFacts, VisibilityContext, is_visible


def _facts_for(row: dict[str, Any], members: dict[int, set[int]]) -> ChannelFacts:
    guild_id = row.get("channel_guild_id")
    if guild_id is None:
        guild_id = row.get("guild_id")
    return ChannelFacts(
        channel_id=int(row["channel_id"]),
        guild_id=int(guild_id) if guild_id is not None else None,
        is_public=row.get("channel_is_public"),
        member_ids=frozenset(members.get(int(row["channel_id"]), ())),
    )


def _public_record(row: dict[str, Any], relevance: float | None) -> dict[str, Any]:
    out = {k: v for k, v in row.items() if k not in {"embedding", "channel_guild_id", "channel_is_public"}}
    out["relevance_score"] = relevance
    return out


def visible_candidates(
    rows: list[dict[str, Any]],
    members: dict[int, set[int]],
    context: VisibilityContext,
) -> list[dict[str, Any]]:
    return [r for r in rows if is_visible(_facts_for(r, members), context)]


def rank_by_similarity(
    rows: list[dict[str, Any]],
    query_vector: list[float],
    limit: int,
) -> list[dict[str, Any]]:
    """
    Score candidates against the query vector and keep the best `limit`.

    A candidate whose stored vector cannot be decoded or compared is skipped on its own.
    Ties fall back to recency, then row id.
    """
    scored: list[tuple[float, dict[str, Any]]] = []
    skipped = 0
    for row in rows:
        try:
            vector = decode_embedding(row.get("embedding"))
            score = cosine_similarity(query_vector, vector)
        except ValueError:
            skipped += 1
            continue
        scored.append((score, row))

    if skipped:
        print(f"[Search] skipped {skipped} candidate(s) with malformed embeddings")

    scored.sort(key=lambda item: (-item[0], -int(item[1]["created_ts"]), -int(item[1]["id"])))
    return [_public_record(row, score) for score, row in scored[:limit]]


async def _text_search(
    query: str,
    *,
    guild_id: int | None,
    channel_id: int | None,
    context: VisibilityContext,
    days: int | None,
    limit: int,
    db_lock: asyncio.Lock,
    db_conn,
    candidate_window: int,
) -> list[dict[str, Any]]:
    async with db_lock:
        rows, members = await asyncio.to_thread(
            fetch_search_candidates_sync,
            db_conn,
            guild_id=guild_id,
            channel_id=channel_id,
            days=days,
            window=candidate_window,
            require_embedding=False,
            text_query=query,
        )
    visible = visible_candidates(rows, members, context)
    return [_public_record(r, None) for r in visible[:limit]]


async def search_history(
    query: str,
    *,
    guild_id: int | None,
    channel_id: int | None,
    context: VisibilityContext,
    days: int | None,
    limit: int,
    db_lock: asyncio.Lock,
    db_conn,
    embedding_provider=None,
    embed_timeout_seconds: float = 10.0,
    candidate_window: int = 200,
) -> list[dict[str, Any]]:
    """
    Return up to `limit` past messages related to `query` that `context` is allowed to see.

    With an embedding provider, candidates are ranked by cosine similarity and carry
    relevance_score. Without one, or when the query embedding or scoring fails, results
    are substring matches newest first with relevance_score=None.
    Storage errors are not caught here.
    """
    query = (query or "").strip()
    if not query:
        return []
    limit = max(1, int(limit))

    text_kwargs = dict(
        guild_id=guild_id,
        channel_id=channel_id,
        context=context,
        days=days,
        limit=limit,
        db_lock=db_lock,
        db_conn=db_conn,
        candidate_window=candidate_window,
    )

    if embedding_provider is None:
        return await _text_search(query, **text_kwargs)

    query_vector = await embed_text(
        embedding_provider,
        query,
        timeout_seconds=embed_timeout_seconds,
        purpose="search query",
    )
    if not query_vector:
        print("[Search] semantic mode unavailable; falling back to text search")
        return await _text_search(query, **text_kwargs)

    async with db_lock:
        rows, members = await asyncio.to_thread(
            fetch_search_candidates_sync,
            db_conn,
            guild_id=guild_id,
            channel_id=channel_id,
            days=days,
            window=candidate_window,
            require_embedding=True,
        )

    try:
        visible = visible_candidates(rows, members, context)
        return rank_by_similarity(visible, query_vector, limit)
    except Exception as e:
        print(f"[Search] scoring failed; falling back to text search: {e}")
        return await _text_search(query, **text_kwargs)


def _format_when(record: dict[str, Any]) -> str:
    raw = record.get("created_at_utc")
    if raw:
        try:
            return datetime.fromisoformat(str(raw)).strftime("%Y-%m-%d %H:%M")
        except ValueError:
            pass
    return str(raw or "?")


def format_history_for_llm(results: list[dict[str, Any]], max_chars: int = 4000) -> str:
    if not results:
        return "No related chat history was found."

    lines = [f"Found {len(results)} related message(s):"]
    used = len(lines[0])
    for i, r in enumerate(results, start=1):
        line = f"[{i}] {_format_when(r)} - {r.get('author_name') or '?'}({r.get('role') or '?'}): {r.get('content') or ''}"
        score = r.get("relevance_score")
        if score is not None:
            line += f" (relevance: {float(score):.2f})"
        if used + len(line) + 1 > max_chars:
            lines.append("...")
            break
        lines.append(line)
        used += len(line) + 1
    return "\n".join(lines)
