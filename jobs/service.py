from __future__ import annotations

import asyncio
from typing import Iterable


async def run_activity_pass(
    *,
    history,
    guild_ids: Iterable[int],
    inactive_days: int,
) -> dict[int, list[int]]:
    """Active channel ids per guild for one pass."""
    out: dict[int, list[int]] = {}
    for guild_id in guild_ids:
        out[int(guild_id)] = await history.active_channels(int(guild_id), inactive_days)
    return out


async def activity_loop(
    *,
    bot,
    history,
    interval_seconds: int = 3600,
    inactive_days: int = 14,
) -> None:
    while True:
        try:
            active = await run_activity_pass(
                history=history,
                guild_ids=[g.id for g in getattr(bot, "guilds", []) or []],
                inactive_days=inactive_days,
            )
            total = sum(len(v) for v in active.values())
            print(f"[Activity] guilds={len(active)} active_channels={total} window={inactive_days}d")
            for guild_id, channel_ids in active.items():
                if channel_ids:
                    print(f"[Activity] guild={guild_id} channels={channel_ids[:20]}")
        except Exception as e:
            print(f"[Activity] loop error: {e}")

        await asyncio.sleep(max(60, int(interval_seconds)))
