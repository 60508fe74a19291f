from __future__ import annotations

import asyncio

from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="migrations")
    async def cmd_migrations(ctx: commands.Context, limit: int = 30):
        """Applied schema versions plus a column check of the history tables."""
        if not gates.in_allowed_channel(ctx):
            return
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return

        lim = max(1, min(int(limit or 30), 200))
        async with deps.db_lock:
            rows = await asyncio.to_thread(deps.list_schema_migrations_sync, deps.db_conn, lim)
            missing = (
                await asyncio.to_thread(deps.missing_schema_columns_sync, deps.db_conn)
                if deps.missing_schema_columns_sync
                else {}
            )

        if missing:
            health = "schema: MISSING " + "; ".join(f"{t}({', '.join(cols)})" for t, cols in sorted(missing.items()))
        else:
            health = "schema: ok"

        if not rows:
            await ctx.send(f"No schema migrations recorded. {health}")
            return

        lines = [health, f"versions (newest first, {len(rows)} shown):"]
        for version, name, applied_at in rows:
            lines.append(f"  {version}  {name:<28} {str(applied_at)[:19]}")
        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines) + "\n```")
