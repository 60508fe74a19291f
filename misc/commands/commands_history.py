from __future__ import annotations

from discord.ext import commands
from ingestion.service import describe_channel
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from retrieval.service import format_history_for_llm
from retrieval.visibility import visibility_context_for_channel


def _clip(text: str, n: int) -> str:
    t = " ".join((text or "").split())
    return t if len(t) <= n else t[: n - 3] + "..."


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    async def _owner_gate(ctx: commands.Context) -> bool:
        if not gates.in_allowed_channel(ctx):
            return False
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return False
        return True

    def _guild_id(ctx: commands.Context) -> int | None:
        return int(ctx.guild.id) if ctx.guild else None

    @bot.command(name="historystatus")
    async def cmd_historystatus(ctx: commands.Context):
        if not await _owner_gate(ctx):
            return

        history = deps.history
        total, embedded = await history.counts()
        here_total, here_embedded = await history.counts(_guild_id(ctx)) if ctx.guild else (total, embedded)
        mode = "semantic" if history.semantic_enabled else "text"
        lines = [
            f"mode={mode} provider={deps.embedding_provider_name} model={deps.embedding_model or '-'}",
            f"settings: {history.settings.summary()}",
            f"messages: total={total} embedded={embedded}",
            f"this scope: total={here_total} embedded={here_embedded}",
        ]
        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines) + "\n```")

    @bot.command(name="historysearch")
    async def cmd_historysearch(ctx: commands.Context, *, query: str = ""):
        if not await _owner_gate(ctx):
            return
        if not query.strip():
            await ctx.send("Usage: `!historysearch <query>`")
            return

        history = deps.history
        guild_id = _guild_id(ctx)
        members = await history.members_of(int(ctx.channel.id))
        if not members:
            _, _, members = describe_channel(ctx.channel, int(bot.user.id) if bot.user else None)
        context = visibility_context_for_channel(ctx.channel.id, guild_id, members)

        results = await history.search(query, context=context, guild_id=guild_id)
        await deps.send_chunked(ctx.channel, format_history_for_llm(results, max_chars=3500))

    @bot.command(name="historyrecent")
    async def cmd_historyrecent(ctx: commands.Context, days: int = 1):
        if not await _owner_gate(ctx):
            return

        days = max(1, min(int(days or 1), 365))
        rows = await deps.history.recent_messages(_guild_id(ctx), int(ctx.channel.id), days)
        if not rows:
            await ctx.send(f"No messages in this channel in the last {days} day(s).")
            return

        lines = [f"Recent messages (last {days}d, {len(rows)} total):"]
        for r in rows[-40:]:
            lines.append(f"- {r['created_at_utc'][:16]} {r['author_name']}({r['role']}): {_clip(r['content'], deps.max_line_chars)}")
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="historyactive")
    async def cmd_historyactive(ctx: commands.Context, days: int | None = None):
        if not await _owner_gate(ctx):
            return

        history = deps.history
        days = max(1, min(int(days or history.settings.activity_inactive_days), 365))
        channel_ids = await history.active_channels(_guild_id(ctx), days)
        if not channel_ids:
            await ctx.send(f"No active channels in the last {days} day(s).")
            return

        mentions = ", ".join(f"<#{cid}>" for cid in channel_ids)
        await deps.send_chunked(ctx.channel, f"Active channels (last {days}d): {mentions}")
