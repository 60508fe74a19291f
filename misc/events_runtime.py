from __future__ import annotations

import asyncio
import sqlite3

import discord
from controller.reply_service import reply_to_message
from discord.ext import commands
from ingestion.service import handle_channel_delete
from ingestion.service import handle_guild_remove
from ingestion.service import handle_raw_bulk_delete
from ingestion.service import handle_raw_delete
from ingestion.service import handle_raw_edit
from ingestion.service import log_message
from misc.discord_gates import message_in_allowed_channels
from misc.discord_gates import should_consider_reply
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    def _bot_user_id() -> int | None:
        return int(bot.user.id) if bot.user else None

    @bot.event
    async def on_ready():
        print(f"Chatter is online as {bot.user}")
        if not getattr(bot, "_activity_task", None):
            bot._activity_task = asyncio.create_task(boot.activity_loop_func())
            print("[Activity] loop started")

    @bot.event
    async def on_message(message: discord.Message):
        if not message_in_allowed_channels(message, boot.allowed_channel_ids):
            return

        try:
            await log_message(message, history=deps.history, bot_user_id=_bot_user_id())
        except (sqlite3.Error, ValueError) as e:
            print(f"[Ingest] log error message={message.id}: {e}")

        if message.author.bot:
            return

        if (message.content or "").lstrip().startswith("!"):
            await bot.process_commands(message)
            return

        if not should_consider_reply(message, bot.user):
            return

        try:
            decision = await reply_to_message(
                message,
                history=deps.history,
                client=deps.client,
                model=deps.openai_model,
                system_prompt=deps.system_prompt,
                bot_user_id=_bot_user_id(),
            )
        except sqlite3.Error as e:
            print(f"[Reply] history error: {e}")
            return

        print(f"[Reply] channel={message.channel.id} reply={decision.should_reply} reason={decision.reason}")
        if decision.should_reply and decision.content:
            await deps.send_chunked(message.channel, decision.content)

    @bot.event
    async def on_raw_message_edit(payload: discord.RawMessageUpdateEvent):
        try:
            await handle_raw_edit(payload, history=deps.history)
        except sqlite3.Error as e:
            print(f"[Ingest] edit error message={payload.message_id}: {e}")

    @bot.event
    async def on_raw_message_delete(payload: discord.RawMessageDeleteEvent):
        try:
            await handle_raw_delete(payload, history=deps.history)
        except sqlite3.Error as e:
            print(f"[Ingest] delete error message={payload.message_id}: {e}")

    @bot.event
    async def on_raw_bulk_message_delete(payload: discord.RawBulkMessageDeleteEvent):
        try:
            n = await handle_raw_bulk_delete(payload, history=deps.history)
            print(f"[Ingest] bulk delete channel={payload.channel_id} removed={n}")
        except sqlite3.Error as e:
            print(f"[Ingest] bulk delete error channel={payload.channel_id}: {e}")

    @bot.event
    async def on_guild_channel_delete(channel):
        try:
            await handle_channel_delete(channel, history=deps.history)
        except sqlite3.Error as e:
            print(f"[Ingest] channel teardown error channel={channel.id}: {e}")

    @bot.event
    async def on_thread_delete(thread: discord.Thread):
        try:
            await handle_channel_delete(thread, history=deps.history)
        except sqlite3.Error as e:
            print(f"[Ingest] thread teardown error channel={thread.id}: {e}")

    @bot.event
    async def on_guild_remove(guild: discord.Guild):
        try:
            await handle_guild_remove(guild, history=deps.history)
        except sqlite3.Error as e:
            print(f"[Ingest] guild teardown error guild={guild.id}: {e}")
