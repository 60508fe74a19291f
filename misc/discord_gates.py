from __future__ import annotations

import discord


def channel_is_allowed(channel, allowed_channel_ids: set[int]) -> bool:
    # Empty allowlist: every channel the bot can read.
    if not allowed_channel_ids:
        return True
    if getattr(channel, "guild", None) is None:
        return True

    channel_id = int(getattr(channel, "id", 0) or 0)
    if channel_id in allowed_channel_ids:
        return True
    # thread: allow if parent is allowed
    if isinstance(channel, discord.Thread) and channel.parent:
        return int(channel.parent.id) in allowed_channel_ids
    return False


def message_in_allowed_channels(message: discord.Message, allowed_channel_ids: set[int]) -> bool:
    # DMs are always allowed.
    if getattr(message, "guild", None) is None:
        return True
    return channel_is_allowed(message.channel, allowed_channel_ids)


def should_consider_reply(message: discord.Message, bot_user) -> bool:
    """Reply path runs for DMs and for guild messages that mention the bot."""
    if bot_user is None or message.author.id == bot_user.id:
        return False
    if getattr(message, "guild", None) is None:
        return True
    return bot_user in (message.mentions or [])
