from __future__ import annotations

from typing import Any


def _member_ids(members: Any) -> set[int]:
    out: set[int] = set()
    for m in members or []:
        mid = getattr(m, "id", None)
        if mid is not None:
            out.add(int(mid))
    return out


def _default_role_can_view(channel: Any, guild: Any) -> bool:
    default_role = getattr(guild, "default_role", None)
    if default_role is None or not hasattr(channel, "permissions_for"):
        return False
    return bool(channel.permissions_for(default_role).view_channel)


def describe_channel(channel: Any, bot_user_id: int | None) -> tuple[int | None, bool, set[int]]:
    """
    Returns (guild_id, is_public, member_ids) for a discord channel.

    Guild channels are public when @everyone can view them. Threads take visibility
    from their parent, except private threads which use their own member list.
    Direct messages are private between the recipients and the bot.
    """
    guild = getattr(channel, "guild", None)
    if guild is None:
        recipients = getattr(channel, "recipients", None)
        if not recipients:
            recipient = getattr(channel, "recipient", None)
            recipients = [recipient] if recipient is not None else []
        members = _member_ids(recipients)
        if bot_user_id is not None:
            members.add(int(bot_user_id))
        return (None, False, members)

    is_private_thread = getattr(channel, "is_private", None)
    if callable(is_private_thread) and is_private_thread():
        return (int(guild.id), False, _member_ids(getattr(channel, "members", None)))

    target = getattr(channel, "parent", None) or channel
    is_public = _default_role_can_view(target, guild)
    return (int(guild.id), is_public, _member_ids(getattr(target, "members", None)))


async def refresh_channel_for(channel: Any, *, history, bot_user_id: int | None) -> None:
    guild_id, is_public, members = describe_channel(channel, bot_user_id)
    await history.refresh_channel(int(channel.id), guild_id, is_public, members)


async def log_message(message: Any, *, history, bot_user_id: int | None) -> int | None:
    content = (message.content or "").strip()
    if not content:
        return None

    await refresh_channel_for(message.channel, history=history, bot_user_id=bot_user_id)

    author = message.author
    guild = getattr(message, "guild", None)
    is_self = bot_user_id is not None and int(author.id) == int(bot_user_id)
    return await history.append_message(
        channel_id=int(message.channel.id),
        author_id=int(author.id),
        author_name=getattr(author, "display_name", None) or str(author),
        role="assistant" if is_self else "user",
        content=message.content,
        guild_id=int(guild.id) if guild else None,
        message_id=int(message.id),
        created_at=getattr(message, "created_at", None),
    )


async def handle_raw_edit(payload: Any, *, history) -> bool:
    data = getattr(payload, "data", None) or {}
    if "content" not in data:
        return False
    new_content = str(data.get("content") or "")
    if not new_content.strip():
        return False

    if await history.update_message(new_content, message_id=int(payload.message_id)):
        return True

    # Untracked id: try the cached copy's old text.
    cached = getattr(payload, "cached_message", None)
    if cached is None or not (cached.content or "").strip():
        return False
    return await history.update_message(
        new_content,
        channel_id=int(cached.channel.id),
        author_id=int(cached.author.id),
        old_content=cached.content,
    )


async def handle_raw_delete(payload: Any, *, history) -> bool:
    return await history.delete_message(
        message_id=int(payload.message_id),
        channel_id=int(payload.channel_id),
    )


async def handle_raw_bulk_delete(payload: Any, *, history) -> int:
    deleted = 0
    for message_id in sorted(getattr(payload, "message_ids", None) or []):
        if await history.delete_message(message_id=int(message_id), channel_id=int(payload.channel_id)):
            deleted += 1
    return deleted


async def handle_channel_delete(channel: Any, *, history) -> int:
    return await history.delete_channel(int(channel.id))


async def handle_guild_remove(guild: Any, *, history) -> int:
    return await history.delete_guild(int(guild.id))
