from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


@dataclass(frozen=True, slots=True)
class VisibilityContext:
    """Who is asking: the requester's channel, community and audience."""

    channel_id: int | None
    guild_id: int | None
    member_ids: frozenset[int] = field(default_factory=frozenset)


@dataclass(frozen=True, slots=True)
class ChannelFacts:
    """What is known about the channel a candidate message came from.

    is_public=None means the channel was never described; it is treated as private.
    """

    channel_id: int
    guild_id: int | None
    is_public: bool | None
    member_ids: frozenset[int] = field(default_factory=frozenset)


def visibility_context_for_channel(
    channel_id: int | None,
    guild_id: int | None,
    member_ids: Iterable[int] | None,
) -> VisibilityContext:
    return VisibilityContext(
        channel_id=int(channel_id) if channel_id is not None else None,
        guild_id=int(guild_id) if guild_id is not None else None,
        member_ids=frozenset(int(m) for m in (member_ids or ())),
    )


def is_visible(candidate: ChannelFacts, requester: VisibilityContext) -> bool:
    # A conversation always sees its own history.
    if requester.channel_id is not None and candidate.channel_id == requester.channel_id:
        return True

    if candidate.is_public:
        # Public history stays inside its community, and never leaves a channel with no community.
        return (
            candidate.guild_id is not None
            and requester.guild_id is not None
            and candidate.guild_id == requester.guild_id
        )

    # Private or unknown: the requester's whole audience must already be in the candidate channel.
    if not requester.member_ids or not candidate.member_ids:
        return False
    return requester.member_ids <= candidate.member_ids
