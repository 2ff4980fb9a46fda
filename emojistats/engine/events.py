"""
emojistats.engine.events — Normalized Event Envelopes
======================================================

Every gateway object the bot cares about is flattened into one of these
small dataclasses before it reaches the roster cache, the dispatcher, or a
service.  Keeping discord.py types out of the core means the core can be
driven from tests with fabricated event sequences.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

__all__ = [
    "ChannelKind",
    "EmojiInfo",
    "ChannelInfo",
    "ServerInfo",
    "UserInfo",
    "MessageInfo",
    "ReactionInfo",
]


class ChannelKind(enum.StrEnum):
    """Channel kinds.  Only ``TEXT`` and ``PRIVATE`` are tracked."""
    TEXT = "text"
    PRIVATE = "private"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class EmojiInfo:
    """A custom emoji as reported in a server's emoji roster."""
    id: int
    name: str
    animated: bool = False


@dataclass(frozen=True, slots=True)
class ChannelInfo:
    """Flattened representation of a channel.

    ``server_id`` is ``None`` for direct-message channels.
    """
    id: int
    name: str
    kind: ChannelKind
    server_id: int | None = None


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """A server (guild) with whatever the event source reported about it.

    ``channels`` and ``emoji`` may be ``None`` when the source only
    delivered basic server info (e.g. the lightweight guild list); the
    roster leaves the corresponding cached state untouched in that case.
    """
    id: int
    name: str
    icon: str | None = None
    channels: list[ChannelInfo] | None = None
    emoji: list[EmojiInfo] | None = None


@dataclass(frozen=True, slots=True)
class UserInfo:
    id: int
    name: str
    discriminator: str = "0"


@dataclass(frozen=True, slots=True)
class MessageInfo:
    """A chat message as seen by the dispatcher."""
    id: int
    channel_id: int
    author: UserInfo
    content: str
    author_is_bot: bool = False
    is_regular: bool = True


@dataclass(frozen=True, slots=True)
class ReactionInfo:
    """A reaction added to a message.

    Exactly one of ``custom_emoji_id`` / ``unicode_emoji`` is set.
    """
    channel_id: int
    message_id: int
    user_id: int
    custom_emoji_id: int | None = None
    unicode_emoji: str | None = None
