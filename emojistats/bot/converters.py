"""
emojistats.bot.converters — discord.py objects → event envelopes
=================================================================

The only place that knows the shape of discord.py models.  Everything
past this module works with :mod:`emojistats.engine.events` dataclasses.
"""

from __future__ import annotations

from collections.abc import Iterable

import discord

from emojistats.engine.events import (
    ChannelInfo,
    ChannelKind,
    EmojiInfo,
    MessageInfo,
    ReactionInfo,
    ServerInfo,
    UserInfo,
)

# Message types that carry user-written text
REGULAR_MESSAGE_TYPES = frozenset({discord.MessageType.default, discord.MessageType.reply})


def emoji_info(emoji: discord.Emoji) -> EmojiInfo:
    return EmojiInfo(id=emoji.id, name=emoji.name, animated=emoji.animated)


def text_channel_info(channel) -> ChannelInfo:
    """Treat a guild channel that carries chat as a text channel of its guild."""
    return ChannelInfo(
        id=channel.id,
        name=channel.name,
        kind=ChannelKind.TEXT,
        server_id=channel.guild.id,
    )


def channel_info(channel) -> ChannelInfo:
    """Flatten any channel object.

    Threads count as text channels of their guild.  Other non-text guild
    channels map to ``OTHER``.
    """
    if isinstance(channel, (discord.TextChannel, discord.Thread)):
        return text_channel_info(channel)
    if isinstance(channel, (discord.DMChannel, discord.GroupChannel)):
        recipient = getattr(channel, "recipient", None)
        name = f"@{recipient.name}" if recipient is not None else str(channel.id)
        return ChannelInfo(id=channel.id, name=name, kind=ChannelKind.PRIVATE)

    guild = getattr(channel, "guild", None)
    return ChannelInfo(
        id=channel.id,
        name=getattr(channel, "name", None) or str(channel.id),
        kind=ChannelKind.OTHER,
        server_id=guild.id if guild is not None else None,
    )


def server_info(
    guild: discord.Guild,
    channels: Iterable | None = None,
    *,
    partial: bool = False,
) -> ServerInfo:
    """Flatten a guild.

    With ``partial=True`` only id/name/icon are filled in (the guild list
    returned by ``fetch_guilds`` carries nothing else).  *channels*
    overrides ``guild.channels`` for guilds fetched over HTTP, whose
    channel cache is empty.  Cached guilds also contribute their active
    threads.
    """
    icon = guild.icon.key if guild.icon is not None else None
    if partial:
        return ServerInfo(id=guild.id, name=guild.name, icon=icon)

    if channels is None:
        channels = [*guild.channels, *guild.threads]
    return ServerInfo(
        id=guild.id,
        name=guild.name,
        icon=icon,
        channels=[channel_info(c) for c in channels],
        emoji=[emoji_info(e) for e in guild.emojis],
    )


def user_info(user: discord.abc.User) -> UserInfo:
    return UserInfo(id=user.id, name=user.name, discriminator=str(user.discriminator))


def message_info(message: discord.Message) -> MessageInfo:
    return MessageInfo(
        id=message.id,
        channel_id=message.channel.id,
        author=user_info(message.author),
        content=message.content,
        author_is_bot=message.author.bot,
        is_regular=message.type in REGULAR_MESSAGE_TYPES,
    )


def reaction_info(payload: discord.RawReactionActionEvent) -> ReactionInfo:
    emoji = payload.emoji
    if emoji.is_custom_emoji():
        return ReactionInfo(
            channel_id=payload.channel_id,
            message_id=payload.message_id,
            user_id=payload.user_id,
            custom_emoji_id=emoji.id,
        )
    return ReactionInfo(
        channel_id=payload.channel_id,
        message_id=payload.message_id,
        user_id=payload.user_id,
        unicode_emoji=emoji.name,
    )
