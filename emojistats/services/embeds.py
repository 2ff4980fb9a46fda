"""
emojistats.services.embeds — Statistics reply layout
=====================================================

Command handlers build a :class:`StatsReply` (plain data, no discord
types) and the bot turns it into a ``discord.Embed`` with
:func:`build_stats_embed`.  Keeping the reply as data lets the dispatcher
be tested without a gateway connection.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import discord

from emojistats.constants import plural
from emojistats.services.ranking_service import EmojiCount, UserCount


@dataclass(frozen=True, slots=True)
class StatsField:
    name: str
    value: str
    inline: bool = True


@dataclass(slots=True)
class StatsReply:
    """Title, a header line (usually the requesting user) and fields."""
    title: str
    header: str = ""
    fields: list[StatsField] = field(default_factory=list)

    def add_field(self, name: str, value: str, inline: bool = True) -> StatsReply:
        self.fields.append(StatsField(name=name, value=value, inline=inline))
        return self


def emoji_usage_lines(counts: list[EmojiCount]) -> str:
    """One ``<pattern> used N time(s)`` line per emoji."""
    return "".join(
        f"{c.emoji.pattern} used {c.total} time{plural(c.total)}\n" for c in counts
    )


def top_users_lines(counts: list[UserCount]) -> str:
    return "".join(f"{c.name} used {c.total} emoji\n" for c in counts)


def total_header(label: str, count: int | None) -> str:
    """``Top Emoji (12 total uses)``, or just *label* when the count is unknown."""
    if count is None:
        return label
    return f"{label} ({count} total use{plural(count)})"


def build_stats_embed(reply: StatsReply) -> discord.Embed:
    """Build a statistics embed from a :class:`StatsReply`."""
    embed = discord.Embed(
        title=reply.title,
        description=reply.header or None,
        color=discord.Color.blurple(),
    )
    for f in reply.fields:
        embed.add_field(name=f.name, value=f.value or "\u200b", inline=f.inline)
    return embed
