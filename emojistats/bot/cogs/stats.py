"""
emojistats.bot.cogs.stats — Message & Reaction Intake
======================================================

Hands every message and every added reaction to the dispatcher.  Uses the
raw reaction event so reactions on uncached messages are counted too.

Threads and the chat of voice channels never appear in a guild's channel
list, so they are learned as text channels from their first message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from emojistats.bot.converters import channel_info, message_info, reaction_info, text_channel_info
from emojistats.database.engine import run_db
from emojistats.services.roster_service import save_channel

if TYPE_CHECKING:
    from emojistats.bot.core import EmojiStatsBot

logger = logging.getLogger(__name__)


class Stats(commands.Cog, name="Stats"):
    """Routes messages and reactions into the dispatcher."""

    def __init__(self, bot: EmojiStatsBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error processing message %s from user %s",
                message.id, message.author.id,
            )

    async def _handle_message(self, message: discord.Message) -> None:
        """Inner message handler (separated for error isolation)."""
        # DM channels have no create event; learn them from their first message
        if isinstance(message.channel, discord.DMChannel):
            if not self.bot.roster.is_private_channel(message.channel.id):
                self.bot.roster.on_channel_created(channel_info(message.channel))
        elif message.guild is not None and self.bot.roster.has_server(message.guild.id):
            if not self.bot.roster.is_text_channel(message.channel.id):
                info = text_channel_info(message.channel)
                self.bot.roster.on_channel_created(info)
                await run_db(save_channel, self.bot.engine, info)

        await self.bot.dispatcher.handle_message(message_info(message))

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        """Fire when any reaction is added, even on uncached messages."""
        try:
            await self.bot.dispatcher.handle_reaction(reaction_info(payload))
        except Exception:
            logger.exception(
                "Error processing reaction on message %s from user %s",
                payload.message_id, payload.user_id,
            )


async def setup(bot: EmojiStatsBot) -> None:
    await bot.add_cog(Stats(bot))
