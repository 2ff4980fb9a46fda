"""
emojistats.bot.cogs.roster — Server / Channel / Emoji Roster Tracking
======================================================================

Keeps the in-memory :class:`~emojistats.engine.roster.RosterCache` and the
roster tables in step with gateway events:

- on_ready                         → snapshot of every cached guild
- on_guild_join / update / remove  → server lifecycle
- on_guild_channel_*               → text channel lifecycle
- on_thread_*                      → threads, tracked as text channels
- on_private_channel_*             → DM channel lifecycle
- on_guild_emojis_update           → custom emoji reconciliation
- on_member_update / on_user_update → display-name cache

The cache is mutated on the event loop; persistence runs on a worker
thread via ``run_db``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from emojistats.bot.converters import channel_info, emoji_info, server_info, user_info
from emojistats.database.engine import run_db
from emojistats.engine.events import ChannelKind
from emojistats.services.roster_service import (
    remove_server,
    save_channel,
    save_server,
    save_user,
    sync_server_emoji,
)

if TYPE_CHECKING:
    from emojistats.bot.core import EmojiStatsBot

logger = logging.getLogger(__name__)


class Roster(commands.Cog, name="Roster"):
    """Tracks servers, channels, custom emoji and user names."""

    def __init__(self, bot: EmojiStatsBot) -> None:
        self.bot = bot

    # -----------------------------------------------------------------------
    # Servers
    # -----------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_ready(self) -> None:
        """Load every guild and DM channel discord.py has cached."""
        try:
            for guild in self.bot.guilds:
                await self._server_seen(guild)
            for channel in self.bot.private_channels:
                info = channel_info(channel)
                self.bot.roster.on_channel_created(info)
                await run_db(save_channel, self.bot.engine, info)
            logger.info(
                "Roster loaded: %d servers, %d text channels",
                self.bot.roster.server_count, self.bot.roster.text_channel_count,
            )
        except Exception:
            logger.exception("Error loading roster snapshot")

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        try:
            logger.info("Joined server %s (ID: %d)", guild.name, guild.id)
            await self._server_seen(guild)
        except Exception:
            logger.exception("Error processing guild join for %s", guild.id)

    @commands.Cog.listener()
    async def on_guild_update(self, before: discord.Guild, after: discord.Guild) -> None:
        try:
            info = server_info(after)
            self.bot.roster.on_server_updated(info)
            if self.bot.roster.has_server(after.id):
                await run_db(save_server, self.bot.engine, info)
        except Exception:
            logger.exception("Error processing guild update for %s", after.id)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        try:
            logger.info("Removed from server %s (ID: %d)", guild.name, guild.id)
            self.bot.roster.on_server_removed(guild.id)
            await run_db(remove_server, self.bot.engine, guild.id)
        except Exception:
            logger.exception("Error processing guild remove for %s", guild.id)

    async def _server_seen(self, guild: discord.Guild) -> None:
        info = server_info(guild)
        self.bot.roster.on_server_seen(info)
        await run_db(save_server, self.bot.engine, info)

    # -----------------------------------------------------------------------
    # Channels
    # -----------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_guild_channel_create(self, channel: discord.abc.GuildChannel) -> None:
        try:
            info = channel_info(channel)
            if self.bot.roster.on_channel_created(info):
                await run_db(save_channel, self.bot.engine, info)
        except Exception:
            logger.exception("Error processing channel create for %s", channel.id)

    @commands.Cog.listener()
    async def on_guild_channel_update(
        self, before: discord.abc.GuildChannel, after: discord.abc.GuildChannel,
    ) -> None:
        try:
            info = channel_info(after)
            if info.kind is ChannelKind.OTHER:
                # A text channel converted to another type is gone for our purposes
                self.bot.roster.on_channel_deleted(channel_info(before))
                return
            if self.bot.roster.on_channel_updated(info):
                await run_db(save_channel, self.bot.engine, info)
        except Exception:
            logger.exception("Error processing channel update for %s", after.id)

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        try:
            self.bot.roster.on_channel_deleted(channel_info(channel))
        except Exception:
            logger.exception("Error processing channel delete for %s", channel.id)

    @commands.Cog.listener()
    async def on_thread_create(self, thread: discord.Thread) -> None:
        await self._thread_seen(thread)

    @commands.Cog.listener()
    async def on_thread_join(self, thread: discord.Thread) -> None:
        await self._thread_seen(thread)

    async def _thread_seen(self, thread: discord.Thread) -> None:
        try:
            if not self.bot.roster.has_server(thread.guild.id):
                return
            info = channel_info(thread)
            if self.bot.roster.on_channel_created(info):
                await run_db(save_channel, self.bot.engine, info)
        except Exception:
            logger.exception("Error processing thread %s", thread.id)

    @commands.Cog.listener()
    async def on_thread_update(self, before: discord.Thread, after: discord.Thread) -> None:
        try:
            info = channel_info(after)
            if self.bot.roster.on_channel_updated(info):
                await run_db(save_channel, self.bot.engine, info)
        except Exception:
            logger.exception("Error processing thread update for %s", after.id)

    @commands.Cog.listener()
    async def on_thread_delete(self, thread: discord.Thread) -> None:
        try:
            self.bot.roster.on_channel_deleted(channel_info(thread))
        except Exception:
            logger.exception("Error processing thread delete for %s", thread.id)

    @commands.Cog.listener()
    async def on_private_channel_update(
        self, before: discord.GroupChannel, after: discord.GroupChannel,
    ) -> None:
        try:
            info = channel_info(after)
            if self.bot.roster.on_channel_updated(info):
                await run_db(save_channel, self.bot.engine, info)
        except Exception:
            logger.exception("Error processing private channel update for %s", after.id)

    @commands.Cog.listener()
    async def on_private_channel_delete(self, channel: discord.abc.PrivateChannel) -> None:
        try:
            self.bot.roster.on_channel_deleted(channel_info(channel))
        except Exception:
            logger.exception("Error processing private channel delete for %s", channel.id)

    # -----------------------------------------------------------------------
    # Emoji
    # -----------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_guild_emojis_update(
        self,
        guild: discord.Guild,
        before: Sequence[discord.Emoji],
        after: Sequence[discord.Emoji],
    ) -> None:
        try:
            reported = [emoji_info(e) for e in after]
            changed = self.bot.roster.reconcile_emoji(guild.id, reported)
            # Persisted on every report, changed or not; the upsert is idempotent
            upserted, deactivated = await run_db(
                sync_server_emoji, self.bot.engine, guild.id, reported,
            )
            if changed:
                logger.info(
                    "Emoji roster updated for %s: %d reported, %d deactivated",
                    guild.name, upserted, deactivated,
                )
        except Exception:
            logger.exception("Error processing emoji update for %s", guild.id)

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        await self._user_changed(before, after)

    @commands.Cog.listener()
    async def on_user_update(self, before: discord.User, after: discord.User) -> None:
        await self._user_changed(before, after)

    async def _user_changed(self, before: discord.abc.User, after: discord.abc.User) -> None:
        if (before.name, before.discriminator) == (after.name, after.discriminator):
            return
        try:
            await run_db(save_user, self.bot.engine, user_info(after))
        except Exception:
            logger.exception("Error updating user name for %s", after.id)


async def setup(bot: EmojiStatsBot) -> None:
    await bot.add_cog(Roster(bot))
