"""
emojistats.bot.core — Bot Instance & Cog Loader
================================================

**Why this file exists:**
It defines :class:`EmojiStatsBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``), DB engine (``bot.engine``) and
   roster cache (``bot.roster``) so every Cog can reach them.
2. Owns the :class:`~emojistats.bot.dispatcher.Dispatcher` together with
   the discord-backed :class:`DiscordReplier` and
   :class:`DiscordServerDirectory` it talks through.
3. Loads the Cogs listed in :data:`EXTENSIONS`.

discord.py's own prefix commands are disabled: every message goes to the
dispatcher, which owns the command surface.
"""

from __future__ import annotations

import logging

import discord
from discord.ext import commands
from sqlalchemy import Engine

from emojistats.bot.converters import server_info
from emojistats.bot.dispatcher import Dispatcher
from emojistats.config import EmojiStatsConfig
from emojistats.engine.events import ServerInfo
from emojistats.engine.roster import RosterCache
from emojistats.services.embeds import StatsReply, build_stats_embed

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "emojistats.bot.cogs.roster",
    "emojistats.bot.cogs.stats",
]


# ---------------------------------------------------------------------------
# Gateway adapters
# ---------------------------------------------------------------------------
class DiscordReplier:
    """Sends dispatcher replies through the bot.  Send failures are logged, not retried."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def _channel(self, channel_id: int):
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        return channel

    async def send_text(self, channel_id: int, text: str) -> None:
        try:
            channel = await self._channel(channel_id)
            await channel.send(text)
        except discord.HTTPException:
            logger.warning("Unable to send message to channel %d", channel_id, exc_info=True)

    async def send_stats(self, channel_id: int, reply: StatsReply) -> None:
        try:
            channel = await self._channel(channel_id)
            await channel.send(embed=build_stats_embed(reply))
        except discord.HTTPException:
            logger.warning("Unable to send statistics to channel %d", channel_id, exc_info=True)

    async def send_direct(self, user_id: int, text: str) -> None:
        try:
            user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)
            await user.send(text)
        except discord.HTTPException:
            logger.warning("Unable to send private message to user %d", user_id, exc_info=True)


class DiscordServerDirectory:
    """:class:`~emojistats.engine.roster.ServerDirectory` over the Discord HTTP API."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    async def fetch_servers(self) -> list[ServerInfo]:
        return [server_info(g, partial=True) async for g in self.bot.fetch_guilds(limit=None)]

    async def fetch_server(self, server_id: int) -> ServerInfo:
        guild = await self.bot.fetch_guild(server_id)
        channels = await guild.fetch_channels()
        return server_info(guild, channels)


# ---------------------------------------------------------------------------
# Bot
# ---------------------------------------------------------------------------
class EmojiStatsBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`EmojiStatsConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    roster:
        The roster cache, already seeded with the Unicode emoji catalogue.
    admin_password:
        Password for the ``auth`` command (``BOT_ADMIN_PASSWORD``).
    """

    def __init__(
        self,
        cfg: EmojiStatsConfig,
        engine: Engine,
        roster: RosterCache,
        admin_password: str | None = None,
    ) -> None:
        # Privileged intents (must enable in Developer Portal):
        #   MESSAGE_CONTENT — emoji counting needs the message text
        #   GUILD_MEMBERS   — display-name updates for top-user listings
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        intents.presences = False

        activity = discord.Game(cfg.status_text) if cfg.status_text else None

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            activity=activity,
            description=cfg.bot_name,
            help_command=None,
        )

        self.cfg = cfg
        self.engine = engine
        self.roster = roster
        self.dispatcher = Dispatcher(
            cfg,
            engine,
            roster,
            DiscordReplier(self),
            DiscordServerDirectory(self),
            admin_password=admin_password,
            on_quit=self.close,
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions.  A broken Cog is logged and skipped."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None  # guaranteed after on_ready
        self.dispatcher.bot_user_id = self.user.id
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

    async def on_message(self, message: discord.Message) -> None:
        """Disable prefix-command processing; the stats Cog handles messages."""
        return

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        await super().close()
