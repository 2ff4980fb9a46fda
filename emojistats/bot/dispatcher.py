"""
emojistats.bot.dispatcher — Message & Reaction Routing
=======================================================

**Why this file exists:**
Every chat message ends up here, already translated by the cogs into a
:class:`~emojistats.engine.events.MessageInfo`.  The dispatcher decides
whether the message is a command for the bot or ordinary chatter whose
emoji should be counted, and it owns the whole command surface.

It never touches discord.py types: replies go out through a
:class:`Replier` and unknown channels are looked up through a
:class:`~emojistats.engine.roster.ServerDirectory`, so tests can drive the
dispatcher with plain fakes.

Routing for one message:

1. A channel the roster has never heard of triggers exactly one refresh.
2. System messages and messages written by bots are ignored.
3. A message starting with ``@Bot <command>``, or any message in a private
   channel, is a command.
4. Everything else is recorded by the usage service.
"""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from emojistats import __version__
from emojistats.config import EmojiStatsConfig
from emojistats.constants import (
    DEFAULT_ABOUT_TEXT,
    DEFAULT_HELP_TEXT,
    EARTH_EMOJI,
    RESPONSE_AUTH_REQUIRED,
    RESPONSE_STATS_ERR,
    RESPONSE_UNKNOWN_COMMAND,
    RESPONSE_USE_COMMAND_IN_PUBLIC_CHANNEL,
    UNKNOWN_USER_NAME,
    plural,
)
from emojistats.database.engine import run_db
from emojistats.engine.emoji import Emoji, UnicodeEmoji
from emojistats.engine.events import MessageInfo, ReactionInfo
from emojistats.engine.parser import (
    ChannelRef,
    CustomEmojiRef,
    UserRef,
    classify,
    extract_preceding_ref,
    split_first_word,
    strip_command_noise,
)
from emojistats.engine.roster import RosterCache, ServerDirectory
from emojistats.services import ranking_service as ranking
from emojistats.services.embeds import StatsReply, emoji_usage_lines, top_users_lines, total_header
from emojistats.services.ranking_service import ChannelScope, GlobalScope, ServerScope, UserScope
from emojistats.services.roster_service import save_server, save_user
from emojistats.services.usage_service import record_message, record_reaction

logger = logging.getLogger(__name__)


class Replier(Protocol):
    """Outbound side of the dispatcher."""

    async def send_text(self, channel_id: int, text: str) -> None: ...

    async def send_stats(self, channel_id: int, reply: StatsReply) -> None: ...

    async def send_direct(self, user_id: int, text: str) -> None:
        """Send a private message to *user_id*."""
        ...


CommandHandler = Callable[[MessageInfo, str], Awaitable[None]]


def format_uptime(since: datetime, now: datetime | None = None) -> str:
    """``3d 4h 12m`` style duration between *since* and *now*."""
    now = now or datetime.now(timezone.utc)
    minutes = max(int((now - since).total_seconds()) // 60, 0)
    days, minutes = divmod(minutes, 24 * 60)
    hours, minutes = divmod(minutes, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    parts.append(f"{minutes}m")
    return " ".join(parts)


class Dispatcher:
    """Routes messages and reactions to the usage recorder or a command.

    Parameters
    ----------
    cfg:
        Soft settings (bot name, help/about text, feedback file).
    engine:
        SQLAlchemy engine; every query runs on a worker thread via ``run_db``.
    roster:
        The shared :class:`RosterCache`.
    replier / directory:
        Outbound messages and upstream server lookups.
    admin_password:
        Password for the ``auth`` command.  ``None`` disables admin login.
    on_quit:
        Awaited after an administrator issues ``quit``.
    """

    def __init__(
        self,
        cfg: EmojiStatsConfig,
        engine: Engine,
        roster: RosterCache,
        replier: Replier,
        directory: ServerDirectory,
        *,
        admin_password: str | None = None,
        on_quit: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.cfg = cfg
        self.engine = engine
        self.roster = roster
        self.replier = replier
        self.directory = directory
        self.admin_password = admin_password or None
        self.on_quit = on_quit

        # Set once the gateway tells us who we are
        self.bot_user_id: int | None = None
        self.started_at = datetime.now(timezone.utc)
        self.admins: set[int] = set()

        self._commands: dict[str, CommandHandler] = {
            "help": self._cmd_help,
            "commands": self._cmd_help,
            "about": self._cmd_about,
            "info": self._cmd_about,
            "global": self._cmd_global,
            "g": self._cmd_global,
            "server": self._cmd_server,
            "s": self._cmd_server,
            "custom": self._cmd_custom,
            "u": self._cmd_custom,
            "least-used": self._cmd_least_used,
            "l": self._cmd_least_used,
            "channel": self._cmd_channel,
            "c": self._cmd_channel,
            "me": self._cmd_me,
            "m": self._cmd_me,
            "user": self._cmd_user,
            "auth": self._cmd_auth,
            "botinfo": self._cmd_botinfo,
            "quit": self._cmd_quit,
            "feedback": self._cmd_feedback,
        }

    # -----------------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------------
    async def handle_message(self, message: MessageInfo) -> None:
        if self.roster.needs_resolution(message.channel_id):
            await self._resolve_channel(message.channel_id)

        if not message.is_regular or message.author_is_bot:
            return

        ref, rest = extract_preceding_ref(message.content)
        if (
            isinstance(ref, UserRef)
            and self.bot_user_id is not None
            and ref.id == self.bot_user_id
        ):
            await self.process_command(message, rest)
            return

        if self.roster.is_private_channel(message.channel_id):
            await self.process_command(message, message.content)
            return

        await self._record(message)

    async def handle_reaction(self, reaction: ReactionInfo) -> None:
        """Record a reaction made in a known public text channel."""
        if not self.roster.is_text_channel(reaction.channel_id):
            return

        emoji: Emoji
        if reaction.custom_emoji_id is not None:
            custom = self.roster.get_custom_emoji(reaction.custom_emoji_id)
            if custom is None:
                return
            emoji = custom
        elif reaction.unicode_emoji:
            emoji = UnicodeEmoji(reaction.unicode_emoji)
        else:
            return

        try:
            await run_db(record_reaction, self.engine, reaction, emoji)
        except SQLAlchemyError:
            logger.warning(
                "Error recording reaction on message %d", reaction.message_id,
                exc_info=True,
            )

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------
    async def _resolve_channel(self, channel_id: int) -> None:
        result = await self.roster.resolve_unknown_channel(channel_id, self.directory)
        for server in result.refreshed:
            try:
                await run_db(save_server, self.engine, server)
            except SQLAlchemyError:
                logger.warning(
                    "Unable to persist refreshed server %s (%d)",
                    server.name, server.id, exc_info=True,
                )

    async def _record(self, message: MessageInfo) -> None:
        server_id = self.roster.server_id_for_channel(message.channel_id)
        emoji = self.roster.active_emoji(server_id)
        try:
            result = await run_db(record_message, self.engine, message, emoji)
            if result.total and not result.duplicate:
                await run_db(save_user, self.engine, message.author)
        except SQLAlchemyError:
            logger.warning(
                "Error recording emoji usage for message %d", message.id,
                exc_info=True,
            )

    async def _respond(self, message: MessageInfo, text: str) -> None:
        await self.replier.send_text(message.channel_id, f"**{message.author.name}**: {text}")

    async def _send_stats(self, message: MessageInfo, reply: StatsReply) -> None:
        reply.header = f"**{message.author.name}**"
        await self.replier.send_stats(message.channel_id, reply)

    async def _total(self, func, *args, **kwargs) -> int | None:
        """Run a count query for a field header; ``None`` on storage errors."""
        try:
            return await run_db(func, self.engine, *args, **kwargs)
        except SQLAlchemyError:
            logger.warning("Unable to retrieve %s", func.__name__, exc_info=True)
            return None

    def _public_server(self, message: MessageInfo) -> int | None:
        return self.roster.server_id_for_channel(message.channel_id)

    async def _require_server(self, message: MessageInfo) -> int | None:
        """Server of the message's channel, replying with an error when there is none."""
        if self.roster.is_private_channel(message.channel_id):
            await self._respond(message, RESPONSE_USE_COMMAND_IN_PUBLIC_CHANNEL)
            return None
        server_id = self._public_server(message)
        if server_id is None:
            logger.warning("Unknown public text channel (%d)", message.channel_id)
            await self._respond(message, RESPONSE_STATS_ERR)
        return server_id

    def _is_admin(self, message: MessageInfo) -> bool:
        return message.author.id in self.admins

    # -----------------------------------------------------------------------
    # Command routing
    # -----------------------------------------------------------------------
    async def process_command(self, message: MessageInfo, text: str) -> None:
        word, args = split_first_word(strip_command_noise(text))
        if not word:
            await self._cmd_help(message, "")
            return

        handler = self._commands.get(word.lower())
        try:
            if handler is not None:
                await handler(message, args)
            else:
                await self._free_form(message, word)
        except SQLAlchemyError:
            logger.exception(
                "Storage error while handling command %r from user %d",
                word, message.author.id,
            )
            await self._respond(message, RESPONSE_STATS_ERR)

    async def _free_form(self, message: MessageInfo, word: str) -> None:
        """``<@user>``, ``<#channel>`` or an emoji given in place of a command."""
        ref = classify(word)
        if isinstance(ref, UserRef):
            await self._stats_user(message, ref.id)
            return
        if isinstance(ref, ChannelRef):
            await self._stats_channel(message, ref.id)
            return

        emoji: Emoji | None = None
        if isinstance(ref, CustomEmojiRef):
            emoji = self.roster.get_custom_emoji(ref.id)
        if emoji is None:
            emoji = self.roster.find_emoji_by_pattern(word)
        if emoji is not None:
            await self._stats_emoji(message, emoji)
            return

        await self._respond(message, RESPONSE_UNKNOWN_COMMAND)

    # -----------------------------------------------------------------------
    # Informational commands
    # -----------------------------------------------------------------------
    async def _cmd_help(self, message: MessageInfo, args: str) -> None:
        await self._respond(message, self.cfg.help_text or DEFAULT_HELP_TEXT)

    async def _cmd_about(self, message: MessageInfo, args: str) -> None:
        await self._respond(message, self.cfg.about_text or DEFAULT_ABOUT_TEXT)

    # -----------------------------------------------------------------------
    # Statistics commands
    # -----------------------------------------------------------------------
    async def _cmd_global(self, message: MessageInfo, args: str) -> None:
        scope = GlobalScope()
        top = await run_db(ranking.top_emoji, self.engine, scope)
        top_reactions = await run_db(ranking.top_reaction_emoji, self.engine, scope)

        if not top and not top_reactions:
            await self._respond(message, "I've never seen anyone use any emoji. :shrug:")
            return

        reply = StatsReply(title=f"Global Statistics {random.choice(EARTH_EMOJI)}")
        if top:
            reply.add_field(
                total_header("Top Emoji", await self._total(ranking.total_use_count, scope)),
                emoji_usage_lines(top),
            )
        if top_reactions:
            reply.add_field(
                total_header(
                    "Top Reaction Emoji",
                    await self._total(ranking.total_reaction_count, scope),
                ),
                emoji_usage_lines(top_reactions),
            )
        await self._send_stats(message, reply)

    async def _cmd_server(self, message: MessageInfo, args: str) -> None:
        await self._stats_server(message, custom_only=False)

    async def _cmd_custom(self, message: MessageInfo, args: str) -> None:
        await self._stats_server(message, custom_only=True)

    async def _stats_server(self, message: MessageInfo, custom_only: bool) -> None:
        server_id = await self._require_server(message)
        if server_id is None:
            return

        scope = ServerScope(server_id)
        top = await run_db(ranking.top_emoji, self.engine, scope, custom_only=custom_only)
        top_reactions = await run_db(
            ranking.top_reaction_emoji, self.engine, scope, custom_only=custom_only,
        )

        if not top and not top_reactions:
            kind = "custom emoji" if custom_only else "emoji"
            await self._respond(
                message, f"I've never seen anyone use any {kind} on this server. :shrug:",
            )
            return

        title = "Server Statistics"
        if custom_only:
            title += " (Custom Emoji)"
        reply = StatsReply(title=f"{title} :chart_with_upwards_trend:")
        if top:
            reply.add_field(
                total_header(
                    "Top Emoji",
                    await self._total(ranking.total_use_count, scope, custom_only=custom_only),
                ),
                emoji_usage_lines(top),
            )
        if top_reactions:
            reply.add_field(
                total_header(
                    "Top Reaction Emoji",
                    await self._total(ranking.total_reaction_count, scope, custom_only=custom_only),
                ),
                emoji_usage_lines(top_reactions),
            )
        # No emoji usage means no emoji users either
        if top:
            users = await run_db(ranking.top_users, self.engine, scope, custom_only=custom_only)
            reply.add_field("Top Emoji Users", top_users_lines(users))
        await self._send_stats(message, reply)

    async def _cmd_least_used(self, message: MessageInfo, args: str) -> None:
        server_id = await self._require_server(message)
        if server_id is None:
            return

        least = await run_db(ranking.least_used_custom_emoji, self.engine, server_id)
        least_reactions = await run_db(
            ranking.least_used_custom_reaction_emoji, self.engine, server_id,
        )
        if not least and not least_reactions:
            await self._respond(
                message, "It looks like there aren't any custom emoji on this server. :shrug:",
            )
            return

        reply = StatsReply(
            title="Server Statistics (Least Used Custom Emoji) :chart_with_downwards_trend:",
        )
        if least:
            reply.add_field("Emoji", emoji_usage_lines(least))
        if least_reactions:
            reply.add_field("Reactions", emoji_usage_lines(least_reactions))
        await self._send_stats(message, reply)

    async def _cmd_channel(self, message: MessageInfo, args: str) -> None:
        target, _ = split_first_word(args)
        ref = classify(target)
        channel_id = ref.id if isinstance(ref, ChannelRef) else None
        await self._stats_channel(message, channel_id)

    async def _stats_channel(self, message: MessageInfo, channel_id: int | None) -> None:
        if self.roster.is_private_channel(message.channel_id):
            await self._respond(message, RESPONSE_USE_COMMAND_IN_PUBLIC_CHANNEL)
            return

        channel_id = channel_id or message.channel_id
        name = self.roster.channel_name(channel_id)
        if name is not None:
            title = f"Statistics for #{name} :chart_with_upwards_trend:"
        else:
            title = "Channel statistics :chart_with_upwards_trend:"

        scope = ChannelScope(channel_id)
        top = await run_db(ranking.top_emoji, self.engine, scope)
        if not top:
            await self._respond(
                message, "I've never seen anyone use any emoji in that channel. :shrug:",
            )
            return

        users = await run_db(ranking.top_users, self.engine, scope)
        reply = StatsReply(title=title)
        reply.add_field(
            total_header("Top Emoji", await self._total(ranking.total_use_count, scope)),
            emoji_usage_lines(top),
        )
        reply.add_field("Top Emoji Users", top_users_lines(users))
        await self._send_stats(message, reply)

    async def _cmd_me(self, message: MessageInfo, args: str) -> None:
        await self._stats_user(message, None)

    async def _cmd_user(self, message: MessageInfo, args: str) -> None:
        target, _ = split_first_word(args)
        ref = classify(target)
        if not isinstance(ref, UserRef):
            await self._respond(message, "Please mention a user, e.g. `user @someone`.")
            return
        await self._stats_user(message, ref.id)

    async def _stats_user(self, message: MessageInfo, user_id: int | None) -> None:
        user_id = user_id or message.author.id
        if self.bot_user_id is not None and user_id == self.bot_user_id:
            await self._respond(message, "You're so silly! :smile:")
            return

        is_self = user_id == message.author.id
        # Custom emoji only make sense on the server the question was asked in
        server_id = self._public_server(message)
        scope = UserScope(user_id, server_id)

        try:
            user_name = await run_db(ranking.get_user_name, self.engine, user_id)
        except SQLAlchemyError:
            logger.debug("Error retrieving user name for user %d", user_id, exc_info=True)
            user_name = None
        user_name = user_name or UNKNOWN_USER_NAME

        top = await run_db(ranking.top_emoji, self.engine, scope)
        if not top:
            await self._respond(message, f"I've never seen <@{user_id}> use any emoji. :shrug:")
            return

        total = await self._total(ranking.total_use_count, scope)
        if total is None:
            header = "Your top emoji:" if is_self else f"{user_name}'s top emoji:"
        else:
            who, verb = ("you", "have") if is_self else (user_name, "has")
            where = " on this server" if server_id is not None else ""
            header = f"All in all, {who} {verb} used {total} emoji{where}:"

        title = (
            "Your favourite emoji :two_hearts:" if is_self
            else f"{user_name}'s favourite emoji :two_hearts:"
        )
        reply = StatsReply(title=title)
        reply.add_field(header, emoji_usage_lines(top), inline=False)
        await self._send_stats(message, reply)

    async def _stats_emoji(self, message: MessageInfo, emoji: Emoji) -> None:
        count = await run_db(ranking.emoji_use_count, self.engine, emoji)
        if count > 0:
            await self._respond(
                message, f"{emoji.pattern} has been used {count} time{plural(count)}.",
            )
        else:
            await self._respond(message, f"I've never seen anyone use {emoji.pattern}.")

    # -----------------------------------------------------------------------
    # Administration
    # -----------------------------------------------------------------------
    async def _cmd_auth(self, message: MessageInfo, args: str) -> None:
        password = args.strip()
        if self._is_admin(message):
            await self._respond(
                message, "You are already authenticated as a bot administrator. :unlock:",
            )
        elif not self.roster.is_private_channel(message.channel_id):
            await self._respond(message, "Please use this command in a private message. :lock:")
        elif not password:
            await self._respond(message, "Please enter the bot administration password. :lock:")
        elif self.admin_password is not None and secrets.compare_digest(
            password.encode("utf-8"), self.admin_password.encode("utf-8"),
        ):
            self.admins.add(message.author.id)
            logger.info(
                "User %s (%d) authenticated as bot administrator",
                message.author.name, message.author.id,
            )
            await self._respond(message, "Authenticated successfully. :white_check_mark:")
        else:
            logger.warning(
                "Failed admin authentication attempt by %s (%d)",
                message.author.name, message.author.id,
            )
            await self._respond(message, "Unable to authenticate. :x:")

    async def _cmd_botinfo(self, message: MessageInfo, args: str) -> None:
        if not self._is_admin(message):
            await self._respond(message, RESPONSE_AUTH_REQUIRED)
            return
        servers = self.roster.server_count
        channels = self.roster.text_channel_count
        await self._respond(
            message,
            f"**{self.cfg.bot_name} version {__version__}**\n"
            f"Online for {format_uptime(self.started_at)} on {servers} server{plural(servers)} "
            f"comprising {channels} text channel{plural(channels)}. :clock2:",
        )

    async def _cmd_quit(self, message: MessageInfo, args: str) -> None:
        if not self._is_admin(message):
            await self._respond(message, RESPONSE_AUTH_REQUIRED)
            return
        await self._respond(message, "Quitting. :octagonal_sign:")
        logger.info("Quit command issued by %s", message.author.name)
        if self.on_quit is not None:
            await self.on_quit()

    async def _cmd_feedback(self, message: MessageInfo, args: str) -> None:
        feedback = args.strip()
        if not feedback:
            await self._respond(message, "Please include your feedback after the command.")
            return

        await self._respond(message, "Thanks. Your feedback has been logged for review. :smiley:")

        author = message.author
        tag = f"{author.name}#{author.discriminator}"
        # Continuation lines are indented under the author tag
        entry = "Feedback from {0}: {1}\n".format(
            tag, feedback.replace("\n", f"\n              {tag}> "),
        )
        logger.info("%s", entry.rstrip())

        if self.cfg.feedback_file:
            try:
                await asyncio.to_thread(_append_line, self.cfg.feedback_file, entry)
            except OSError:
                logger.warning(
                    "Error writing feedback to %s", self.cfg.feedback_file, exc_info=True,
                )

        forwarded = f"Feedback from {tag}:\n```\n{feedback}```"
        for admin_id in sorted(self.admins):
            try:
                await self.replier.send_direct(admin_id, forwarded)
            except Exception:
                logger.warning(
                    "Unable to forward feedback to bot administrator %d", admin_id,
                    exc_info=True,
                )


def _append_line(path: str, line: str) -> None:
    with open(Path(path), "a", encoding="utf-8") as fh:
        fh.write(line)
