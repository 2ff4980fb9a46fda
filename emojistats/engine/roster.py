"""
emojistats.engine.roster — In-Memory Server / Channel / Emoji Roster
=====================================================================

The roster is the bot's current belief about:

* which servers it is in,
* which text channels and private (DM) channels exist,
* which custom emoji are currently valid on each server, and
* which Unicode emoji it should look for in messages.

It is mutated only by gateway notifications (``on_*`` methods) and by the
one-shot :meth:`RosterCache.resolve_unknown_channel` refresh.  Persistence
is *not* handled here — callers hand the same :class:`ServerInfo` /
:class:`ChannelInfo` to :mod:`emojistats.services.roster_service`.

Custom emoji live in an arena keyed by their immutable snowflake.  An emoji
that vanishes from its server's roster is flagged inactive instead of being
removed, so usage rows recorded while it existed still resolve to a name.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from emojistats.engine.emoji import CustomEmoji, Emoji, UnicodeEmoji
from emojistats.engine.events import ChannelInfo, ChannelKind, EmojiInfo, ServerInfo

logger = logging.getLogger(__name__)

__all__ = ["RosterCache", "ServerDirectory", "Resolution"]


class ServerDirectory(Protocol):
    """Upstream lookup used when a message arrives from an unknown channel."""

    async def fetch_servers(self) -> list[ServerInfo]:
        """Return every server the bot belongs to (channels may be ``None``)."""
        ...

    async def fetch_server(self, server_id: int) -> ServerInfo:
        """Return one server with its channels and emoji populated."""
        ...


@dataclass
class Resolution:
    """Outcome of :meth:`RosterCache.resolve_unknown_channel`."""
    resolved: bool
    refreshed: list[ServerInfo] = field(default_factory=list)


class RosterCache:
    """Thread-safe roster of servers, channels, and emoji.

    Writers hold ``_lock`` for the whole mutation; readers get copies, so a
    worker thread counting emoji never sees a half-applied reconcile.

    Usage:
        roster = RosterCache()
        roster.register_unicode_emoji(UNICODE_EMOJI)
        roster.on_server_seen(server_info)

        emoji = roster.active_emoji(server_id)
        if roster.needs_resolution(channel_id):
            await roster.resolve_unknown_channel(channel_id, directory)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        # server_id → ServerInfo (basic fields only; channels/emoji live below)
        self._servers: dict[int, ServerInfo] = {}
        # channel_id → ChannelInfo
        self._text_channels: dict[int, ChannelInfo] = {}
        self._private_channels: dict[int, ChannelInfo] = {}
        # Channels that stayed unknown after one refresh attempt
        self._unknown_channels: set[int] = set()
        # channel_id → refresh in flight for it, awaited by later callers
        self._pending: dict[int, asyncio.Future[bool]] = {}

        # custom emoji snowflake → CustomEmoji (active and inactive)
        self._custom_emoji: dict[int, CustomEmoji] = {}
        # glyph sequence → UnicodeEmoji
        self._unicode_emoji: dict[str, UnicodeEmoji] = {}

    # -------------------------------------------------------------------
    # Servers
    # -------------------------------------------------------------------
    def on_server_seen(self, server: ServerInfo) -> list[CustomEmoji]:
        """Upsert *server*, its text channels, and its emoji roster.

        Returns the custom emoji whose state changed (see
        :meth:`reconcile_emoji`).
        """
        with self._lock:
            if server.id not in self._servers:
                logger.debug("Adding new server %s (%d)", server.name, server.id)
            self._servers[server.id] = ServerInfo(
                id=server.id, name=server.name, icon=server.icon,
            )
            for channel in server.channels or []:
                self._add_channel(channel)

        if server.emoji is None:
            return []
        return self.reconcile_emoji(server.id, server.emoji)

    def on_server_updated(self, server: ServerInfo) -> list[CustomEmoji]:
        """Refresh name/icon of a known server and reconcile its emoji.

        Updates for servers not in the roster are ignored.
        """
        with self._lock:
            old = self._servers.get(server.id)
            if old is None:
                return []
            logger.debug(
                "Updating server info: %s -> %s (%d)",
                old.name, server.name, server.id,
            )
            self._servers[server.id] = ServerInfo(
                id=server.id, name=server.name, icon=server.icon,
            )

        if server.emoji is None:
            return []
        return self.reconcile_emoji(server.id, server.emoji)

    def on_server_removed(self, server_id: int) -> None:
        """Forget a server and every text channel that belonged to it."""
        with self._lock:
            if self._servers.pop(server_id, None) is None:
                return
            logger.debug("Removing server %d and all associated channels", server_id)
            self._text_channels = {
                cid: ch for cid, ch in self._text_channels.items()
                if ch.server_id != server_id
            }

    # -------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------
    def on_channel_created(self, channel: ChannelInfo) -> bool:
        """Track *channel* if it is a text or private channel.

        Returns ``False`` when the channel kind is ignored.
        """
        with self._lock:
            return self._add_channel(channel)

    def on_channel_updated(self, channel: ChannelInfo) -> bool:
        with self._lock:
            existing = self._text_channels.get(channel.id)
            if existing is not None and existing.name != channel.name:
                logger.debug(
                    "Updating existing text channel #%s -> #%s (%d)",
                    existing.name, channel.name, channel.id,
                )
            return self._add_channel(channel)

    def on_channel_deleted(self, channel: ChannelInfo) -> None:
        with self._lock:
            if channel.kind is ChannelKind.TEXT:
                if self._text_channels.pop(channel.id, None) is not None:
                    logger.debug("Removing text channel #%s (%d)", channel.name, channel.id)
            elif channel.kind is ChannelKind.PRIVATE:
                if self._private_channels.pop(channel.id, None) is not None:
                    logger.debug("Removing private channel (%d)", channel.id)

    def _add_channel(self, channel: ChannelInfo) -> bool:
        """Insert or replace a channel.  Caller holds ``_lock``."""
        if channel.kind is ChannelKind.TEXT:
            if channel.id not in self._text_channels:
                logger.debug("Adding new text channel #%s (%d)", channel.name, channel.id)
            self._text_channels[channel.id] = channel
        elif channel.kind is ChannelKind.PRIVATE:
            if channel.id not in self._private_channels:
                logger.debug("Adding new private channel (%d)", channel.id)
            self._private_channels[channel.id] = channel
        else:
            return False
        self._unknown_channels.discard(channel.id)
        return True

    # -------------------------------------------------------------------
    # Emoji
    # -------------------------------------------------------------------
    def reconcile_emoji(
        self, server_id: int, reported: Iterable[EmojiInfo],
    ) -> list[CustomEmoji]:
        """Bring *server_id*'s custom emoji in line with a full roster report.

        * Every reported emoji is upserted as active (name and animated flag
          refreshed).
        * Every previously active emoji of the server that is missing from
          *reported* is flagged inactive.  Nothing is ever deleted.

        Calling this twice with the same list is a no-op the second time.
        Returns the emoji whose stored state changed.
        """
        changed: list[CustomEmoji] = []
        with self._lock:
            reported_ids: set[int] = set()
            for info in reported:
                reported_ids.add(info.id)
                fresh = CustomEmoji(
                    server_id=server_id,
                    id=info.id,
                    name=info.name,
                    is_animated=info.animated,
                    is_active=True,
                )
                old = self._custom_emoji.get(info.id)
                if old is None or (
                    old.name, old.is_animated, old.is_active, old.server_id
                ) != (fresh.name, fresh.is_animated, True, server_id):
                    self._custom_emoji[info.id] = fresh
                    changed.append(fresh)

            for emoji_id, emoji in list(self._custom_emoji.items()):
                if (
                    emoji.server_id == server_id
                    and emoji.is_active
                    and emoji_id not in reported_ids
                ):
                    stale = emoji.deactivated()
                    self._custom_emoji[emoji_id] = stale
                    changed.append(stale)

        if changed:
            logger.debug(
                "Reconciled emoji for server %d: %d changed", server_id, len(changed),
            )
        return changed

    def register_unicode_emoji(self, glyphs: Iterable[str]) -> int:
        """Add Unicode emoji to the registry.  Returns how many were new."""
        added = 0
        with self._lock:
            for g in glyphs:
                g = g.strip()
                if g and g not in self._unicode_emoji:
                    self._unicode_emoji[g] = UnicodeEmoji(g)
                    added += 1
        return added

    def active_emoji(self, server_id: int | None) -> list[Emoji]:
        """Every Unicode emoji plus *server_id*'s active custom emoji."""
        with self._lock:
            result: list[Emoji] = list(self._unicode_emoji.values())
            if server_id is not None:
                result.extend(
                    e for e in self._custom_emoji.values()
                    if e.server_id == server_id and e.is_active
                )
        return result

    def get_custom_emoji(self, emoji_id: int) -> CustomEmoji | None:
        with self._lock:
            return self._custom_emoji.get(emoji_id)

    def find_emoji_by_pattern(self, text: str) -> Emoji | None:
        """Look up an emoji by its in-message form (``<:name:id>`` or glyphs)."""
        with self._lock:
            unicode = self._unicode_emoji.get(text)
            if unicode is not None:
                return unicode
            for emoji in self._custom_emoji.values():
                if emoji.pattern == text:
                    return emoji
        return None

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def is_known_channel(self, channel_id: int) -> bool:
        with self._lock:
            return channel_id in self._text_channels or channel_id in self._private_channels

    def is_text_channel(self, channel_id: int) -> bool:
        with self._lock:
            return channel_id in self._text_channels

    def is_private_channel(self, channel_id: int) -> bool:
        with self._lock:
            return channel_id in self._private_channels

    def is_unknown_channel(self, channel_id: int) -> bool:
        """True once a refresh failed to resolve *channel_id*."""
        with self._lock:
            return channel_id in self._unknown_channels

    def needs_resolution(self, channel_id: int) -> bool:
        """True when *channel_id* is in neither channel map nor the negative cache."""
        with self._lock:
            return not (
                channel_id in self._text_channels
                or channel_id in self._private_channels
                or channel_id in self._unknown_channels
            )

    def server_id_for_channel(self, channel_id: int) -> int | None:
        with self._lock:
            channel = self._text_channels.get(channel_id)
            return channel.server_id if channel else None

    def channel_name(self, channel_id: int) -> str | None:
        with self._lock:
            channel = self._text_channels.get(channel_id)
            return channel.name if channel else None

    def has_server(self, server_id: int) -> bool:
        with self._lock:
            return server_id in self._servers

    @property
    def server_count(self) -> int:
        with self._lock:
            return len(self._servers)

    @property
    def text_channel_count(self) -> int:
        with self._lock:
            return len(self._text_channels)

    # -------------------------------------------------------------------
    # Unknown channel resolution
    # -------------------------------------------------------------------
    async def resolve_unknown_channel(
        self, channel_id: int, directory: ServerDirectory,
    ) -> Resolution:
        """Make one attempt to learn about *channel_id*.

        1. Fetch the server list and load every server not cached yet.
        2. If the channel is still unknown, reload the servers that *were*
           cached too (their channel list may be stale).
        3. If it is still unknown, remember it in the negative cache so no
           further refreshes are attempted for it.

        Only one refresh runs per channel.  A caller arriving while one is
        in flight waits for it and gets its outcome with an empty
        ``refreshed`` list, so the refreshed servers are persisted once.

        Upstream failures are logged and leave the channel in the negative
        cache; this method never raises for them.
        """
        pending = self._pending.get(channel_id)
        if pending is not None:
            resolved = await asyncio.shield(pending)
            return Resolution(resolved=resolved)

        # Registered before the first await so concurrent messages see it
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending[channel_id] = future
        resolution = Resolution(resolved=False)
        try:
            resolution = await self._refresh_for_channel(channel_id, directory)
        finally:
            del self._pending[channel_id]
            future.set_result(resolution.resolved)
        return resolution

    async def _refresh_for_channel(
        self, channel_id: int, directory: ServerDirectory,
    ) -> Resolution:
        refreshed: list[ServerInfo] = []
        try:
            servers = await directory.fetch_servers()
        except Exception:
            logger.warning(
                "Unable to refresh server list while resolving channel %d",
                channel_id, exc_info=True,
            )
            servers = []

        new_ids: set[int] = set()
        for info in servers:
            if not self.has_server(info.id):
                new_ids.add(info.id)
                full = await self._load_server(info, directory)
                if full is not None:
                    refreshed.append(full)

        if not self.is_known_channel(channel_id):
            for info in servers:
                if info.id not in new_ids:
                    full = await self._load_server(info, directory)
                    if full is not None:
                        refreshed.append(full)

        resolved = self.is_known_channel(channel_id)
        if not resolved:
            with self._lock:
                self._unknown_channels.add(channel_id)
            logger.info("Channel %d is still unknown after refresh; ignoring it", channel_id)
        return Resolution(resolved=resolved, refreshed=refreshed)

    async def _load_server(
        self, info: ServerInfo, directory: ServerDirectory,
    ) -> ServerInfo | None:
        full = info
        if info.channels is None:
            try:
                full = await directory.fetch_server(info.id)
            except Exception:
                logger.warning(
                    "Unable to fetch channels for server %s (%d)",
                    info.name, info.id, exc_info=True,
                )
                return None
        self.on_server_seen(full)
        return full
