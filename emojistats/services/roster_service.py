"""
emojistats.services.roster_service — Roster Persistence
========================================================

Mirrors the in-memory :class:`~emojistats.engine.roster.RosterCache` into
the ``servers`` / ``channels`` / ``emoji`` / ``users`` tables so ranking
queries can join usage rows to names and servers.

All writes are upserts keyed by Discord snowflake, so replaying the same
gateway event is harmless.  Emoji are soft-deleted: a custom emoji missing
from a freshly reported roster gets ``is_active = FALSE`` and keeps its row.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine, delete, select, text, update
from sqlalchemy.orm import Session

from emojistats.database.engine import get_session
from emojistats.database.models import Channel, Emoji as EmojiRow, Server
from emojistats.engine.emoji import CustomEmoji, Emoji, UnicodeEmoji
from emojistats.engine.events import ChannelInfo, ChannelKind, EmojiInfo, ServerInfo, UserInfo

logger = logging.getLogger(__name__)

_UPSERT_CUSTOM_EMOJI = text("""
    INSERT INTO emoji (custom_id, server_id, name, is_custom, is_animated, is_active)
    VALUES (:custom_id, :server_id, :name, TRUE, :animated, TRUE)
    ON CONFLICT (custom_id) DO UPDATE
        SET server_id = excluded.server_id,
            name = excluded.name,
            is_animated = excluded.is_animated,
            is_active = TRUE
""")

_INSERT_CUSTOM_EMOJI_IF_MISSING = text("""
    INSERT INTO emoji (custom_id, server_id, name, is_custom, is_animated, is_active)
    VALUES (:custom_id, :server_id, :name, TRUE, :animated, :active)
    ON CONFLICT (custom_id) DO NOTHING
""")

_INSERT_UNICODE_EMOJI_IF_MISSING = text("""
    INSERT INTO emoji (glyphs, name, is_custom, is_animated, is_active)
    VALUES (:glyphs, :glyphs, FALSE, FALSE, TRUE)
    ON CONFLICT (glyphs) DO NOTHING
""")

_UPSERT_USER = text("""
    INSERT INTO users (id, name, discriminator)
    VALUES (:id, :name, :discriminator)
    ON CONFLICT (id) DO UPDATE
        SET name = excluded.name,
            discriminator = excluded.discriminator
""")


# ---------------------------------------------------------------------------
# Servers
# ---------------------------------------------------------------------------
def save_server(engine: Engine, server: ServerInfo) -> dict:
    """Upsert a server, its text channels, and (if reported) its emoji.

    Returns ``{"channels": N, "emoji_upserted": M, "emoji_deactivated": K}``.
    """
    with get_session(engine) as session:
        row = session.get(Server, server.id)
        if row is None:
            session.add(Server(id=server.id, name=server.name, icon=server.icon))
        else:
            row.name = server.name
            row.icon = server.icon

        channels = 0
        for channel in server.channels or []:
            if _upsert_channel(session, channel):
                channels += 1

        upserted = deactivated = 0
        if server.emoji is not None:
            upserted, deactivated = _sync_server_emoji(session, server.id, server.emoji)

    logger.debug(
        "Saved server %s (%d): %d channels, %d emoji upserted, %d deactivated",
        server.name, server.id, channels, upserted, deactivated,
    )
    return {
        "channels": channels,
        "emoji_upserted": upserted,
        "emoji_deactivated": deactivated,
    }


def remove_server(engine: Engine, server_id: int) -> bool:
    """Delete the ``servers`` row.  Channel and usage rows are kept."""
    with get_session(engine) as session:
        result = session.execute(delete(Server).where(Server.id == server_id))
        return bool(result.rowcount)


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------
def save_channel(engine: Engine, channel: ChannelInfo) -> bool:
    """Upsert a text or private channel.  Other kinds are ignored."""
    with get_session(engine) as session:
        return _upsert_channel(session, channel)


def _upsert_channel(session: Session, channel: ChannelInfo) -> bool:
    if channel.kind not in (ChannelKind.TEXT, ChannelKind.PRIVATE):
        return False
    row = session.get(Channel, channel.id)
    if row is None:
        session.add(Channel(
            id=channel.id,
            server_id=channel.server_id,
            name=channel.name,
            kind=channel.kind.value,
        ))
    else:
        row.server_id = channel.server_id
        row.name = channel.name
        row.kind = channel.kind.value
    return True


# ---------------------------------------------------------------------------
# Emoji
# ---------------------------------------------------------------------------
def sync_server_emoji(engine: Engine, server_id: int, reported: list[EmojiInfo]) -> tuple[int, int]:
    """Persist a full emoji roster report.  Returns ``(upserted, deactivated)``."""
    with get_session(engine) as session:
        return _sync_server_emoji(session, server_id, reported)


def _sync_server_emoji(
    session: Session, server_id: int, reported: list[EmojiInfo],
) -> tuple[int, int]:
    for info in reported:
        session.execute(_UPSERT_CUSTOM_EMOJI, {
            "custom_id": info.id,
            "server_id": server_id,
            "name": info.name,
            "animated": info.animated,
        })

    stale = update(EmojiRow).where(
        EmojiRow.server_id == server_id,
        EmojiRow.is_custom.is_(True),
        EmojiRow.is_active.is_(True),
    )
    reported_ids = [info.id for info in reported]
    if reported_ids:
        stale = stale.where(EmojiRow.custom_id.notin_(reported_ids))
    result = session.execute(stale.values(is_active=False))
    return len(reported), result.rowcount or 0


def ensure_emoji_ids(session: Session, emoji: Iterable[Emoji]) -> dict[str, int]:
    """Map each emoji's ``key`` to its ``emoji.id`` row, creating rows as needed.

    Custom emoji normally exist already (written by :func:`save_server`);
    if one does not, it is inserted with the state the roster reported.
    Existing rows are never modified here.
    """
    custom: dict[int, CustomEmoji] = {}
    unicode: dict[str, UnicodeEmoji] = {}
    for e in emoji:
        if isinstance(e, CustomEmoji):
            custom[e.id] = e
        else:
            unicode[e.glyphs] = e

    ids: dict[str, int] = {}

    if custom:
        for e in custom.values():
            session.execute(_INSERT_CUSTOM_EMOJI_IF_MISSING, {
                "custom_id": e.id,
                "server_id": e.server_id,
                "name": e.name,
                "animated": e.is_animated,
                "active": e.is_active,
            })
        rows = session.execute(
            select(EmojiRow.id, EmojiRow.custom_id)
            .where(EmojiRow.custom_id.in_(list(custom)))
        ).all()
        for row in rows:
            ids[custom[row.custom_id].key] = row.id

    if unicode:
        for glyphs in unicode:
            session.execute(_INSERT_UNICODE_EMOJI_IF_MISSING, {"glyphs": glyphs})
        rows = session.execute(
            select(EmojiRow.id, EmojiRow.glyphs)
            .where(EmojiRow.glyphs.in_(list(unicode)))
        ).all()
        for row in rows:
            ids[unicode[row.glyphs].key] = row.id

    return ids


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def save_user(engine: Engine, user: UserInfo) -> None:
    """Insert or refresh a user's display name."""
    with get_session(engine) as session:
        session.execute(_UPSERT_USER, {
            "id": user.id,
            "name": user.name,
            "discriminator": user.discriminator,
        })
