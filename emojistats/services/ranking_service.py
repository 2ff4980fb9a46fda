"""
emojistats.services.ranking_service — Top-N / Least-N Queries
==============================================================

Read-only aggregation over ``emoji_usage``, ``message_stats`` and
``reactions``.

Every ranking is deterministic: totals sort descending (ascending for the
least-used listings) and ties fall back to the ``emoji.id`` surrogate key,
so two identical queries over identical rows always agree.

Scopes
------
* :class:`GlobalScope` — every channel; Unicode emoji only by default,
  since custom emoji are meaningless outside their own server.
* :class:`ServerScope` — channels belonging to one server.
* :class:`ChannelScope` — a single channel.
* :class:`UserScope` — one user's usage; without a ``server_id`` only
  Unicode emoji count (the user's global favourites).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from sqlalchemy import Engine, Select, func, select

from emojistats.constants import TOP_N, UNKNOWN_USER_NAME
from emojistats.database.engine import get_session
from emojistats.database.models import Channel, Emoji as EmojiRow, EmojiUsage, MessageStat, Reaction, User
from emojistats.engine.emoji import CustomEmoji, Emoji, UnicodeEmoji

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Scopes & results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GlobalScope:
    unicode_only: bool = True


@dataclass(frozen=True, slots=True)
class ServerScope:
    server_id: int


@dataclass(frozen=True, slots=True)
class ChannelScope:
    channel_id: int


@dataclass(frozen=True, slots=True)
class UserScope:
    user_id: int
    server_id: int | None = None


Scope = Union[GlobalScope, ServerScope, ChannelScope, UserScope]


@dataclass(frozen=True, slots=True)
class EmojiCount:
    emoji: Emoji
    total: int


@dataclass(frozen=True, slots=True)
class UserCount:
    user_id: int
    name: str
    total: int


def _to_emoji(row) -> Emoji:
    """Rebuild a domain emoji from an ``emoji`` table row."""
    if row.is_custom:
        return CustomEmoji(
            server_id=row.server_id,
            id=row.custom_id,
            name=row.name,
            is_animated=bool(row.is_animated),
            is_active=bool(row.is_active),
        )
    return UnicodeEmoji(row.glyphs)


_EMOJI_COLUMNS = (
    EmojiRow.id,
    EmojiRow.custom_id,
    EmojiRow.glyphs,
    EmojiRow.server_id,
    EmojiRow.name,
    EmojiRow.is_custom,
    EmojiRow.is_animated,
    EmojiRow.is_active,
)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------
def _scoped(stmt: Select, scope: Scope, source, custom_only: bool) -> Select:
    """Restrict *stmt* (already joined to ``emoji``) to *scope*.

    *source* is the fact table being aggregated (``EmojiUsage`` or
    ``Reaction``); both carry ``channel_id`` and ``user_id``.
    """
    if isinstance(scope, GlobalScope):
        if scope.unicode_only and not custom_only:
            stmt = stmt.where(EmojiRow.is_custom.is_(False))
    elif isinstance(scope, ServerScope):
        stmt = stmt.join(Channel, Channel.id == source.channel_id).where(
            Channel.server_id == scope.server_id
        )
    elif isinstance(scope, ChannelScope):
        stmt = stmt.where(source.channel_id == scope.channel_id)
    elif isinstance(scope, UserScope):
        stmt = stmt.where(source.user_id == scope.user_id)
        if scope.server_id is None:
            stmt = stmt.where(EmojiRow.is_custom.is_(False))
        else:
            stmt = stmt.join(Channel, Channel.id == source.channel_id).where(
                Channel.server_id == scope.server_id
            )
    else:
        raise TypeError(f"Unsupported scope: {scope!r}")

    if custom_only:
        stmt = stmt.where(EmojiRow.is_custom.is_(True))
    return stmt


def _restricts_emoji_kind(scope: Scope) -> bool:
    """True if *scope* only counts Unicode emoji."""
    if isinstance(scope, GlobalScope):
        return scope.unicode_only
    if isinstance(scope, UserScope):
        return scope.server_id is None
    return False


# ---------------------------------------------------------------------------
# Emoji rankings
# ---------------------------------------------------------------------------
def _top(engine: Engine, source, total_expr, scope: Scope, limit: int, custom_only: bool) -> list[EmojiCount]:
    total = total_expr.label("total")
    stmt = (
        select(*_EMOJI_COLUMNS, total)
        .select_from(source)
        .join(EmojiRow, EmojiRow.id == source.emoji_id)
    )
    stmt = _scoped(stmt, scope, source, custom_only)
    stmt = (
        stmt.group_by(*_EMOJI_COLUMNS)
        .having(total_expr > 0)
        .order_by(total.desc(), EmojiRow.id.asc())
        .limit(limit)
    )
    with get_session(engine) as session:
        rows = session.execute(stmt).all()
    return [EmojiCount(emoji=_to_emoji(r), total=int(r.total)) for r in rows]


def top_emoji(
    engine: Engine, scope: Scope, limit: int = TOP_N, custom_only: bool = False,
) -> list[EmojiCount]:
    """Most used emoji in *scope*, highest first."""
    return _top(engine, EmojiUsage, func.sum(EmojiUsage.use_count), scope, limit, custom_only)


def top_reaction_emoji(
    engine: Engine, scope: Scope, limit: int = TOP_N, custom_only: bool = False,
) -> list[EmojiCount]:
    """Most used reaction emoji in *scope*, highest first."""
    return _top(engine, Reaction, func.count(), scope, limit, custom_only)


def _least_used(engine: Engine, totals, server_id: int, limit: int) -> list[EmojiCount]:
    total = func.coalesce(totals.c.total, 0).label("total")
    stmt = (
        select(*_EMOJI_COLUMNS, total)
        .select_from(EmojiRow)
        .outerjoin(totals, totals.c.emoji_id == EmojiRow.id)
        .where(
            EmojiRow.server_id == server_id,
            EmojiRow.is_custom.is_(True),
            EmojiRow.is_active.is_(True),
        )
        .order_by(total.asc(), EmojiRow.id.asc())
        .limit(limit)
    )
    with get_session(engine) as session:
        rows = session.execute(stmt).all()
    return [EmojiCount(emoji=_to_emoji(r), total=int(r.total)) for r in rows]


def least_used_custom_emoji(engine: Engine, server_id: int, limit: int = TOP_N) -> list[EmojiCount]:
    """Active custom emoji of *server_id*, least used first.  Unused ones count as 0."""
    totals = (
        select(EmojiUsage.emoji_id, func.sum(EmojiUsage.use_count).label("total"))
        .group_by(EmojiUsage.emoji_id)
        .subquery()
    )
    return _least_used(engine, totals, server_id, limit)


def least_used_custom_reaction_emoji(
    engine: Engine, server_id: int, limit: int = TOP_N,
) -> list[EmojiCount]:
    totals = (
        select(Reaction.emoji_id, func.count().label("total"))
        .group_by(Reaction.emoji_id)
        .subquery()
    )
    return _least_used(engine, totals, server_id, limit)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------
def total_use_count(engine: Engine, scope: Scope, custom_only: bool = False) -> int:
    stmt = (
        select(func.coalesce(func.sum(EmojiUsage.use_count), 0))
        .select_from(EmojiUsage)
        .join(EmojiRow, EmojiRow.id == EmojiUsage.emoji_id)
    )
    stmt = _scoped(stmt, scope, EmojiUsage, custom_only)
    with get_session(engine) as session:
        return int(session.execute(stmt).scalar_one())


def total_reaction_count(engine: Engine, scope: Scope, custom_only: bool = False) -> int:
    stmt = (
        select(func.count())
        .select_from(Reaction)
        .join(EmojiRow, EmojiRow.id == Reaction.emoji_id)
    )
    stmt = _scoped(stmt, scope, Reaction, custom_only)
    with get_session(engine) as session:
        return int(session.execute(stmt).scalar_one())


def emoji_use_count(engine: Engine, emoji: Emoji) -> int:
    """All-time number of times *emoji* has been used in messages."""
    if isinstance(emoji, CustomEmoji):
        match = EmojiRow.custom_id == emoji.id
    else:
        match = EmojiRow.glyphs == emoji.glyphs
    stmt = (
        select(func.coalesce(func.sum(EmojiUsage.use_count), 0))
        .select_from(EmojiUsage)
        .join(EmojiRow, EmojiRow.id == EmojiUsage.emoji_id)
        .where(match)
    )
    with get_session(engine) as session:
        return int(session.execute(stmt).scalar_one())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def top_users(
    engine: Engine, scope: Scope, limit: int = TOP_N, custom_only: bool = False,
) -> list[UserCount]:
    """Users who used the most emoji in *scope*.  Users with zero are omitted.

    Plain listings aggregate ``message_stats.emoji_count``; listings
    restricted to one emoji kind aggregate the matching usage rows instead.
    """
    if custom_only or _restricts_emoji_kind(scope):
        user_col = EmojiUsage.user_id
        total_expr = func.sum(EmojiUsage.use_count)
        stmt = (
            select(user_col.label("user_id"), total_expr.label("total"))
            .select_from(EmojiUsage)
            .join(EmojiRow, EmojiRow.id == EmojiUsage.emoji_id)
        )
        stmt = _scoped(stmt, scope, EmojiUsage, custom_only)
    else:
        user_col = MessageStat.user_id
        total_expr = func.sum(MessageStat.emoji_count)
        stmt = select(user_col.label("user_id"), total_expr.label("total")).select_from(MessageStat)
        if isinstance(scope, ServerScope):
            stmt = stmt.join(Channel, Channel.id == MessageStat.channel_id).where(
                Channel.server_id == scope.server_id
            )
        elif isinstance(scope, ChannelScope):
            stmt = stmt.where(MessageStat.channel_id == scope.channel_id)
        elif isinstance(scope, UserScope):
            stmt = stmt.join(Channel, Channel.id == MessageStat.channel_id).where(
                MessageStat.user_id == scope.user_id,
                Channel.server_id == scope.server_id,
            )

    totals = (
        stmt.group_by(user_col)
        .having(total_expr > 0)
        .subquery()
    )
    ranked = (
        select(totals.c.user_id, totals.c.total, User.name)
        .select_from(totals)
        .outerjoin(User, User.id == totals.c.user_id)
        .order_by(totals.c.total.desc(), totals.c.user_id.asc())
        .limit(limit)
    )
    with get_session(engine) as session:
        rows = session.execute(ranked).all()
    return [
        UserCount(user_id=r.user_id, name=r.name or UNKNOWN_USER_NAME, total=int(r.total))
        for r in rows
    ]


def get_user_name(engine: Engine, user_id: int) -> str | None:
    with get_session(engine) as session:
        return session.execute(
            select(User.name).where(User.id == user_id)
        ).scalar_one_or_none()
