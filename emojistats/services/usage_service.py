"""
emojistats.services.usage_service — Idempotent Usage Recording
===============================================================

Turns a chat message into usage counters.

Pipeline for :func:`record_message`:

1. Count non-overlapping literal occurrences of every candidate emoji's
   pattern in the message body (``str.count``).
2. In **one transaction**:

   a. ``INSERT … ON CONFLICT DO NOTHING`` the ``message_stats`` row.  If no
      row was inserted the message was already recorded (gateway replay,
      backfill) and nothing else is written.
   b. Increment each ``emoji_usage`` counter with
      ``ON CONFLICT DO UPDATE SET use_count = use_count + excluded.use_count``
      — a row-level atomic increment, so concurrent messages in other
      channels never lose an update.
   c. Commit.

Because the idempotence marker and the increments commit together, a
crash mid-write loses the whole message instead of double-counting it on
replay.

:func:`record_reaction` is presence-only: the same user reacting to the
same message with the same emoji twice is stored once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import Engine, text

from emojistats.database.engine import get_session
from emojistats.engine.emoji import Emoji
from emojistats.engine.events import MessageInfo, ReactionInfo
from emojistats.services.roster_service import ensure_emoji_ids

logger = logging.getLogger(__name__)

_INSERT_MESSAGE_STAT = text("""
    INSERT INTO message_stats (message_id, channel_id, user_id, emoji_count)
    VALUES (:message_id, :channel_id, :user_id, :emoji_count)
    ON CONFLICT (message_id) DO NOTHING
""")

_INCREMENT_EMOJI_USAGE = text("""
    INSERT INTO emoji_usage (channel_id, user_id, emoji_id, use_count)
    VALUES (:channel_id, :user_id, :emoji_id, :count)
    ON CONFLICT (channel_id, user_id, emoji_id) DO UPDATE
        SET use_count = emoji_usage.use_count + excluded.use_count
""")

_INSERT_REACTION = text("""
    INSERT INTO reactions (channel_id, message_id, user_id, emoji_id)
    VALUES (:channel_id, :message_id, :user_id, :emoji_id)
    ON CONFLICT (channel_id, message_id, user_id, emoji_id) DO NOTHING
""")


@dataclass
class RecordResult:
    """What :func:`record_message` did with one message."""
    message_id: int
    total: int = 0
    counts: dict[str, int] = field(default_factory=dict)  # emoji key → count
    duplicate: bool = False


def count_emoji(content: str, emoji: Iterable[Emoji]) -> dict[Emoji, int]:
    """Count non-overlapping occurrences of each emoji's pattern in *content*.

    Only emoji that occur at least once are returned.
    """
    counts: dict[Emoji, int] = {}
    if not content:
        return counts
    for e in emoji:
        n = content.count(e.pattern)
        if n > 0:
            counts[e] = n
    return counts


def record_message(engine: Engine, message: MessageInfo, emoji: Iterable[Emoji]) -> RecordResult:
    """Record emoji usage for *message* exactly once.

    *emoji* is the candidate set — every registered Unicode emoji plus the
    active custom emoji of the message's server, as returned by
    :meth:`RosterCache.active_emoji`.
    """
    counts = count_emoji(message.content, emoji)
    total = sum(counts.values())
    result = RecordResult(
        message_id=message.id,
        total=total,
        counts={e.key: n for e, n in counts.items()},
    )

    with get_session(engine) as session:
        inserted = session.execute(_INSERT_MESSAGE_STAT, {
            "message_id": message.id,
            "channel_id": message.channel_id,
            "user_id": message.author.id,
            "emoji_count": total,
        })
        if inserted.rowcount == 0:
            logger.debug("Message %d already recorded, skipping", message.id)
            result.duplicate = True
            return result

        if counts:
            emoji_ids = ensure_emoji_ids(session, counts)
            for e, n in counts.items():
                session.execute(_INCREMENT_EMOJI_USAGE, {
                    "channel_id": message.channel_id,
                    "user_id": message.author.id,
                    "emoji_id": emoji_ids[e.key],
                    "count": n,
                })

    if total:
        logger.debug(
            "Recorded %d emoji in message %d (channel %d, user %d)",
            total, message.id, message.channel_id, message.author.id,
        )
    return result


def message_recorded(engine: Engine, message_id: int) -> bool:
    """True if *message_id* already has a ``message_stats`` row."""
    with get_session(engine) as session:
        found = session.execute(
            text("SELECT 1 FROM message_stats WHERE message_id = :mid"),
            {"mid": message_id},
        ).first()
        return found is not None


def record_reaction(engine: Engine, reaction: ReactionInfo, emoji: Emoji) -> bool:
    """Store a reaction once.  Returns ``False`` if it was already stored."""
    with get_session(engine) as session:
        emoji_id = ensure_emoji_ids(session, [emoji])[emoji.key]
        inserted = session.execute(_INSERT_REACTION, {
            "channel_id": reaction.channel_id,
            "message_id": reaction.message_id,
            "user_id": reaction.user_id,
            "emoji_id": emoji_id,
        })
        return inserted.rowcount > 0
