"""
tests/test_usage_service.py — Usage Recording Tests
====================================================

Exactly-once recording per message id, literal pattern counting, and
presence-only reactions.
"""

from __future__ import annotations

from sqlalchemy import func, select

from emojistats.database.engine import get_session
from emojistats.database.models import EmojiUsage, MessageStat, Reaction
from emojistats.engine.emoji import CustomEmoji, UnicodeEmoji
from emojistats.engine.events import MessageInfo, ReactionInfo, UserInfo
from emojistats.services.usage_service import (
    count_emoji,
    message_recorded,
    record_message,
    record_reaction,
)

FIRE = CustomEmoji(server_id=1, id=10, name="fire")
PARTY = UnicodeEmoji("🎉")
CANDIDATES = [FIRE, PARTY]


def _message(message_id: int = 1, content: str = "", channel_id: int = 100, user_id: int = 7) -> MessageInfo:
    return MessageInfo(
        id=message_id,
        channel_id=channel_id,
        author=UserInfo(id=user_id, name="alice"),
        content=content,
    )


def _usage(engine) -> list[tuple[int, int, int]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(EmojiUsage.channel_id, EmojiUsage.user_id, EmojiUsage.use_count)
            .order_by(EmojiUsage.emoji_id, EmojiUsage.channel_id, EmojiUsage.user_id)
        ).all()
        return [tuple(r) for r in rows]


class TestCountEmoji:
    def test_counts_non_overlapping_occurrences(self):
        counts = count_emoji("<:fire:10><:fire:10> 🎉 <:fire:10>", CANDIDATES)
        assert counts == {FIRE: 3, PARTY: 1}

    def test_omits_unused_emoji(self):
        assert count_emoji("no emoji here", CANDIDATES) == {}
        assert count_emoji("", CANDIDATES) == {}

    def test_wrong_name_does_not_match(self):
        assert count_emoji("<:flame:10>", CANDIDATES) == {}


class TestRecordMessage:
    def test_three_of_the_same_custom_emoji(self, db_engine):
        msg = _message(content="<:fire:10> <:fire:10> <:fire:10>")

        result = record_message(db_engine, msg, CANDIDATES)

        assert result.total == 3
        assert result.counts == {"custom:10": 3}
        assert result.duplicate is False
        assert _usage(db_engine) == [(100, 7, 3)]
        with get_session(db_engine) as session:
            stat = session.get(MessageStat, 1)
            assert (stat.channel_id, stat.user_id, stat.emoji_count) == (100, 7, 3)

    def test_same_message_id_recorded_once(self, db_engine):
        msg = _message(content="<:fire:10> <:fire:10> <:fire:10>")
        record_message(db_engine, msg, CANDIDATES)

        again = record_message(db_engine, msg, CANDIDATES)

        assert again.duplicate is True
        assert _usage(db_engine) == [(100, 7, 3)]
        with get_session(db_engine) as session:
            assert session.execute(select(func.count()).select_from(MessageStat)).scalar_one() == 1

    def test_counts_accumulate_across_messages(self, db_engine):
        record_message(db_engine, _message(1, "🎉🎉"), CANDIDATES)
        record_message(db_engine, _message(2, "🎉"), CANDIDATES)
        record_message(db_engine, _message(3, "🎉", user_id=8), CANDIDATES)

        assert _usage(db_engine) == [(100, 7, 3), (100, 8, 1)]

    def test_message_without_emoji_still_marked(self, db_engine):
        result = record_message(db_engine, _message(5, "just words"), CANDIDATES)
        assert result.total == 0
        assert message_recorded(db_engine, 5)
        assert _usage(db_engine) == []
        # A replay is a duplicate even though nothing was counted
        assert record_message(db_engine, _message(5, "just words"), CANDIDATES).duplicate

    def test_unknown_message_not_recorded(self, db_engine):
        assert message_recorded(db_engine, 12345) is False


class TestRecordReaction:
    def test_presence_only(self, db_engine):
        reaction = ReactionInfo(channel_id=100, message_id=1, user_id=7, unicode_emoji="🎉")
        assert record_reaction(db_engine, reaction, PARTY) is True
        assert record_reaction(db_engine, reaction, PARTY) is False

        with get_session(db_engine) as session:
            assert session.execute(select(func.count()).select_from(Reaction)).scalar_one() == 1

    def test_distinct_emoji_are_distinct_rows(self, db_engine):
        base = dict(channel_id=100, message_id=1, user_id=7)
        record_reaction(db_engine, ReactionInfo(**base, unicode_emoji="🎉"), PARTY)
        record_reaction(db_engine, ReactionInfo(**base, custom_emoji_id=10), FIRE)

        with get_session(db_engine) as session:
            assert session.execute(select(func.count()).select_from(Reaction)).scalar_one() == 2
