"""
tests/test_roster_service.py — Roster Persistence Tests
========================================================

Runs against the in-memory SQLite engine from ``conftest.py``.
"""

from __future__ import annotations

from conftest import make_server
from sqlalchemy import select

from emojistats.database.engine import get_session
from emojistats.database.models import Channel, Emoji as EmojiRow, Server, User
from emojistats.engine.emoji import CustomEmoji, UnicodeEmoji
from emojistats.engine.events import ChannelInfo, ChannelKind, EmojiInfo, UserInfo
from emojistats.services.roster_service import (
    ensure_emoji_ids,
    remove_server,
    save_channel,
    save_server,
    save_user,
    sync_server_emoji,
)


def _emoji_rows(engine) -> dict[int, bool]:
    """custom_id → is_active for every custom emoji row."""
    with get_session(engine) as session:
        rows = session.execute(
            select(EmojiRow.custom_id, EmojiRow.is_active).where(EmojiRow.is_custom.is_(True))
        ).all()
        return {r.custom_id: bool(r.is_active) for r in rows}


class TestSaveServer:
    def test_inserts_server_channels_and_emoji(self, db_engine):
        summary = save_server(
            db_engine,
            make_server(1, channels=[(100, "general"), (101, "memes")], emoji=[(10, "fire")]),
        )
        assert summary == {"channels": 2, "emoji_upserted": 1, "emoji_deactivated": 0}

        with get_session(db_engine) as session:
            assert session.get(Server, 1).name == "Emoji Lovers"
            assert session.get(Channel, 101).server_id == 1
        assert _emoji_rows(db_engine) == {10: True}

    def test_resave_updates_in_place(self, db_engine):
        save_server(db_engine, make_server(1, name="Old"))
        save_server(db_engine, make_server(1, name="New"))
        with get_session(db_engine) as session:
            servers = session.execute(select(Server)).scalars().all()
            assert [s.name for s in servers] == ["New"]

    def test_remove_keeps_channel_rows(self, db_engine):
        save_server(db_engine, make_server(1, channels=[(100, "general")]))
        assert remove_server(db_engine, 1) is True
        assert remove_server(db_engine, 1) is False
        with get_session(db_engine) as session:
            assert session.get(Server, 1) is None
            assert session.get(Channel, 100) is not None


class TestSaveChannel:
    def test_other_kinds_ignored(self, db_engine):
        voice = ChannelInfo(id=300, name="Voice", kind=ChannelKind.OTHER, server_id=1)
        assert save_channel(db_engine, voice) is False
        with get_session(db_engine) as session:
            assert session.get(Channel, 300) is None

    def test_private_channel_saved(self, db_engine):
        dm = ChannelInfo(id=500, name="@someone", kind=ChannelKind.PRIVATE)
        assert save_channel(db_engine, dm) is True
        with get_session(db_engine) as session:
            row = session.get(Channel, 500)
            assert row.kind == "private"
            assert row.server_id is None


class TestSyncServerEmoji:
    def test_reported_set_replaces_active_set(self, db_engine):
        sync_server_emoji(db_engine, 1, [EmojiInfo(1, "a"), EmojiInfo(2, "b")])
        upserted, deactivated = sync_server_emoji(db_engine, 1, [EmojiInfo(2, "b"), EmojiInfo(3, "c")])

        assert (upserted, deactivated) == (2, 1)
        assert _emoji_rows(db_engine) == {1: False, 2: True, 3: True}

    def test_idempotent(self, db_engine):
        sync_server_emoji(db_engine, 1, [EmojiInfo(1, "a")])
        _, deactivated = sync_server_emoji(db_engine, 1, [EmojiInfo(1, "a")])
        assert deactivated == 0
        assert _emoji_rows(db_engine) == {1: True}

    def test_empty_report_deactivates_all(self, db_engine):
        sync_server_emoji(db_engine, 1, [EmojiInfo(1, "a"), EmojiInfo(2, "b")])
        sync_server_emoji(db_engine, 2, [EmojiInfo(3, "c")])
        _, deactivated = sync_server_emoji(db_engine, 1, [])
        assert deactivated == 2
        assert _emoji_rows(db_engine) == {1: False, 2: False, 3: True}

    def test_rename_refreshes_row(self, db_engine):
        sync_server_emoji(db_engine, 1, [EmojiInfo(1, "a")])
        sync_server_emoji(db_engine, 1, [EmojiInfo(1, "renamed", animated=True)])
        with get_session(db_engine) as session:
            row = session.execute(select(EmojiRow).where(EmojiRow.custom_id == 1)).scalar_one()
            assert row.name == "renamed"
            assert row.is_animated is True


class TestEnsureEmojiIds:
    def test_creates_rows_once(self, db_engine):
        fire = CustomEmoji(server_id=1, id=10, name="fire")
        party = UnicodeEmoji("🎉")
        with get_session(db_engine) as session:
            first = ensure_emoji_ids(session, [fire, party])
        with get_session(db_engine) as session:
            second = ensure_emoji_ids(session, [party, fire])

        assert first == second
        assert set(first) == {"custom:10", "unicode:🎉"}
        assert first["custom:10"] != first["unicode:🎉"]

    def test_does_not_reactivate_existing_rows(self, db_engine):
        sync_server_emoji(db_engine, 1, [EmojiInfo(10, "fire")])
        sync_server_emoji(db_engine, 1, [])
        with get_session(db_engine) as session:
            ensure_emoji_ids(session, [CustomEmoji(server_id=1, id=10, name="fire")])
        assert _emoji_rows(db_engine) == {10: False}


class TestSaveUser:
    def test_upsert(self, db_engine):
        save_user(db_engine, UserInfo(id=7, name="alice"))
        save_user(db_engine, UserInfo(id=7, name="alicia", discriminator="1234"))
        with get_session(db_engine) as session:
            user = session.get(User, 7)
            assert (user.name, user.discriminator) == ("alicia", "1234")
