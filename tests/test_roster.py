"""
tests/test_roster.py — RosterCache Unit Tests
==============================================

Drives the roster with fabricated event sequences: server lifecycle,
channel lifecycle, emoji reconciliation, and the one-shot unknown-channel
refresh.
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import make_server

from emojistats.engine.emoji import CustomEmoji, UnicodeEmoji
from emojistats.engine.events import ChannelInfo, ChannelKind, EmojiInfo, ServerInfo
from emojistats.engine.roster import RosterCache


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


class FakeDirectory:
    """ServerDirectory double that counts how often it is asked."""

    def __init__(self, servers: list[ServerInfo], fail: bool = False) -> None:
        self.servers = {s.id: s for s in servers}
        self.fail = fail
        self.list_calls = 0
        self.fetch_calls: list[int] = []

    async def fetch_servers(self) -> list[ServerInfo]:
        self.list_calls += 1
        if self.fail:
            raise ConnectionError("gateway unavailable")
        # The lightweight listing carries no channels or emoji
        return [ServerInfo(id=s.id, name=s.name) for s in self.servers.values()]

    async def fetch_server(self, server_id: int) -> ServerInfo:
        self.fetch_calls.append(server_id)
        return self.servers[server_id]


class SlowDirectory(FakeDirectory):
    """Directory whose server listing takes a while to arrive."""

    async def fetch_servers(self) -> list[ServerInfo]:
        await asyncio.sleep(0.05)
        return await super().fetch_servers()


@pytest.fixture
def roster() -> RosterCache:
    return RosterCache()


# ---------------------------------------------------------------------------
# Servers & channels
# ---------------------------------------------------------------------------
class TestServerLifecycle:
    def test_server_seen_adds_text_channels(self, roster):
        roster.on_server_seen(make_server(1, channels=[(100, "general"), (101, "memes")]))
        assert roster.has_server(1)
        assert roster.is_text_channel(100)
        assert roster.server_id_for_channel(101) == 1
        assert roster.channel_name(100) == "general"
        assert roster.text_channel_count == 2

    def test_non_text_channels_ignored(self, roster):
        voice = ChannelInfo(id=200, name="Voice", kind=ChannelKind.OTHER, server_id=1)
        roster.on_server_seen(ServerInfo(id=1, name="S", channels=[voice]))
        assert not roster.is_known_channel(200)
        assert roster.on_channel_created(voice) is False

    def test_removal_cascades_to_channels(self, roster):
        roster.on_server_seen(make_server(1, channels=[(100, "a"), (101, "b")]))
        roster.on_server_seen(make_server(2, channels=[(200, "c")]))

        roster.on_server_removed(1)

        assert not roster.has_server(1)
        assert not roster.is_known_channel(100)
        assert not roster.is_known_channel(101)
        assert roster.is_text_channel(200)

    def test_update_ignores_unknown_server(self, roster):
        roster.on_server_updated(ServerInfo(id=9, name="Ghost"))
        assert not roster.has_server(9)

    def test_update_of_unknown_server_leaves_emoji_alone(self, roster):
        changed = roster.on_server_updated(
            ServerInfo(id=9, name="Ghost", emoji=[EmojiInfo(90, "boo")])
        )
        assert changed == []
        assert roster.get_custom_emoji(90) is None
        assert roster.active_emoji(9) == []

    def test_update_renames_known_server(self, roster):
        roster.on_server_seen(make_server(1, name="Old"))
        roster.on_server_updated(ServerInfo(id=1, name="New"))
        assert roster.has_server(1)
        assert roster.server_count == 1


class TestChannelLifecycle:
    def test_create_update_delete(self, roster):
        ch = ChannelInfo(id=100, name="general", kind=ChannelKind.TEXT, server_id=1)
        assert roster.on_channel_created(ch)
        renamed = ChannelInfo(id=100, name="lobby", kind=ChannelKind.TEXT, server_id=1)
        assert roster.on_channel_updated(renamed)
        assert roster.channel_name(100) == "lobby"

        roster.on_channel_deleted(renamed)
        assert not roster.is_known_channel(100)

    def test_private_channels(self, roster):
        dm = ChannelInfo(id=500, name="@someone", kind=ChannelKind.PRIVATE)
        roster.on_channel_created(dm)
        assert roster.is_private_channel(500)
        assert not roster.is_text_channel(500)
        assert roster.server_id_for_channel(500) is None

        roster.on_channel_deleted(dm)
        assert not roster.is_known_channel(500)


# ---------------------------------------------------------------------------
# Emoji
# ---------------------------------------------------------------------------
class TestEmojiReconciliation:
    def test_reported_set_replaces_active_set(self, roster):
        roster.reconcile_emoji(1, [EmojiInfo(1, "a"), EmojiInfo(2, "b")])
        roster.reconcile_emoji(1, [EmojiInfo(2, "b"), EmojiInfo(3, "c")])

        active = {e.id for e in roster.active_emoji(1) if isinstance(e, CustomEmoji)}
        assert active == {2, 3}

        a = roster.get_custom_emoji(1)
        assert a is not None
        assert a.is_active is False
        assert a.name == "a"

    def test_reconcile_is_idempotent(self, roster):
        first = roster.reconcile_emoji(1, [EmojiInfo(1, "a"), EmojiInfo(2, "b")])
        second = roster.reconcile_emoji(1, [EmojiInfo(1, "a"), EmojiInfo(2, "b")])
        assert len(first) == 2
        assert second == []

    def test_renamed_emoji_reported_as_changed(self, roster):
        roster.reconcile_emoji(1, [EmojiInfo(1, "a")])
        changed = roster.reconcile_emoji(1, [EmojiInfo(1, "renamed")])
        assert [e.name for e in changed] == ["renamed"]
        assert roster.find_emoji_by_pattern("<:renamed:1>") is not None
        assert roster.find_emoji_by_pattern("<:a:1>") is None

    def test_reactivation(self, roster):
        roster.reconcile_emoji(1, [EmojiInfo(1, "a")])
        roster.reconcile_emoji(1, [])
        assert roster.get_custom_emoji(1).is_active is False
        roster.reconcile_emoji(1, [EmojiInfo(1, "a")])
        assert roster.get_custom_emoji(1).is_active is True

    def test_other_servers_untouched(self, roster):
        roster.reconcile_emoji(1, [EmojiInfo(1, "a")])
        roster.reconcile_emoji(2, [EmojiInfo(2, "b")])
        roster.reconcile_emoji(1, [])
        assert roster.get_custom_emoji(2).is_active is True

    def test_active_emoji_includes_unicode(self, roster):
        roster.register_unicode_emoji(["🎉", "🔥", "🎉", " "])
        roster.reconcile_emoji(1, [EmojiInfo(10, "fire")])

        everywhere = roster.active_emoji(None)
        assert set(everywhere) == {UnicodeEmoji("🎉"), UnicodeEmoji("🔥")}
        assert len(roster.active_emoji(1)) == 3
        assert roster.active_emoji(2) == everywhere

    def test_register_reports_new_count(self, roster):
        assert roster.register_unicode_emoji(["🎉", "🔥"]) == 2
        assert roster.register_unicode_emoji(["🎉", "😀"]) == 1

    def test_find_by_pattern(self, roster):
        roster.register_unicode_emoji(["🎉"])
        roster.reconcile_emoji(1, [EmojiInfo(10, "fire"), EmojiInfo(11, "dance", animated=True)])
        assert roster.find_emoji_by_pattern("🎉") == UnicodeEmoji("🎉")
        assert roster.find_emoji_by_pattern("<a:dance:11>").id == 11
        assert roster.find_emoji_by_pattern("nope") is None

    def test_server_seen_reconciles(self, roster):
        changed = roster.on_server_seen(make_server(1, emoji=[(10, "fire")]))
        assert [e.id for e in changed] == [10]


# ---------------------------------------------------------------------------
# Unknown channel resolution
# ---------------------------------------------------------------------------
class TestResolveUnknownChannel:
    def test_loads_new_server_once(self, roster):
        directory = FakeDirectory([make_server(1, channels=[(100, "general")])])

        assert roster.needs_resolution(100)
        result = run_async(roster.resolve_unknown_channel(100, directory))

        assert result.resolved is True
        assert [s.id for s in result.refreshed] == [1]
        assert directory.fetch_calls == [1]
        assert not roster.needs_resolution(100)

    def test_refreshes_known_servers_when_still_unknown(self, roster):
        roster.on_server_seen(make_server(1, channels=[(100, "general")]))
        # The server gained a channel we missed
        directory = FakeDirectory([make_server(1, channels=[(100, "general"), (101, "new")])])

        result = run_async(roster.resolve_unknown_channel(101, directory))

        assert result.resolved is True
        assert roster.is_text_channel(101)

    def test_unresolved_channel_is_never_retried(self, roster):
        directory = FakeDirectory([make_server(1, channels=[(100, "general")])])

        result = run_async(roster.resolve_unknown_channel(999, directory))

        assert result.resolved is False
        assert roster.is_unknown_channel(999)
        assert roster.needs_resolution(999) is False
        assert directory.list_calls == 1

    def test_upstream_failure_enters_negative_cache(self, roster):
        directory = FakeDirectory([], fail=True)
        result = run_async(roster.resolve_unknown_channel(100, directory))
        assert result.resolved is False
        assert result.refreshed == []
        assert roster.is_unknown_channel(100)

    def test_create_event_clears_negative_cache(self, roster):
        run_async(roster.resolve_unknown_channel(100, FakeDirectory([])))
        assert roster.is_unknown_channel(100)

        roster.on_channel_created(
            ChannelInfo(id=100, name="late", kind=ChannelKind.TEXT, server_id=1)
        )
        assert not roster.is_unknown_channel(100)
        assert roster.is_text_channel(100)

    def test_concurrent_callers_share_one_refresh(self, roster):
        directory = SlowDirectory([make_server(1, channels=[(100, "general")])])

        async def burst():
            return await asyncio.gather(
                *(roster.resolve_unknown_channel(999, directory) for _ in range(3))
            )

        results = run_async(burst())

        assert directory.list_calls == 1
        assert directory.fetch_calls == [1]
        assert [r.resolved for r in results] == [False, False, False]
        # Only the caller that did the work reports servers to persist
        assert sorted(len(r.refreshed) for r in results) == [0, 0, 1]
        assert roster.is_unknown_channel(999)

    def test_concurrent_callers_see_resolved_channel(self, roster):
        directory = SlowDirectory([make_server(1, channels=[(100, "general")])])

        async def burst():
            return await asyncio.gather(
                roster.resolve_unknown_channel(100, directory),
                roster.resolve_unknown_channel(100, directory),
            )

        first, second = run_async(burst())

        assert first.resolved is second.resolved is True
        assert directory.list_calls == 1
        assert not roster.needs_resolution(100)
