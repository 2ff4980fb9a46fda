"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from emojistats.config import EmojiStatsConfig
from emojistats.database.models import Base
from emojistats.engine.events import ChannelInfo, ChannelKind, EmojiInfo, ServerInfo


# ---------------------------------------------------------------------------
# SQLite compatibility: Discord snowflakes are BIGINT in PostgreSQL.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all EmojiStats tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def cfg() -> EmojiStatsConfig:
    return EmojiStatsConfig(bot_name="EmojiStats")


# ---------------------------------------------------------------------------
# Roster builders
# ---------------------------------------------------------------------------
def make_server(
    server_id: int = 1,
    name: str = "Emoji Lovers",
    channels: list[tuple[int, str]] | None = None,
    emoji: list[tuple[int, str]] | None = None,
) -> ServerInfo:
    """Build a :class:`ServerInfo` with text channels and custom emoji."""
    if channels is None:
        channels = [(100, "general")]
    return ServerInfo(
        id=server_id,
        name=name,
        channels=[
            ChannelInfo(id=cid, name=cname, kind=ChannelKind.TEXT, server_id=server_id)
            for cid, cname in channels
        ],
        emoji=[EmojiInfo(id=eid, name=ename) for eid, ename in (emoji or [])],
    )
