"""
emojistats.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- servers        — Known Discord servers (guilds)
- channels       — Text / private channel metadata (kept after deletion so
                   historical usage stays joinable)
- emoji          — One row per custom emoji snowflake and per Unicode glyph
                   sequence; custom emoji are soft-deleted via ``is_active``
- users          — Display-name cache for top-user listings
- emoji_usage    — Increment-only counters keyed (channel, user, emoji)
- message_stats  — One row per processed message; its existence is the
                   idempotence marker for usage recording
- reactions      — Presence-only reaction records
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all EmojiStats ORM models."""


# ---------------------------------------------------------------------------
# Servers
# ---------------------------------------------------------------------------
class Server(Base):
    __tablename__ = "servers"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)  # Discord snowflake
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(100), default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Server id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------
class Channel(Base):
    """Channel metadata.  ``server_id`` is NULL for direct-message channels."""
    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    server_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # text, private
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_channels_server", "server_id"),
    )

    def __repr__(self) -> str:
        return f"<Channel id={self.id} name={self.name!r} kind={self.kind}>"


# ---------------------------------------------------------------------------
# Emoji — custom and Unicode share one table
# ---------------------------------------------------------------------------
class Emoji(Base):
    """Exactly one of ``custom_id`` / ``glyphs`` is set.

    Custom emoji rows are never deleted: when an emoji disappears from its
    server's roster the row is flagged ``is_active = False`` so old usage
    rows still resolve.
    """
    __tablename__ = "emoji"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    custom_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, default=None)
    glyphs: Mapped[str | None] = mapped_column(String(64), unique=True, default=None)
    server_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_custom: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_animated: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_emoji_server_active", "server_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Emoji id={self.id} name={self.name!r} custom={self.is_custom}>"


# ---------------------------------------------------------------------------
# Users — display-name cache
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    discriminator: Mapped[str] = mapped_column(String(8), default="0")

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# EmojiUsage — increment-only counters
# ---------------------------------------------------------------------------
class EmojiUsage(Base):
    __tablename__ = "emoji_usage"

    channel_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    emoji_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("emoji.id"), primary_key=True
    )
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_emoji_usage_user", "user_id"),
        Index("ix_emoji_usage_emoji", "emoji_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<EmojiUsage ch={self.channel_id} user={self.user_id} "
            f"emoji={self.emoji_id} count={self.use_count}>"
        )


# ---------------------------------------------------------------------------
# MessageStat — one row per processed message
# ---------------------------------------------------------------------------
class MessageStat(Base):
    __tablename__ = "message_stats"

    message_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    emoji_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_message_stats_channel_user", "channel_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<MessageStat id={self.message_id} emoji={self.emoji_count}>"


# ---------------------------------------------------------------------------
# Reaction — presence only
# ---------------------------------------------------------------------------
class Reaction(Base):
    __tablename__ = "reactions"

    channel_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    message_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    emoji_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("emoji.id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_reactions_emoji", "emoji_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Reaction msg={self.message_id} user={self.user_id} emoji={self.emoji_id}>"
        )
