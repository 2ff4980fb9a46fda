"""Initial EmojiStats schema

Revision ID: 3c9e1f7a2b40
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c9e1f7a2b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create roster, usage, message-stat and reaction tables."""
    op.create_table(
        "servers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("icon", sa.String(100), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "channels",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("server_id", sa.BigInteger(), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_channels_server", "channels", ["server_id"])

    op.create_table(
        "emoji",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("custom_id", sa.BigInteger(), nullable=True),
        sa.Column("glyphs", sa.String(64), nullable=True),
        sa.Column("server_id", sa.BigInteger(), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("is_custom", sa.Boolean(), nullable=False),
        sa.Column("is_animated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("custom_id"),
        sa.UniqueConstraint("glyphs"),
    )
    op.create_index("ix_emoji_server_active", "emoji", ["server_id", "is_active"])

    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("discriminator", sa.String(8), nullable=False, server_default="0"),
    )

    op.create_table(
        "emoji_usage",
        sa.Column("channel_id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("emoji_id", sa.Integer(), sa.ForeignKey("emoji.id"), primary_key=True),
        sa.Column("use_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_emoji_usage_user", "emoji_usage", ["user_id"])
    op.create_index("ix_emoji_usage_emoji", "emoji_usage", ["emoji_id"])

    op.create_table(
        "message_stats",
        sa.Column("message_id", sa.BigInteger(), primary_key=True),
        sa.Column("channel_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("emoji_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "recorded_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_message_stats_channel_user", "message_stats", ["channel_id", "user_id"],
    )

    op.create_table(
        "reactions",
        sa.Column("channel_id", sa.BigInteger(), primary_key=True),
        sa.Column("message_id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("emoji_id", sa.Integer(), sa.ForeignKey("emoji.id"), primary_key=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_reactions_emoji", "reactions", ["emoji_id"])


def downgrade() -> None:
    """Drop every EmojiStats table."""
    op.drop_index("ix_reactions_emoji", table_name="reactions")
    op.drop_table("reactions")
    op.drop_index("ix_message_stats_channel_user", table_name="message_stats")
    op.drop_table("message_stats")
    op.drop_index("ix_emoji_usage_emoji", table_name="emoji_usage")
    op.drop_index("ix_emoji_usage_user", table_name="emoji_usage")
    op.drop_table("emoji_usage")
    op.drop_table("users")
    op.drop_index("ix_emoji_server_active", table_name="emoji")
    op.drop_table("emoji")
    op.drop_index("ix_channels_server", table_name="channels")
    op.drop_table("channels")
    op.drop_table("servers")
