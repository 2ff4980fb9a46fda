"""
EmojiStats — Emoji Usage Statistics for Discord
================================================
Watches the servers it is in, keeps a live roster of channels and custom
emoji, counts every emoji used in chat, and answers ranked queries such as
"top 5 emoji in this channel" or "your favourite emoji".

Package layout::

    emojistats/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Reply strings + Unicode emoji catalogue
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (servers, channels, emoji, usage…)
    ├── engine/
    │   ├── emoji.py       # CustomEmoji / UnicodeEmoji tagged union
    │   ├── parser.py      # <@user> / <#channel> / <:emoji:id> references
    │   ├── events.py      # Normalized event envelopes
    │   └── roster.py      # In-memory server/channel/emoji roster
    ├── services/
    │   ├── roster_service.py   # Roster persistence
    │   ├── usage_service.py    # Idempotent usage recording
    │   ├── ranking_service.py  # Top-N / least-N queries
    │   └── embeds.py           # Reply formatting
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        ├── converters.py  # discord.py objects → event envelopes
        ├── dispatcher.py  # Message routing + command handlers
        ├── __main__.py    # Entry point (python -m emojistats.bot)
        └── cogs/
            ├── roster.py  # Server/channel/emoji gateway events
            └── stats.py   # on_message / reaction capture
"""

__version__ = "0.3.0"
