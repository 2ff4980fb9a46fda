"""
emojistats.constants — Shared Constants & Helpers
==================================================

Single source of truth for reply strings and the Unicode emoji catalogue.
Import from here instead of duplicating in cogs, services, and the
dispatcher.
"""

from __future__ import annotations

import logging
from pathlib import Path

import emoji as emoji_lib

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------
RESPONSE_STATS_ERR = "Sorry! An error occurred while retrieving the statistics. :frowning:"
RESPONSE_USE_COMMAND_IN_PUBLIC_CHANNEL = "Please use this command in a public channel. :shrug:"
RESPONSE_AUTH_REQUIRED = "Please authenticate first. :lock:"
RESPONSE_UNKNOWN_COMMAND = "Unknown command. To see a list of commands, use `help`."
UNKNOWN_USER_NAME = "(Unknown user)"

DEFAULT_HELP_TEXT = (
    "**Commands:**\n"
    "**about**: See information about the bot\n"
    "**global**: See the top used Unicode emoji globally\n"
    "**server**: See the top used emoji on this server\n"
    "**custom**: See the top used custom emoji on this server\n"
    "**least-used**: See the least used custom emoji on this server\n"
    "**channel**: See the top used emoji on this channel\n"
    "**<#channel>**: See the top used emoji on the specified channel\n"
    "**me**: See your favourite emoji\n"
    "**<@user>**: See the specified user's favourite emoji\n"
    "**<emoji>**: See how often an emoji has been used\n"
    "**feedback <text>**: Send feedback to the bot's maintainers"
)

DEFAULT_ABOUT_TEXT = (
    "I provide statistics on emoji usage! :bar_chart:\n"
    "Mention me with `help` to see what I can do."
)

EARTH_EMOJI: list[str] = [":earth_africa:", ":earth_americas:", ":earth_asia:"]

# Default number of rows in every ranking.
TOP_N = 5


# ---------------------------------------------------------------------------
# Unicode emoji catalogue
# ---------------------------------------------------------------------------
def load_unicode_emoji(extra_file: str | Path | None = None) -> list[str]:
    """Return every fully-qualified Unicode emoji known to the ``emoji``
    package, plus any glyph sequences listed (one per line) in *extra_file*.

    Order is stable: catalogue entries first, then file entries.
    """
    fully_qualified = emoji_lib.STATUS["fully_qualified"]
    glyphs = [
        g for g, data in emoji_lib.EMOJI_DATA.items()
        if data.get("status") == fully_qualified
    ]

    if extra_file is not None:
        path = Path(extra_file)
        if not path.exists():
            logger.warning("Unicode emoji file not found: %s", path.resolve())
        else:
            with open(path, encoding="utf-8") as fh:
                glyphs.extend(line.strip() for line in fh if line.strip())

    return glyphs


def plural(count: int, suffix: str = "s") -> str:
    """``""`` for exactly one, *suffix* otherwise."""
    return "" if count == 1 else suffix
