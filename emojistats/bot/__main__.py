"""
emojistats.bot.__main__ — Entry point for ``python -m emojistats.bot``
=======================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings) and apply the log level.
3. Create the SQLAlchemy engine and ensure tables exist.
4. Build the roster cache and seed the Unicode emoji catalogue.
5. Create the EmojiStatsBot and hand it config + engine + roster.
6. Start the bot (blocking — runs the asyncio event loop).

Run with::

    python -m emojistats.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from emojistats.bot.core import EmojiStatsBot
from emojistats.config import load_config
from emojistats.constants import load_unicode_emoji
from emojistats.database.engine import create_db_engine, init_db
from emojistats.engine.roster import RosterCache

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("emojistats")


def main() -> None:
    """Bootstrap and run the EmojiStats bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    admin_password = os.getenv("BOT_ADMIN_PASSWORD")
    if not admin_password:
        logger.warning("BOT_ADMIN_PASSWORD is not set — admin commands are disabled.")

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, KeyError) as exc:
        logger.critical("Unable to load configuration: %s", exc)
        sys.exit(1)
    logging.getLogger().setLevel(cfg.log_level)
    logger.info("Config loaded — Bot: %s", cfg.bot_name)

    # 3. Database.
    try:
        engine = create_db_engine()
        init_db(engine)
    except (RuntimeError, SQLAlchemyError) as exc:
        logger.critical("Unable to initialize the database: %s", exc)
        sys.exit(1)

    # 4. Roster cache + Unicode emoji.
    roster = RosterCache()
    added = roster.register_unicode_emoji(load_unicode_emoji(cfg.unicode_emoji_file))
    logger.info("Registered %d Unicode emoji", added)

    # 5. Bot.
    bot = EmojiStatsBot(cfg=cfg, engine=engine, roster=roster, admin_password=admin_password)

    # 6. Run (blocks until Ctrl+C, SIGTERM, or the quit command).
    logger.info("Starting EmojiStats bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
