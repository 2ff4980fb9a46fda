"""
emojistats.config — YAML Configuration Loader
==============================================

**Why this file exists:**
This module reads ``config.yaml`` for the bot's soft settings (presentation
text, optional files, log level).  Secrets — the Discord token, the
database URL, and the admin password — come from the environment
(``.env``) and never live in the YAML file.

Usage::

    from emojistats.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.bot_name)          # "EmojiStats"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EmojiStatsConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    bot_name: str

    # Logging
    log_level: str = "INFO"

    # Presentation (fall back to constants.DEFAULT_* when unset)
    about_text: str | None = None
    help_text: str | None = None
    status_text: str | None = None  # "Playing …" presence

    # Optional files
    feedback_file: str | None = None       # Append-only feedback log
    unicode_emoji_file: str | None = None  # Extra glyph sequences, one per line


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> EmojiStatsConfig:
    """Read *path* and return a :class:`EmojiStatsConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return EmojiStatsConfig(
        bot_name=raw["bot_name"],
        log_level=str(raw.get("log_level", "INFO")).upper(),
        about_text=raw.get("about_text") or None,
        help_text=raw.get("help_text") or None,
        status_text=raw.get("status_text") or None,
        feedback_file=raw.get("feedback_file") or None,
        unicode_emoji_file=raw.get("unicode_emoji_file") or None,
    )
