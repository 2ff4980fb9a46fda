"""
emojistats.engine.emoji — Emoji Tagged Union
=============================================

Two kinds of emoji flow through the bot:

* :class:`CustomEmoji` — a server-defined image emoji.  Identity is the
  platform-assigned snowflake ``id``; renaming an emoji does not make it a
  different emoji.
* :class:`UnicodeEmoji` — a platform-wide glyph sequence (possibly several
  codepoints, e.g. flags or ZWJ families).  Identity is the glyph sequence.

Both expose ``pattern`` (the literal text that appears in a message body)
and ``key`` (a stable string key used by the roster arena).  Code that needs
variant-specific fields matches on the concrete class.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Union

__all__ = ["CustomEmoji", "UnicodeEmoji", "Emoji", "custom_pattern"]


def custom_pattern(emoji_id: int, name: str, animated: bool = False) -> str:
    """Render the canonical in-message form of a custom emoji."""
    prefix = "a" if animated else ""
    return f"<{prefix}:{name}:{emoji_id}>"


@dataclass(frozen=True, slots=True)
class CustomEmoji:
    """A server-scoped custom emoji."""

    server_id: int
    id: int
    name: str
    is_animated: bool = False
    is_active: bool = True

    @property
    def pattern(self) -> str:
        return custom_pattern(self.id, self.name, self.is_animated)

    @property
    def key(self) -> str:
        return f"custom:{self.id}"

    def deactivated(self) -> CustomEmoji:
        return replace(self, is_active=False)

    # Identity is the snowflake only; name, animation and state may change.
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CustomEmoji):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("custom", self.id))


@dataclass(frozen=True, slots=True)
class UnicodeEmoji:
    """A platform-wide emoji identified by its glyph sequence."""

    glyphs: str
    is_active: bool = field(default=True, compare=False)

    @property
    def pattern(self) -> str:
        return self.glyphs

    @property
    def key(self) -> str:
        return f"unicode:{self.glyphs}"


Emoji = Union[CustomEmoji, UnicodeEmoji]
