"""
emojistats.engine.parser — Reference Parser & Command Text Helpers
===================================================================

Discord embeds structured references in plain message text:

=============  ======================
``<@123>``     user mention
``<@!123>``    user mention (nickname form)
``<@&123>``    role mention
``<#123>``     channel mention
``<:name:123>`` custom emoji (``<a:name:123>`` when animated)
=============  ======================

:func:`classify` turns a single token into one of the typed references
below.  It never raises: anything that is not a well-formed reference comes
back as :class:`Text` carrying the original token unchanged.

The remaining helpers split a command message into its parts; the
dispatcher uses them to detect "@bot <command> <args>" messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

__all__ = [
    "UserRef",
    "RoleRef",
    "ChannelRef",
    "CustomEmojiRef",
    "Text",
    "Reference",
    "classify",
    "extract_preceding_ref",
    "strip_command_noise",
    "split_first_word",
]


# ---------------------------------------------------------------------------
# Reference types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserRef:
    id: int


@dataclass(frozen=True, slots=True)
class RoleRef:
    id: int


@dataclass(frozen=True, slots=True)
class ChannelRef:
    id: int


@dataclass(frozen=True, slots=True)
class CustomEmojiRef:
    id: int


@dataclass(frozen=True, slots=True)
class Text:
    text: str


Reference = Union[UserRef, RoleRef, ChannelRef, CustomEmojiRef, Text]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
def _parse_id(digits: str) -> int | None:
    """Parse an unsigned snowflake; ``None`` unless *digits* is all 0-9."""
    if not digits or not digits.isascii() or not digits.isdigit():
        return None
    return int(digits)


def classify(token: str) -> Reference:
    """Classify *token* as a user/role/channel/custom-emoji reference or text."""
    if not token.endswith(">"):
        return Text(token)

    body: str | None = None
    kind: type[UserRef] | type[RoleRef] | type[ChannelRef] | None = None

    if token.startswith("<@!"):
        body, kind = token[3:-1], UserRef
    elif token.startswith("<@&"):
        body, kind = token[3:-1], RoleRef
    elif token.startswith("<@"):
        body, kind = token[2:-1], UserRef
    elif token.startswith("<#"):
        body, kind = token[2:-1], ChannelRef
    elif token.startswith("<:") or token.startswith("<a:"):
        # Shortest valid form is "<:a:1>": a non-empty name, then the id after
        # the second colon.
        start = 2 if token.startswith("<:") else 3
        name, sep, digits = token[start:-1].partition(":")
        if name and sep:
            emoji_id = _parse_id(digits)
            if emoji_id is not None:
                return CustomEmojiRef(emoji_id)
        return Text(token)

    if kind is not None and body is not None:
        ref_id = _parse_id(body)
        if ref_id is not None:
            return kind(ref_id)

    return Text(token)


# ---------------------------------------------------------------------------
# Command text helpers
# ---------------------------------------------------------------------------
def extract_preceding_ref(text: str) -> tuple[Reference | None, str]:
    """Split a leading reference off *text*.

    Returns ``(reference, rest)`` when *text* (ignoring leading whitespace)
    starts with a well-formed ``<…>`` reference, otherwise ``(None, text)``.
    """
    if text.lstrip().startswith("<") and ">" in text:
        end = text.index(">") + 1
        candidate, rest = text[:end], text[end:]
        ref = classify(candidate.strip())
        if not isinstance(ref, Text):
            return ref, rest
    return None, text


def strip_command_noise(text: str) -> str:
    """Drop leading whitespace and commas ("@bot, server" → "server")."""
    return text.lstrip(", \t\r\n\f\v")


def split_first_word(text: str) -> tuple[str, str]:
    """Return ``(first_word, rest)`` with surrounding whitespace trimmed."""
    parts = text.lstrip().split(maxsplit=1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]
