"""
tests/test_constants.py — Emoji Catalogue & Helper Tests
=========================================================
"""

from __future__ import annotations

import logging

from emojistats.constants import load_unicode_emoji, plural


class TestLoadUnicodeEmoji:
    def test_catalogue_contains_common_emoji(self):
        glyphs = load_unicode_emoji()
        assert "🎉" in glyphs
        assert "🔥" in glyphs
        assert len(glyphs) == len(set(glyphs))

    def test_extra_file_appended(self, tmp_path):
        extra = tmp_path / "extra.txt"
        extra.write_text("🦄🌈\n\n  ✨✨  \n", encoding="utf-8")
        glyphs = load_unicode_emoji(extra)
        assert glyphs[-2:] == ["🦄🌈", "✨✨"]

    def test_missing_extra_file_warns(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="emojistats.constants"):
            glyphs = load_unicode_emoji(tmp_path / "missing.txt")
        assert glyphs == load_unicode_emoji()
        assert "Unicode emoji file not found" in caplog.text


class TestPlural:
    def test_one(self):
        assert plural(1) == ""

    def test_zero_and_many(self):
        assert plural(0) == "s"
        assert plural(3) == "s"
        assert plural(2, "es") == "es"
