"""Tests for escapebook.sanitize — comment text cleaning."""

import pytest

from escapebook.exceptions import EmptyContentError, MalformedInputError
from escapebook.sanitize import collapse_runs, sanitize_comment


class TestRuns:
    def test_run_of_26_collapses_to_20(self):
        assert sanitize_comment("a" * 26) == "a" * 20

    def test_run_of_20_kept(self):
        assert sanitize_comment("b" * 20) == "b" * 20

    def test_run_of_21_collapses(self):
        assert sanitize_comment("!" * 21) == "!" * 20

    def test_runs_inside_text(self):
        assert sanitize_comment("wow" + "o" * 40 + "!") == "wow" + "o" * 20 + "!"

    def test_collapse_runs_custom_limit(self):
        assert collapse_runs("zzzzzz", limit=3) == "zzz"


class TestWhitespace:
    def test_whitespace_only_is_empty(self):
        with pytest.raises(EmptyContentError):
            sanitize_comment("   \n\t  \r\n ")

    def test_empty_string(self):
        with pytest.raises(EmptyContentError):
            sanitize_comment("")

    def test_none_is_empty(self):
        with pytest.raises(EmptyContentError):
            sanitize_comment(None)

    def test_inline_spaces_collapse(self):
        assert sanitize_comment("hello    there\t\tfriend") == "hello there friend"

    def test_line_endings_normalized(self):
        assert sanitize_comment("one\r\ntwo\rthree") == "one\ntwo\nthree"

    def test_blank_lines_collapse(self):
        assert sanitize_comment("top\n\n\n\n\nbottom") == "top\n\nbottom"

    def test_lines_trimmed(self):
        assert sanitize_comment("  first  \n   second ") == "first\nsecond"


class TestInvisible:
    def test_zero_width_removed(self):
        assert sanitize_comment("es\u200bca\u200dpe\ufeff") == "escape"

    def test_control_chars_removed(self):
        assert sanitize_comment("bell\x07 and\x00 null") == "bell and null"

    def test_bidi_override_removed(self):
        assert sanitize_comment("abc\u202edef") == "abcdef"

    def test_only_invisible_is_empty(self):
        with pytest.raises(EmptyContentError):
            sanitize_comment("\u200b\u200c\u200d")

    def test_non_ascii_text_kept(self):
        assert sanitize_comment("탈출 성공!") == "탈출 성공!"


class TestLength:
    def test_truncated_to_300(self):
        text = sanitize_comment("abcdefghij" * 40)
        assert len(text) == 300
        assert text == ("abcdefghij" * 30)

    def test_truncation_drops_trailing_space(self):
        raw = "x" * 10 + (" word" * 100)
        text = sanitize_comment(raw, max_length=16)
        assert not text.endswith(" ")

    def test_padded_payload_truncated_not_rejected(self):
        assert sanitize_comment("I got out. " + " " * 6000) == "I got out."

    def test_oversized_payload_keeps_head(self):
        assert sanitize_comment("ab" * 3000) == "ab" * 150

    def test_non_string_is_malformed(self):
        with pytest.raises(MalformedInputError):
            sanitize_comment(["not", "text"])
