"""Unit tests for text normalisation and UTF-8 truncation."""

from __future__ import annotations

from altpocket.ingest.text import normalize_text, text_score, truncate_utf8


class TestNormalizeText:
    def test_collapses_whitespace_runs(self) -> None:
        assert normalize_text("  a \n\t b   c  ") == "a b c"

    def test_empty_and_blank(self) -> None:
        assert normalize_text("") == ""
        assert normalize_text(" \n ") == ""

    def test_text_score_counts_codepoints(self) -> None:
        assert text_score("  héllo   wörld ") == len("héllo wörld")


class TestTruncateUtf8:
    def test_short_text_unchanged(self) -> None:
        assert truncate_utf8("hello", 10) == "hello"

    def test_exact_fit_unchanged(self) -> None:
        assert truncate_utf8("hello", 5) == "hello"

    def test_ascii_cut(self) -> None:
        assert truncate_utf8("hello", 3) == "hel"

    def test_never_splits_multibyte_codepoint(self) -> None:
        # "é" is two bytes; a 2-byte limit would land inside it.
        assert truncate_utf8("aé", 2) == "a"

    def test_four_byte_codepoint(self) -> None:
        text = "ab\U0001F600cd"
        assert truncate_utf8(text, 3) == "ab"
        assert truncate_utf8(text, 5) == "ab"
        assert truncate_utf8(text, 6) == "ab\U0001F600"

    def test_nonpositive_limit_yields_empty(self) -> None:
        assert truncate_utf8("hello", 0) == ""
        assert truncate_utf8("hello", -5) == ""

    def test_result_is_a_prefix_within_limit(self) -> None:
        text = "Ærø æøå " * 40
        for limit in range(1, 60):
            result = truncate_utf8(text, limit)
            assert len(result.encode("utf-8")) <= limit
            assert text.startswith(result)
            # Longest such prefix: one more codepoint would not fit.
            if len(result) < len(text):
                assert len(text[: len(result) + 1].encode("utf-8")) > limit
