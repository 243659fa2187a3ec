"""Tests for quote extraction from snippets."""

import pytest

from quoteguard.extraction import extract_quote


class TestExtractQuote:
    """Test extraction priority and length limits."""

    def test_double_quoted_text(self):
        snippet = 'Einstein: "Imagination is more important than knowledge." 1929'

        assert extract_quote(snippet) == "Imagination is more important than knowledge."

    def test_curly_double_quotes(self):
        snippet = "He wrote “Life is like riding a bicycle, keep moving.” in a letter"

        assert extract_quote(snippet) == "Life is like riding a bicycle, keep moving."

    def test_single_quoted_text(self):
        snippet = "As she put it, 'Nothing in life is to be feared, only understood.'"

        assert (
            extract_quote(snippet)
            == "Nothing in life is to be feared, only understood."
        )

    def test_short_quoted_text_falls_through(self):
        snippet = 'He said "yes" and then explained the whole theory in depth.'

        assert extract_quote(snippet) == snippet

    def test_speech_indicator(self):
        snippet = "x" * 300 + " Curie said: Be less curious about people and more about ideas. More text"

        assert extract_quote(snippet) == "Be less curious about people and more about ideas."

    @pytest.mark.parametrize("snippet", ["", "too short", "y" * 300])
    def test_nothing_usable(self, snippet):
        assert extract_quote(snippet) is None
