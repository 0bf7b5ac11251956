"""Tests for shared text utilities."""

import pytest

from neuroreport.text_utils import estimate_tokens, strip_think_blocks


class TestStripThinkBlocks:
    """Tests for strip_think_blocks."""

    def test_removes_block(self):
        assert strip_think_blocks("<think>plan</think>\n\nAnswer.") == "Answer."

    def test_removes_multiline_and_repeated_blocks(self):
        text = "<THINK>a\nb</THINK>First. <think>c</think>Second."

        assert strip_think_blocks(text) == "First. Second."

    def test_removes_unclosed_block(self):
        assert strip_think_blocks("Answer.\n<think>cut off mid") == "Answer."

    @pytest.mark.parametrize("text", ["", None])
    def test_empty(self, text):
        assert strip_think_blocks(text) == ""

    def test_plain_text_is_trimmed(self):
        assert strip_think_blocks("  Answer.  ") == "Answer."


class TestEstimateTokens:
    """Tests for estimate_tokens."""

    @pytest.mark.parametrize("text,expected", [("", 0), ("abcd", 1), ("abcde", 2)])
    def test_estimate(self, text, expected):
        assert estimate_tokens(text) == expected
