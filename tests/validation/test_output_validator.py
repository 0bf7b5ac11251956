"""Tests for narrative quality validation."""

import pytest

from neuroreport.validation.output_validator import (
    count_sentences,
    validate_narrative,
)


class TestValidateNarrative:
    """Tests for validate_narrative."""

    def test_clean_narrative(self, good_narrative):
        result = validate_narrative(good_narrative)

        assert result.is_valid is True
        assert result.quality_score == 100
        assert result.issues == []
        assert result.warnings == []
        assert result.metrics["num_sentences"] == 2
        assert result.metrics["clinical_terms"] >= 2

    def test_too_short(self):
        result = validate_narrative("Average range. Fine.")

        assert result.is_valid is False
        assert any("too short" in issue for issue in result.issues)

    def test_single_sentence_is_an_issue(self):
        text = (
            "Overall cognitive functioning and academic skills were broadly "
            "average with no notable strengths or weaknesses across the "
            "performance measures administered"
        )

        result = validate_narrative(text)

        assert result.is_valid is False
        assert result.issues == ["Too few sentences (1)"]

    def test_think_blocks_are_ignored(self, good_narrative):
        result = validate_narrative(f"<think>WISC scores look fine</think>{good_narrative}")

        assert result.is_valid is True
        assert result.metrics["test_name_mentions"] == 0

    def test_test_names_warn_in_lenient_mode(self, good_narrative):
        text = f"{good_narrative} Results on the WISC were consistent."

        result = validate_narrative(text)

        assert result.is_valid is True
        assert result.quality_score == 90
        assert result.metrics["test_name_mentions"] == 1

    def test_test_names_fail_in_strict_mode(self, good_narrative):
        text = f"{good_narrative} Results on the WISC were consistent."

        result = validate_narrative(text, strict=True)

        assert result.is_valid is False
        assert any("test names" in issue for issue in result.issues)

    def test_test_names_are_case_sensitive(self, good_narrative):
        """Test that ordinary words are not mistaken for test names."""
        text = f"{good_narrative} A brief rest helped."

        result = validate_narrative(text, strict=True)

        assert result.metrics["test_name_mentions"] == 0

    def test_percentile_mentions(self, good_narrative):
        percentiles = " ".join(
            f"One skill was at the {p}th percentile." for p in (4, 5, 6, 7, 8, 9)
        )

        result = validate_narrative(f"{good_narrative} {percentiles}")

        assert result.metrics["percentile_mentions"] == 6
        assert any("percentile" in w for w in result.warnings)
        assert result.issues == []

    def test_score_mentions_in_strict_mode(self, good_narrative):
        text = (
            f"{good_narrative} A standard score of 85 and a scaled score of 7 "
            f"sat beside a T-score of 65."
        )

        lenient = validate_narrative(text)
        strict = validate_narrative(text, strict=True)

        assert lenient.metrics["score_mentions"] == 3
        assert lenient.is_valid is True
        assert strict.is_valid is False

    def test_lengthy_output_warns(self, good_narrative):
        text = " ".join([good_narrative] * 6)

        result = validate_narrative(text)

        assert result.metrics["length"] > 1000
        assert any("lengthy" in w for w in result.warnings)
        assert result.is_valid is True

    def test_strict_length_thresholds(self):
        text = "Cognitive skills were average. Performance was steady across tasks."

        assert validate_narrative(text, strict=False).metrics["length"] < 150
        assert validate_narrative(text, strict=True).is_valid is False

    def test_score_floor(self):
        result = validate_narrative("")

        assert result.quality_score >= 0
        assert result.is_valid is False

    @pytest.mark.parametrize(
        "text,expected",
        [("One. Two. Three.", 3), ("No terminator", 1), ("Why? Yes!", 2), ("", 0)],
    )
    def test_count_sentences(self, text, expected):
        assert count_sentences(text) == expected
