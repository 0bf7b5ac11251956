"""Tests for prompt construction."""

import pytest

from neuroreport.generation.prompts import (
    BASE_SYSTEM_PROMPT,
    DEFAULT_TEMPERATURES,
    SECTION_PROMPTS,
    USER_INSTRUCTIONS,
    NarrativeRequestBuilder,
    format_record,
    get_system_prompt,
    make_domain_key,
)
from neuroreport.models import QualitativeRange, Rater, ScoreRecord, ScoreType, SectionKind


@pytest.fixture
def memory_records():
    return [
        ScoreRecord(
            test_id="cvlt3",
            test_name="CVLT-3",
            scale_name="Immediate Recall",
            percentile=16.0,
            standard_score=85.0,
            score_type=ScoreType.STANDARD_SCORE,
            qualitative_range=QualitativeRange.LOW_AVERAGE,
            domain="Memory",
            subdomain="Verbal Memory",
        ),
        ScoreRecord(
            test_id="cvlt3",
            scale_name="Delayed Recall",
            percentile=37.5,
            qualitative_range=QualitativeRange.AVERAGE,
            domain="Memory",
            subdomain="Verbal Memory",
        ),
        ScoreRecord(test_id="cvlt3", scale_name="Recognition", domain="Memory"),
    ]


class TestSystemPrompt:
    """Tests for the system prompt."""

    @pytest.mark.parametrize("section_kind", list(SectionKind))
    def test_every_section_has_prompt(self, section_kind):
        prompt = get_system_prompt(section_kind)

        assert prompt.startswith(BASE_SYSTEM_PROMPT)
        assert SECTION_PROMPTS[section_kind] in prompt

    def test_default_temperatures(self):
        assert DEFAULT_TEMPERATURES[SectionKind.DOMAIN_SUMMARY] == pytest.approx(0.2)
        assert DEFAULT_TEMPERATURES[SectionKind.INTEGRATED_SUMMARY] == pytest.approx(0.35)
        assert DEFAULT_TEMPERATURES[SectionKind.COMPREHENSIVE_SUMMARY] == pytest.approx(0.3)


class TestHelpers:
    """Tests for prompt helpers."""

    @pytest.mark.parametrize(
        "name,key",
        [
            ("Verbal/Language", "verbal_language"),
            ("Memory", "memory"),
            ("  ADHD (Parent) ", "adhd_parent"),
            ("///", "domain"),
        ],
    )
    def test_make_domain_key(self, name, key):
        assert make_domain_key(name) == key

    def test_format_record(self, memory_records):
        line = format_record(memory_records[0])

        assert line == (
            "- Immediate Recall (CVLT-3), Low Average, percentile 16, "
            "standard_score 85"
        )

    def test_format_record_with_rater(self):
        record = ScoreRecord(
            test_id="basc3",
            scale_name="Hyperactivity",
            percentile=97.0,
            domain="ADHD",
            rater=Rater.TEACHER,
        )

        assert format_record(record).endswith("rater: teacher")


class TestNarrativeRequestBuilder:
    """Tests for NarrativeRequestBuilder."""

    def test_build(self, memory_records):
        request = NarrativeRequestBuilder().build(
            "Memory", memory_records, SectionKind.DOMAIN_SUMMARY
        )

        assert request.section_kind == SectionKind.DOMAIN_SUMMARY
        assert request.domain_key == "memory"
        assert request.temperature == pytest.approx(0.2)
        assert request.requires_strict_validation is False
        assert request.prompt_user.startswith(USER_INSTRUCTIONS)
        assert "=== DOMAIN: Memory ===" in request.prompt_user
        assert "Verbal Memory:" in request.prompt_user
        assert "percentile 37.5" in request.prompt_user
        assert "Recognition" not in request.prompt_user

    def test_overrides(self, memory_records):
        request = NarrativeRequestBuilder().build(
            "Memory",
            memory_records,
            SectionKind.DOMAIN_SUMMARY,
            domain_key="memory_custom",
            temperature=0.7,
            strict=True,
        )

        assert request.domain_key == "memory_custom"
        assert request.temperature == pytest.approx(0.7)
        assert request.requires_strict_validation is True

    def test_no_scoreable_records(self):
        request = NarrativeRequestBuilder().build(
            "Motor",
            [ScoreRecord(test_id="grooved", domain="Motor")],
            SectionKind.DOMAIN_SUMMARY,
        )

        assert "(no scored results)" in request.prompt_user

    def test_deterministic(self, memory_records):
        builder = NarrativeRequestBuilder()

        first = builder.build("Memory", memory_records, SectionKind.DOMAIN_SUMMARY)
        second = builder.build("Memory", memory_records, SectionKind.DOMAIN_SUMMARY)

        assert first == second

    def test_groups_by_rater(self):
        """Test that multi-rater records are listed one rater at a time."""
        records = [
            ScoreRecord(
                test_id="conners4",
                scale_name="Inattention",
                percentile=90.0,
                domain="ADHD",
                rater=Rater.TEACHER,
            ),
            ScoreRecord(
                test_id="conners4",
                scale_name="Hyperactivity",
                percentile=85.0,
                domain="ADHD",
                rater=Rater.PARENT,
            ),
            ScoreRecord(
                test_id="conners4",
                scale_name="Inattention",
                percentile=60.0,
                domain="ADHD",
                rater=Rater.SELF,
            ),
        ]

        request = NarrativeRequestBuilder().build(
            "ADHD",
            records,
            SectionKind.DOMAIN_SUMMARY,
            raters=(Rater.SELF, Rater.PARENT, Rater.TEACHER),
        )

        prompt = request.prompt_user
        assert (
            prompt.index("Self ratings:")
            < prompt.index("Parent ratings:")
            < prompt.index("Teacher ratings:")
        )

    def test_raters_ignored_for_single_rater_domains(self, memory_records):
        request = NarrativeRequestBuilder().build(
            "Memory", memory_records, SectionKind.DOMAIN_SUMMARY
        )

        assert "ratings:" not in request.prompt_user

    def test_build_integrated(self):
        request = NarrativeRequestBuilder().build_integrated(
            {"Memory": "Memory was average.  ", "Motor": "Motor skills were low."}
        )

        assert request.section_kind == SectionKind.INTEGRATED_SUMMARY
        assert request.domain_key == "sirf"
        assert request.temperature == pytest.approx(0.35)
        assert "=== Memory ===\nMemory was average.\n" in request.prompt_user
        assert request.prompt_user.endswith("Motor skills were low.")
