"""Prompt construction for narrative generation.

This module turns a validated domain's score records into the system and
user prompts sent to the generation backend. It performs no generation
itself.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence

from neuroreport.models import GenerationRequest, Rater, ScoreRecord, SectionKind

logger = logging.getLogger(__name__)

# Shared framing for every section kind
BASE_SYSTEM_PROMPT = """You are an experienced clinical neuropsychologist writing the results section of a neuropsychological evaluation report.
You write for referring clinicians, teachers and families: plain, precise, strengths-based language.

WRITING PRINCIPLES:
- Describe performance with qualitative ranges (e.g., "average", "below average") rather than numbers
- Name cognitive abilities and skills, not the instruments that measured them
- Describe relative strengths and weaknesses and how they relate to daily functioning
- Report only what the data show; do not speculate about diagnoses
- Use third person and past tense for test performance

ANTI-PATTERNS TO AVOID:
✗ Listing test or subtest names
✗ Repeating raw scores, standard scores, T-scores or scaled scores
✗ Reciting every percentile; mention a percentile only for an extreme result
✗ Bullet points, headings or markdown formatting
"""

SECTION_PROMPTS: Dict[SectionKind, str] = {
    SectionKind.DOMAIN_SUMMARY: """TASK: Summarize one cognitive or behavioral domain.

Requirements:
- Write a single paragraph of 3-6 sentences (roughly 400-900 characters)
- Open with the overall level of functioning in the domain
- Follow with notable strengths and weaknesses within the domain
- When several raters contributed, note where their reports agree or differ
""",
    SectionKind.INTEGRATED_SUMMARY: """TASK: Write the integrated summary of results across all domains.

Requirements:
- Write one to two paragraphs (roughly 600-1000 characters)
- Synthesize the pattern of strengths and weaknesses across domains
- Relate the cognitive profile to the behavioral and emotional findings
- Do not restate each domain in turn
""",
    SectionKind.COMPREHENSIVE_SUMMARY: """TASK: Write the comprehensive summary and impressions for the full report.

Requirements:
- Write two to three paragraphs (roughly 800-1000 characters)
- Integrate cognitive, academic, behavioral and adaptive findings
- Highlight the findings with the clearest implications for daily life and learning
- Close with a brief statement of overall impressions
""",
}

# Per-section sampling temperature used when a request does not set one
DEFAULT_TEMPERATURES: Dict[SectionKind, float] = {
    SectionKind.DOMAIN_SUMMARY: 0.2,
    SectionKind.INTEGRATED_SUMMARY: 0.35,
    SectionKind.COMPREHENSIVE_SUMMARY: 0.3,
}

USER_INSTRUCTIONS = (
    "Use the following results to produce a clinical summary. "
    "Avoid test names and raw/standard/T/Scaled scores; "
    "sparingly use percentiles only if extreme."
)


def get_system_prompt(section_kind: SectionKind) -> str:
    """Get the full system prompt for a section kind."""
    return f"{BASE_SYSTEM_PROMPT}\n{SECTION_PROMPTS[section_kind]}"


def make_domain_key(domain_name: str) -> str:
    """Derive a stable key from a domain name (e.g., "Verbal/Language" -> "verbal_language")."""
    key = re.sub(r"[^a-z0-9]+", "_", domain_name.lower()).strip("_")
    return key or "domain"


def _format_number(value: float) -> str:
    return f"{value:.0f}" if float(value).is_integer() else f"{value:.1f}"


def format_record(record: ScoreRecord) -> str:
    """Render one record as a single payload line."""
    label = record.scale_name or record.subdomain or record.narrow_category or "Score"
    source = record.test_name or record.test_id
    parts: List[str] = [f"{label} ({source})" if source else label]

    if record.qualitative_range is not None:
        parts.append(record.qualitative_range.value)
    if record.percentile is not None:
        parts.append(f"percentile {_format_number(record.percentile)}")
    if record.standard_score is not None:
        score_type = record.score_type.value if record.score_type else "score"
        parts.append(f"{score_type} {_format_number(record.standard_score)}")
    if record.rater is not None:
        parts.append(f"rater: {record.rater.value}")

    return "- " + ", ".join(parts)


def _group_heading(record: ScoreRecord, raters: Sequence[Rater]) -> str:
    heading = record.subdomain or ""
    if raters and record.rater is not None:
        rater = f"{record.rater.value.capitalize()} ratings"
        heading = f"{rater}, {heading}" if heading else rater
    return heading


class NarrativeRequestBuilder:
    """Builds GenerationRequests from score records.

    The system prompt is fixed per section kind. The user payload lists each
    record's scale, range and scores, grouped by subdomain, under an
    instruction to prefer qualitative descriptions over repeating scores.
    """

    def build(
        self,
        domain_name: str,
        records: Sequence[ScoreRecord],
        section_kind: SectionKind,
        domain_key: Optional[str] = None,
        temperature: Optional[float] = None,
        strict: bool = False,
        raters: Sequence[Rater] = (),
    ) -> GenerationRequest:
        """Build the request for one domain.

        Args:
            domain_name: Domain heading, e.g. "Memory"
            records: Records to summarize; non-scoreable records are skipped
            section_kind: Kind of section being written
            domain_key: Logging key; derived from domain_name when omitted
            temperature: Sampling temperature; per-section default when omitted
            strict: Require strict output validation
            raters: Expected raters of a multi-rater domain; records are
                grouped by rater in this order

        Returns:
            Immutable GenerationRequest
        """
        scoreable = [r for r in records if r.is_scoreable]
        if raters:
            order = {rater: i for i, rater in enumerate(raters)}
            scoreable.sort(key=lambda r: order.get(r.rater, len(order)))
        lines: List[str] = [
            USER_INSTRUCTIONS,
            "",
            f"=== DOMAIN: {domain_name} ===",
        ]

        groups: Dict[str, List[ScoreRecord]] = {}
        for record in scoreable:
            groups.setdefault(_group_heading(record, raters), []).append(record)

        for subdomain, members in groups.items():
            if subdomain:
                lines.append(f"{subdomain}:")
            lines.extend(format_record(r) for r in members)

        if not scoreable:
            lines.append("(no scored results)")
        lines.append(f"=== END DOMAIN: {domain_name} ===")

        request = GenerationRequest(
            section_kind=section_kind,
            prompt_system=get_system_prompt(section_kind),
            prompt_user="\n".join(lines),
            domain_key=domain_key or make_domain_key(domain_name),
            temperature=(
                temperature
                if temperature is not None
                else DEFAULT_TEMPERATURES[section_kind]
            ),
            requires_strict_validation=strict,
        )
        logger.debug(
            f"Built {section_kind.value} request for {domain_name} "
            f"({len(scoreable)} records, {len(request.prompt_user)} chars)"
        )
        return request

    def build_integrated(
        self,
        domain_narratives: Mapping[str, str],
        section_kind: SectionKind = SectionKind.INTEGRATED_SUMMARY,
        domain_key: str = "sirf",
        temperature: Optional[float] = None,
        strict: bool = False,
    ) -> GenerationRequest:
        """Build a cross-domain request from finished domain narratives.

        Args:
            domain_narratives: Narrative text keyed by domain heading
            section_kind: INTEGRATED_SUMMARY or COMPREHENSIVE_SUMMARY
            domain_key: Logging key for the summary
            temperature: Sampling temperature; per-section default when omitted
            strict: Require strict output validation

        Returns:
            Immutable GenerationRequest
        """
        lines: List[str] = [USER_INSTRUCTIONS, ""]
        for heading, text in domain_narratives.items():
            lines.append(f"=== {heading} ===")
            lines.append(text.strip())
            lines.append("")

        return GenerationRequest(
            section_kind=section_kind,
            prompt_system=get_system_prompt(section_kind),
            prompt_user="\n".join(lines).rstrip(),
            domain_key=domain_key,
            temperature=(
                temperature
                if temperature is not None
                else DEFAULT_TEMPERATURES[section_kind]
            ),
            requires_strict_validation=strict,
        )
