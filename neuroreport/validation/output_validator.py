"""Quality checks for generated narrative text.

Scores a narrative from 0 to 100, subtracting 25 per issue and 10 per
warning. A narrative is accepted only when it has no issues and scores at
least 60.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from neuroreport.text_utils import strip_think_blocks

ISSUE_PENALTY = 25
WARNING_PENALTY = 10
MIN_QUALITY_SCORE = 60

MIN_LENGTH = 100
MIN_LENGTH_STRICT = 150
MAX_LENGTH = 1000
MAX_LENGTH_STRICT = 800
MAX_PERCENTILE_MENTIONS = 5
MAX_SCORE_MENTIONS = 2
MIN_CLINICAL_TERMS = 2
MIN_SENTENCES = 2

# Matched case-sensitively so ordinary words such as "brief" do not count
TEST_NAMES: Tuple[str, ...] = (
    "WAIS",
    "WISC",
    "WPPSI",
    "WIAT",
    "KTEA",
    "NEPSY",
    "D-KEFS",
    "CVLT",
    "ROCFT",
    "Rey",
    "Trail Making",
    "BASC",
    "BRIEF",
    "Conners",
    "CAARS",
    "CEFI",
    "NAB",
    "RBANS",
)

CLINICAL_TERMS: Tuple[str, ...] = (
    "cognitive",
    "functioning",
    "ability",
    "skills",
    "performance",
    "difficulties",
    "challenges",
    "strengths",
    "weaknesses",
)

PERCENTILE_PATTERN = re.compile(r"\d+(?:st|nd|rd|th)\s*percentile", re.IGNORECASE)
SCORE_PATTERN = re.compile(
    r"(?:T-score|standard score|scaled score|raw score)s?\s*(?:of|=|:)?\s*\d+",
    re.IGNORECASE,
)
TEST_NAME_PATTERNS = tuple(
    re.compile(rf"(?<![\w-]){re.escape(name)}(?![\w-])") for name in TEST_NAMES
)
SENTENCE_SPLIT = re.compile(r"[.!?]+(?:\s+|$)")


@dataclass
class OutputValidation:
    """Result of validating one narrative.

    Attributes:
        is_valid: True when there are no issues and the score is at least 60
        quality_score: Score in [0, 100]
        issues: Problems that reject the narrative
        warnings: Problems that only lower the score
        metrics: Raw counts behind the checks
    """

    is_valid: bool
    quality_score: int
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        """One-line summary used as an attempt failure reason."""
        problems = self.issues + self.warnings
        detail = "; ".join(problems) if problems else "no problems"
        return f"quality {self.quality_score}: {detail}"


def count_sentences(text: str) -> int:
    return sum(1 for part in SENTENCE_SPLIT.split(text) if part.strip())


def validate_narrative(text: str, strict: bool = False) -> OutputValidation:
    """
    Validate a generated narrative.

    Issues: text shorter than 100 characters (150 strict); fewer than two
    sentences; test names (strict only); more than two score mentions
    (strict only). Warnings: text longer than 1000 characters (800 strict);
    more than five percentile mentions; test names and score mentions in
    lenient mode; fewer than two clinical terms.

    Args:
        text: Narrative text, reasoning blocks are stripped first
        strict: Apply the strict thresholds

    Returns:
        OutputValidation with score, issues, warnings and metrics
    """
    clean = strip_think_blocks(text or "")
    issues: List[str] = []
    warnings: List[str] = []

    length = len(clean)
    min_length = MIN_LENGTH_STRICT if strict else MIN_LENGTH
    max_length = MAX_LENGTH_STRICT if strict else MAX_LENGTH
    if length < min_length:
        issues.append(f"Output too short ({length} chars, minimum {min_length})")
    if length > max_length:
        warnings.append(f"Output lengthy ({length} chars, target <{max_length})")

    percentile_mentions = len(PERCENTILE_PATTERN.findall(clean))
    if percentile_mentions > MAX_PERCENTILE_MENTIONS:
        warnings.append(
            f"Too many percentile mentions ({percentile_mentions}), "
            f"should be sparse (<={MAX_PERCENTILE_MENTIONS})"
        )

    test_name_mentions = sum(1 for p in TEST_NAME_PATTERNS if p.search(clean))
    if test_name_mentions > 0:
        if strict:
            issues.append(
                f"Should avoid test names in summary "
                f"(found {test_name_mentions} mentions)"
            )
        else:
            warnings.append(
                f"Test names mentioned ({test_name_mentions}), "
                f"consider using general terms"
            )

    score_mentions = len(SCORE_PATTERN.findall(clean))
    if score_mentions > MAX_SCORE_MENTIONS:
        message = f"Too many specific scores mentioned ({score_mentions})"
        if strict:
            issues.append(message)
        else:
            warnings.append(message)

    lowered = clean.lower()
    clinical_terms = sum(1 for term in CLINICAL_TERMS if term in lowered)
    if clinical_terms < MIN_CLINICAL_TERMS:
        warnings.append(
            f"Limited clinical terminology ({clinical_terms} terms found)"
        )

    num_sentences = count_sentences(clean)
    if num_sentences < MIN_SENTENCES:
        issues.append(f"Too few sentences ({num_sentences})")

    quality_score = 100 - ISSUE_PENALTY * len(issues) - WARNING_PENALTY * len(warnings)
    quality_score = max(0, min(100, quality_score))

    return OutputValidation(
        is_valid=not issues and quality_score >= MIN_QUALITY_SCORE,
        quality_score=quality_score,
        issues=issues,
        warnings=warnings,
        metrics={
            "length": length,
            "percentile_mentions": percentile_mentions,
            "test_name_mentions": test_name_mentions,
            "score_mentions": score_mentions,
            "clinical_terms": clinical_terms,
            "num_sentences": num_sentences,
        },
    )
