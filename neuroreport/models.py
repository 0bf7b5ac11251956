"""Data models for score normalization, domain validation and narrative generation."""

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ScoreType(str, enum.Enum):
    """Metric a test scale reports its standard score in."""

    T_SCORE = "t_score"
    SCALED_SCORE = "scaled_score"
    STANDARD_SCORE = "standard_score"
    Z_SCORE = "z_score"
    PERCENTILE = "percentile"
    RAW_SCORE = "raw_score"
    BASE_RATE = "base_rate"


class QualitativeRange(str, enum.Enum):
    """Descriptive range derived from a percentile rank."""

    EXCEPTIONALLY_HIGH = "Exceptionally High"
    ABOVE_AVERAGE = "Above Average"
    HIGH_AVERAGE = "High Average"
    AVERAGE = "Average"
    LOW_AVERAGE = "Low Average"
    BELOW_AVERAGE = "Below Average"
    EXCEPTIONALLY_LOW = "Exceptionally Low"


class Rater(str, enum.Enum):
    """Respondent type for behavior rating instruments."""

    SELF = "self"
    PARENT = "parent"
    TEACHER = "teacher"
    OBSERVER = "observer"


class InstrumentType(str, enum.Enum):
    """Kind of instrument a row came from."""

    NPSYCH_TEST = "npsych_test"
    RATING_SCALE = "rating_scale"
    PERFORMANCE_VALIDITY = "performance_validity"
    SYMPTOM_VALIDITY = "symptom_validity"


class DataSource(str, enum.Enum):
    """Dataset partition a domain is validated against."""

    NEUROCOG = "neurocog"
    NEUROBEHAV = "neurobehav"
    VALIDITY = "validity"


class SectionKind(str, enum.Enum):
    """Kind of narrative section being generated."""

    DOMAIN_SUMMARY = "domain_summary"
    INTEGRATED_SUMMARY = "integrated_summary"
    COMPREHENSIVE_SUMMARY = "comprehensive_summary"


class ModelTier(str, enum.Enum):
    """Priority class of a generation model."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class ValidationReason(str, enum.Enum):
    """Why a domain was included in or excluded from a report."""

    NO_DATA_SOURCE = "NoDataSource"
    NO_DOMAIN_COLUMN = "NoDomainColumn"
    NO_SCOREABLE_ROWS = "NoScoreableRows"
    MISSING_REQUIRED_EVIDENCE = "MissingRequiredEvidence"
    VALID = "Valid"


class ScoreRecord(BaseModel):
    """One measured scale within one test administration.

    Optional numeric fields are ``None`` when the source row had no value,
    so a score of zero stays distinguishable from a missing score.
    """

    model_config = ConfigDict(frozen=True)

    test_id: Optional[str] = Field(None, description="Short test code, e.g. 'wisc5'")
    test_name: Optional[str] = Field(None, description="Display name of the test")
    scale_name: Optional[str] = Field(None, description="Scale or subtest name")
    raw_score: Optional[float] = None
    standard_score: Optional[float] = Field(
        None, description="Score on the metric named by score_type"
    )
    score_type: Optional[ScoreType] = None
    percentile: Optional[float] = Field(None, ge=0.0, le=100.0)
    z: Optional[float] = None
    domain: Optional[str] = None
    subdomain: Optional[str] = None
    narrow_category: Optional[str] = None
    qualitative_range: Optional[QualitativeRange] = None
    rater: Optional[Rater] = None
    test_type: Optional[InstrumentType] = None
    source_file: Optional[str] = Field(None, description="Provenance of the row")

    @field_validator("raw_score", "standard_score", "percentile", "z", mode="before")
    @classmethod
    def reject_non_finite(cls, v: Any) -> Any:
        """Treat NaN as absent and reject infinities."""
        if not isinstance(v, float):
            return v
        if math.isnan(v):
            return None
        if math.isinf(v):
            raise ValueError(f"score fields must be finite, got {v}")
        return v

    @model_validator(mode="after")
    def require_identity(self) -> "ScoreRecord":
        """A record must be traceable to a test or a domain."""
        if not self.test_id and not self.domain:
            raise ValueError("ScoreRecord needs at least one of test_id or domain")
        return self

    @property
    def is_scoreable(self) -> bool:
        """True when at least one quantitative score field is present."""
        return (
            self.percentile is not None
            or self.standard_score is not None
            or self.z is not None
        )


@dataclass
class DomainGroupStats:
    """Aggregate z statistics for one grouping key.

    Attributes:
        level: Grouping column ("domain", "subdomain" or "narrow_category")
        key: Group value at that level
        n: Number of scoreable records in the group
        mean_z: Mean of present z values, None when there are none
        sd_z: Sample SD of present z values, None when fewer than two
    """

    level: str
    key: str
    n: int
    mean_z: Optional[float] = None
    sd_z: Optional[float] = None


@dataclass
class DomainValidationResult:
    """Outcome of evaluating one domain against a dataset."""

    domain_name: str
    is_valid: bool
    reason: ValidationReason
    scoreable_row_count: int = 0
    detail: Optional[str] = None


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable prompt payload for one narrative section."""

    section_kind: SectionKind
    prompt_system: str
    prompt_user: str
    domain_key: str
    temperature: float = 0.2
    requires_strict_validation: bool = False


@dataclass(frozen=True)
class GenerationAttemptRecord:
    """One generation attempt as stored in the usage ledger."""

    section_kind: SectionKind
    model_id: str
    tier: ModelTier
    input_tokens: int
    output_tokens: int
    latency_seconds: float
    success: bool
    domain_key: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_tokens(self) -> int:
        """Get total tokens used."""
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "section_kind": self.section_kind.value,
            "model_id": self.model_id,
            "tier": self.tier.value,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "latency_seconds": round(self.latency_seconds, 3),
            "success": self.success,
            "domain_key": self.domain_key,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationAttemptRecord":
        """Rebuild a record from ``to_dict`` output."""
        return cls(
            section_kind=SectionKind(data["section_kind"]),
            model_id=data["model_id"],
            tier=ModelTier(data["tier"]),
            input_tokens=int(data.get("input_tokens") or 0),
            output_tokens=int(data.get("output_tokens") or 0),
            latency_seconds=float(data.get("latency_seconds") or 0.0),
            success=bool(data["success"]),
            domain_key=data.get("domain_key"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class GenerationResult:
    """Successful narrative generation.

    Attributes:
        text: Cleaned narrative text
        model_id: Model that produced the accepted text
        tier: Tier the model was drawn from
        attempts: Total attempts made for this request, including this one
        quality_score: Output validation score, None when validation was skipped
        warnings: Validation warnings on the accepted text
        cached: True when the text came from the narrative cache
    """

    text: str
    model_id: str
    tier: ModelTier
    attempts: int
    quality_score: Optional[int] = None
    warnings: List[str] = field(default_factory=list)
    cached: bool = False
