"""Run summary for report generation.

Captures which domains were narrated, which need a manually written
narrative and why, which were excluded by validation, and the usage totals
for the run. It is a plain data container filled in by the pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from neuroreport.models import DomainValidationResult, GenerationResult
from neuroreport.normalizer import MalformedRowError
from neuroreport.usage_ledger import AggregateUsageStats


@dataclass
class NarratedDomain:
    """A domain whose narrative was generated and written."""

    model_id: str
    tier: str
    attempts: int
    quality_score: Optional[int] = None
    cached: bool = False
    output_path: Optional[str] = None


@dataclass
class RunSummary:
    """Summary of one report run.

    A run with some domains in ``needs_manual_narrative`` is still a
    complete run; those sections are left for the clinician to write.
    """

    run_id: str = ""
    patient_type: str = ""

    # Execution timing
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    # Normalization
    records_normalized: int = 0
    malformed_rows: List[Dict[str, Any]] = field(default_factory=list)

    # Domains
    narrated: Dict[str, NarratedDomain] = field(default_factory=dict)
    needs_manual_narrative: Dict[str, List[str]] = field(default_factory=dict)
    excluded: Dict[str, str] = field(default_factory=dict)

    # Usage
    usage: Optional[AggregateUsageStats] = None

    def start_run(self) -> None:
        """Mark the start of a run."""
        self.start_time = datetime.now(timezone.utc)

    def end_run(self) -> None:
        """Mark the end of a run."""
        self.end_time = datetime.now(timezone.utc)

    def record_malformed(self, errors: List[MalformedRowError]) -> None:
        """Record rows skipped during normalization."""
        for error in errors:
            self.malformed_rows.append(
                {
                    "position": error.position,
                    "source_file": error.source_file,
                    "message": error.message,
                }
            )

    def record_excluded(self, result: DomainValidationResult) -> None:
        """Record a domain left out by validation."""
        reason = result.reason.value
        if result.detail:
            reason = f"{reason}: {result.detail}"
        self.excluded[result.domain_name] = reason

    def record_narrated(
        self,
        domain: str,
        result: GenerationResult,
        output_path: Optional[str] = None,
    ) -> None:
        """Record a successfully narrated domain."""
        self.narrated[domain] = NarratedDomain(
            model_id=result.model_id,
            tier=result.tier.value,
            attempts=result.attempts,
            quality_score=result.quality_score,
            cached=result.cached,
            output_path=output_path,
        )

    def record_needs_manual(self, domain: str, reasons: List[str]) -> None:
        """Record a domain whose narrative could not be generated."""
        self.needs_manual_narrative[domain] = list(reasons)

    @property
    def malformed_positions(self) -> List[int]:
        return [row["position"] for row in self.malformed_rows]

    def _duration_seconds(self) -> float:
        if not self.start_time or not self.end_time:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly view of the run."""
        return {
            "run_id": self.run_id,
            "patient_type": self.patient_type,
            "execution": {
                "start_time": self.start_time.isoformat() if self.start_time else None,
                "end_time": self.end_time.isoformat() if self.end_time else None,
                "duration_seconds": round(self._duration_seconds(), 2),
            },
            "normalization": {
                "records": self.records_normalized,
                "malformed_count": len(self.malformed_rows),
                "malformed_rows": list(self.malformed_rows),
            },
            "domains": {
                "narrated": {
                    name: {
                        "model_id": d.model_id,
                        "tier": d.tier,
                        "attempts": d.attempts,
                        "quality_score": d.quality_score,
                        "cached": d.cached,
                        "output_path": d.output_path,
                    }
                    for name, d in self.narrated.items()
                },
                "needs_manual_narrative": {
                    name: list(reasons)
                    for name, reasons in self.needs_manual_narrative.items()
                },
                "excluded": dict(self.excluded),
            },
            "usage": self.usage.to_dict() if self.usage else None,
        }
