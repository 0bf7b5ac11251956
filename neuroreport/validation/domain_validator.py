"""Domain eligibility checks.

Decides which clinical domains have enough usable data to appear in a
report. Validation outcomes are return values, never exceptions, so callers
can report why a domain was left out.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Union

from neuroreport.config.domain_rules import DomainRule, RulesLike, resolve_rule
from neuroreport.domains import (
    DomainConfig,
    DomainKind,
    PatientType,
    domains_for_patient,
)
from neuroreport.models import DomainValidationResult, ScoreRecord, ValidationReason
from neuroreport.normalizer import partition_by_source

logger = logging.getLogger(__name__)


@dataclass
class DomainSelection:
    """Validation outcome for one catalogue domain.

    Attributes:
        config: Catalogue entry for the domain
        records: Records routed to the domain (union over its labels)
        result: Validation result for the domain as a whole
    """

    config: DomainConfig
    result: DomainValidationResult
    records: List[ScoreRecord] = field(default_factory=list)

    @property
    def kind(self) -> DomainKind:
        return self.config.kind

    @property
    def is_valid(self) -> bool:
        return self.result.is_valid


def validate_domain(
    domain_name: str,
    records: Iterable[ScoreRecord],
    rule: Optional[DomainRule] = None,
) -> DomainValidationResult:
    """
    Evaluate one domain against a set of candidate records.

    Deterministic and side-effect free. Records are filtered to
    ``domain == domain_name``; the domain is valid when it has at least
    ``rule.min_scoreable_rows`` scoreable records, each required column is
    populated on some scoreable record, and, when an allow-list is set, some
    record comes from an allowed test.

    Args:
        domain_name: Domain label to evaluate
        records: Candidate records, typically a whole data partition
        rule: Evidence rule; defaults to one scoreable record

    Returns:
        DomainValidationResult with the reason and scoreable row count
    """
    rule = rule or DomainRule()
    in_domain = [r for r in records if r.domain == domain_name]
    scoreable = [r for r in in_domain if r.is_scoreable]
    count = len(scoreable)

    if count < rule.min_scoreable_rows:
        return DomainValidationResult(
            domain_name=domain_name,
            is_valid=False,
            reason=ValidationReason.NO_SCOREABLE_ROWS,
            scoreable_row_count=count,
            detail=(
                f"{count} scoreable of {len(in_domain)} records, "
                f"need {rule.min_scoreable_rows}"
            ),
        )

    missing_columns = sorted(
        column
        for column in rule.required_columns
        if all(getattr(r, column) is None for r in scoreable)
    )
    if missing_columns:
        return DomainValidationResult(
            domain_name=domain_name,
            is_valid=False,
            reason=ValidationReason.MISSING_REQUIRED_EVIDENCE,
            scoreable_row_count=count,
            detail=f"Missing required columns: {', '.join(missing_columns)}",
        )

    if rule.required_test_allowlist is not None:
        has_required_test = any(
            r.test_id is not None
            and r.test_id.lower() in rule.required_test_allowlist
            for r in in_domain
        )
        if not has_required_test:
            return DomainValidationResult(
                domain_name=domain_name,
                is_valid=False,
                reason=ValidationReason.MISSING_REQUIRED_EVIDENCE,
                scoreable_row_count=count,
                detail=(
                    "No record from required tests: "
                    f"{', '.join(sorted(rule.required_test_allowlist))}"
                ),
            )

    return DomainValidationResult(
        domain_name=domain_name,
        is_valid=True,
        reason=ValidationReason.VALID,
        scoreable_row_count=count,
    )


def _merge_label_results(
    config: DomainConfig, results: Sequence[DomainValidationResult]
) -> DomainValidationResult:
    valid = [r for r in results if r.is_valid]
    if valid:
        return DomainValidationResult(
            domain_name=config.title,
            is_valid=True,
            reason=ValidationReason.VALID,
            scoreable_row_count=sum(r.scoreable_row_count for r in results),
        )

    # The label that got furthest explains the exclusion
    best = max(results, key=lambda r: r.scoreable_row_count)
    return DomainValidationResult(
        domain_name=config.title,
        is_valid=False,
        reason=best.reason,
        scoreable_row_count=sum(r.scoreable_row_count for r in results),
        detail=f"{best.domain_name}: {best.detail}" if best.detail else None,
    )


def evaluate_domain(
    config: DomainConfig,
    records: Sequence[ScoreRecord],
    rules: RulesLike = None,
) -> DomainSelection:
    """Validate one catalogue domain against its data partition.

    A domain consuming several labels is valid when any one label is valid,
    and then carries the records of every label. Records from raters the
    domain does not expect are ignored.
    """
    source = partition_by_source(records)[config.data_source]

    if not source:
        result = DomainValidationResult(
            domain_name=config.title,
            is_valid=False,
            reason=ValidationReason.NO_DATA_SOURCE,
            detail=f"No {config.data_source.value} records",
        )
        return DomainSelection(config=config, result=result)

    if all(r.domain is None for r in source):
        result = DomainValidationResult(
            domain_name=config.title,
            is_valid=False,
            reason=ValidationReason.NO_DOMAIN_COLUMN,
            detail=f"No {config.data_source.value} record has a domain",
        )
        return DomainSelection(config=config, result=result)

    off_rater = [r for r in source if config.matches(r) and not config.accepts_rater(r)]
    if off_rater:
        found = sorted({r.rater.value for r in off_rater})
        logger.warning(
            f"Ignoring {len(off_rater)} {config.title} records from unexpected "
            f"raters ({', '.join(found)}) in {config.kind.value}"
        )
        source = [r for r in source if config.accepts_rater(r)]

    rule = resolve_rule(rules, config.kind)
    label_results = [validate_domain(label, source, rule) for label in config.labels]
    result = _merge_label_results(config, label_results)
    matched = [r for r in source if config.matches(r)]
    return DomainSelection(config=config, result=result, records=matched)


def select_report_domains(
    records: Sequence[ScoreRecord],
    patient_type: Union[PatientType, str],
    rules: RulesLike = None,
) -> List[DomainSelection]:
    """
    Evaluate the whole domain catalogue for one patient.

    Args:
        records: Normalized records for the patient
        patient_type: Child or adult; selects the rater-specific variants
        rules: Evidence rules by domain kind

    Returns:
        One DomainSelection per applicable domain, in report order
    """
    patient_type = PatientType(patient_type)
    records = list(records)
    selections = [
        evaluate_domain(config, records, rules)
        for config in domains_for_patient(patient_type)
    ]

    included = [s.config.title for s in selections if s.is_valid]
    logger.info(
        f"Selected {len(included)} of {len(selections)} domains "
        f"for {patient_type.value} report"
    )
    for selection in selections:
        if not selection.is_valid:
            logger.debug(
                f"Excluded {selection.config.title}: "
                f"{selection.result.reason.value}"
                f"{f' ({selection.result.detail})' if selection.result.detail else ''}"
            )
    return selections
