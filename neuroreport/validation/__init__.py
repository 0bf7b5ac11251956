"""Domain eligibility and narrative quality validation."""

from .domain_validator import (
    DomainSelection,
    evaluate_domain,
    select_report_domains,
    validate_domain,
)
from .output_validator import OutputValidation, validate_narrative

__all__ = [
    "DomainSelection",
    "OutputValidation",
    "evaluate_domain",
    "select_report_domains",
    "validate_domain",
    "validate_narrative",
]
