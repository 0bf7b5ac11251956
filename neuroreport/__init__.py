"""Neuropsychological report narrative core."""

from neuroreport.generation import (
    GenerationClient,
    GenerationError,
    GenerationErrorKind,
    NarrativeRequestBuilder,
)
from neuroreport.normalizer import MalformedRowError, normalize
from neuroreport.pipeline import NarrativePipeline, ReportRunContext
from neuroreport.usage_ledger import UsageLedger, usage_summary
from neuroreport.validation import select_report_domains, validate_domain

__version__ = "0.1.0"

__all__ = [
    "GenerationClient",
    "GenerationError",
    "GenerationErrorKind",
    "MalformedRowError",
    "NarrativePipeline",
    "NarrativeRequestBuilder",
    "ReportRunContext",
    "UsageLedger",
    "normalize",
    "select_report_domains",
    "usage_summary",
    "validate_domain",
]
