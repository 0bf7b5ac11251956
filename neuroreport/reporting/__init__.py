"""Run summaries and renderer output."""

from .run_summary import NarratedDomain, RunSummary
from .summary_block import SummaryMetadata, inject_summary_block, render_summary_block

__all__ = [
    "NarratedDomain",
    "RunSummary",
    "SummaryMetadata",
    "inject_summary_block",
    "render_summary_block",
]
