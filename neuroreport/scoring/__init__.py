"""Normative score conversions and group statistics."""

from .norms import compute_group_stats, percentile_to_z, qualitative_range

__all__ = ["compute_group_stats", "percentile_to_z", "qualitative_range"]
