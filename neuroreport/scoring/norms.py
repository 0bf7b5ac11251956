"""
Normative score conversions.

Percentile ranks are converted to z-scores with the inverse normal CDF and
mapped onto the qualitative range labels used in report tables. Group
statistics summarize z-scores by domain, subdomain and narrow category.

Percentile to Qualitative Range
===============================
Boundaries resolve upward, so a percentile sitting exactly on a cut point
receives the more extreme label:

- >= 98: Exceptionally High
- >= 91: Above Average
- >= 75: High Average
- >= 25: Average
- >= 9: Low Average
- >= 2: Below Average
- below 2: Exceptionally Low
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from neuroreport.models import DomainGroupStats, QualitativeRange, ScoreRecord

logger = logging.getLogger(__name__)

# Ordered from highest cut point down; the first threshold met wins
QUALITATIVE_RANGE_THRESHOLDS: Tuple[Tuple[float, QualitativeRange], ...] = (
    (98.0, QualitativeRange.EXCEPTIONALLY_HIGH),
    (91.0, QualitativeRange.ABOVE_AVERAGE),
    (75.0, QualitativeRange.HIGH_AVERAGE),
    (25.0, QualitativeRange.AVERAGE),
    (9.0, QualitativeRange.LOW_AVERAGE),
    (2.0, QualitativeRange.BELOW_AVERAGE),
)

# Probabilities of exactly 0 and 1 would map to infinite z
PROBABILITY_CEILING = float(np.nextafter(1.0, 0.0))
PROBABILITY_FLOOR = 1.0 - PROBABILITY_CEILING

GROUP_LEVELS: Tuple[str, ...] = ("domain", "subdomain", "narrow_category")


def qualitative_range(percentile: Optional[float]) -> Optional[QualitativeRange]:
    """
    Map a percentile rank onto its qualitative range label.

    Args:
        percentile: Percentile rank (0-100), or None

    Returns:
        The matching QualitativeRange, or None when percentile is absent

    Example:
        >>> qualitative_range(91)
        <QualitativeRange.ABOVE_AVERAGE: 'Above Average'>
        >>> qualitative_range(90)
        <QualitativeRange.HIGH_AVERAGE: 'High Average'>
    """
    if percentile is None:
        return None

    for threshold, label in QUALITATIVE_RANGE_THRESHOLDS:
        if percentile >= threshold:
            return label
    return QualitativeRange.EXCEPTIONALLY_LOW


def percentile_to_z(percentile: float) -> float:
    """
    Convert a percentile rank to a z-score using the inverse normal CDF.

    Args:
        percentile: Percentile rank (0-100)

    Returns:
        z-score such that norm.cdf(z) * 100 == percentile. Only the
        endpoints 0 and 100 are nudged inward so the result stays finite.

    Raises:
        ValueError: If percentile is outside 0-100
    """
    if percentile < 0 or percentile > 100:
        raise ValueError(f"percentile must be between 0 and 100, got {percentile}")

    probability = percentile / 100.0
    probability = min(max(probability, PROBABILITY_FLOOR), PROBABILITY_CEILING)
    return float(norm.ppf(probability))


def needs_z(percentile: Optional[float], z: Optional[float]) -> bool:
    """Check whether z should be derived from the percentile.

    A z of exactly zero is treated as unset, matching exports that write 0
    into empty z columns. A non-zero z is never overwritten.
    """
    return percentile is not None and (z is None or z == 0)


def compute_group_stats(
    records: Iterable[ScoreRecord],
    levels: Sequence[str] = GROUP_LEVELS,
) -> List[DomainGroupStats]:
    """
    Compute z-score aggregates for every non-empty group at each level.

    Only scoreable records are counted. Within a group, absent z values are
    ignored for the mean and SD; the mean is None when no z is present and
    the sample SD is None when fewer than two z values are present.

    Args:
        records: Normalized score records
        levels: Grouping columns, evaluated independently

    Returns:
        Stats ordered by level, then by first appearance of each key
    """
    scoreable = [r for r in records if r.is_scoreable]
    stats: List[DomainGroupStats] = []

    for level in levels:
        groups: Dict[str, List[ScoreRecord]] = {}
        for record in scoreable:
            key = getattr(record, level)
            if key is None or key == "":
                continue
            groups.setdefault(key, []).append(record)

        for key, members in groups.items():
            z_values = np.array(
                [r.z for r in members if r.z is not None], dtype=float
            )
            mean_z = float(np.mean(z_values)) if z_values.size > 0 else None
            sd_z = float(np.std(z_values, ddof=1)) if z_values.size >= 2 else None
            stats.append(
                DomainGroupStats(
                    level=level, key=key, n=len(members), mean_z=mean_z, sd_z=sd_z
                )
            )

    logger.debug(f"Computed {len(stats)} group stats over {len(scoreable)} records")
    return stats
