"""Score normalization.

Turns raw rows from per-test score exports into canonical ScoreRecords,
derives z-scores and qualitative ranges from percentiles, and computes
group statistics. Rows that cannot be identified are collected as
MalformedRowError values; one bad row never aborts the batch.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from pydantic import ValidationError

from neuroreport.models import (
    DataSource,
    DomainGroupStats,
    InstrumentType,
    QualitativeRange,
    Rater,
    ScoreRecord,
    ScoreType,
)
from neuroreport.scoring.norms import (
    compute_group_stats,
    needs_z,
    percentile_to_z,
    qualitative_range,
)

logger = logging.getLogger(__name__)

# Export column names accepted in place of the canonical field names
COLUMN_ALIASES: Dict[str, str] = {
    "test": "test_id",
    "scale": "scale_name",
    "score": "standard_score",
    "narrow": "narrow_category",
    "range": "qualitative_range",
    "filename": "source_file",
}

MISSING_TOKENS = frozenset({"", "na", "nan", "none", "null", "-"})

NUMERIC_FIELDS = ("raw_score", "standard_score", "percentile", "z")
TEXT_FIELDS = (
    "test_id",
    "test_name",
    "scale_name",
    "domain",
    "subdomain",
    "narrow_category",
    "source_file",
)
ENUM_FIELDS: Dict[str, type] = {
    "score_type": ScoreType,
    "rater": Rater,
    "test_type": InstrumentType,
    "qualitative_range": QualitativeRange,
}

SOURCE_TEST_TYPES: Dict[DataSource, frozenset] = {
    DataSource.NEUROCOG: frozenset({InstrumentType.NPSYCH_TEST}),
    DataSource.NEUROBEHAV: frozenset({InstrumentType.RATING_SCALE}),
    DataSource.VALIDITY: frozenset(
        {InstrumentType.PERFORMANCE_VALIDITY, InstrumentType.SYMPTOM_VALIDITY}
    ),
}

RawRow = Union[Mapping[str, Any], ScoreRecord]


class MalformedRowError(ValueError):
    """A raw row that could not be turned into a ScoreRecord.

    Attributes:
        position: Zero-based index of the row within its batch
        source_file: Provenance of the row, when known
        message: Why the row was rejected
    """

    def __init__(self, position: int, message: str, source_file: Optional[str] = None):
        self.position = position
        self.source_file = source_file
        self.message = message
        location = f"{source_file}:{position}" if source_file else f"row {position}"
        super().__init__(f"{location}: {message}")


@dataclass
class NormalizationResult:
    """Output of one normalize() call.

    Iterating yields ``(records, group_stats)`` so callers can unpack it
    directly; rejected rows are available on the ``rejected`` attribute.
    """

    records: List[ScoreRecord] = field(default_factory=list)
    group_stats: List[DomainGroupStats] = field(default_factory=list)
    rejected: List[MalformedRowError] = field(default_factory=list)

    def __iter__(self) -> Iterator[Any]:
        yield self.records
        yield self.group_stats

    @property
    def rejected_positions(self) -> List[int]:
        """Positions of rows skipped as malformed."""
        return [error.position for error in self.rejected]

    @property
    def scoreable_count(self) -> int:
        """Number of records with at least one quantitative score."""
        return sum(1 for r in self.records if r.is_scoreable)


def is_missing(value: Any) -> bool:
    """Check whether a raw cell means "no value"."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip().lower() in MISSING_TOKENS:
        return True
    return False


def _parse_number(name: str, value: Any, position: int) -> Optional[float]:
    """Parse an optional numeric cell; unusable cells become absent."""
    if is_missing(value):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            # Censored exports write "<1" or ">99" for extreme percentiles
            logger.warning(f"Row {position}: ignoring non-numeric {name} {value!r}")
            return None
    if not math.isfinite(number):
        logger.warning(f"Row {position}: ignoring non-finite {name} {value!r}")
        return None
    return number


def _parse_enum(name: str, enum_cls: type, value: Any) -> Optional[enum.Enum]:
    if isinstance(value, enum_cls):
        return value
    if is_missing(value):
        return None

    text = str(value).strip()
    candidates = (text, text.lower(), text.lower().replace("-", "_").replace(" ", "_"))
    for candidate in candidates:
        try:
            return enum_cls(candidate)
        except ValueError:
            continue

    # Labels are matched case-insensitively for free-text range columns
    for member in enum_cls:
        if member.value.lower() == text.lower():
            return member

    logger.debug(f"Ignoring unrecognized {name} value {value!r}")
    return None


def _canonical_columns(row: Mapping[str, Any]) -> Dict[str, Any]:
    canonical: Dict[str, Any] = {}
    for column, value in row.items():
        key = str(column).strip()
        key = COLUMN_ALIASES.get(key, COLUMN_ALIASES.get(key.lower(), key))
        # An explicit canonical column wins over its alias
        if key in canonical and not is_missing(canonical[key]):
            continue
        canonical[key] = value
    return canonical


def normalize_row(
    row: RawRow, position: int, source_file: Optional[str] = None
) -> ScoreRecord:
    """Build one ScoreRecord from a raw row.

    Args:
        row: Mapping of column name to raw cell, or an existing ScoreRecord
        position: Row index used in error reports
        source_file: Fallback provenance when the row carries none

    Returns:
        Normalized ScoreRecord with z and qualitative_range derived

    Raises:
        MalformedRowError: If the row lacks both test_id and domain
    """
    raw = row.model_dump() if isinstance(row, ScoreRecord) else row
    columns = _canonical_columns(raw)
    provenance = columns.get("source_file")
    provenance = None if is_missing(provenance) else str(provenance).strip()
    provenance = provenance or source_file

    fields: Dict[str, Any] = {}
    for name in TEXT_FIELDS:
        value = columns.get(name)
        fields[name] = None if is_missing(value) else str(value).strip()
    for name in NUMERIC_FIELDS:
        fields[name] = _parse_number(name, columns.get(name), position)
    for name, enum_cls in ENUM_FIELDS.items():
        fields[name] = _parse_enum(name, enum_cls, columns.get(name))

    fields["source_file"] = provenance

    if not fields["test_id"] and not fields["domain"]:
        raise MalformedRowError(
            position, "row has neither test_id nor domain", provenance
        )

    percentile = fields["percentile"]
    if percentile is not None and not 0 <= percentile <= 100:
        logger.warning(f"Row {position}: ignoring out-of-range percentile {percentile}")
        percentile = fields["percentile"] = None

    if needs_z(percentile, fields["z"]):
        fields["z"] = percentile_to_z(percentile)
    if percentile is not None:
        fields["qualitative_range"] = qualitative_range(percentile)

    try:
        return ScoreRecord(**fields)
    except ValidationError as e:
        raise MalformedRowError(position, str(e), provenance) from e


def normalize(
    raw_rows: Iterable[RawRow], source_file: Optional[str] = None
) -> NormalizationResult:
    """Normalize a batch of raw rows.

    Pure over its input: performs no I/O and never raises for a single bad
    row. Passing the records of a previous result back in yields the same
    records, since a non-zero z is never re-derived.

    Args:
        raw_rows: Mappings of column name to raw value (or ScoreRecords)
        source_file: Provenance applied to rows that carry none

    Returns:
        NormalizationResult with records, group stats and rejected rows
    """
    result = NormalizationResult()

    for position, row in enumerate(raw_rows):
        try:
            result.records.append(normalize_row(row, position, source_file))
        except MalformedRowError as e:
            logger.warning(f"Skipping malformed row: {e}")
            result.rejected.append(e)

    result.group_stats = compute_group_stats(result.records)

    logger.info(
        f"Normalized {len(result.records)} records "
        f"({result.scoreable_count} scoreable, {len(result.rejected)} rejected)"
    )
    return result


def partition_by_source(
    records: Iterable[ScoreRecord],
) -> Dict[DataSource, List[ScoreRecord]]:
    """Split records into the neurocognitive, neurobehavioral and validity sets.

    Records without a test_type cannot be placed and are included in every
    partition.
    """
    partitions: Dict[DataSource, List[ScoreRecord]] = {
        source: [] for source in DataSource
    }
    for record in records:
        for source, test_types in SOURCE_TEST_TYPES.items():
            if record.test_type is None or record.test_type in test_types:
                partitions[source].append(record)
    return partitions
