"""Usage ledger for narrative generation attempts.

This module records every generation attempt (model, tokens, latency,
outcome) and aggregates the records for diagnostics. The ledger is
append-only: nothing in this package edits or deletes a record.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from neuroreport.models import GenerationAttemptRecord

logger = logging.getLogger(__name__)

RecordFilter = Callable[[GenerationAttemptRecord], bool]


@dataclass
class AggregateUsageStats:
    """Aggregate view over a set of attempt records.

    Attributes:
        total_calls: Number of attempts
        successful_calls: Attempts that produced accepted text
        failed_calls: Attempts that failed in transport or validation
        total_tokens: Input plus output tokens
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
        total_time: Summed latency in seconds
        avg_time_seconds: Mean latency per attempt
        success_rate: successful_calls / total_calls
        models_used: Distinct model ids attempted
        domains_processed: Distinct domain keys attempted
    """

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_time: float = 0.0
    avg_time_seconds: float = 0.0
    success_rate: float = 0.0
    models_used: Set[str] = field(default_factory=set)
    domains_processed: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "total_tokens": self.total_tokens,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_time": round(self.total_time, 3),
            "avg_time_seconds": round(self.avg_time_seconds, 3),
            "success_rate": round(self.success_rate, 4),
            "models_used": sorted(self.models_used),
            "domains_processed": sorted(self.domains_processed),
        }


def aggregate(records: List[GenerationAttemptRecord]) -> AggregateUsageStats:
    """Aggregate a list of attempt records."""
    stats = AggregateUsageStats()
    for record in records:
        stats.total_calls += 1
        if record.success:
            stats.successful_calls += 1
        else:
            stats.failed_calls += 1
        stats.input_tokens += record.input_tokens or 0
        stats.output_tokens += record.output_tokens or 0
        stats.total_time += record.latency_seconds or 0.0
        stats.models_used.add(record.model_id)
        if record.domain_key:
            stats.domains_processed.add(record.domain_key)

    stats.total_tokens = stats.input_tokens + stats.output_tokens
    if stats.total_calls > 0:
        stats.avg_time_seconds = stats.total_time / stats.total_calls
        stats.success_rate = stats.successful_calls / stats.total_calls
    return stats


class UsageLedger:
    """Thread-safe, append-only log of generation attempts.

    Appends from concurrent generation calls are serialized by a lock, so
    no record is lost or torn. When ``log_path`` is set each appended record
    is also written as one JSON line under the same lock.
    """

    def __init__(self, log_path: Optional[str | Path] = None):
        """Initialize the ledger.

        Args:
            log_path: Optional JSON lines file receiving every appended record
        """
        self._lock = threading.Lock()
        self._records: List[GenerationAttemptRecord] = []
        self.log_path = Path(log_path) if log_path else None

    def append(self, record: GenerationAttemptRecord) -> None:
        """Append one attempt record.

        Args:
            record: Attempt to record
        """
        with self._lock:
            self._records.append(record)
            if self.log_path is not None:
                self._persist(record)

        logger.debug(
            f"Recorded attempt: {record.model_id} ({record.tier.value}) "
            f"{'ok' if record.success else 'failed'} - "
            f"{record.total_tokens} tokens, {record.latency_seconds:.2f}s"
        )

    def _persist(self, record: GenerationAttemptRecord) -> None:
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record.to_dict()) + "\n")
        except OSError as e:
            # The in-memory record is kept; only the file copy is lost
            logger.error(f"Failed to write usage log {self.log_path}: {e}")

    def records(self) -> List[GenerationAttemptRecord]:
        """Get a snapshot copy of all records in append order."""
        with self._lock:
            return list(self._records)

    def summary(self, filter: Optional[RecordFilter] = None) -> AggregateUsageStats:
        """Aggregate all records, or those matching ``filter``.

        Args:
            filter: Optional predicate selecting records

        Returns:
            AggregateUsageStats over the selected records
        """
        snapshot = self.records()
        if filter is not None:
            snapshot = [r for r in snapshot if filter(r)]
        return aggregate(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @classmethod
    def from_jsonl(
        cls, path: str | Path, keep_logging: bool = False
    ) -> "UsageLedger":
        """Rebuild a ledger from a JSON lines usage log.

        Args:
            path: Usage log written by a previous ledger
            keep_logging: Continue appending new records to the same file

        Returns:
            Ledger holding the logged records

        Raises:
            FileNotFoundError: If the log does not exist
            ValueError: If a line is not a valid record
        """
        path = Path(path)
        ledger = cls(log_path=path if keep_logging else None)
        with open(path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    record = GenerationAttemptRecord.from_dict(json.loads(line))
                except (KeyError, ValueError) as e:
                    raise ValueError(
                        f"Invalid usage record at {path}:{line_number}: {e}"
                    ) from e
                ledger._records.append(record)

        logger.info(f"Loaded {len(ledger._records)} usage records from {path}")
        return ledger


def usage_summary(
    ledger: UsageLedger, filter: Optional[RecordFilter] = None
) -> AggregateUsageStats:
    """Summarize a ledger, optionally over a filtered subset."""
    return ledger.summary(filter)
