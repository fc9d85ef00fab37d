from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Any

from .classified_row import Classification, ClassifiedRow
from .records import RowRejection

"""Result models for preview and execute operations.

BatchResult is the tagged outcome of one batch transaction (committed with N
records, or failed with a cause). Execute folds the list of BatchResults into
its final counts.
"""

__all__ = [
    "BatchResult",
    "BatchStatsAccumulator",
    "ExecuteResult",
    "PreviewSummary",
]


@dataclass(frozen=True)
class BatchResult:
    index: int  # 0-based batch position
    size: int
    committed: int  # == size when ok, 0 when failed
    first_row: int  # spreadsheet row number of the first record
    last_row: int
    elapsed_seconds: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed(self) -> int:
        return 0 if self.ok else self.size

    @staticmethod
    def committed_batch(index: int, rows: list[Any], elapsed: float) -> BatchResult:
        first, last = _row_span(rows)
        return BatchResult(index, len(rows), len(rows), first, last, elapsed)

    @staticmethod
    def failed_batch(index: int, rows: list[Any], elapsed: float, error: str) -> BatchResult:
        first, last = _row_span(rows)
        return BatchResult(index, len(rows), 0, first, last, elapsed, error)


def _row_span(rows: list[Any]) -> tuple[int, int]:
    if not rows:
        return (-1, -1)
    return (rows[0].record.row_number, rows[-1].record.row_number)


@dataclass(frozen=True)
class PreviewSummary:
    """Read-only classification report shown to the operator before commit."""
    file_name: str
    total_rows: int
    counts: dict[Classification, int]
    rejected_count: int
    samples: dict[Classification, list[ClassifiedRow[Any]]]
    rejected_samples: list[RowRejection] = field(default_factory=list)

    @property
    def matched(self) -> int:
        return self.counts.get(Classification.MATCHED, 0)

    @property
    def duplicates(self) -> int:
        return self.counts.get(Classification.DUPLICATE, 0)

    @property
    def unmatched(self) -> int:
        return self.counts.get(Classification.UNMATCHED, 0)


@dataclass(frozen=True)
class ExecuteResult:
    import_run_id: int
    file_name: str
    total: int
    imported: int
    skipped: int
    failed: int
    errors: list[str]
    elapsed_seconds: float = 0.0
    batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0


class BatchStatsAccumulator:
    """Collects per-batch transaction timings for the execute result."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_batches, avg_batch_seconds, p95_batch_seconds)."""
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            # 19th of 20 quantiles = p95
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
