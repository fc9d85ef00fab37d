from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from ..db.batch_insert import BatchInsertError
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.classified_row import ClassifiedRow
from ..models.processing_result import BatchResult, BatchStatsAccumulator
from .progress import ProgressTracker

"""Batch transactional executor.

Matched rows are chunked in file order. Each chunk runs inside its own
transaction: every write of the chunk commits together or none does. A
failed chunk is rolled back, recorded, and processing continues with the
next one.
"""

__all__ = [
    "BatchExecutor",
    "BatchTotals",
    "chunked",
    "fold_batch_results",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

Rows = list[ClassifiedRow[Any]]


def chunked(rows: Sequence[T], size: int) -> list[list[T]]:
    """Split rows into consecutive chunks of ``size`` (last one may be short)."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return [list(rows[i:i + size]) for i in range(0, len(rows), size)]


def _error_type(exc: BaseException) -> str:
    if isinstance(exc, BatchInsertError):
        return "DATABASE_INSERT_ERROR"
    module = type(exc).__module__ or ""
    if module.startswith("psycopg2"):
        return "DATABASE_ERROR"
    return "UNEXPECTED_ERROR"


class BatchExecutor:
    def __init__(
        self,
        repository: Any,
        batch_size: int = 100,
        *,
        error_log: ErrorLogBuffer | None = None,
        file_name: str = "",
        kind: str = "",
    ) -> None:
        self.repository = repository
        self.batch_size = batch_size
        self.error_log = error_log
        self.file_name = file_name
        self.kind = kind
        self.stats = BatchStatsAccumulator()

    def run(
        self,
        rows: Rows,
        commit: Callable[[Rows], None],
        on_committed: Callable[[Rows], None] | None = None,
    ) -> list[BatchResult]:
        """Run ``commit`` once per chunk, each inside ``repository.transaction()``.

        ``on_committed`` is only called after the transaction of the chunk has
        committed, so run-local state never sees rolled back writes.
        """
        batches = chunked(rows, self.batch_size)
        results: list[BatchResult] = []
        committed = 0
        failed = 0
        with ProgressTracker(len(batches), description=f"Importing {self.kind}") as progress:
            for index, batch in enumerate(batches):
                result = self._run_batch(index, batch, commit)
                results.append(result)
                if result.ok:
                    committed += result.committed
                    if on_committed is not None:
                        on_committed(batch)
                else:
                    failed += result.failed
                progress.finish_batch(ok=committed, failed=failed)
        return results

    def _run_batch(self, index: int, batch: Rows, commit: Callable[[Rows], None]) -> BatchResult:
        start = time.perf_counter()
        try:
            with self.repository.transaction():
                commit(batch)
        except Exception as e:
            elapsed = time.perf_counter() - start
            self.stats.add_batch_time(elapsed)
            result = BatchResult.failed_batch(index, batch, elapsed, str(e))
            logger.warning(
                "batch %d failed (%d rows, rows %d-%d): %s",
                index + 1, result.size, result.first_row, result.last_row, e,
            )
            if self.error_log is not None:
                self.error_log.append(
                    ErrorRecord.create(
                        file=self.file_name,
                        kind=self.kind,
                        first_row=result.first_row,
                        last_row=result.last_row,
                        error_type=_error_type(e),
                        db_message=str(e),
                    )
                )
            return result

        elapsed = time.perf_counter() - start
        self.stats.add_batch_time(elapsed)
        logger.debug("batch %d committed rows=%d elapsed=%.3fs", index + 1, len(batch), elapsed)
        return BatchResult.committed_batch(index, batch, elapsed)


@dataclass(frozen=True)
class BatchTotals:
    success: int
    failed: int
    errors: list[str]


def describe_failure(result: BatchResult) -> str:
    return (
        f"batch {result.index + 1} ({result.size} rows, "
        f"rows {result.first_row}-{result.last_row}) failed: {result.error}"
    )


def fold_batch_results(results: Sequence[BatchResult], max_errors: int = 50) -> BatchTotals:
    """Fold batch outcomes into (success, failed, errors).

    One message per failed batch; messages beyond ``max_errors`` are dropped
    and replaced by a single trailing count.
    """
    success = sum(r.committed for r in results)
    failed = sum(r.failed for r in results)
    messages = [describe_failure(r) for r in results if not r.ok]
    if len(messages) > max_errors:
        hidden = len(messages) - max_errors
        messages = messages[:max_errors] + [f"... {hidden} more failed batches"]
    return BatchTotals(success=success, failed=failed, errors=messages)
