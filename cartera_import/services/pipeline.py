from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config.loader import ImportConfig
from ..logging.error_log import ErrorLogBuffer
from ..models.classified_row import ClassifiedRow
from ..models.import_run import ImportKind, ImportRun
from ..models.processing_result import ExecuteResult, PreviewSummary
from ..models.records import RowRejection
from ..tabular.reader import CellRendering, EmptyInputError, TableData, detect_format, read_table
from .classifier import RowClassifier
from .executor import BatchExecutor, fold_batch_results
from .ledger import ImportRunLedger
from .preview import build_preview

"""Shared import pipeline: decode → normalize → classify → preview / execute.

Concrete pipelines (cases, agreements) only supply the row parsing, the
run-scoped lookup context and the writes of one batch.
"""

__all__ = [
    "ImportPipeline",
    "ParseOutcome",
    "ProcessingError",
]

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Run-level failure outside the batch loop (ledger already marked failed)."""


@dataclass
class ParseOutcome:
    records: list[Any] = field(default_factory=list)
    rejections: list[RowRejection] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.rejections)


class ImportPipeline(ABC):
    kind: ImportKind

    def __init__(
        self,
        repository: Any,
        config: ImportConfig | None = None,
        *,
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.repository = repository
        self.config = config or ImportConfig()
        self.error_log = (
            error_log if error_log is not None else ErrorLogBuffer(Path(self.config.error_log_directory))
        )

    # ─── hooks ─────────────────────────────────────────────────────────────

    @property
    def rendering(self) -> CellRendering:
        return CellRendering()

    @abstractmethod
    def parse_table(self, table: TableData) -> ParseOutcome:
        """Resolve columns and turn every source row into records or rejections."""

    @abstractmethod
    def build_context(self) -> Any:
        """Bulk-read the store once and return the run-scoped lookup state."""

    @abstractmethod
    def make_classifier(self, context: Any) -> RowClassifier:
        """Classifier bound to the lookups of ``context``."""

    @abstractmethod
    def commit_batch(
        self, rows: list[ClassifiedRow[Any]], context: Any, run: ImportRun
    ) -> None:
        """All writes of one batch. Runs inside the batch transaction."""

    def after_commit(self, rows: list[ClassifiedRow[Any]], context: Any) -> None:
        """Publish run-local state staged by ``commit_batch`` once it is durable."""

    # ─── operations ────────────────────────────────────────────────────────

    def parse(self, data: bytes, file_name: str) -> ParseOutcome:
        """Decode and normalize the whole file.

        Raises:
            DecodeError, MissingColumnsError, EmptyInputError: fatal, nothing
                has been written.
        """
        table = read_table(
            data,
            detect_format(file_name),
            delimiter=self.config.delimiter,
            rendering=self.rendering,
        )
        outcome = self.parse_table(table)
        if outcome.total == 0:
            raise EmptyInputError(f"{file_name}: no data rows")
        logger.debug(
            "parsed %s rows=%d records=%d rejected=%d",
            file_name, outcome.total, len(outcome.records), len(outcome.rejections),
        )
        return outcome

    def classify(self, outcome: ParseOutcome, context: Any) -> tuple[list[ClassifiedRow[Any]], RowClassifier]:
        classifier = self.make_classifier(context)
        return classifier.classify_all(outcome.records), classifier

    def preview(self, data: bytes, file_name: str) -> PreviewSummary:
        """Classify every row against the current store without writing."""
        outcome = self.parse(data, file_name)
        context = self.build_context()
        rows, _ = self.classify(outcome, context)
        summary = build_preview(
            file_name, rows, outcome.rejections, self.config.preview_sample_limit
        )
        logger.info(
            "preview %s kind=%s total=%d matched=%d duplicates=%d unmatched=%d rejected=%d",
            file_name, self.kind.value, summary.total_rows, summary.matched,
            summary.duplicates, summary.unmatched, summary.rejected_count,
        )
        return summary

    def execute(self, data: bytes, file_name: str, operator_id: int | None) -> ExecuteResult:
        """Import every matched row in isolated batches and close the ledger.

        Raises:
            DecodeError, MissingColumnsError, EmptyInputError: before any write
            ProcessingError: failure after the ledger was opened
        """
        start = time.perf_counter()
        outcome = self.parse(data, file_name)

        ledger = ImportRunLedger(self.repository, self.kind)
        run = ledger.open(file_name, operator_id, outcome.total)
        executor = BatchExecutor(
            self.repository,
            self.config.batch_size,
            error_log=self.error_log,
            file_name=file_name,
            kind=self.kind.value,
        )
        try:
            context = self.build_context()
            rows, classifier = self.classify(outcome, context)
            matched = [r for r in rows if r.is_matched]
            skipped = len(rows) - len(matched) + len(outcome.rejections)

            def on_committed(batch: list[ClassifiedRow[Any]]) -> None:
                classifier.mark_committed(batch)
                self.after_commit(batch, context)

            results = executor.run(
                matched,
                lambda batch: self.commit_batch(batch, context, run),
                on_committed,
            )
            totals = fold_batch_results(results, self.config.max_error_messages)
            run = ledger.close(run, totals.success, totals.failed, skipped)
        except Exception as e:
            logger.error("import run %d failed: %s", run.id, e)
            ledger.fail(run)
            self._flush_error_log()
            raise ProcessingError(f"import run {run.id} failed: {e}") from e

        self._flush_error_log()
        batches, avg, p95 = executor.stats.get_stats()
        return ExecuteResult(
            import_run_id=run.id,
            file_name=file_name,
            total=outcome.total,
            imported=totals.success,
            skipped=skipped,
            failed=totals.failed,
            errors=totals.errors,
            elapsed_seconds=time.perf_counter() - start,
            batches=batches,
            avg_batch_seconds=avg,
            p95_batch_seconds=p95,
        )

    def _flush_error_log(self) -> None:
        try:
            path = self.error_log.flush()
        except OSError as e:
            logger.warning("could not write error log: %s", e)
            return
        if path is not None:
            logger.info("batch errors written to %s", path)
