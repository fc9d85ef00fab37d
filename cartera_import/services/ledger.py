from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from ..models.import_run import ImportKind, ImportRun, RunStatus

__all__ = [
    "ImportRunLedger",
]

logger = logging.getLogger(__name__)


class ImportRunLedger:
    """One persisted record per execute run.

    ``open`` inserts the record as ``running`` before any batch starts;
    ``close`` or ``fail`` performs the single final update.
    """

    def __init__(self, repository: Any, kind: ImportKind) -> None:
        self.repository = repository
        self.kind = kind

    def open(self, file_name: str, operator_id: int | None, total: int) -> ImportRun:
        submitted_at = datetime.now(UTC)
        run_id = self.repository.create_import_run(
            self.kind, file_name, operator_id, total, submitted_at
        )
        logger.info("import run %d opened kind=%s file=%s total=%d", run_id, self.kind.value, file_name, total)
        return ImportRun(
            id=run_id,
            kind=self.kind,
            file_name=file_name,
            operator_id=operator_id,
            submitted_at=submitted_at,
            total=total,
        )

    def close(self, run: ImportRun, success: int, failure: int, skipped: int) -> ImportRun:
        finished = run.finished(success, failure, skipped)
        self.repository.finish_import_run(finished)
        logger.info(
            "import run %d closed status=%s success=%d failure=%d skipped=%d",
            finished.id, finished.status.value, success, failure, skipped,
        )
        return finished

    def fail(self, run: ImportRun) -> None:
        """Mark the run failed after an error outside the batch loop.

        A failure here is logged and not raised so the original error surfaces.
        """
        try:
            self.repository.set_import_run_status(self.kind, run.id, RunStatus.FAILED)
        except Exception:
            logger.exception("could not mark import run %d as failed", run.id)
