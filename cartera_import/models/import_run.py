from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

"""ImportRun ledger model.

State transitions: running → (completed | completed_with_errors | failed)

The record is created before row processing starts and is updated exactly
once when the run finishes (or fails).
"""

__all__ = [
    "ImportKind",
    "ImportRun",
    "RunStatus",
    "final_status",
]


class ImportKind(Enum):
    """Import type; the value is the configuration key of the pipeline."""
    CASES = "procesos"
    AGREEMENTS = "acuerdos"


class RunStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


def final_status(success: int, failure: int) -> RunStatus:
    """Final ledger status for the given counts.

    ``failed`` whenever nothing was committed (including an all-skipped run),
    ``completed`` when there were commits and no failures.
    """
    if success == 0:
        return RunStatus.FAILED
    if failure == 0:
        return RunStatus.COMPLETED
    return RunStatus.COMPLETED_WITH_ERRORS


@dataclass(frozen=True)
class ImportRun:
    id: int
    kind: ImportKind
    file_name: str
    operator_id: int | None
    submitted_at: datetime
    total: int
    success: int = 0
    failure: int = 0
    skipped: int = 0
    status: RunStatus = RunStatus.RUNNING

    def finished(self, success: int, failure: int, skipped: int) -> ImportRun:
        return replace(
            self,
            success=success,
            failure=failure,
            skipped=skipped,
            status=final_status(success, failure),
        )
