"""Domain models for the portfolio import engine.

Ephemeral per-run structures (SourceRow, ParsedRecords, ClassifiedRow) and
the persisted ImportRun ledger record.
"""

from .classified_row import Classification, ClassifiedRow
from .import_run import ImportKind, ImportRun, RunStatus, final_status
from .processing_result import BatchResult, ExecuteResult, PreviewSummary
from .records import AgreementRecord, CaseRecord, InstallmentDetail, InstallmentStatus, RowRejection
from .source_row import SourceRow

__all__ = [
    # Per-run structures
    "SourceRow",
    "CaseRecord",
    "AgreementRecord",
    "InstallmentDetail",
    "InstallmentStatus",
    "RowRejection",
    "Classification",
    "ClassifiedRow",
    # Results
    "BatchResult",
    "ExecuteResult",
    "PreviewSummary",
    # Ledger
    "ImportKind",
    "ImportRun",
    "RunStatus",
    "final_status",
]
