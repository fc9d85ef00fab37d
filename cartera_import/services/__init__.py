from __future__ import annotations

from typing import Any

from ..config.loader import ImportConfig
from ..logging.error_log import ErrorLogBuffer
from ..models.import_run import ImportKind
from .agreement_import import AgreementImportPipeline
from .case_import import CaseImportPipeline
from .pipeline import ImportPipeline, ProcessingError

__all__ = [
    "AgreementImportPipeline",
    "CaseImportPipeline",
    "ImportPipeline",
    "ProcessingError",
    "build_pipeline",
]

PIPELINES: dict[ImportKind, type[ImportPipeline]] = {
    ImportKind.CASES: CaseImportPipeline,
    ImportKind.AGREEMENTS: AgreementImportPipeline,
}


def build_pipeline(
    kind: ImportKind,
    repository: Any,
    config: ImportConfig | None = None,
    *,
    error_log: ErrorLogBuffer | None = None,
) -> ImportPipeline:
    return PIPELINES[kind](repository, config, error_log=error_log)
