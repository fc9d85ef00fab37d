"""Bulk import and reconciliation of portfolio exports (cases, payment agreements)."""

from .config.loader import ImportConfig, load_config
from .models.import_run import ImportKind
from .services import AgreementImportPipeline, CaseImportPipeline, ProcessingError, build_pipeline

__all__ = [
    "AgreementImportPipeline",
    "CaseImportPipeline",
    "ImportConfig",
    "ImportKind",
    "ProcessingError",
    "build_pipeline",
    "load_config",
]

__version__ = "0.1.0"
