from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from cartera_import.models.classified_row import Classification, ClassifiedRow
from cartera_import.models.processing_result import PreviewSummary
from cartera_import.models.records import RowRejection

__all__ = [
    "build_preview",
]


def build_preview(
    file_name: str,
    rows: Sequence[ClassifiedRow[Any]],
    rejections: Sequence[RowRejection],
    sample_limit: int = 100,
) -> PreviewSummary:
    """Aggregate classified rows into counts plus capped per-class samples.

    Pure: never touches the store.
    """
    counts = {c: 0 for c in Classification}
    samples: dict[Classification, list[ClassifiedRow[Any]]] = {c: [] for c in Classification}
    for row in rows:
        counts[row.classification] += 1
        bucket = samples[row.classification]
        if len(bucket) < sample_limit:
            bucket.append(row)

    return PreviewSummary(
        file_name=file_name,
        total_rows=len(rows) + len(rejections),
        counts=counts,
        rejected_count=len(rejections),
        samples=samples,
        rejected_samples=list(rejections[:sample_limit]),
    )
