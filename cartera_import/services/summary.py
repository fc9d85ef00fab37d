from __future__ import annotations

from ..models.import_run import ImportKind
from ..models.processing_result import ExecuteResult

"""SUMMARY line rendering for execute results.

Format:
SUMMARY kind={kind} file={name} run={id} total={n} imported={n} skipped={n}
failed={n} batches={n} elapsed_sec={sec}
"""


def _format_seconds(seconds: float) -> str:
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        # avoid scientific notation
        return f"{seconds:.6f}".rstrip('0').rstrip('.')
    return f"{seconds:.2f}"


def render_summary_line(kind: ImportKind, result: ExecuteResult) -> str:
    """Render the SUMMARY line for one execute run.

    >>> from cartera_import.models.processing_result import ExecuteResult
    >>> r = ExecuteResult(7, "cartera.csv", 10, 8, 1, 1, ["batch 1 failed"], 2.0, 1)
    >>> render_summary_line(ImportKind.CASES, r)
    'SUMMARY kind=procesos file=cartera.csv run=7 total=10 imported=8 skipped=1 failed=1 batches=1 elapsed_sec=2'
    """
    file_name = result.file_name.replace(" ", "_")
    return (
        f"SUMMARY kind={kind.value} "
        f"file={file_name} "
        f"run={result.import_run_id} "
        f"total={result.total} "
        f"imported={result.imported} "
        f"skipped={result.skipped} "
        f"failed={result.failed} "
        f"batches={result.batches} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )
