from __future__ import annotations

from cartera_import.models.import_run import ImportKind
from cartera_import.models.processing_result import ExecuteResult
from cartera_import.services.summary import render_summary_line


def _result(**kw) -> ExecuteResult:
    base = dict(
        import_run_id=4,
        file_name="cartera marzo.csv",
        total=250,
        imported=150,
        skipped=0,
        failed=100,
        errors=["batch 2 failed"],
        elapsed_seconds=1.5,
        batches=3,
    )
    base.update(kw)
    return ExecuteResult(**base)


def test_render_summary_line():
    line = render_summary_line(ImportKind.CASES, _result())
    assert line == (
        "SUMMARY kind=procesos file=cartera_marzo.csv run=4 total=250 imported=150 "
        "skipped=0 failed=100 batches=3 elapsed_sec=1.50"
    )


def test_elapsed_formatting():
    assert render_summary_line(ImportKind.AGREEMENTS, _result(elapsed_seconds=0)).endswith("elapsed_sec=0")
    assert render_summary_line(ImportKind.AGREEMENTS, _result(elapsed_seconds=3.0)).endswith("elapsed_sec=3")
    assert render_summary_line(ImportKind.AGREEMENTS, _result(elapsed_seconds=0.0042)).endswith(
        "elapsed_sec=0.0042"
    )
