from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for batch failure logging.

One record per failed batch. ``first_row``/``last_row`` are spreadsheet row
numbers; -1 is used for run-level errors where no row range applies.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: uploaded file name
        kind: import type ("procesos" / "acuerdos")
        first_row: first spreadsheet row of the failed batch, -1 if unknown
        last_row: last spreadsheet row of the failed batch, -1 if unknown
        error_type: error classification in UPPER_SNAKE_CASE format
        db_message: database error message or description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    kind: str
    first_row: int
    last_row: int
    error_type: str  # UPPER_SNAKE
    db_message: str

    @staticmethod
    def create(
        file: str, kind: str, first_row: int, last_row: int, error_type: str, db_message: str
    ) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            kind=kind,
            first_row=first_row,
            last_row=last_row,
            error_type=error_type,
            db_message=db_message,
        )

    def to_json_line(self) -> str:
        """Serialize to one JSON line (fixed key set)."""
        return json.dumps(asdict(self), ensure_ascii=False)
