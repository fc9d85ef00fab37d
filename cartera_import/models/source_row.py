from __future__ import annotations

from dataclasses import dataclass

"""SourceRow model: one decoded spreadsheet line.

The header row is spreadsheet row 1, so the first data row carries
row_number=2. Values are raw text keyed by the normalized header name.
"""

__all__ = [
    "SourceRow",
]


@dataclass(frozen=True)
class SourceRow:
    """Raw cells of a single data line (ephemeral, lives only during a run)."""
    row_number: int  # spreadsheet row number (header = 1)
    values: dict[str, str]  # normalized header -> raw cell text

    def get(self, header: str | None) -> str:
        if header is None:
            return ""
        return self.values.get(header, "")
