from __future__ import annotations

from dataclasses import dataclass

from .reader import MissingColumnsError

"""Header -> logical field resolution.

Resolved once per file, so row decoding is a dictionary lookup instead of a
header search per cell.
"""

__all__ = [
    "ColumnLayout",
    "ColumnSpec",
    "resolve_columns",
]


@dataclass(frozen=True)
class ColumnSpec:
    field: str
    aliases: tuple[str, ...]  # normalized (see normalize_header)
    required: bool = False
    exact: bool = False  # disable substring matching


@dataclass(frozen=True)
class ColumnLayout:
    """Logical field -> header key of the decoded rows (None when absent)."""
    columns: dict[str, str | None]

    def header(self, field: str) -> str | None:
        return self.columns.get(field)

    def has(self, field: str) -> bool:
        return self.columns.get(field) is not None


def resolve_columns(headers: list[str], specs: list[ColumnSpec]) -> ColumnLayout:
    """Match every spec against ``headers``.

    Exact alias matches are tried for all specs before substring matches, and
    a header claimed by one field is never reused by another, so
    ``"% cuota inicial"`` cannot swallow ``"fecha cuota inicial"``.

    Raises:
        MissingColumnsError: when one or more required fields are unresolved.
    """
    claimed: set[str] = set()
    resolved: dict[str, str | None] = {spec.field: None for spec in specs}

    for spec in specs:
        for alias in spec.aliases:
            if alias in headers and alias not in claimed:
                resolved[spec.field] = alias
                claimed.add(alias)
                break

    for spec in specs:
        if resolved[spec.field] is not None or spec.exact:
            continue
        match = _first_containing(headers, spec.aliases, claimed)
        if match is not None:
            resolved[spec.field] = match
            claimed.add(match)

    missing = [spec for spec in specs if spec.required and resolved[spec.field] is None]
    if missing:
        described = ", ".join(f"{s.field} ({' / '.join(s.aliases)})" for s in missing)
        raise MissingColumnsError(f"missing required columns: {described}")
    return ColumnLayout(columns=resolved)


def _first_containing(headers: list[str], aliases: tuple[str, ...], claimed: set[str]) -> str | None:
    for alias in aliases:
        for header in headers:
            if header not in claimed and alias in header:
                return header
    return None
