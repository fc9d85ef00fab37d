from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT on top of psycopg2.extras.execute_values.

Runs inside the caller's transaction; commit/rollback is the caller's job.
When ``returning`` names a column, the generated values come back in insert
order (used to link dependent rows to freshly inserted parents).
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "batch_insert",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[Any] | None = None


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: str | None = None,
    page_size: int = 1000,
) -> InsertResult:
    """Perform a batched INSERT.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table (trusted identifier, never user input)
    columns: insert columns, in the same order as each row
    rows: row sequences
    returning: column to return (``RETURNING <col>``), e.g. ``"id"``
    page_size: execute_values page size
    """
    rows_list = [tuple(r) for r in rows]
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if returning:
        sql += f' RETURNING "{returning}"'

    try:
        fetched = execute_values(
            cursor, sql, rows_list, page_size=page_size, fetch=returning is not None
        )
    except Exception as e:
        raise BatchInsertError(f"insert into {table} failed: {e}") from e

    returned = None
    if returning:
        returned = [r[0] for r in (fetched or [])]
        if len(returned) != len(rows_list):
            raise BatchInsertError(
                f"insert into {table} returned {len(returned)} ids for {len(rows_list)} rows"
            )

    return InsertResult(inserted_rows=len(rows_list), returned_values=returned)
