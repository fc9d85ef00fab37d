from .columns import ColumnLayout, ColumnSpec, resolve_columns
from .reader import (
    CellRendering,
    DecodeError,
    EmptyInputError,
    MissingColumnsError,
    TableData,
    TabularFormat,
    detect_format,
    read_table,
)

__all__ = [
    "CellRendering",
    "ColumnLayout",
    "ColumnSpec",
    "DecodeError",
    "EmptyInputError",
    "MissingColumnsError",
    "TableData",
    "TabularFormat",
    "detect_format",
    "read_table",
    "resolve_columns",
]
