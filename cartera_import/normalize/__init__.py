from .fields import (
    normalize_header,
    normalize_identifier,
    parse_amount,
    parse_date,
    parse_percentage,
    split_multi,
    value_at,
)

__all__ = [
    "normalize_header",
    "normalize_identifier",
    "parse_amount",
    "parse_date",
    "parse_percentage",
    "split_multi",
    "value_at",
]
