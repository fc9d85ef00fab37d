from __future__ import annotations

import re
from datetime import date
from decimal import Decimal

from cartera_import.normalize.fields import CENTS, clean_cell, normalize_identifier

"""Key builder.

Two unrelated kinds of keys:

- key variants: several renderings of one natural identifier, so spelling
  drift between the external export and the stored cases still resolves to
  the same record;
- idempotency keys: exactly one deterministic string per record, used only to
  recognise "this fact was already imported".
"""

__all__ = [
    "canonical_amount",
    "canonical_document",
    "digits_only",
    "idempotency_key",
    "key_variants",
    "strip_leading_zeros",
    "taxpayer_key_variants",
]

# long identifiers (e.g. 99999999000002201522) are also indexed by suffix
LONG_IDENTIFIER_DIGITS = 7
SUFFIX_LENGTHS = (10, 8, 7)
KEY_SEPARATOR = "|"
_SEPARATORS = re.compile(r"[\s\-./_]+")


def digits_only(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def strip_leading_zeros(digits: str) -> str:
    return digits.lstrip("0") or "0"


def key_variants(identifier: str | None) -> tuple[str, ...]:
    """Ordered, de-duplicated variants of a natural identifier.

    Order goes from most to least specific (verbatim, trimmed, separator-free,
    digits, zero-stripped digits, then trailing-digit suffixes), so a lookup
    that returns the first hit prefers the closest spelling.
    """
    if identifier is None:
        return ()
    candidates: list[str] = [identifier]
    trimmed = normalize_identifier(identifier)
    if trimmed is None:
        return ()
    candidates.append(trimmed)
    candidates.append(_SEPARATORS.sub("", trimmed))

    digits = digits_only(trimmed)
    if digits:
        candidates.append(digits)
        candidates.append(strip_leading_zeros(digits))
        if len(digits) > LONG_IDENTIFIER_DIGITS:
            for length in SUFFIX_LENGTHS:
                suffix = digits[-length:]
                candidates.append(suffix)
                candidates.append(strip_leading_zeros(suffix))

    seen: set[str] = set()
    ordered: list[str] = []
    for c in candidates:
        if c and c not in seen:
            seen.add(c)
            ordered.append(c)
    return tuple(ordered)


def taxpayer_key_variants(document_type: str, document_number: str | None) -> tuple[str, ...]:
    """Variants of a taxpayer document, scoped by document type."""
    number = normalize_identifier(document_number)
    if number is None:
        return ()
    variants = [number, _SEPARATORS.sub("", number)]
    digits = digits_only(number)
    if digits and digits == variants[-1]:
        variants.append(strip_leading_zeros(digits))
    return tuple(dict.fromkeys(f"{document_type}:{v}" for v in variants))


def canonical_document(document_number: str | None) -> str:
    """Document number as it appears in idempotency keys.

    Zero-stripped digits when the number has any (``"01.010"`` -> ``"1010"``),
    else the separator-free text, so the file spelling and the stored
    spelling of one taxpayer produce the same key.
    """
    number = normalize_identifier(document_number)
    if number is None:
        return ""
    digits = digits_only(number)
    if digits:
        return strip_leading_zeros(digits)
    return _SEPARATORS.sub("", number)


def canonical_amount(amount: Decimal | None) -> str:
    if amount is None:
        return "0.00"
    return f"{amount.quantize(CENTS):f}"


def idempotency_key(
    natural_id: str | None,
    reference_date: date | None,
    amount: Decimal | None,
    counterparty: str | None,
) -> str:
    """``natural|YYYY-MM-DD|amount|counterparty`` with empty parts for absent values.

    Pure function of its inputs: no clock, no randomness.
    """
    return KEY_SEPARATOR.join(
        (
            clean_cell(natural_id),
            reference_date.isoformat() if reference_date else "",
            canonical_amount(amount),
            clean_cell(counterparty),
        )
    )
