from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from cartera_import.models.classified_row import Classification, ClassifiedRow

"""Row classifier: duplicate → matched → unmatched, in file order.

The only state carried from row to row is the run-local set of idempotency
keys. A key is registered as soon as its row is classified, so row K can be
a duplicate of an earlier row J < K but never of a later one.
"""

__all__ = [
    "RowClassifier",
]

Resolver = Callable[[Any], "int | None"]
TargetCheck = Callable[[Any, int], bool]
Describer = Callable[[Any, "int | None"], "tuple[str, str]"]


class RowClassifier:
    def __init__(
        self,
        known_keys: Iterable[str],
        resolve: Resolver,
        *,
        accept_unresolved: bool = False,
        duplicate_of_target: TargetCheck | None = None,
        describe: Describer | None = None,
    ) -> None:
        """
        Args:
            known_keys: idempotency keys already present in the store
            resolve: record -> target id via the matching index
            accept_unresolved: classify unresolved rows as matched without a
                target (the batch creates the target itself)
            duplicate_of_target: extra duplicate rule evaluated once the
                target is known (e.g. agreement number already on the case)
            describe: record, target id -> (counterparty label, reference label)
        """
        self.known_keys: set[str] = set(known_keys)
        self.seen_keys: set[str] = set()
        self._resolve = resolve
        self._accept_unresolved = accept_unresolved
        self._duplicate_of_target = duplicate_of_target
        self._describe = describe

    def is_known(self, key: str) -> bool:
        return key in self.known_keys or key in self.seen_keys

    def classify(self, record: Any) -> ClassifiedRow[Any]:
        key = record.idempotency_key
        if self.is_known(key):
            return self._row(record, Classification.DUPLICATE, None)
        self.seen_keys.add(key)

        target_id = self._resolve(record)
        if target_id is None:
            if self._accept_unresolved:
                return self._row(record, Classification.MATCHED, None)
            return self._row(record, Classification.UNMATCHED, None)
        if self._duplicate_of_target is not None and self._duplicate_of_target(record, target_id):
            return self._row(record, Classification.DUPLICATE, None, label_target=target_id)
        return self._row(record, Classification.MATCHED, target_id)

    def classify_all(self, records: Iterable[Any]) -> list[ClassifiedRow[Any]]:
        return [self.classify(r) for r in records]

    def mark_committed(self, rows: Iterable[ClassifiedRow[Any]]) -> None:
        """Committed keys become store keys for the rest of the run."""
        for row in rows:
            self.known_keys.add(row.record.idempotency_key)

    def _row(
        self,
        record: Any,
        classification: Classification,
        target_id: int | None,
        *,
        label_target: int | None = None,
    ) -> ClassifiedRow[Any]:
        counterparty, reference = ("", "")
        if self._describe is not None:
            counterparty, reference = self._describe(record, target_id or label_target)
        return ClassifiedRow(
            record=record,
            classification=classification,
            target_id=target_id,
            counterparty_label=counterparty,
            reference_label=reference,
        )
