from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

__all__ = [
    "Classification",
    "ClassifiedRow",
]

R = TypeVar("R")


class Classification(Enum):
    """Outcome of the row classifier.

    Checks run in this order: duplicate, matched, unmatched.
    """
    MATCHED = "matched"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class ClassifiedRow(Generic[R]):
    record: R
    classification: Classification
    target_id: int | None = None  # only meaningful when MATCHED
    counterparty_label: str = ""  # nombre del contribuyente / deudor
    reference_label: str = ""  # comparendo / resolución mostrado en preview

    def __post_init__(self) -> None:
        if self.classification is not Classification.MATCHED and self.target_id is not None:
            raise ValueError(
                f"{self.classification.value} rows cannot carry a target id (got {self.target_id})"
            )

    @property
    def is_matched(self) -> bool:
        return self.classification is Classification.MATCHED
