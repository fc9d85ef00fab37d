from __future__ import annotations

import logging
from collections.abc import Iterable

"""Run-scoped matching index: key variant -> owning record id.

Built once per run from a single bulk read of the target collection and
discarded with the run. Never shared between runs.
"""

__all__ = [
    "MatchingIndex",
]

logger = logging.getLogger(__name__)


class MatchingIndex:
    def __init__(self) -> None:
        self._entries: dict[str, int] = {}
        self.collisions = 0

    @classmethod
    def build(cls, entries: Iterable[tuple[int, Iterable[str]]]) -> MatchingIndex:
        """Index every ``(record_id, variants)`` pair in iteration order."""
        index = cls()
        for record_id, variants in entries:
            index.add(record_id, variants)
        if index.collisions:
            logger.debug("matching index built size=%d collisions=%d", len(index), index.collisions)
        return index

    def add(self, record_id: int, variants: Iterable[str]) -> None:
        for variant in variants:
            if not variant:
                continue
            previous = self._entries.get(variant)
            if previous is not None and previous != record_id:
                # later writes win
                self.collisions += 1
                logger.debug(
                    "index collision variant=%r previous_id=%d new_id=%d", variant, previous, record_id
                )
            self._entries[variant] = record_id

    def lookup(self, variants: Iterable[str]) -> int | None:
        """First record id found across ``variants`` (in the given order)."""
        for variant in variants:
            record_id = self._entries.get(variant)
            if record_id is not None:
                return record_id
        return None

    def __contains__(self, variant: object) -> bool:
        return variant in self._entries

    def __len__(self) -> int:
        return len(self._entries)
