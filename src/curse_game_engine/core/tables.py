from __future__ import annotations

import random
from typing import Generic, Iterator, Sequence, TypeVar

from .errors import InvalidWeightTableError

T = TypeVar("T")

TABLE_TOTAL = 100


class WeightedTable(Generic[T]):
    """Ordered ``(weight, branch)`` pairs whose weights sum to exactly 100.

    Validation happens once here; ``roll`` never re-checks the table.
    """

    def __init__(self, entries: Sequence[tuple[int, T]], *, name: str = "table"):
        self.name = name
        pairs = list(entries)
        if not pairs:
            raise InvalidWeightTableError(f"{name}: table is empty")
        total = 0
        thresholds: list[int] = []
        for weight, _branch in pairs:
            if isinstance(weight, bool) or not isinstance(weight, int) or weight <= 0:
                raise InvalidWeightTableError(f"{name}: weight {weight!r} must be a positive integer")
            total += weight
            thresholds.append(total)
        if total != TABLE_TOTAL:
            raise InvalidWeightTableError(f"{name}: weights sum to {total}, expected {TABLE_TOTAL}")
        self._entries = pairs
        self._thresholds = thresholds

    def pick(self, draw: float) -> T:
        """Branch for a draw in ``[0, 100)``: first cumulative threshold above it."""
        for threshold, (_weight, branch) in zip(self._thresholds, self._entries):
            if draw < threshold:
                return branch
        return self._entries[-1][1]

    def roll(self, rng: random.Random) -> T:
        return self.pick(rng.random() * TABLE_TOTAL)

    def branches(self) -> list[T]:
        return [branch for _weight, branch in self._entries]

    def __iter__(self) -> Iterator[tuple[int, T]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"WeightedTable({self.name!r}, {self._entries!r})"
