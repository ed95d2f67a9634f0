"""Per-level remaining stock for a single activity."""

from __future__ import annotations

from typing import Iterable, Optional

from .adjuster import LevelSpec
from .errors import InventoryUnderflow


class InventoryTracker:
    """Remaining counts indexed by level code.

    The tracker holds its own copy of the counts, so a replay built from the
    original totals never touches live activity state.
    """

    def __init__(self, levels: Iterable[LevelSpec], *, use_totals: bool = False) -> None:
        self._codes: list[str] = []
        self._remaining: list[int] = []
        self._index: dict[str, int] = {}
        self._bonus_index: Optional[int] = None

        for level in levels:
            if level.code in self._index:
                raise ValueError(f"Duplicate prize level code '{level.code}'")
            count = level.total if use_totals else level.remaining
            if count < 0:
                raise ValueError(f"Prize level '{level.code}' has negative stock")
            if level.is_bonus:
                if self._bonus_index is not None:
                    raise ValueError("An activity can only have one bonus level")
                self._bonus_index = len(self._codes)
            self._index[level.code] = len(self._codes)
            self._codes.append(level.code)
            self._remaining.append(count)

    @classmethod
    def from_totals(cls, levels: Iterable[LevelSpec]) -> "InventoryTracker":
        """Fresh tracker with every level at its starting stock."""
        return cls(levels, use_totals=True)

    def remaining(self, code: str) -> int:
        return self._remaining[self._position(code)]

    @property
    def bonus_code(self) -> Optional[str]:
        if self._bonus_index is None:
            return None
        return self._codes[self._bonus_index]

    @property
    def pool_depleted(self) -> bool:
        """``True`` once every non-bonus level is at zero."""
        return all(
            count == 0
            for idx, count in enumerate(self._remaining)
            if idx != self._bonus_index
        )

    @property
    def exhausted(self) -> bool:
        return not self.eligible_levels()

    @property
    def pool_remaining(self) -> int:
        """Remaining non-bonus stock."""
        return sum(
            count
            for idx, count in enumerate(self._remaining)
            if idx != self._bonus_index
        )

    def eligible_levels(self) -> list[str]:
        """Codes that can be drawn next.

        Non-bonus levels with stock, or the bonus level once the pool is
        depleted and the bonus is still available.
        """

        eligible = [
            code
            for idx, code in enumerate(self._codes)
            if idx != self._bonus_index and self._remaining[idx] > 0
        ]
        if eligible:
            return eligible
        if self._bonus_index is not None and self._remaining[self._bonus_index] > 0:
            return [self._codes[self._bonus_index]]
        return []

    def consume(self, code: str) -> int:
        """Take one unit of ``code`` and return what is left."""

        idx = self._position(code)
        if self._remaining[idx] <= 0:
            raise InventoryUnderflow(code)
        self._remaining[idx] -= 1
        return self._remaining[idx]

    def snapshot(self) -> dict[str, int]:
        return dict(zip(self._codes, self._remaining))

    def _position(self, code: str) -> int:
        try:
            return self._index[code]
        except KeyError as exc:
            raise KeyError(f"Unknown prize level '{code}'") from exc


__all__ = ["InventoryTracker"]
