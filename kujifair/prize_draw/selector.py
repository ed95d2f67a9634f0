"""Cumulative weighted selection over the currently eligible levels."""

from __future__ import annotations

from fractions import Fraction
from typing import Iterable, Union

from .adjuster import AdjustedLevel
from .oracle import RandomValue


def selection_order(levels: Iterable[AdjustedLevel]) -> list[AdjustedLevel]:
    """Return ``levels`` in the fixed selection order (level code ascending)."""

    return sorted(levels, key=lambda level: level.code)


def select(
    random_value: Union[RandomValue, Fraction, float],
    eligible_levels: Iterable[AdjustedLevel],
) -> str:
    """Pick the level whose cumulative boundary first reaches ``random_value``.

    Weights are re-normalized by the eligible sum before the walk. The walk
    uses exact rational arithmetic over the adjusted weights so every replay
    lands on the same boundary. Zero-weight levels are skipped, so a value of
    exactly 0 goes to the first level with positive weight rather than to a
    zero-weight level sorted ahead of it. Ports must keep this rule or replay
    diverges at that boundary. If nothing
    qualifies, including when every eligible weight is zero, the last level
    in the fixed order is returned.

    Raises
    ------
    ValueError
        If ``eligible_levels`` is empty.
    """

    ordered = selection_order(eligible_levels)
    if not ordered:
        raise ValueError("select() needs at least one eligible level")

    if isinstance(random_value, RandomValue):
        target = random_value.exact
    else:
        target = Fraction(random_value)

    weights = [Fraction(max(0.0, level.adjusted_probability)) for level in ordered]
    total = sum(weights, Fraction(0))
    if total > 0:
        cumulative = Fraction(0)
        for level, weight in zip(ordered, weights):
            if weight == 0:
                continue
            cumulative += weight
            if cumulative / total >= target:
                return level.code

    return ordered[-1].code


__all__ = ["select", "selection_order"]
