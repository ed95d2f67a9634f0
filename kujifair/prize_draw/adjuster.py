"""Profit-rate adjustment of a base prize distribution."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Iterable, Sequence

from .errors import InvalidProfitRate

MIN_PROFIT_RATE = 0.0
MAX_PROFIT_RATE = 3.0
DEFAULT_PROFIT_RATE = 1.0
TOTAL_PERCENT = 100.0

# (sold ratio threshold, multiplier), highest threshold first.
DEFAULT_PROFIT_RATE_TIERS: tuple[tuple[float, float], ...] = (
    (0.8, 1.2),
    (0.5, 1.1),
)


@dataclass(frozen=True)
class LevelSpec:
    """Immutable description of a prize level as the engine sees it.

    Attributes
    ----------
    code : str
        Level code, unique within the activity; also the selection sort key.
    total : int
        Stock at the start of sales.
    base_probability : float
        Configured probability in percent.
    is_major : bool
        Whether the profit rate applies to this level directly.
    is_bonus : bool
        ``True`` for the "Last One" level, which never takes part in
        weighted selection.
    remaining : int
        Stock left when this snapshot was taken.
    name : str
        Display name.
    """

    code: str
    total: int
    base_probability: float
    is_major: bool = False
    is_bonus: bool = False
    remaining: int = -1
    name: str = ""

    def __post_init__(self) -> None:
        if self.remaining < 0:
            object.__setattr__(self, "remaining", self.total)


@dataclass(frozen=True)
class AdjustedLevel:
    code: str
    base_probability: float
    adjusted_probability: float
    is_major: bool


def validate_profit_rate(profit_rate: float) -> float:
    """Return ``profit_rate`` as a float, rejecting values outside ``[0, 3]``."""

    if isinstance(profit_rate, bool):
        raise InvalidProfitRate("profit rate must be a number")
    try:
        rate = float(profit_rate)
    except (TypeError, ValueError) as exc:
        raise InvalidProfitRate("profit rate must be a number") from exc
    if not math.isfinite(rate) or rate < MIN_PROFIT_RATE or rate > MAX_PROFIT_RATE:
        raise InvalidProfitRate(
            f"profit rate must be between {MIN_PROFIT_RATE} and {MAX_PROFIT_RATE}"
        )
    return rate


def adjust(
    levels: Iterable[LevelSpec],
    major_level_codes: Iterable[str],
    profit_rate: float,
) -> list[AdjustedLevel]:
    """Rescale major levels by ``profit_rate`` and let minor levels absorb it.

    Parameters
    ----------
    levels : Iterable[LevelSpec]
        Levels of one activity. Bonus levels are skipped.
    major_level_codes : Iterable[str]
        Codes whose probability is multiplied by ``profit_rate``.
    profit_rate : float
        Multiplier in ``[0, 3]``.

    Returns
    -------
    list[AdjustedLevel]
        Adjusted levels in input order. They sum to 100 unless the major
        share alone exceeds 100; then every minor level drops to zero and the
        selector re-normalizes over whatever is eligible.
    """

    rate = validate_profit_rate(profit_rate)
    majors = frozenset(major_level_codes)
    weighted = [level for level in levels if not level.is_bonus]

    major_sum = sum(l.base_probability for l in weighted if l.code in majors)
    minor_sum = sum(l.base_probability for l in weighted if l.code not in majors)

    adjusted_major_total = major_sum * rate
    adjusted_minor_total = max(0.0, TOTAL_PERCENT - adjusted_major_total)
    minor_factor = adjusted_minor_total / minor_sum if minor_sum > 0 else 1.0

    adjusted: list[AdjustedLevel] = []
    for level in weighted:
        is_major = level.code in majors
        factor = rate if is_major else minor_factor
        adjusted.append(
            AdjustedLevel(
                code=level.code,
                base_probability=level.base_probability,
                adjusted_probability=level.base_probability * factor,
                is_major=is_major,
            )
        )
    return adjusted


def scheduled_profit_rate(
    base_rate: float,
    sold: int,
    total: int,
    tiers: Sequence[tuple[float, float]] = DEFAULT_PROFIT_RATE_TIERS,
) -> float:
    """Raise ``base_rate`` as the pool sells through.

    The first tier whose threshold the sold ratio reaches applies its
    multiplier. The result is clamped to :data:`MAX_PROFIT_RATE`.
    """

    rate = validate_profit_rate(base_rate)
    if total <= 0:
        return rate
    ratio = sold / total
    for threshold, multiplier in sorted(tiers, reverse=True):
        if ratio >= threshold:
            return min(MAX_PROFIT_RATE, rate * multiplier)
    return rate


__all__ = [
    "AdjustedLevel",
    "DEFAULT_PROFIT_RATE",
    "DEFAULT_PROFIT_RATE_TIERS",
    "LevelSpec",
    "adjust",
    "scheduled_profit_rate",
    "validate_profit_rate",
]
