"""Error and result types for the draw engine.

Malformed input is rejected with :class:`ValueError` subclasses. Lifecycle
violations are :class:`RuntimeError` subclasses. Selling out is not an error
and is modelled as the :class:`InventoryExhausted` result instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class InvalidSeedFormat(ValueError):
    """Seed is not 64 hexadecimal characters."""


class InvalidNonce(ValueError):
    """Nonce is not a positive integer that fits in 64 bits."""


class InvalidProfitRate(ValueError):
    """Profit rate is outside the supported ``[0, 3]`` range."""


class ProbabilitySumInvalid(ValueError):
    """Base probabilities of the non-bonus levels do not sum to 100."""


class AlreadyCommitted(RuntimeError):
    """The activity already has a seed commitment."""


class ActivityStateError(RuntimeError):
    """The requested operation is not allowed in the activity's status."""


class InventoryUnderflow(RuntimeError):
    """A level with no stock left was consumed.

    This indicates a bug in the caller; sales for the activity must stop.
    """

    def __init__(self, level_code: str) -> None:
        super().__init__(f"Prize level '{level_code}' has no remaining stock")
        self.level_code = level_code


class ConcurrentModification(RuntimeError):
    """Another writer claimed the ticket number first. Retried internally."""


@dataclass(frozen=True)
class InventoryExhausted:
    """Result returned by a draw when nothing is left to sell.

    Attributes
    ----------
    activity_id : Optional[int]
        Activity that sold out.
    last_ticket_number : int
        Highest ticket number issued before the pool ran dry.
    """

    activity_id: Optional[int]
    last_ticket_number: int

    @property
    def sold_out(self) -> bool:
        return True


__all__ = [
    "ActivityStateError",
    "AlreadyCommitted",
    "ConcurrentModification",
    "InvalidNonce",
    "InvalidProfitRate",
    "InvalidSeedFormat",
    "InventoryExhausted",
    "InventoryUnderflow",
    "ProbabilitySumInvalid",
]
