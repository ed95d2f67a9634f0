"""Replay-based verification of an activity's draw history."""

from __future__ import annotations

from dataclasses import dataclass, field
import secrets
from typing import TYPE_CHECKING, Any, Iterable, Optional

from .adjuster import DEFAULT_PROFIT_RATE
from .commitment import compute_commitment
from .engine import REPLAY_CONTRACT_VERSION, resolve_draw
from .inventory import InventoryTracker
from .errors import InvalidNonce
from .oracle import derive, normalize_seed, txid_hash

if TYPE_CHECKING:
    from ..models import Activity


@dataclass(frozen=True)
class ReplayRecord:
    """The stored fields of a draw that replay depends on."""

    ticket_number: int
    result_level: str
    recorded_profit_rate: float = DEFAULT_PROFIT_RATE
    txid_hash: Optional[str] = None


@dataclass(frozen=True)
class DrawVerification:
    """Replay outcome for a single ticket.

    ``expected`` is the level the replay produced; ``actual`` is what the
    record says was awarded. ``expected`` is ``None`` when the replayed pool
    was already empty at that ticket, or when the stored rate or ticket number
    is out of range. ``random_value`` is ``None`` for an invalid ticket number.
    """

    ticket_number: int
    expected: Optional[str]
    actual: str
    match: bool
    random_value: Optional[float]
    profit_rate: float
    txid_hash_match: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticketNumber": self.ticket_number,
            "expected": self.expected,
            "actual": self.actual,
            "match": self.match,
            "randomValue": self.random_value,
            "profitRate": self.profit_rate,
            "txidHashMatch": self.txid_hash_match,
        }


@dataclass(frozen=True)
class VerificationReport:
    """Aggregate verification result for one activity.

    A commitment that does not open with the revealed seed is reported via
    ``hash_match`` rather than raised, since it is audit information.
    """

    activity_id: Optional[int]
    hash_match: bool
    commitment_hash: Optional[str]
    computed_commitment: str
    per_draw: tuple[DrawVerification, ...] = field(default_factory=tuple)
    contiguous: bool = True

    @property
    def pass_count(self) -> int:
        return sum(1 for draw in self.per_draw if draw.match)

    @property
    def total_count(self) -> int:
        return len(self.per_draw)

    @property
    def mismatches(self) -> list[DrawVerification]:
        return [draw for draw in self.per_draw if not draw.match]

    @property
    def passed(self) -> bool:
        return (
            self.hash_match
            and self.contiguous
            and self.pass_count == self.total_count
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "hashMatch": self.hash_match,
            "commitmentHash": self.commitment_hash,
            "computedCommitment": self.computed_commitment,
            "contiguous": self.contiguous,
            "passCount": self.pass_count,
            "totalCount": self.total_count,
            "passed": self.passed,
            "perDraw": [draw.to_dict() for draw in self.per_draw],
        }


@dataclass(frozen=True)
class TicketVerification:
    """Result of checking a single ticket against its published TXID hash."""

    nonce: int
    random_value: float
    random_hex: str
    txid_hash: str
    expected_hash: str
    hash_match: bool


class Verifier:
    """Replays an activity from its revealed seed and compares outcomes.

    The verifier never touches live state: it rebuilds a private
    :class:`InventoryTracker` from each level's original ``total``.
    """

    def verify(
        self,
        activity: "Activity",
        revealed_seed: str,
        records: Iterable[Any],
    ) -> VerificationReport:
        """Verify ``records`` of ``activity`` against ``revealed_seed``.

        Parameters
        ----------
        activity : Activity
            Activity whose levels and published commitment are checked.
        revealed_seed : str
            Seed claimed to underlie the draws.
        records : Iterable
            Objects exposing ``ticket_number``, ``result_level`` and
            ``recorded_profit_rate`` (``DrawRecord`` or :class:`ReplayRecord`).

        Returns
        -------
        VerificationReport
            Commitment check plus per-ticket replay results.

        Raises
        ------
        InvalidSeedFormat
            If ``revealed_seed`` is malformed.
        ValueError
            If the activity was drawn under an unknown replay contract.
        """

        seed = normalize_seed(revealed_seed)
        version = getattr(activity, "replay_version", REPLAY_CONTRACT_VERSION)
        if version != REPLAY_CONTRACT_VERSION:
            raise ValueError(f"Unsupported replay contract version {version}")

        computed = compute_commitment(seed)
        published = (activity.commitment_hash or "").strip().lower()
        hash_match = bool(published) and _same_digest(computed, published)

        specs = activity.level_specs()
        majors = frozenset(spec.code for spec in specs if spec.is_major)
        tracker = InventoryTracker.from_totals(specs)

        ordered = sorted(records, key=lambda record: record.ticket_number)
        contiguous = [r.ticket_number for r in ordered] == list(range(1, len(ordered) + 1))

        results: list[DrawVerification] = []
        for record in ordered:
            rate = record.recorded_profit_rate
            if rate is None:
                rate = DEFAULT_PROFIT_RATE
            try:
                decision = resolve_draw(
                    seed, record.ticket_number, specs, majors, rate, tracker
                )
            except ValueError:
                # Rate or ticket outside the oracle domain: flag the draw and
                # leave the tracker untouched.
                results.append(self._unreplayable(seed, record, rate))
                continue

            if decision is None:
                value = _display_value(seed, record.ticket_number)
                expected = None
            else:
                value = float(decision.random_value)
                expected = decision.level_code

            results.append(
                DrawVerification(
                    ticket_number=record.ticket_number,
                    expected=expected,
                    actual=record.result_level,
                    match=expected == record.result_level,
                    random_value=value,
                    profit_rate=rate,
                    txid_hash_match=_txid_hash_match(seed, record),
                )
            )

        return VerificationReport(
            activity_id=getattr(activity, "id", None),
            hash_match=hash_match,
            commitment_hash=activity.commitment_hash,
            computed_commitment=computed,
            per_draw=tuple(results),
            contiguous=contiguous,
        )

    @staticmethod
    def _unreplayable(seed: str, record: Any, rate: Any) -> DrawVerification:
        return DrawVerification(
            ticket_number=record.ticket_number,
            expected=None,
            actual=record.result_level,
            match=False,
            random_value=_display_value(seed, record.ticket_number),
            profit_rate=rate,
            txid_hash_match=_txid_hash_match(seed, record),
        )


def _display_value(seed: str, ticket_number: Any) -> Optional[float]:
    try:
        return float(derive(seed, ticket_number))
    except InvalidNonce:
        return None


def _txid_hash_match(seed: str, record: Any) -> Optional[bool]:
    stored = getattr(record, "txid_hash", None)
    if stored is None:
        return None
    try:
        computed = txid_hash(seed, record.ticket_number)
    except InvalidNonce:
        return False
    return _same_digest(computed, stored)


def _same_digest(computed: str, candidate: Optional[str]) -> bool:
    """Constant-time comparison of a hex digest with untrusted input."""

    normalized = (candidate or "").strip().lower()
    return secrets.compare_digest(computed.encode(), normalized.encode())


def verify_ticket(seed: str, nonce: int, expected_hash: str) -> TicketVerification:
    """Check one ticket's published TXID hash and return its random value."""

    value = derive(seed, nonce)
    computed = txid_hash(seed, nonce)
    expected = (expected_hash or "").strip().lower()
    return TicketVerification(
        nonce=nonce,
        random_value=float(value),
        random_hex=value.hex,
        txid_hash=computed,
        expected_hash=expected,
        hash_match=_same_digest(computed, expected),
    )


__all__ = [
    "DrawVerification",
    "ReplayRecord",
    "TicketVerification",
    "VerificationReport",
    "Verifier",
    "verify_ticket",
]
