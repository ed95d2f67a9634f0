"""Draw sequencing: one ticket at a time, serialized per activity."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import threading
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from .adjuster import (
    DEFAULT_PROFIT_RATE_TIERS,
    LevelSpec,
    adjust,
    scheduled_profit_rate,
    validate_profit_rate,
)
from .commitment import SeedSealer
from .errors import (
    ActivityStateError,
    ConcurrentModification,
    InventoryExhausted,
    InventoryUnderflow,
)
from .inventory import InventoryTracker
from .oracle import RandomValue, derive, txid_hash
from .selector import select as select_level

if TYPE_CHECKING:
    from ..models import Activity, DrawRecord

logger = logging.getLogger(__name__)

REPLAY_CONTRACT_VERSION = 1
"""Version of :func:`resolve_draw`.

Version 1: tickets replay in ascending order; the oracle is HMAC-SHA256 over
the hex seed; eligible levels sort by code; the bonus level is awarded only
after the pool is depleted.
"""

DEFAULT_MAX_RETRIES = 3

ProfitRatePolicy = Callable[["Activity", int], float]


@dataclass(frozen=True)
class DrawDecision:
    """Outcome of resolving one ticket, before persistence.

    Attributes
    ----------
    ticket_number : int
        Nonce fed to the oracle.
    level_code : str
        Level awarded and consumed from the tracker.
    random_value : RandomValue
        Oracle output for the ticket.
    profit_rate : float
        Rate the distribution was adjusted with.
    is_bonus : bool
        ``True`` when the bonus level was awarded.
    """

    ticket_number: int
    level_code: str
    random_value: RandomValue
    profit_rate: float
    is_bonus: bool


def resolve_draw(
    seed: str,
    ticket_number: int,
    levels: Sequence[LevelSpec],
    major_level_codes: Iterable[str],
    profit_rate: float,
    tracker: InventoryTracker,
) -> Optional[DrawDecision]:
    """Decide ticket ``ticket_number`` and consume the result from ``tracker``.

    Generation and verification both call this, so the two paths cannot
    drift apart. Returns ``None`` when ``tracker`` has nothing eligible.
    """

    eligible = tracker.eligible_levels()
    if not eligible:
        return None

    rate = validate_profit_rate(profit_rate)
    value = derive(seed, ticket_number)
    bonus_code = tracker.bonus_code

    if eligible == [bonus_code]:
        code = bonus_code
    else:
        eligible_codes = set(eligible)
        adjusted = [
            level
            for level in adjust(levels, major_level_codes, rate)
            if level.code in eligible_codes
        ]
        code = select_level(value, adjusted)

    tracker.consume(code)
    return DrawDecision(
        ticket_number=ticket_number,
        level_code=code,
        random_value=value,
        profit_rate=rate,
        is_bonus=code == bonus_code,
    )


class ActivityLockRegistry:
    """One re-entrant lock per activity id.

    Serializes draws in this process. Sessions in other threads or processes
    are serialized by the write on the activity row that opens every draw,
    backed by the ``(activity_id, ticket_number)`` unique key.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}

    def lock_for(self, activity_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(activity_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[activity_id] = lock
            return lock

    @contextmanager
    def hold(self, activity_id: int) -> Iterator[None]:
        lock = self.lock_for(activity_id)
        with lock:
            yield


DEFAULT_LOCKS = ActivityLockRegistry()


def tiered_profit_rate_policy(
    tiers: Sequence[tuple[float, float]] = DEFAULT_PROFIT_RATE_TIERS,
) -> ProfitRatePolicy:
    """Policy that raises the activity's profit rate as the pool sells through."""

    def _policy(activity: "Activity", ticket_number: int) -> float:
        total = activity.pool_total
        sold = total - activity.pool_remaining
        return scheduled_profit_rate(activity.profit_rate, sold, total, tiers)

    return _policy


class DrawSequencer:
    """Sells tickets from an activity and persists a :class:`DrawRecord` each."""

    def __init__(
        self,
        session: Session,
        sealer: SeedSealer,
        *,
        locks: Optional[ActivityLockRegistry] = None,
        profit_rate_policy: Optional[ProfitRatePolicy] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        """Create a sequencer bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active session used for reads and persistence.
        sealer : SeedSealer
            Unseals the activity seed for each draw.
        locks : Optional[ActivityLockRegistry], default: None
            Lock registry; the process-wide registry is used when omitted.
        profit_rate_policy : Optional[ProfitRatePolicy], default: None
            Callable returning the rate for the next ticket. When omitted the
            activity's stored ``profit_rate`` is used as-is.
        max_retries : int, default: 3
            Attempts after a lost ticket-number race before giving up.
        """

        self._session = session
        self._sealer = sealer
        self._locks = locks or DEFAULT_LOCKS
        self._policy = profit_rate_policy
        self._max_retries = max_retries

    def draw(
        self,
        activity: "Activity",
        *,
        idempotency_key: Optional[str] = None,
        buyer_ref: Optional[str] = None,
    ) -> Union["DrawRecord", InventoryExhausted]:
        """Sell the next ticket of ``activity``.

        Returns
        -------
        DrawRecord | InventoryExhausted
            The persisted draw, or :class:`InventoryExhausted` when the pool
            and the bonus level are both gone.

        Raises
        ------
        ActivityStateError
            If the activity is not on sale.
        InventoryUnderflow
            If stock bookkeeping is inconsistent. Sales must stop.
        """

        if activity.id is None:
            raise ValueError("Activity must be persisted before drawing")

        with self._locks.hold(activity.id):
            for attempt in range(self._max_retries + 1):
                try:
                    with self._session.begin_nested():
                        return self._draw_once(activity, idempotency_key, buyer_ref)
                except ConcurrentModification:
                    logger.debug(
                        "Ticket race on activity %s (attempt %d), retrying",
                        activity.id,
                        attempt + 1,
                    )
                    self._session.expire(activity)
                except InventoryUnderflow as exc:
                    logger.critical(
                        "Inventory underflow on activity %s level %s; halt sales",
                        activity.id,
                        exc.level_code,
                    )
                    raise
        raise RuntimeError(
            f"Could not claim a ticket for activity {activity.id} "
            f"after {self._max_retries + 1} attempts"
        )

    def draw_batch(
        self,
        activity: "Activity",
        count: int,
        *,
        idempotency_key: Optional[str] = None,
        buyer_ref: Optional[str] = None,
    ) -> list["DrawRecord"]:
        """Sell up to ``count`` consecutive tickets.

        Stops early when the activity sells out. With ``idempotency_key`` each
        ticket gets ``"<key>:<i>"`` so a retried batch returns the same draws.
        """

        if count < 1:
            raise ValueError("count must be a positive integer")

        records: list[DrawRecord] = []
        for idx in range(count):
            key = f"{idempotency_key}:{idx}" if idempotency_key else None
            outcome = self.draw(activity, idempotency_key=key, buyer_ref=buyer_ref)
            if isinstance(outcome, InventoryExhausted):
                break
            records.append(outcome)
        return records

    def _draw_once(
        self,
        activity: "Activity",
        idempotency_key: Optional[str],
        buyer_ref: Optional[str],
    ) -> Union["DrawRecord", InventoryExhausted]:
        from ..models import Activity, ActivityStatus, DrawRecord, PrizeLevel

        # Touching the activity row holds the database write lock until the
        # caller commits; stock and tickets are re-read under it.
        self._session.execute(
            update(Activity)
            .where(Activity.id == activity.id)
            .values(updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self._session.refresh(activity)
        self._session.scalars(
            select(PrizeLevel)
            .where(PrizeLevel.activity_id == activity.id)
            .execution_options(populate_existing=True)
        ).all()

        if idempotency_key:
            existing = DrawRecord.get_by_idempotency_key(
                self._session, activity.id, idempotency_key
            )
            if existing is not None:
                return existing

        tracker = InventoryTracker(activity.level_specs())
        last_ticket = activity.last_ticket_number(self._session)

        if activity.status == ActivityStatus.PENDING:
            raise ActivityStateError(f"Activity {activity.id} has not been activated")
        if activity.status == ActivityStatus.ENDED or tracker.exhausted:
            if not tracker.exhausted:
                raise ActivityStateError(f"Activity {activity.id} has ended")
            self._mark_ended(activity)
            return InventoryExhausted(activity.id, last_ticket)
        if activity.sealed_seed is None:
            raise ActivityStateError(f"Activity {activity.id} has no sealed seed")

        seed = self._sealer.unseal(activity.sealed_seed)
        ticket_number = last_ticket + 1
        profit_rate = (
            self._policy(activity, ticket_number)
            if self._policy is not None
            else activity.profit_rate
        )

        specs = activity.level_specs()
        decision = resolve_draw(
            seed,
            ticket_number,
            specs,
            activity.major_level_codes,
            profit_rate,
            tracker,
        )
        # resolve_draw only returns None for an exhausted tracker, handled above.
        assert decision is not None

        level = activity.level_by_code(decision.level_code)
        result = self._session.execute(
            update(PrizeLevel)
            .where(PrizeLevel.id == level.id, PrizeLevel.remaining > 0)
            .values(remaining=PrizeLevel.remaining - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModification(
                f"Level {level.code} of activity {activity.id} changed during the draw"
            )
        set_committed_value(level, "remaining", tracker.remaining(level.code))

        record = DrawRecord(
            ticket_number=ticket_number,
            result_level=decision.level_code,
            recorded_profit_rate=decision.profit_rate,
            random_value=float(decision.random_value),
            random_hex=decision.random_value.hex,
            txid_hash=txid_hash(seed, ticket_number),
            is_bonus=decision.is_bonus,
            idempotency_key=idempotency_key,
            buyer_ref=buyer_ref,
        )
        record.activity = activity
        self._session.add(record)

        if tracker.exhausted:
            self._mark_ended(activity)
        elif tracker.pool_depleted:
            activity.status = ActivityStatus.AWAITING_BONUS

        try:
            self._session.flush()
        except IntegrityError as exc:
            raise ConcurrentModification(
                f"Ticket {ticket_number} of activity {activity.id} was already taken"
            ) from exc

        logger.info(
            "Activity %s ticket %d -> %s (rate=%s)",
            activity.id,
            ticket_number,
            decision.level_code,
            decision.profit_rate,
        )
        return record

    def _mark_ended(self, activity: "Activity") -> None:
        from ..models import ActivityEvent, ActivityStatus

        if activity.status == ActivityStatus.ENDED:
            return
        activity.status = ActivityStatus.ENDED
        activity.ended_at = datetime.now(timezone.utc)
        activity.events.append(
            ActivityEvent(action="ended", details={"reason": "sold_out"})
        )
        logger.info("Activity %s sold out", activity.id)


__all__ = [
    "ActivityLockRegistry",
    "DrawDecision",
    "DrawSequencer",
    "REPLAY_CONTRACT_VERSION",
    "resolve_draw",
    "tiered_profit_rate_policy",
]
