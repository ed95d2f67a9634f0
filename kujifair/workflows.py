import logging
import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Optional, Sequence, Union

from sqlalchemy.orm import Session

from .models import Activity, ActivityEvent, ActivityStatus, DrawRecord, PrizeLevel
from .prize_draw.adjuster import DEFAULT_PROFIT_RATE, TOTAL_PERCENT, validate_profit_rate
from .prize_draw.commitment import SeedCommitment, SeedSealer, compute_commitment
from .prize_draw.engine import DEFAULT_LOCKS, DrawSequencer, ProfitRatePolicy
from .prize_draw.errors import (
    ActivityStateError,
    AlreadyCommitted,
    InventoryExhausted,
    ProbabilitySumInvalid,
)
from .prize_draw.verifier import VerificationReport, Verifier

if TYPE_CHECKING:
    from .catalog.api import CatalogClient

logger = logging.getLogger(__name__)

PROBABILITY_TOLERANCE = 1e-6


def create_activity(
    session: Session,
    name: str,
    levels: Sequence[PrizeLevel],
    major_level_codes: Iterable[str],
    external_ref: Optional[str] = None,
    profit_rate: float = DEFAULT_PROFIT_RATE,
) -> Activity:
    """Persist a new pending activity with its prize levels.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    name : str
        Display name of the activity.
    levels : Sequence[PrizeLevel]
        Unsaved prize levels in display order. At most one may be the bonus
        ("Last One") level.
    major_level_codes : Iterable[str]
        Codes of the levels the profit rate applies to. ``is_major`` is set
        on each level from this set here and never recomputed.
    external_ref : Optional[str]
        Identifier of the activity in the catalog service.
    profit_rate : float
        Initial profit rate, in ``[0, 3]``.

    Returns
    -------
    Activity
        The flushed activity, in ``pending`` status and without a seed.

    Raises
    ------
    ProbabilitySumInvalid
        If the non-bonus base probabilities do not sum to 100.
    ValueError
        If codes repeat, a major code is unknown, or there is more than one
        bonus level.
    """

    if not levels:
        raise ValueError("An activity needs at least one prize level.")

    codes = [level.code for level in levels]
    if len(set(codes)) != len(codes):
        raise ValueError("Prize level codes must be unique within an activity.")

    bonus_levels = [level for level in levels if level.is_bonus]
    if len(bonus_levels) > 1:
        raise ValueError("An activity can have at most one bonus level.")

    pool_levels = [level for level in levels if not level.is_bonus]
    if not pool_levels:
        raise ValueError("An activity needs at least one non-bonus prize level.")

    majors = frozenset(major_level_codes)
    pool_codes = {level.code for level in pool_levels}
    unknown = majors - pool_codes
    if unknown:
        raise ValueError(
            f"Major level codes {sorted(unknown)} are not non-bonus levels of the activity."
        )

    probability_sum = math.fsum(level.base_probability for level in pool_levels)
    if abs(probability_sum - TOTAL_PERCENT) > PROBABILITY_TOLERANCE:
        raise ProbabilitySumInvalid(
            f"Base probabilities sum to {probability_sum}, expected {TOTAL_PERCENT}"
        )

    activity = Activity(
        name=name,
        external_ref=external_ref,
        status=ActivityStatus.PENDING,
        profit_rate=validate_profit_rate(profit_rate),
    )
    for position, level in enumerate(levels):
        level.position = position
        level.is_major = level.code in majors
        level.remaining = level.total
        activity.levels.append(level)

    activity.events.append(
        ActivityEvent(
            action="created",
            details={"major_levels": sorted(majors), "profit_rate": activity.profit_rate},
        )
    )

    session.add(activity)
    session.flush()
    logger.info("Created activity %s (%s)", activity.id, name)

    return activity


def activate_activity(
    session: Session,
    activity: Activity,
    sealer: SeedSealer,
    commitment: Optional[SeedCommitment] = None,
) -> Activity:
    """Generate the seed, publish its commitment and open sales.

    The seed is stored only as a sealed token; ``commitment_hash`` is the
    public value buyers can later check the revealed seed against.
    """

    if activity.id is None:
        raise ValueError("Activity must be persisted before activation.")
    if activity.commitment_hash is not None:
        raise AlreadyCommitted(f"Activity {activity.id} already has a commitment")
    if activity.status != ActivityStatus.PENDING:
        raise ActivityStateError(
            f"Activity {activity.id} cannot be activated from '{activity.status}'"
        )

    seed, commitment_hash = (commitment or SeedCommitment()).commit()
    activity.sealed_seed = sealer.seal(seed)
    activity.commitment_hash = commitment_hash
    activity.status = ActivityStatus.ACTIVE
    activity.started_at = datetime.now(timezone.utc)
    activity.events.append(
        ActivityEvent(action="activated", details={"commitment_hash": commitment_hash})
    )

    session.flush()
    logger.info("Activity %s activated, commitment %s", activity.id, commitment_hash)

    return activity


def set_profit_rate(
    session: Session,
    activity: Activity,
    profit_rate: float,
    reason: Optional[str] = None,
) -> Activity:
    """Change the profit rate applied to subsequent draws.

    Past draws keep the rate recorded on them. The change is written to the
    activity's event log.
    """

    rate = validate_profit_rate(profit_rate)
    if activity.status == ActivityStatus.ENDED:
        raise ActivityStateError(f"Activity {activity.id} has ended")

    with DEFAULT_LOCKS.hold(activity.id):
        previous = activity.profit_rate
        activity.profit_rate = rate
        activity.events.append(
            ActivityEvent(
                action="profit_rate_changed",
                details={"from": previous, "to": rate, "reason": reason},
            )
        )
        session.flush()

    logger.info("Activity %s profit rate %s -> %s", activity.id, previous, rate)
    return activity


def run_draw(
    session: Session,
    activity: Activity,
    sealer: SeedSealer,
    idempotency_key: Optional[str] = None,
    buyer_ref: Optional[str] = None,
    profit_rate_policy: Optional[ProfitRatePolicy] = None,
) -> Union[DrawRecord, InventoryExhausted]:
    """Sell one ticket of ``activity``; see :meth:`DrawSequencer.draw`."""

    sequencer = DrawSequencer(session, sealer, profit_rate_policy=profit_rate_policy)
    return sequencer.draw(activity, idempotency_key=idempotency_key, buyer_ref=buyer_ref)


def run_draw_batch(
    session: Session,
    activity: Activity,
    sealer: SeedSealer,
    count: int,
    idempotency_key: Optional[str] = None,
    buyer_ref: Optional[str] = None,
    profit_rate_policy: Optional[ProfitRatePolicy] = None,
) -> list[DrawRecord]:
    """Sell up to ``count`` tickets; the list is shorter if the activity sells out."""

    sequencer = DrawSequencer(session, sealer, profit_rate_policy=profit_rate_policy)
    return sequencer.draw_batch(
        activity, count, idempotency_key=idempotency_key, buyer_ref=buyer_ref
    )


def end_activity(
    session: Session, activity: Activity, reason: str = "manual"
) -> Activity:
    """Close sales. Ending an already ended activity is a no-op."""

    if activity.status == ActivityStatus.ENDED:
        return activity
    if activity.status == ActivityStatus.PENDING:
        raise ActivityStateError(f"Activity {activity.id} was never activated")

    with DEFAULT_LOCKS.hold(activity.id):
        activity.status = ActivityStatus.ENDED
        activity.ended_at = datetime.now(timezone.utc)
        activity.events.append(ActivityEvent(action="ended", details={"reason": reason}))
        session.flush()

    logger.info("Activity %s ended (%s)", activity.id, reason)
    return activity


def reveal_seed(session: Session, activity: Activity, sealer: SeedSealer) -> str:
    """Publish the seed of an ended activity and return it.

    Revealing twice returns the already published seed.
    """

    if activity.status != ActivityStatus.ENDED:
        raise ActivityStateError(
            f"Activity {activity.id} must be ended before its seed is revealed"
        )
    if activity.revealed_at is not None and activity.seed is not None:
        return activity.seed
    if activity.sealed_seed is None:
        raise ActivityStateError(f"Activity {activity.id} has no sealed seed")

    seed = sealer.unseal(activity.sealed_seed)
    if compute_commitment(seed) != activity.commitment_hash:
        logger.critical("Sealed seed of activity %s does not open its commitment", activity.id)
        raise RuntimeError(
            f"Sealed seed of activity {activity.id} does not match its commitment"
        )

    activity.seed = seed
    activity.sealed_seed = None
    activity.revealed_at = datetime.now(timezone.utc)
    activity.events.append(ActivityEvent(action="revealed", details=None))

    session.flush()
    logger.info("Activity %s seed revealed", activity.id)

    return seed


def verify_activity(
    session: Session, activity: Activity, seed: Optional[str] = None
) -> VerificationReport:
    """Replay the full draw history of ``activity``.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    activity : Activity
        Activity to audit.
    seed : Optional[str]
        Seed to check. Defaults to the activity's revealed seed; passing a
        different one lets an auditor test a claimed seed.

    Raises
    ------
    ActivityStateError
        If no seed is given and the activity's seed has not been revealed.
    """

    candidate = seed or (activity.seed if activity.revealed_at is not None else None)
    if candidate is None:
        raise ActivityStateError(f"Activity {activity.id} has not revealed its seed")

    records = [record.to_replay_record() for record in DrawRecord.history(session, activity.id)]
    report = Verifier().verify(activity, candidate, records)
    logger.info(
        "Verified activity %s: %d/%d draws, hash_match=%s",
        activity.id,
        report.pass_count,
        report.total_count,
        report.hash_match,
    )
    return report


def activity_summary(session: Session, activity: Activity) -> dict:
    """Public view of an activity with its draws and event log.

    Oracle outputs of the draws are only included after the seed is revealed.
    """

    revealed = activity.revealed_at is not None
    data = activity.to_json()
    data["draws"] = [
        record.to_json(include_random=revealed)
        for record in DrawRecord.history(session, activity.id)
    ]
    data["events"] = [event.to_json() for event in activity.events]
    return data


def import_activity_from_catalog(
    session: Session, client: "CatalogClient", external_ref: str
) -> Activity:
    """Create a pending activity from its catalog definition.

    Importing the same ``external_ref`` twice returns the existing activity.
    """
    from .catalog.utils import parse_level

    existing = Activity.get_by_external_ref(session, external_ref)
    if existing is not None:
        return existing

    payload = client.get_activity(external_ref)
    if not isinstance(payload, dict):
        raise RuntimeError(f"Unexpected catalog response: {payload!r}")

    entries = payload.get("levels") or []
    levels = [PrizeLevel(**parse_level(entry)) for entry in entries]

    return create_activity(
        session,
        name=payload.get("name") or external_ref,
        levels=levels,
        major_level_codes=payload.get("majorLevels") or [],
        external_ref=external_ref,
        profit_rate=payload.get("profitRate", DEFAULT_PROFIT_RATE),
    )


def publish_activity_state(client: "CatalogClient", activity: Activity) -> Optional[dict]:
    """Send status, commitment and (once revealed) seed to the catalog."""

    if activity.external_ref is None:
        raise ValueError("Activity was not imported from the catalog.")

    return client.publish_state(
        activity.external_ref,
        status=activity.status,
        commitment_hash=activity.commitment_hash,
        seed=activity.seed if activity.revealed_at is not None else None,
    )


__all__ = [
    "activate_activity",
    "activity_summary",
    "create_activity",
    "end_activity",
    "import_activity_from_catalog",
    "publish_activity_state",
    "reveal_seed",
    "run_draw",
    "run_draw_batch",
    "set_profit_rate",
    "verify_activity",
]
