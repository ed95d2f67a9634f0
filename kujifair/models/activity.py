"""Database models for activities, their prize levels and audit events."""

from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from ..db.utils import dt_iso
from ..prize_draw.adjuster import DEFAULT_PROFIT_RATE, LevelSpec
from ..prize_draw.engine import REPLAY_CONTRACT_VERSION
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .draw import DrawRecord


class ActivityStatus:
    """Lifecycle states stored in ``activities.status``."""

    PENDING = "pending"
    ACTIVE = "active"
    AWAITING_BONUS = "awaiting_bonus"
    ENDED = "ended"

    ALL = (PENDING, ACTIVE, AWAITING_BONUS, ENDED)
    ON_SALE = (ACTIVE, AWAITING_BONUS)


class Activity(Base):
    """A blind-box pool sold one draw at a time."""

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Display name of the activity."""

    external_ref: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, unique=True
    )
    """Identifier of the activity in the external catalog, if imported."""

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ActivityStatus.PENDING
    )
    """One of :class:`ActivityStatus`."""

    commitment_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Public ``SHA256(TXID(seed, 1))``, set on activation."""

    sealed_seed: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Fernet token of the seed while the activity is on sale."""

    seed: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Plain seed; only populated once revealed."""

    profit_rate: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_PROFIT_RATE
    )
    """Current multiplier applied to major levels for new draws."""

    replay_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=REPLAY_CONTRACT_VERSION
    )
    """Version of the draw/replay contract the draws were generated with."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Set when the seed is committed and sales open."""

    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revealed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    levels: Mapped[list["PrizeLevel"]] = relationship(
        back_populates="activity",
        cascade="all, delete-orphan",
        order_by="PrizeLevel.position",
    )
    """Prize levels in configuration order."""

    draws: Mapped[list["DrawRecord"]] = relationship(
        back_populates="activity",
        cascade="all, delete-orphan",
        order_by="DrawRecord.ticket_number",
    )
    """Draw history in ticket order."""

    events: Mapped[list["ActivityEvent"]] = relationship(
        back_populates="activity",
        cascade="all, delete-orphan",
        order_by="ActivityEvent.id",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','active','awaiting_bonus','ended')",
            name="status_enum",
        ),
        CheckConstraint(
            "profit_rate >= 0 AND profit_rate <= 3", name="profit_rate_range"
        ),
        Index("ix_activities_status", "status"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Activity(id={self.id}, name={self.name!r}, status='{self.status}')>"

    @classmethod
    def get_by_external_ref(
        cls, session: Session, external_ref: str
    ) -> Optional["Activity"]:
        """Return the activity imported under ``external_ref`` if it exists."""

        return session.scalar(select(cls).where(cls.external_ref == external_ref))

    @property
    def is_on_sale(self) -> bool:
        return self.status in ActivityStatus.ON_SALE

    @property
    def major_level_codes(self) -> frozenset[str]:
        return frozenset(level.code for level in self.levels if level.is_major)

    @property
    def bonus_level(self) -> Optional["PrizeLevel"]:
        return next((level for level in self.levels if level.is_bonus), None)

    @property
    def pool_total(self) -> int:
        """Starting stock of the normal pool (bonus excluded)."""
        return sum(level.total for level in self.levels if not level.is_bonus)

    @property
    def pool_remaining(self) -> int:
        return sum(level.remaining for level in self.levels if not level.is_bonus)

    def level_specs(self) -> list[LevelSpec]:
        """Engine view of the prize levels, carrying live remaining counts."""

        return [level.to_spec() for level in self.levels]

    def level_by_code(self, code: str) -> "PrizeLevel":
        for level in self.levels:
            if level.code == code:
                return level
        raise KeyError(f"Activity {self.id} has no prize level '{code}'")

    def last_ticket_number(self, session: Session) -> int:
        """Highest ticket number stored for this activity, or 0."""

        from .draw import DrawRecord

        return session.scalar(
            select(func.coalesce(func.max(DrawRecord.ticket_number), 0)).where(
                DrawRecord.activity_id == self.id
            )
        )

    def to_json(self) -> dict[str, Any]:
        """Public view of the activity.

        The seed is included only after it has been revealed; the sealed
        copy never is.
        """

        return {
            "id": self.id,
            "name": self.name,
            "external_ref": self.external_ref,
            "status": self.status,
            "commitment_hash": self.commitment_hash,
            "seed": self.seed if self.revealed_at is not None else None,
            "profit_rate": self.profit_rate,
            "replay_version": self.replay_version,
            "pool_total": self.pool_total,
            "pool_remaining": self.pool_remaining,
            "levels": [level.to_json() for level in self.levels],
            "created_at": dt_iso(self.created_at),
            "started_at": dt_iso(self.started_at),
            "ended_at": dt_iso(self.ended_at),
            "revealed_at": dt_iso(self.revealed_at),
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False)


class PrizeLevel(Base):
    """A prize tier within an activity."""

    __tablename__ = "prize_levels"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)

    activity_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Configuration order, used for display only."""

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    """Level code such as ``"A"``; selection sorts by this."""

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    base_probability: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    """Configured probability in percent; ignored for the bonus level."""

    is_major: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Derived once from the activity's major level set at creation."""

    is_bonus: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """The "Last One" level awarded after the pool is exhausted."""

    activity: Mapped["Activity"] = relationship(back_populates="levels")

    __table_args__ = (
        UniqueConstraint("activity_id", "code", name="uq_prize_level_code"),
        CheckConstraint("total >= 0", name="total_non_negative"),
        CheckConstraint(
            "remaining >= 0 AND remaining <= total", name="remaining_range"
        ),
        CheckConstraint(
            "base_probability >= 0 AND base_probability <= 100",
            name="probability_range",
        ),
    )

    def __init__(
        self,
        *,
        code: str,
        total: int,
        base_probability: float = 0.0,
        name: Optional[str] = None,
        remaining: Optional[int] = None,
        is_major: bool = False,
        is_bonus: bool = False,
        position: int = 0,
    ) -> None:
        self.code = code
        self.name = name if name is not None else code
        self.total = total
        self.remaining = total if remaining is None else remaining
        self.base_probability = base_probability
        self.is_major = is_major
        self.is_bonus = is_bonus
        self.position = position

    @validates("code")
    def _normalize_code(self, _key: str, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("prize level code must not be empty")
        return normalized

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<PrizeLevel(code={self.code!r}, remaining={self.remaining}/{self.total}, "
            f"p={self.base_probability}, major={self.is_major}, bonus={self.is_bonus})>"
        )

    def to_spec(self) -> LevelSpec:
        return LevelSpec(
            code=self.code,
            name=self.name,
            total=self.total,
            remaining=self.remaining,
            base_probability=self.base_probability,
            is_major=self.is_major,
            is_bonus=self.is_bonus,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "total": self.total,
            "remaining": self.remaining,
            "base_probability": self.base_probability,
            "is_major": self.is_major,
            "is_bonus": self.is_bonus,
        }


class ActivityEvent(Base):
    """Append-only audit trail of lifecycle and profit-rate changes."""

    __tablename__ = "activity_events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    activity_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    activity: Mapped["Activity"] = relationship(back_populates="events")

    __table_args__ = (
        CheckConstraint(
            "action IN ('created','activated','profit_rate_changed','ended','revealed')",
            name="action_enum",
        ),
    )

    def to_json(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "details": self.details,
            "occurred_at": dt_iso(self.occurred_at),
        }


__all__ = ["Activity", "ActivityEvent", "ActivityStatus", "PrizeLevel"]
