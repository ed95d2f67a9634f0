"""Database model for the append-only draw history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, object_session, relationship

from ..db.utils import dt_iso
from ..prize_draw.adjuster import DEFAULT_PROFIT_RATE
from ..prize_draw.verifier import ReplayRecord
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .activity import Activity


class DrawRecord(Base):
    """Immutable record of one ticket sold from an activity."""

    __tablename__ = "draw_records"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    activity_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
    )

    ticket_number: Mapped[int] = mapped_column(Integer, nullable=False)
    """1-based, gapless draw index; also the oracle nonce."""

    result_level: Mapped[str] = mapped_column(String(50), nullable=False)
    """Code of the prize level awarded."""

    recorded_profit_rate: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_PROFIT_RATE
    )
    """Profit rate in force when the ticket was drawn."""

    random_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Float projection of the oracle output, for display only."""

    random_hex: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    """The 64-bit oracle prefix as 16 hex characters."""

    txid_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """``SHA256(TXID(seed, ticket_number))``, handed to the buyer as a receipt."""

    is_bonus: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    idempotency_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Client supplied key; a retried request with the same key is not redrawn."""

    buyer_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Opaque reference to the buyer in the order system."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    activity: Mapped["Activity"] = relationship(back_populates="draws")

    __table_args__ = (
        UniqueConstraint("activity_id", "ticket_number", name="uq_draw_ticket"),
        UniqueConstraint("activity_id", "idempotency_key", name="uq_draw_idempotency"),
        CheckConstraint("ticket_number >= 1", name="ticket_positive"),
        Index("ix_draw_records_activity_level", "activity_id", "result_level"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<DrawRecord(activity_id={self.activity_id}, ticket={self.ticket_number}, "
            f"level={self.result_level!r}, rate={self.recorded_profit_rate})>"
        )

    @classmethod
    def get_by_idempotency_key(
        cls, session: Session, activity_id: int, idempotency_key: str
    ) -> Optional["DrawRecord"]:
        return session.scalar(
            select(cls).where(
                cls.activity_id == activity_id,
                cls.idempotency_key == idempotency_key,
            )
        )

    @classmethod
    def history(cls, session: Session, activity_id: int) -> list["DrawRecord"]:
        """All draws of ``activity_id`` in ticket-ascending order."""

        stmt = (
            select(cls)
            .where(cls.activity_id == activity_id)
            .order_by(cls.ticket_number.asc())
        )
        return list(session.scalars(stmt).all())

    def to_replay_record(self) -> ReplayRecord:
        return ReplayRecord(
            ticket_number=self.ticket_number,
            result_level=self.result_level,
            recorded_profit_rate=self.recorded_profit_rate,
            txid_hash=self.txid_hash,
        )

    def to_json(self, *, include_random: bool = False) -> dict[str, Any]:
        """Serialize the draw.

        ``include_random`` exposes the oracle output; callers only set it
        once the activity's seed has been revealed.
        """

        data: dict[str, Any] = {
            "ticket_number": self.ticket_number,
            "result_level": self.result_level,
            "is_bonus": self.is_bonus,
            "txid_hash": self.txid_hash,
            "recorded_profit_rate": self.recorded_profit_rate,
            "created_at": dt_iso(self.created_at),
        }
        if include_random:
            data["random_value"] = self.random_value
            data["random_hex"] = self.random_hex
        return data


@event.listens_for(DrawRecord, "before_update")
def _reject_draw_record_update(mapper, connection, target: DrawRecord) -> None:
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise RuntimeError(
            f"Draw records are append-only (ticket {target.ticket_number})"
        )


__all__ = ["DrawRecord"]
