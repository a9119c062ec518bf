"""Ticket records and the per-series issued-number index."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .draw import Draw
    from .game import Game
    from .series import Series


class TicketStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    WINNER = "WINNER"


class Ticket(Base):
    """A sold ticket.

    Numbers, series and draw never change after creation. ``hit_count`` and
    ``prize_amount`` are written once by settlement (``settled_at`` marks it).
    """

    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    game_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    series_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("series.id", ondelete="RESTRICT"), nullable=False
    )
    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    series_number: Mapped[int] = mapped_column(Integer, nullable=False)
    series_slot: Mapped[int] = mapped_column(Integer, nullable=False)
    """1-based position reserved in the series."""

    ticket_code: Mapped[str] = mapped_column(String(32), nullable=False)
    """Zero-padded slot shown on the printed ticket."""

    numbers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    """Bet numbers, ascending. Drawn for RANDOM games, chosen by the buyer for
    SEQUENTIAL digit games, empty for pool games."""

    picks: Mapped[Optional[list]] = mapped_column(JSON)
    """Pool games only: one outcome per match, in match order."""

    draw_instant: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    possible_prize: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    """Payout if one of the numbers wins, used for risk limits."""

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=TicketStatus.PENDING.value
    )

    hit_count: Mapped[Optional[int]] = mapped_column(Integer)
    prize_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    second_chance_number: Mapped[Optional[int]] = mapped_column(Integer)
    second_chance_draw_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    idempotency_key: Mapped[Optional[str]] = mapped_column(String(64))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    game: Mapped["Game"] = relationship(back_populates="tickets")
    series: Mapped["Series"] = relationship(back_populates="tickets")
    draw: Mapped["Draw"] = relationship(back_populates="tickets")
    issued_numbers: Mapped[list["TicketNumber"]] = relationship(
        back_populates="ticket", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("series_id", "series_slot", name="uq_tickets_series_slot"),
        UniqueConstraint("idempotency_key", name="uq_tickets_idempotency_key"),
        Index("ix_tickets_status", "status"),
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == TicketStatus.CANCELLED

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Ticket(id={id}, code={code}, numbers={numbers}, status={status})>".format(
            id=self.id, code=self.ticket_code, numbers=self.numbers, status=self.status
        )

    @classmethod
    def get_by_idempotency_key(cls, session: Session, key: str) -> Optional["Ticket"]:
        return session.scalar(select(cls).where(cls.idempotency_key == key))


class TicketNumber(Base):
    """One bet number of a non-cancelled ticket.

    Numbers drawn for RANDOM games carry ``series_id``; the unique constraint
    on ``(series_id, number)`` is what keeps two concurrent sales from issuing
    the same number in one series. Chosen numbers leave ``series_id`` empty
    since buyers may share them.
    """

    __tablename__ = "ticket_numbers"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    series_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("series.id", ondelete="CASCADE")
    )
    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)

    ticket: Mapped["Ticket"] = relationship(back_populates="issued_numbers")

    __table_args__ = (
        UniqueConstraint("series_id", "number", name="uq_ticket_numbers_series_number"),
        Index("ix_ticket_numbers_draw_number", "draw_id", "number"),
    )


__all__ = ["Ticket", "TicketNumber", "TicketStatus"]
