"""Draws and, for pool games, their matches."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
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
    from .game import Game
    from .ticket import Ticket


class MatchOutcome(str, Enum):
    HOME = "HOME"
    DRAW = "DRAW"
    AWAY = "AWAY"


class Draw(Base):
    """One scheduled draw of a game at a resolved instant."""

    __tablename__ = "draws"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    game_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    draw_instant: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """Stored in UTC."""

    result_numbers: Mapped[Optional[list]] = mapped_column(JSON)
    """Digit games: published winning numbers as digit strings."""

    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    """Set once every result is recorded; the draw is immutable afterwards."""

    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    total_collected: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    pool_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    rollover_in: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    rollover_out: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    rollover_claimed_by_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="SET NULL")
    )
    """Draw whose pool received ``rollover_out``; a rollover is paid once."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    game: Mapped["Game"] = relationship(back_populates="draws")
    matches: Mapped[list["Match"]] = relationship(
        back_populates="draw",
        cascade="all, delete-orphan",
        order_by="Match.order",
    )
    tickets: Mapped[list["Ticket"]] = relationship(back_populates="draw")

    __table_args__ = (
        UniqueConstraint("game_id", "draw_instant", name="uq_draws_game_instant"),
    )

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Draw(id={id}, game_id={game}, instant={instant}, published={pub})>".format(
            id=self.id,
            game=self.game_id,
            instant=self.draw_instant,
            pub=self.is_published,
        )

    @classmethod
    def get_for(
        cls, session: Session, game_id: int, draw_instant: datetime
    ) -> Optional["Draw"]:
        return session.scalar(
            select(cls).where(cls.game_id == game_id, cls.draw_instant == draw_instant)
        )


class Match(Base):
    """A single fixture of a pool-game draw."""

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    """Position on the ticket, 1-based."""

    home_team: Mapped[Optional[str]] = mapped_column(String(100))
    away_team: Mapped[Optional[str]] = mapped_column(String(100))
    result: Mapped[Optional[str]] = mapped_column(String(4))
    """One of :class:`MatchOutcome` once decided."""

    draw: Mapped["Draw"] = relationship(back_populates="matches")

    __table_args__ = (UniqueConstraint("draw_id", "order", name="uq_matches_draw_order"),)


__all__ = ["Draw", "Match", "MatchOutcome"]
