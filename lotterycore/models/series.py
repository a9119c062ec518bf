"""Per sales-channel ticket series."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
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


class SeriesStatus(str, Enum):
    ACTIVE = "ACTIVE"
    FULL = "FULL"
    PAUSED = "PAUSED"
    CLOSED = "CLOSED"


class Series(Base):
    """A bounded, numbered batch of tickets sold through one channel.

    One row exists per ``(game, channel, series_number)``; the row with the
    highest ``series_number`` is the channel's current series.
    """

    __tablename__ = "series"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    game_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    """Sales channel (device or area) that owns the series."""

    series_number: Mapped[int] = mapped_column(Integer, nullable=False)
    """Monotonic per channel, starting at 1."""

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    """Snapshot of ``Game.max_tickets_per_series`` when the series was opened."""

    sold_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=SeriesStatus.ACTIVE.value
    )

    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    game: Mapped["Game"] = relationship(back_populates="series")
    tickets: Mapped[list["Ticket"]] = relationship(back_populates="series")

    __table_args__ = (
        UniqueConstraint(
            "game_id", "channel_id", "series_number", name="uq_series_channel_number"
        ),
        Index("ix_series_game_channel", "game_id", "channel_id"),
    )

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.sold_count, 0)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            "<Series(id={id}, game_id={game}, channel={channel}, number={number}, "
            "sold={sold}/{cap}, status={status})>"
        ).format(
            id=self.id,
            game=self.game_id,
            channel=self.channel_id,
            number=self.series_number,
            sold=self.sold_count,
            cap=self.capacity,
            status=self.status,
        )

    @classmethod
    def current_for(
        cls, session: Session, game_id: int, channel_id: str
    ) -> Optional["Series"]:
        """Return the channel's highest numbered series, if any."""

        stmt = (
            select(cls)
            .where(cls.game_id == game_id, cls.channel_id == channel_id)
            .order_by(cls.series_number.desc())
        )
        return session.scalars(stmt).first()


__all__ = ["Series", "SeriesStatus"]
