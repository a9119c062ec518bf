"""Game configuration records."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE
from ..config import DEFAULT_CUTOFF_MINUTES, POOL_RATE, POOL_TIER_RATES
from ..errors import ConfigurationError
from ..timeutil import parse_time_of_day

if TYPE_CHECKING:
    from .draw import Draw
    from .series import Series
    from .ticket import Ticket

# Residue classes available to the last-three-digit uniqueness rule.
RESIDUE_MODULUS = 1000


class GameKind(str, Enum):
    DIGIT = "DIGIT"
    """Digit-suffix game settled with flat milhar/centena/dezena prizes."""
    POOL = "POOL"
    """Multi-match pick game settled by splitting a prize pool."""


class NumberingMode(str, Enum):
    SEQUENTIAL = "SEQUENTIAL"
    RANDOM = "RANDOM"


class UnclaimedPolicy(str, Enum):
    HOUSE = "HOUSE"
    """Undistributed pool funds are retained by the operator."""
    ROLLOVER = "ROLLOVER"
    """Undistributed pool funds are added to the next draw's pool."""


class Game(Base):
    """Configuration of one game as set up by an operator."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    """Operator facing name, unique per installation."""

    kind: Mapped[str] = mapped_column(
        String(10), nullable=False, default=GameKind.DIGIT.value
    )
    """Payout model, one of :class:`GameKind`."""

    extraction_times: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    """Daily draw times as ``"HH:MM"`` strings in the operating calendar."""

    cutoff_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_CUTOFF_MINUTES
    )
    """Minutes before a draw after which sales roll to the next slot."""

    numbering_mode: Mapped[str] = mapped_column(
        String(12), nullable=False, default=NumberingMode.SEQUENTIAL.value
    )
    max_tickets_per_series: Mapped[int] = mapped_column(
        Integer, nullable=False, default=2500
    )
    numbers_per_ticket: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    number_range: Mapped[int] = mapped_column(Integer, nullable=False, default=10000)
    """Exclusive upper bound of allocated numbers."""

    auto_cycle_series: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    """Open the next series automatically when a sale finds the current one FULL."""

    prize_milhar: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    prize_centena: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    prize_dezena: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))

    prize_multiplier: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    """Payout per unit staked on one number, used for risk accounting."""

    max_liability: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    """Upper bound of the summed possible prize per number and draw."""

    pool_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 4))
    pool_tier_rates: Mapped[Optional[list]] = mapped_column(JSON)
    """Share of the pool for the top, second and third tiers."""

    unclaimed_policy: Mapped[str] = mapped_column(
        String(10), nullable=False, default=UnclaimedPolicy.HOUSE.value
    )

    second_chance_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    second_chance_weekday: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    """Weekday of the second-chance draw, Monday is 0."""
    second_chance_time: Mapped[str] = mapped_column(
        String(5), nullable=False, default="19:00"
    )
    second_chance_range_start: Mapped[Optional[int]] = mapped_column(Integer)
    second_chance_range_end: Mapped[Optional[int]] = mapped_column(Integer)

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

    series: Mapped[list["Series"]] = relationship(
        back_populates="game", cascade="all, delete-orphan"
    )
    draws: Mapped[list["Draw"]] = relationship(
        back_populates="game", cascade="all, delete-orphan"
    )
    tickets: Mapped[list["Ticket"]] = relationship(back_populates="game")

    __table_args__ = (UniqueConstraint("name", name="games_name_key"),)

    def __init__(
        self,
        *,
        name: str,
        extraction_times: list,
        kind: str = GameKind.DIGIT.value,
        cutoff_minutes: int = DEFAULT_CUTOFF_MINUTES,
        numbering_mode: str = NumberingMode.SEQUENTIAL.value,
        max_tickets_per_series: int = 2500,
        numbers_per_ticket: int = 1,
        number_range: int = 10000,
        auto_cycle_series: bool = True,
        prize_milhar: Optional[Decimal] = None,
        prize_centena: Optional[Decimal] = None,
        prize_dezena: Optional[Decimal] = None,
        prize_multiplier: Optional[Decimal] = None,
        max_liability: Optional[Decimal] = None,
        pool_rate: Optional[Decimal] = None,
        pool_tier_rates: Optional[list] = None,
        unclaimed_policy: str = UnclaimedPolicy.HOUSE.value,
        second_chance_enabled: bool = False,
        second_chance_weekday: int = 5,
        second_chance_time: str = "19:00",
        second_chance_range_start: Optional[int] = None,
        second_chance_range_end: Optional[int] = None,
    ) -> None:
        self.name = name
        self.extraction_times = list(extraction_times)
        self.kind = GameKind(kind).value
        self.cutoff_minutes = cutoff_minutes
        self.numbering_mode = NumberingMode(numbering_mode).value
        self.max_tickets_per_series = max_tickets_per_series
        self.numbers_per_ticket = numbers_per_ticket
        self.number_range = number_range
        self.auto_cycle_series = auto_cycle_series
        self.prize_milhar = prize_milhar
        self.prize_centena = prize_centena
        self.prize_dezena = prize_dezena
        self.prize_multiplier = prize_multiplier
        self.max_liability = max_liability
        self.pool_rate = pool_rate
        self.pool_tier_rates = (
            [str(rate) for rate in pool_tier_rates] if pool_tier_rates else None
        )
        self.unclaimed_policy = UnclaimedPolicy(unclaimed_policy).value
        self.second_chance_enabled = second_chance_enabled
        self.second_chance_weekday = second_chance_weekday
        self.second_chance_time = second_chance_time
        self.second_chance_range_start = second_chance_range_start
        self.second_chance_range_end = second_chance_range_end

    @property
    def is_pool(self) -> bool:
        return self.kind == GameKind.POOL

    @property
    def effective_pool_rate(self) -> Decimal:
        return Decimal(str(self.pool_rate)) if self.pool_rate is not None else POOL_RATE

    @property
    def effective_tier_rates(self) -> tuple[Decimal, ...]:
        if self.pool_tier_rates:
            return tuple(Decimal(str(rate)) for rate in self.pool_tier_rates)
        return POOL_TIER_RATES

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Game(id={id}, name={name}, kind={kind})>".format(
            id=self.id, name=self.name, kind=self.kind
        )

    @classmethod
    def get_by_name(cls, session: Session, name: str) -> Optional["Game"]:
        """Return the game named ``name`` if it exists."""

        return session.scalar(select(cls).where(cls.name == name))


def validate_game_config(game: Game) -> None:
    """Reject configurations the engine can never serve.

    Raises
    ------
    ConfigurationError
        On the first problem found.
    """

    if not game.extraction_times:
        raise ConfigurationError("extraction_times must not be empty")
    for value in game.extraction_times:
        try:
            parse_time_of_day(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc
    if game.cutoff_minutes is None or game.cutoff_minutes < 1:
        raise ConfigurationError("cutoff_minutes must be at least 1")

    try:
        kind = GameKind(game.kind)
        mode = NumberingMode(game.numbering_mode)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    if game.max_tickets_per_series is None or game.max_tickets_per_series <= 0:
        raise ConfigurationError("max_tickets_per_series must be positive")
    if game.number_range is None or game.number_range <= 0:
        raise ConfigurationError("number_range must be positive")
    if game.numbers_per_ticket is None or game.numbers_per_ticket <= 0:
        raise ConfigurationError("numbers_per_ticket must be positive")

    if mode is NumberingMode.RANDOM:
        reachable = min(game.number_range, RESIDUE_MODULUS)
        if game.numbers_per_ticket > reachable:
            raise ConfigurationError(
                f"numbers_per_ticket={game.numbers_per_ticket} is unreachable with "
                f"number_range={game.number_range} ({reachable} distinct residues)"
            )

    if kind is GameKind.POOL:
        if mode is not NumberingMode.SEQUENTIAL:
            raise ConfigurationError("pool games number their tickets sequentially")
        if game.numbers_per_ticket < 3:
            raise ConfigurationError("pool games need at least three matches")
        rates = game.effective_tier_rates
        if len(rates) != 3:
            raise ConfigurationError("pool_tier_rates must hold exactly three values")
        if any(rate < 0 for rate in rates) or sum(rates) > 1:
            raise ConfigurationError("pool_tier_rates must be non-negative and sum to at most 1")
        if not (0 < game.effective_pool_rate <= 1):
            raise ConfigurationError("pool_rate must be within (0, 1]")
        try:
            UnclaimedPolicy(game.unclaimed_policy)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    if game.second_chance_enabled:
        start, end = game.second_chance_range_start, game.second_chance_range_end
        if start is None or end is None or end < start:
            raise ConfigurationError("second chance range is invalid")
        if not (0 <= game.second_chance_weekday <= 6):
            raise ConfigurationError("second_chance_weekday must be within 0..6")
        try:
            parse_time_of_day(game.second_chance_time)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc


__all__ = [
    "Game",
    "GameKind",
    "NumberingMode",
    "RESIDUE_MODULUS",
    "UnclaimedPolicy",
    "validate_game_config",
]
