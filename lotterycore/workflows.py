"""Sale, payment, publication and administration flows.

Every function works inside the caller's session and flushes but never
commits; the caller owns the transaction boundary.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db.utils import as_utc, q2, utc_now
from .engine.allocation import Allocation, TicketNumberAllocator
from .engine.capacity import SeriesCapacityTracker
from .engine.draw_window import resolve_next_draw, resolve_next_weekly_draw
from .engine.prizes import digit_string
from .engine.settlement import SettlementEngine, SettlementSummary
from .errors import (
    CapacityError,
    ConfigurationError,
    LiabilityLimitError,
    NumberUnavailableError,
    SeriesFullError,
)
from .models import (
    Draw,
    Game,
    GameKind,
    Match,
    MatchOutcome,
    NumberingMode,
    Series,
    SeriesStatus,
    Ticket,
    TicketNumber,
    TicketStatus,
    UnclaimedPolicy,
    validate_game_config,
)

logger = logging.getLogger(__name__)

NUMBERING_FIELDS = frozenset(
    {"numbering_mode", "max_tickets_per_series", "numbers_per_ticket", "number_range"}
)
"""Fields frozen while the game has a sellable series."""

_ENUM_FIELDS = {
    "kind": GameKind,
    "numbering_mode": NumberingMode,
    "unclaimed_policy": UnclaimedPolicy,
}
_READ_ONLY_FIELDS = frozenset({"id", "created_at", "updated_at"})


# ---------------------------------------------------------------------------
# Game configuration
# ---------------------------------------------------------------------------


def register_game(session: Session, game: Game) -> Game:
    """Validate ``game`` and persist it.

    Raises
    ------
    ConfigurationError
        If the configuration can never be served.
    ValueError
        If the game was already registered.
    """
    if game.id is not None:
        raise ValueError("Game already has an ID, cannot register again.")
    validate_game_config(game)
    session.add(game)
    session.flush()
    logger.info(f"Registered game {game.name} ({game.kind}, {game.numbering_mode})")
    return game


def update_game_config(session: Session, game: Game, **changes) -> Game:
    """Apply ``changes`` to ``game`` and re-validate it.

    Numbering fields cannot change while an ACTIVE or PAUSED series exists;
    they apply from the next series opened after the current ones close.
    Nothing is changed when validation fails.

    Raises
    ------
    ConfigurationError
        If a numbering field changes during an open series, or the resulting
        configuration is invalid.
    ValueError
        If a field name is unknown or read-only.
    """
    columns = set(Game.__table__.columns.keys())
    for name in changes:
        if name not in columns or name in _READ_ONLY_FIELDS:
            raise ValueError(f"Unknown or read-only game field {name!r}")

    frozen = NUMBERING_FIELDS.intersection(
        name for name, value in changes.items() if getattr(game, name) != value
    )
    if frozen and game.id is not None:
        open_series = session.scalar(
            select(func.count(Series.id)).where(
                Series.game_id == game.id,
                Series.status.in_(
                    [SeriesStatus.ACTIVE.value, SeriesStatus.PAUSED.value]
                ),
            )
        )
        if open_series:
            raise ConfigurationError(
                f"{', '.join(sorted(frozen))} cannot change while game "
                f"{game.name} has an open series"
            )

    previous = {name: getattr(game, name) for name in changes}
    try:
        for name, value in changes.items():
            if name in _ENUM_FIELDS:
                value = _ENUM_FIELDS[name](value).value
            elif name == "pool_tier_rates" and value:
                value = [str(rate) for rate in value]
            setattr(game, name, value)
        validate_game_config(game)
    except ValueError:
        for name, value in previous.items():
            setattr(game, name, value)
        raise

    session.flush()
    logger.info(f"Updated game {game.name}: {', '.join(sorted(changes))}")
    return game


# ---------------------------------------------------------------------------
# Series administration
# ---------------------------------------------------------------------------


@dataclass
class SeriesStats:
    """Sales progress of one series."""

    channel_id: str
    series_number: int
    sold: int
    remaining: int
    percentage: float
    status: SeriesStatus


def get_or_create_series(session: Session, game: Game, channel_id: str) -> Series:
    """Return the channel's current series, creating series 1 on first use."""
    return SeriesCapacityTracker(session).current_series(game, channel_id)


def open_next_series(session: Session, game: Game, channel_id: str) -> Series:
    """Open series ``n + 1`` for ``channel_id``, closing an open current one."""
    return SeriesCapacityTracker(session).open_next_series(game, channel_id)


def pause_series(session: Session, series: Series) -> Series:
    return SeriesCapacityTracker(session).pause(series)


def resume_series(session: Session, series: Series) -> Series:
    return SeriesCapacityTracker(session).resume(series)


def close_series(session: Session, series: Series) -> Series:
    return SeriesCapacityTracker(session).close(series)


def series_stats(
    session: Session, game: Game, channel_id: Optional[str] = None
) -> list[SeriesStats]:
    """Sold, remaining and fill percentage of every series of ``game``."""
    stmt = select(Series).where(Series.game_id == game.id)
    if channel_id is not None:
        stmt = stmt.where(Series.channel_id == channel_id)
    stmt = stmt.order_by(Series.channel_id, Series.series_number)

    stats = []
    for series in session.scalars(stmt):
        percentage = (
            round(series.sold_count / series.capacity * 100, 1)
            if series.capacity
            else 0.0
        )
        stats.append(
            SeriesStats(
                channel_id=series.channel_id,
                series_number=series.series_number,
                sold=series.sold_count,
                remaining=series.remaining,
                percentage=percentage,
                status=SeriesStatus(series.status),
            )
        )
    return stats


# ---------------------------------------------------------------------------
# Draws
# ---------------------------------------------------------------------------


def get_or_create_draw(session: Session, game: Game, draw_instant: datetime) -> Draw:
    """Return the draw of ``game`` at ``draw_instant``, creating it if needed.

    The instant is stored in UTC.
    """
    instant = as_utc(draw_instant)
    draw = Draw.get_for(session, game.id, instant)
    if draw is not None:
        return draw

    draw = Draw(game_id=game.id, draw_instant=instant)
    try:
        with session.begin_nested():
            session.add(draw)
    except IntegrityError:
        existing = Draw.get_for(session, game.id, instant)
        if existing is None:
            raise
        return existing
    logger.debug(f"Created draw of game {game.name} at {instant.isoformat()}")
    return draw


def publish_digit_result(
    session: Session,
    draw: Draw,
    winning_numbers: Union[int, str, Sequence[Union[int, str]]],
    *,
    published_at: Optional[datetime] = None,
) -> Draw:
    """Record the winning number(s) of a digit-game draw.

    Raises
    ------
    ValueError
        If the draw belongs to a pool game, is already published, or a number
        is not a non-negative integer.
    """
    if draw.game.kind != GameKind.DIGIT:
        raise ValueError("Only digit games publish winning numbers")
    if draw.is_published:
        raise ValueError(f"Draw {draw.id} is already published")

    if isinstance(winning_numbers, (int, str)):
        winning_numbers = [winning_numbers]
    numbers = [digit_string(number) for number in winning_numbers]
    if not numbers:
        raise ValueError("At least one winning number is required")

    draw.result_numbers = numbers
    draw.published_at = as_utc(published_at) or utc_now()
    session.flush()
    logger.info(f"Published draw {draw.id}: {', '.join(numbers)}")
    return draw


def add_matches(
    session: Session,
    draw: Draw,
    fixtures: Iterable[tuple[str, str]],
) -> list[Match]:
    """Attach the fixtures of a pool-game draw, in ticket order.

    Raises
    ------
    ValueError
        If the draw is not a pool draw, already has matches, or the number of
        fixtures differs from the game's matches per ticket.
    """
    game = draw.game
    if not game.is_pool:
        raise ValueError("Only pool games have matches")
    if draw.matches:
        raise ValueError(f"Draw {draw.id} already has its matches")

    fixtures = list(fixtures)
    if len(fixtures) != game.numbers_per_ticket:
        raise ValueError(
            f"Expected {game.numbers_per_ticket} fixtures, got {len(fixtures)}"
        )
    matches = [
        Match(order=index, home_team=home, away_team=away)
        for index, (home, away) in enumerate(fixtures, start=1)
    ]
    draw.matches.extend(matches)
    session.flush()
    return matches


def publish_match_result(
    session: Session,
    draw: Draw,
    order: int,
    result: Union[str, MatchOutcome],
    *,
    published_at: Optional[datetime] = None,
) -> Draw:
    """Record the outcome of one match.

    The draw becomes published once every match has its result.

    Raises
    ------
    ValueError
        If the match does not exist, already has a result, or ``result`` is
        not a :class:`MatchOutcome`.
    """
    outcome = MatchOutcome(result)
    match = next((m for m in draw.matches if m.order == order), None)
    if match is None:
        raise ValueError(f"Draw {draw.id} has no match #{order}")
    if match.result is not None:
        raise ValueError(f"Match #{order} of draw {draw.id} already has a result")

    match.result = outcome.value
    if len(draw.matches) == draw.game.numbers_per_ticket and all(
        m.result is not None for m in draw.matches
    ):
        draw.published_at = as_utc(published_at) or utc_now()
        logger.info(f"Published pool draw {draw.id}")
    session.flush()
    return draw


def settle_draw(session: Session, draw: Draw) -> SettlementSummary:
    """Settle ``draw``; see :class:`~lotterycore.engine.SettlementEngine`."""
    return SettlementEngine(session).settle(draw)


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------


def sell_ticket(
    session: Session,
    game: Game,
    channel_id: str,
    amount: Union[Decimal, int, str],
    *,
    anchor: Optional[int] = None,
    numbers: Optional[Iterable[int]] = None,
    picks: Optional[Sequence[Union[str, MatchOutcome]]] = None,
    now: Optional[datetime] = None,
    idempotency_key: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Ticket:
    """Sell one ticket through ``channel_id``.

    The flow resolves the draw, reserves a series slot, allocates the numbers,
    checks the risk limit and, when enabled, assigns a second-chance number.
    All of it runs in one savepoint: a rejected sale leaves no reservation
    behind.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    game : Game
        Persisted game to sell.
    channel_id : str
        Sales channel (device or area) issuing the ticket.
    amount : Decimal
        Stake, positive.
    anchor : Optional[int], default: None
        Number fixed by the buyer (RANDOM games).
    numbers : Optional[Iterable[int]], default: None
        Bet numbers chosen by the buyer (SEQUENTIAL digit games), each in
        ``[0, number_range)``.
    picks : Optional[Sequence[str]], default: None
        Pool games: one :class:`MatchOutcome` per match.
    now : Optional[datetime], default: None
        Sale instant, current time when omitted.
    idempotency_key : Optional[str], default: None
        Retry key; a repeated key returns the ticket already sold.
    rng : Optional[random.Random], default: None
        Random source for RANDOM numbering and second chance.

    Returns
    -------
    Ticket
        The new (or previously sold) ticket, flushed.

    Raises
    ------
    ConfigurationError
        If the game configuration is invalid.
    CapacityError
        If the series cannot sell (``SeriesFullError`` when FULL without
        auto-cycling), the anchor is taken, the draw is already published,
        or the risk limit would be exceeded.
    AllocationExhaustion
        If random sampling hits its cap.
    ValueError
        On invalid stake, anchor, chosen numbers or picks.
    """
    if idempotency_key is not None:
        existing = Ticket.get_by_idempotency_key(session, idempotency_key)
        if existing is not None:
            logger.debug(f"Replayed sale for idempotency key {idempotency_key}")
            return existing

    validate_game_config(game)
    stake = q2(amount)
    if stake <= 0:
        raise ValueError("Ticket amount must be positive")
    normalized_picks = _normalize_picks(game, picks)
    chosen = _normalize_numbers(game, numbers)

    now = now or utc_now()
    instant = resolve_next_draw(game.extraction_times, game.cutoff_minutes, now)

    try:
        with session.begin_nested():
            draw = get_or_create_draw(session, game, instant)
            if draw.is_published:
                raise CapacityError(f"Draw {draw.id} already has its results")

            tracker = SeriesCapacityTracker(session)
            allocator = TicketNumberAllocator(session, tracker=tracker, rng=rng)
            series, allocation = _allocate(tracker, allocator, game, channel_id, anchor)
            bet_numbers = allocation.numbers if chosen is None else chosen

            possible_prize = None
            if game.prize_multiplier is not None and bet_numbers:
                possible_prize = q2(
                    stake / len(bet_numbers) * Decimal(str(game.prize_multiplier))
                )
                _check_liability(session, game, draw, bet_numbers, possible_prize)

            second_chance_number = None
            second_chance_at = None
            if game.second_chance_enabled:
                second_chance_at = as_utc(
                    resolve_next_weekly_draw(
                        game.second_chance_weekday, game.second_chance_time, now
                    )
                )
                second_chance_number = allocator.second_chance_number(
                    game, second_chance_at
                )

            ticket = Ticket(
                game_id=game.id,
                series_id=series.id,
                draw_id=draw.id,
                channel_id=channel_id,
                series_number=allocation.series_number,
                series_slot=allocation.series_slot,
                ticket_code=allocation.ticket_code,
                numbers=bet_numbers,
                picks=normalized_picks,
                draw_instant=draw.draw_instant,
                amount=stake,
                possible_prize=possible_prize,
                status=TicketStatus.PENDING.value,
                second_chance_number=second_chance_number,
                second_chance_draw_at=second_chance_at,
                idempotency_key=idempotency_key,
            )
            # Chosen numbers may be shared; only drawn numbers are exclusive.
            exclusive_series_id = series.id if chosen is None else None
            ticket.issued_numbers = [
                TicketNumber(
                    series_id=exclusive_series_id, draw_id=draw.id, number=number
                )
                for number in bet_numbers
            ]
            session.add(ticket)
            session.flush()
    except IntegrityError as exc:
        if idempotency_key is not None:
            existing = Ticket.get_by_idempotency_key(session, idempotency_key)
            if existing is not None:
                return existing
        logger.warning(f"Sale on channel {channel_id} lost a number race: {exc.orig}")
        raise NumberUnavailableError(
            "A number of this ticket was issued concurrently; retry the sale"
        ) from exc
    except CapacityError as exc:
        logger.warning(f"Sale on channel {channel_id} rejected: {exc}")
        raise

    logger.info(
        f"Sold ticket {ticket.ticket_code} (series {ticket.series_number}, "
        f"channel {channel_id}) for draw {ticket.draw_instant}: {ticket.numbers}"
    )
    return ticket


def _normalize_picks(
    game: Game, picks: Optional[Sequence[Union[str, MatchOutcome]]]
) -> Optional[list[str]]:
    if not game.is_pool:
        if picks:
            raise ValueError("Only pool games take picks")
        return None
    if picks is None or len(picks) != game.numbers_per_ticket:
        raise ValueError(f"A pool ticket needs {game.numbers_per_ticket} picks")
    return [MatchOutcome(pick).value for pick in picks]


def _normalize_numbers(
    game: Game, numbers: Optional[Iterable[int]]
) -> Optional[list[int]]:
    if game.is_pool or game.numbering_mode != NumberingMode.SEQUENTIAL:
        if numbers:
            raise ValueError("Only sequential digit games take chosen numbers")
        return None
    chosen = list(numbers or [])
    if not 1 <= len(chosen) <= game.numbers_per_ticket:
        raise ValueError(
            f"A ticket needs between 1 and {game.numbers_per_ticket} chosen numbers"
        )
    for number in chosen:
        if isinstance(number, bool) or not isinstance(number, int):
            raise ValueError(f"Chosen number {number!r} is not an integer")
        if not 0 <= number < game.number_range:
            raise ValueError(f"Number {number} is outside [0, {game.number_range})")
    if len(set(chosen)) != len(chosen):
        raise ValueError("Chosen numbers must be distinct")
    return sorted(chosen)


def _allocate(
    tracker: SeriesCapacityTracker,
    allocator: TicketNumberAllocator,
    game: Game,
    channel_id: str,
    anchor: Optional[int],
) -> tuple[Series, Allocation]:
    series = tracker.current_series(game, channel_id)
    if series.status == SeriesStatus.FULL and game.auto_cycle_series:
        series = tracker.cycle_full_series(game, channel_id, series)
    try:
        return series, allocator.allocate(game, anchor, series)
    except SeriesFullError:
        # Another sale took the last slot between lookup and reservation.
        if not game.auto_cycle_series:
            raise
    series = tracker.cycle_full_series(game, channel_id, series)
    return series, allocator.allocate(game, anchor, series)


def _check_liability(
    session: Session,
    game: Game,
    draw: Draw,
    numbers: list[int],
    possible_prize: Decimal,
) -> None:
    if game.max_liability is None:
        return
    limit = Decimal(str(game.max_liability))
    stmt = (
        select(TicketNumber.number, func.sum(Ticket.possible_prize))
        .join(Ticket, Ticket.id == TicketNumber.ticket_id)
        .where(
            TicketNumber.draw_id == draw.id,
            TicketNumber.number.in_(numbers),
            Ticket.status != TicketStatus.CANCELLED.value,
        )
        .group_by(TicketNumber.number)
    )
    exposure = {
        number: Decimal(str(total or 0)) for number, total in session.execute(stmt)
    }
    for number in numbers:
        committed = exposure.get(number, Decimal("0"))
        if committed + possible_prize > limit:
            raise LiabilityLimitError(
                f"Number {number} would reach {q2(committed + possible_prize)} "
                f"of possible prizes in draw {draw.id} (limit {q2(limit)})"
            )


def confirm_payment(
    session: Session, ticket: Ticket, *, paid_at: Optional[datetime] = None
) -> Ticket:
    """Mark ``ticket`` as paid; repeated confirmations are no-ops.

    Raises
    ------
    ValueError
        If the ticket was cancelled.
    """
    status = TicketStatus(ticket.status)
    if status is TicketStatus.CANCELLED:
        raise ValueError(f"Ticket {ticket.ticket_code} is cancelled and cannot be paid")
    if status is not TicketStatus.PENDING:
        return ticket
    ticket.status = TicketStatus.PAID.value
    ticket.paid_at = as_utc(paid_at) or utc_now()
    session.flush()
    logger.info(f"Payment confirmed for ticket {ticket.id}")
    return ticket


def cancel_ticket(
    session: Session, ticket: Ticket, *, cancelled_at: Optional[datetime] = None
) -> Ticket:
    """Cancel ``ticket`` and release its numbers.

    The series slot stays consumed. Cancelling twice is a no-op.

    Raises
    ------
    ValueError
        If the ticket won, or its draw already has results.
    """
    status = TicketStatus(ticket.status)
    if status is TicketStatus.CANCELLED:
        return ticket
    if status is TicketStatus.WINNER:
        raise ValueError(f"Ticket {ticket.ticket_code} is a winner and cannot be cancelled")
    if ticket.draw.is_published:
        raise ValueError(
            f"Draw of ticket {ticket.ticket_code} is published; cancellation refused"
        )

    ticket.status = TicketStatus.CANCELLED.value
    ticket.cancelled_at = as_utc(cancelled_at) or utc_now()
    ticket.issued_numbers.clear()
    session.flush()
    logger.info(f"Cancelled ticket {ticket.id}, released {ticket.numbers}")
    return ticket


__all__ = [
    "NUMBERING_FIELDS",
    "SeriesStats",
    "add_matches",
    "cancel_ticket",
    "close_series",
    "confirm_payment",
    "get_or_create_draw",
    "get_or_create_series",
    "open_next_series",
    "pause_series",
    "publish_digit_result",
    "publish_match_result",
    "register_game",
    "resume_series",
    "sell_ticket",
    "series_stats",
    "settle_draw",
    "update_game_config",
]
