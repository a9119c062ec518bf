"""Ticket number allocation."""

from __future__ import annotations

import logging
import random
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .capacity import SeriesCapacityTracker
from ..config import ALLOCATION_MAX_ATTEMPTS, SECOND_CHANCE_MAX_ATTEMPTS
from ..errors import AllocationExhaustion, NumberUnavailableError
from ..models import (
    RESIDUE_MODULUS,
    Game,
    NumberingMode,
    Series,
    Ticket,
    TicketNumber,
    TicketStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class Allocation:
    """Numbers handed to one ticket.

    Attributes
    ----------
    numbers : list[int]
        Numbers drawn for a RANDOM ticket, ascending. Empty for SEQUENTIAL
        tickets, whose only number is the slot in ``ticket_code``.
    series_slot : int
        1-based slot reserved in the series.
    series_number : int
        Number of the series the slot belongs to.
    ticket_code : str
        Zero-padded channel ticket identifier derived from the slot.
    """

    numbers: list[int]
    series_slot: int
    series_number: int
    ticket_code: str = field(default="")


def format_ticket_number(slot: int, max_tickets_per_series: int) -> str:
    """Zero-pad ``slot`` to the width of ``max_tickets_per_series``."""

    return str(slot).zfill(len(str(max_tickets_per_series)))


def draw_unique_residue_numbers(
    count: int,
    number_range: int,
    *,
    anchor: Optional[int] = None,
    unavailable: Iterable[int] = (),
    rng: Optional[random.Random] = None,
    max_attempts: int = ALLOCATION_MAX_ATTEMPTS,
) -> list[int]:
    """Sample ``count`` numbers from ``[0, number_range)`` with distinct residues.

    Every returned number, together with ``anchor`` when given, occupies its
    own ``mod 1000`` residue class. The anchor counts towards ``count``.

    Parameters
    ----------
    count : int
        Total numbers required, anchor included.
    number_range : int
        Exclusive upper bound of the numbers.
    anchor : Optional[int], default: None
        Number fixed by the buyer.
    unavailable : Iterable[int], default: ()
        Numbers that may not be drawn, e.g. already issued in the series.
    rng : Optional[random.Random], default: None
        Random source, a system CSPRNG when omitted.
    max_attempts : int
        Cap on sampled candidates before giving up.

    Raises
    ------
    AllocationExhaustion
        If ``max_attempts`` candidates were drawn without completing the set.
    """

    rng = rng or secrets.SystemRandom()
    blocked = set(unavailable)
    chosen: list[int] = []
    residues: set[int] = set()
    if anchor is not None:
        chosen.append(anchor)
        residues.add(anchor % RESIDUE_MODULUS)

    attempts = 0
    while len(chosen) < count:
        if attempts >= max_attempts:
            raise AllocationExhaustion(
                f"Could not draw {count} numbers with distinct residues from "
                f"[0, {number_range}) within {max_attempts} attempts"
            )
        attempts += 1
        candidate = rng.randrange(number_range)
        if candidate in blocked or candidate in chosen:
            continue
        if candidate % RESIDUE_MODULUS in residues:
            continue
        chosen.append(candidate)
        residues.add(candidate % RESIDUE_MODULUS)

    return sorted(chosen)


class TicketNumberAllocator:
    """Assign numbers to a ticket and advance its series.

    The slot reservation and the issued-number lookup run in the caller's
    transaction; the caller must insert the matching :class:`TicketNumber`
    rows before committing so the ``(series_id, number)`` constraint catches
    a concurrent allocation of the same number.
    """

    def __init__(
        self,
        session: Session,
        *,
        tracker: Optional[SeriesCapacityTracker] = None,
        rng: Optional[random.Random] = None,
        max_attempts: int = ALLOCATION_MAX_ATTEMPTS,
    ) -> None:
        self._session = session
        self._tracker = tracker or SeriesCapacityTracker(session)
        self._rng = rng or secrets.SystemRandom()
        self._max_attempts = max_attempts

    def allocate(
        self, game: Game, anchor: Optional[int], series: Series
    ) -> Allocation:
        """Reserve a slot in ``series`` and pick the ticket's numbers.

        SEQUENTIAL games identify the ticket by the slot alone and accept no
        anchor; their bet numbers are chosen by the buyer. RANDOM games draw
        ``numbers_per_ticket`` numbers with distinct ``mod 1000`` residues,
        skipping numbers already issued in the series.

        Raises
        ------
        ValueError
            If the anchor is out of range, or given to a SEQUENTIAL game.
        NumberUnavailableError
            If the anchor is already issued in the series.
        SeriesFullError, CapacityError
            If the series cannot take another ticket.
        AllocationExhaustion
            If the sampling cap is hit.
        """
        mode = NumberingMode(game.numbering_mode)
        if mode is NumberingMode.SEQUENTIAL:
            if anchor is not None:
                raise ValueError("Sequential games do not accept an anchor number")
            slot = self._tracker.reserve_slot(series)
            numbers = []
        else:
            if anchor is not None and not 0 <= anchor < game.number_range:
                raise ValueError(
                    f"Anchor {anchor} is outside [0, {game.number_range})"
                )
            issued = self.issued_numbers(series)
            if anchor is not None and anchor in issued:
                raise NumberUnavailableError(
                    f"Number {anchor} is already issued in series {series.series_number}"
                )
            # Sample before reserving so an exhausted draw leaves the counter alone.
            numbers = draw_unique_residue_numbers(
                game.numbers_per_ticket,
                game.number_range,
                anchor=anchor,
                unavailable=issued,
                rng=self._rng,
                max_attempts=self._max_attempts,
            )
            slot = self._tracker.reserve_slot(series)

        allocation = Allocation(
            numbers=numbers,
            series_slot=slot,
            series_number=series.series_number,
            ticket_code=format_ticket_number(slot, series.capacity),
        )
        logger.debug(
            f"Allocated {numbers} at slot {slot} of series {series.series_number} "
            f"(channel={series.channel_id}, mode={mode.value})"
        )
        return allocation

    def issued_numbers(self, series: Series) -> set[int]:
        """Numbers held by non-cancelled tickets of ``series``."""
        stmt = select(TicketNumber.number).where(TicketNumber.series_id == series.id)
        return set(self._session.scalars(stmt))

    def second_chance_number(
        self,
        game: Game,
        draw_at: datetime,
        *,
        max_attempts: int = SECOND_CHANCE_MAX_ATTEMPTS,
    ) -> int:
        """Draw a second-chance number unique for the draw date ``draw_at``.

        Raises
        ------
        AllocationExhaustion
            If ``max_attempts`` draws all hit numbers already in use.
        """
        start = game.second_chance_range_start
        end = game.second_chance_range_end
        taken = set(
            self._session.scalars(
                select(Ticket.second_chance_number).where(
                    Ticket.game_id == game.id,
                    Ticket.second_chance_draw_at == draw_at,
                    Ticket.status != TicketStatus.CANCELLED.value,
                    Ticket.second_chance_number.is_not(None),
                )
            )
        )
        for _ in range(max_attempts):
            candidate = self._rng.randint(start, end)
            if candidate not in taken:
                return candidate
        raise AllocationExhaustion(
            f"No free second-chance number in [{start}, {end}] after "
            f"{max_attempts} attempts"
        )


def allocate_ticket_numbers(
    session: Session,
    game: Game,
    anchor: Optional[int],
    series: Series,
    *,
    rng: Optional[random.Random] = None,
) -> Allocation:
    """Shorthand for :meth:`TicketNumberAllocator.allocate`."""

    return TicketNumberAllocator(session, rng=rng).allocate(game, anchor, series)


__all__ = [
    "Allocation",
    "TicketNumberAllocator",
    "allocate_ticket_numbers",
    "draw_unique_residue_numbers",
    "format_ticket_number",
]
