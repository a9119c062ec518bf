"""Settle published draws against their tickets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .prizes import (
    ZERO,
    PoolSettlement,
    compute_digit_prize,
    count_hits,
    digit_tier,
    pool_settlement_for_game,
)
from ..db.utils import q2, utc_now
from ..errors import SettlementPreconditionError
from ..models import Draw, Game, Ticket, TicketStatus, UnclaimedPolicy

logger = logging.getLogger(__name__)


@dataclass
class SettlementSummary:
    """Totals of one settlement run.

    Attributes
    ----------
    draw_id : int
        Settled draw.
    ticket_count : int
        Non-cancelled tickets evaluated.
    winner_count : int
        Tickets with a positive prize.
    total_collected : Decimal
        Stakes of the evaluated tickets.
    total_prizes : Decimal
        Sum of every ticket prize.
    pool : Optional[Decimal]
        Pool games only: pool including carried over funds.
    tier_prizes : Optional[tuple]
        Pool games only: prize per winner for each tier.
    retained : Decimal
        Undistributed pool funds kept by the operator.
    rollover_out : Decimal
        Undistributed pool funds carried to the next draw.
    already_settled : bool
        ``True`` when the draw was settled by an earlier run and nothing was
        written.
    """

    draw_id: int
    ticket_count: int
    winner_count: int
    total_collected: Decimal
    total_prizes: Decimal
    pool: Optional[Decimal] = None
    tier_prizes: Optional[tuple] = None
    retained: Decimal = ZERO
    rollover_out: Decimal = ZERO
    already_settled: bool = False


class SettlementEngine:
    """Compute and persist prizes for a published draw.

    All prizes are computed before the first write, so a failure leaves the
    draw and its tickets untouched.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def settle(self, draw: Draw) -> SettlementSummary:
        """Settle ``draw`` once.

        Re-running on a settled draw returns its stored totals unchanged.

        Raises
        ------
        SettlementPreconditionError
            If the draw's results are not published (or, for pool games,
            not complete).
        """
        locked = self._session.scalar(
            select(Draw).where(Draw.id == draw.id).with_for_update()
        )
        if locked is None:
            raise ValueError("Draw must be persisted before settlement")
        self._session.refresh(locked)
        game = locked.game
        tickets = self._tickets(locked)

        if locked.is_settled:
            return self._stored_summary(locked, tickets)
        if not locked.is_published:
            raise SettlementPreconditionError(
                f"Results of draw {locked.id} are not published"
            )

        collected = q2(sum((Decimal(str(t.amount)) for t in tickets), ZERO))
        carryover = ZERO
        sources: list[Draw] = []
        if game.is_pool:
            sources = self._rollover_sources(game, locked)
            carryover = q2(sum((Decimal(str(d.rollover_out)) for d in sources), ZERO))
            hits = self._pool_hits(locked, tickets)
            outcome = pool_settlement_for_game(
                game, collected, hits, carryover=carryover
            )
            prizes = {t.id: outcome.per_ticket_prize[t.id] for t in tickets}
        else:
            outcome = None
            prizes, hits = self._digit_outcome(game, locked, tickets)

        summary = SettlementSummary(
            draw_id=locked.id,
            ticket_count=len(tickets),
            winner_count=sum(1 for amount in prizes.values() if amount > 0),
            total_collected=collected,
            total_prizes=q2(sum(prizes.values(), ZERO)),
        )
        settled_at = utc_now()
        with self._session.begin_nested():
            self._claim_rollovers(locked, sources)
            for ticket in tickets:
                ticket.hit_count = hits[ticket.id]
                ticket.prize_amount = prizes[ticket.id]
                ticket.settled_at = settled_at
                if prizes[ticket.id] > 0:
                    ticket.status = TicketStatus.WINNER.value
            locked.total_collected = collected
            if outcome is not None:
                locked.rollover_in = carryover
                self._apply_pool(game, locked, outcome, summary)
            locked.settled_at = settled_at
            self._session.flush()

        logger.info(
            f"Settled draw {locked.id} of game {game.name}: "
            f"{summary.winner_count}/{summary.ticket_count} winners, "
            f"prizes={summary.total_prizes}, collected={collected}"
        )
        return summary

    def _tickets(self, draw: Draw) -> list[Ticket]:
        stmt = (
            select(Ticket)
            .where(
                Ticket.draw_id == draw.id,
                Ticket.status != TicketStatus.CANCELLED.value,
            )
            .order_by(Ticket.id)
        )
        return list(self._session.scalars(stmt))

    def _digit_outcome(
        self, game: Game, draw: Draw, tickets: list[Ticket]
    ) -> tuple[dict[int, Decimal], dict[int, int]]:
        winning = list(draw.result_numbers or [])
        if not winning:
            raise SettlementPreconditionError(f"Draw {draw.id} has no winning numbers")
        prizes: dict[int, Decimal] = {}
        hits: dict[int, int] = {}
        for ticket in tickets:
            total = ZERO
            matched = 0
            for number in ticket.numbers:
                best = max(compute_digit_prize(game, won, number) for won in winning)
                total += best
                if any(digit_tier(won, number) is not None for won in winning):
                    matched += 1
            prizes[ticket.id] = q2(total)
            hits[ticket.id] = matched
        return prizes, hits

    def _results(self, draw: Draw) -> list[str]:
        game = draw.game
        matches = list(draw.matches)
        if len(matches) != game.numbers_per_ticket or any(
            m.result is None for m in matches
        ):
            raise SettlementPreconditionError(
                f"Draw {draw.id} has {len(matches)} matches, "
                f"{sum(1 for m in matches if m.result is not None)} decided; "
                f"{game.numbers_per_ticket} results are required"
            )
        return [m.result for m in matches]

    def _pool_hits(self, draw: Draw, tickets: list[Ticket]) -> dict[int, int]:
        results = self._results(draw)
        return {t.id: count_hits(t.picks or [], results) for t in tickets}

    def _rollover_sources(self, game: Game, draw: Draw) -> list[Draw]:
        """Earlier settled draws whose rollover no pool has received yet.

        Draws may settle out of order, so every unclaimed rollover before
        ``draw`` is collected rather than only the latest one.
        """
        if game.unclaimed_policy != UnclaimedPolicy.ROLLOVER:
            return []
        stmt = (
            select(Draw)
            .where(
                Draw.game_id == game.id,
                Draw.id != draw.id,
                Draw.draw_instant < draw.draw_instant,
                Draw.settled_at.is_not(None),
                Draw.rollover_out > 0,
                Draw.rollover_claimed_by_id.is_(None),
            )
            .order_by(Draw.draw_instant)
            .with_for_update()
        )
        return list(self._session.scalars(stmt))

    def _claim_rollovers(self, draw: Draw, sources: list[Draw]) -> None:
        if not sources:
            return
        result = self._session.execute(
            update(Draw)
            .where(
                Draw.id.in_([source.id for source in sources]),
                Draw.rollover_claimed_by_id.is_(None),
            )
            .values(rollover_claimed_by_id=draw.id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(sources):
            raise SettlementPreconditionError(
                f"Rollover for draw {draw.id} was claimed by a concurrent settlement; retry"
            )
        for source in sources:
            self._session.refresh(source)
        logger.debug(
            f"Draw {draw.id} received rollover of draws {[s.id for s in sources]}"
        )

    def _apply_pool(
        self,
        game: Game,
        draw: Draw,
        outcome: PoolSettlement,
        summary: SettlementSummary,
    ) -> None:
        draw.pool_amount = outcome.pool
        summary.pool = outcome.pool
        summary.tier_prizes = outcome.tier_prizes
        if game.unclaimed_policy == UnclaimedPolicy.ROLLOVER:
            draw.rollover_out = outcome.undistributed
            summary.rollover_out = outcome.undistributed
        else:
            draw.rollover_out = ZERO
            summary.retained = outcome.undistributed

    def _stored_summary(self, draw: Draw, tickets: list[Ticket]) -> SettlementSummary:
        prizes = [Decimal(str(t.prize_amount or 0)) for t in tickets]
        pool = q2(draw.pool_amount) if draw.pool_amount is not None else None
        total_prizes = q2(sum(prizes, ZERO))
        rollover = q2(draw.rollover_out or 0)
        retained = ZERO
        if pool is not None and draw.game.unclaimed_policy != UnclaimedPolicy.ROLLOVER:
            retained = q2(pool - total_prizes)
        logger.debug(f"Draw {draw.id} was already settled at {draw.settled_at}")
        return SettlementSummary(
            draw_id=draw.id,
            ticket_count=len(tickets),
            winner_count=sum(1 for amount in prizes if amount > 0),
            total_collected=q2(draw.total_collected or 0),
            total_prizes=total_prizes,
            pool=pool,
            retained=retained,
            rollover_out=rollover,
            already_settled=True,
        )


def settle(session: Session, draw: Draw) -> SettlementSummary:
    """Shorthand for :meth:`SettlementEngine.settle`."""

    return SettlementEngine(session).settle(draw)


__all__ = ["SettlementEngine", "SettlementSummary", "settle"]
