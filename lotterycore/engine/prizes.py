"""Payout arithmetic for digit-suffix and pool-split games.

Everything here is a pure function of its inputs; persisting the results is
left to :mod:`lotterycore.engine.settlement`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import IntEnum
from typing import Hashable, Mapping, Optional, Sequence, Union

from ..config import POOL_RATE, POOL_TIER_RATES
from ..db.utils import q2
from ..models import Game, MatchOutcome

NumberLike = Union[int, str]

DIGIT_WIDTH = 4
"""Digit games compare numbers as four zero-padded digits."""

POOL_MATCH_COUNT = 14
"""Default number of matches on a pool ticket."""

ZERO = Decimal("0")


class DigitTier(IntEnum):
    """Digit-suffix tiers keyed by the number of matching trailing digits."""

    DEZENA = 2
    CENTENA = 3
    MILHAR = 4


def digit_string(value: NumberLike) -> str:
    """Render a number as its last four digits, zero padded."""
    text = str(value).strip()
    if not text.isdigit():
        raise ValueError(f"{value!r} is not a non-negative number")
    return text.zfill(DIGIT_WIDTH)[-DIGIT_WIDTH:]


def match_suffix_length(winning_number: NumberLike, ticket_number: NumberLike) -> int:
    """Count trailing digits shared by the two numbers (0 to 4)."""

    winning, ticket = digit_string(winning_number), digit_string(ticket_number)
    length = 0
    for won, held in zip(reversed(winning), reversed(ticket)):
        if won != held:
            break
        length += 1
    return length


def digit_tier(
    winning_number: NumberLike, ticket_number: NumberLike
) -> Optional[DigitTier]:
    """Return the best tier ``ticket_number`` reaches, if any."""

    length = match_suffix_length(winning_number, ticket_number)
    if length < DigitTier.DEZENA:
        return None
    return DigitTier(length)


def tier_prize(game: Game, tier: Optional[DigitTier]) -> Decimal:
    """Flat prize configured on ``game`` for ``tier``; unset tiers pay nothing."""

    if tier is None:
        return ZERO
    amount = {
        DigitTier.MILHAR: game.prize_milhar,
        DigitTier.CENTENA: game.prize_centena,
        DigitTier.DEZENA: game.prize_dezena,
    }[tier]
    return q2(amount) if amount is not None else ZERO


def compute_digit_prize(
    game: Game, winning_number: NumberLike, ticket_number: NumberLike
) -> Decimal:
    """Flat prize of one ticket number against one winning number.

    Only the longest matching suffix pays: a number sharing the last three
    digits but not the fourth earns the centena prize and nothing else.
    """

    return tier_prize(game, digit_tier(winning_number, ticket_number))


def count_hits(
    picks: Sequence[Union[str, MatchOutcome]],
    results: Sequence[Union[str, MatchOutcome]],
) -> int:
    """Number of picks equal to the official result of the same match."""

    if len(picks) != len(results):
        raise ValueError(
            f"Ticket has {len(picks)} picks but the draw has {len(results)} results"
        )
    return sum(
        1
        for pick, result in zip(picks, results)
        if MatchOutcome(pick) is MatchOutcome(result)
    )


@dataclass(frozen=True)
class PoolSettlement:
    """Outcome of splitting one draw's pool.

    Attributes
    ----------
    pool : Decimal
        ``total_collected * pool_rate`` plus any carried over funds.
    tier_prizes : tuple[Decimal, Decimal, Decimal]
        Prize per winning ticket for the top, second and third tier.
    winners_by_tier : tuple[int, int, int]
        Winning tickets in each tier.
    per_ticket_prize : dict
        Prize of every ticket passed in, keyed like the input mapping.
    distributed : Decimal
        Sum of all per-ticket prizes.
    undistributed : Decimal
        ``pool - distributed``; where it goes is the game's unclaimed policy.
    """

    pool: Decimal
    tier_prizes: tuple[Decimal, ...]
    winners_by_tier: tuple[int, ...]
    per_ticket_prize: dict = field(default_factory=dict)
    distributed: Decimal = ZERO
    undistributed: Decimal = ZERO


def compute_pool_prizes(
    total_collected: Union[Decimal, int, str],
    winners_by_tier: Sequence[int],
    *,
    pool_rate: Optional[Decimal] = None,
    tier_rates: Optional[Sequence[Decimal]] = None,
    carryover: Union[Decimal, int, str] = ZERO,
) -> tuple[Decimal, tuple[Decimal, ...]]:
    """Return the pool and the per-winner prize of each tier.

    A tier without winners pays ``0``; its share is never divided.
    """

    rate = POOL_RATE if pool_rate is None else Decimal(str(pool_rate))
    rates = tuple(Decimal(str(r)) for r in (tier_rates or POOL_TIER_RATES))
    if len(winners_by_tier) != len(rates):
        raise ValueError(
            f"Expected winners for {len(rates)} tiers, got {len(winners_by_tier)}"
        )
    if any(count < 0 for count in winners_by_tier):
        raise ValueError("Winner counts must be non-negative")

    pool = q2(Decimal(str(total_collected)) * rate + Decimal(str(carryover)))
    prizes = []
    for tier_rate, winners in zip(rates, winners_by_tier):
        if winners == 0:
            prizes.append(ZERO)
            continue
        prizes.append(q2(pool * tier_rate / winners))
    return pool, tuple(prizes)


def compute_pool_settlement(
    total_collected: Union[Decimal, int, str],
    hit_counts_per_ticket: Mapping[Hashable, int],
    *,
    match_count: int = POOL_MATCH_COUNT,
    pool_rate: Optional[Decimal] = None,
    tier_rates: Optional[Sequence[Decimal]] = None,
    carryover: Union[Decimal, int, str] = ZERO,
) -> PoolSettlement:
    """Split the pool of one draw among its tickets.

    Parameters
    ----------
    total_collected : Decimal
        Stakes collected for the draw.
    hit_counts_per_ticket : Mapping
        Hit count of every ticket, keyed by any ticket identifier.
    match_count : int, default: 14
        Matches on a ticket; tiers are ``match_count``, ``match_count - 1``
        and ``match_count - 2`` hits.
    pool_rate, tier_rates : optional
        Overrides of the configured pool rate and tier shares.
    carryover : Decimal, default: 0
        Funds rolled over from an earlier draw, added to the pool as is.
    """

    rates = tuple(tier_rates or POOL_TIER_RATES)
    tier_of: dict[Hashable, int] = {}
    winners = [0] * len(rates)
    for key, hits in hit_counts_per_ticket.items():
        if not 0 <= hits <= match_count:
            raise ValueError(f"Hit count {hits} is outside 0..{match_count}")
        index = match_count - hits
        if index < len(rates):
            tier_of[key] = index
            winners[index] += 1

    pool, prizes = compute_pool_prizes(
        total_collected,
        winners,
        pool_rate=pool_rate,
        tier_rates=rates,
        carryover=carryover,
    )
    per_ticket = {
        key: prizes[tier_of[key]] if key in tier_of else ZERO
        for key in hit_counts_per_ticket
    }
    distributed = sum((prizes[i] * winners[i] for i in range(len(rates))), ZERO)
    return PoolSettlement(
        pool=pool,
        tier_prizes=prizes,
        winners_by_tier=tuple(winners),
        per_ticket_prize=per_ticket,
        distributed=q2(distributed),
        undistributed=q2(pool - distributed),
    )


def pool_settlement_for_game(
    game: Game,
    total_collected: Union[Decimal, int, str],
    hit_counts_per_ticket: Mapping[Hashable, int],
    *,
    carryover: Union[Decimal, int, str] = ZERO,
) -> PoolSettlement:
    """:func:`compute_pool_settlement` with the rates configured on ``game``."""

    return compute_pool_settlement(
        total_collected,
        hit_counts_per_ticket,
        match_count=game.numbers_per_ticket,
        pool_rate=game.effective_pool_rate,
        tier_rates=game.effective_tier_rates,
        carryover=carryover,
    )


__all__ = [
    "DIGIT_WIDTH",
    "DigitTier",
    "digit_string",
    "POOL_MATCH_COUNT",
    "PoolSettlement",
    "compute_digit_prize",
    "compute_pool_prizes",
    "compute_pool_settlement",
    "count_hits",
    "digit_tier",
    "match_suffix_length",
    "pool_settlement_for_game",
    "tier_prize",
]
