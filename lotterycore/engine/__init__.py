"""Draw scheduling, number allocation and settlement."""

from .allocation import (
    Allocation,
    TicketNumberAllocator,
    allocate_ticket_numbers,
    draw_unique_residue_numbers,
    format_ticket_number,
)
from .capacity import SeriesCapacityTracker
from .draw_window import resolve_next_draw, resolve_next_weekly_draw, sales_cutoff
from .prizes import (
    DigitTier,
    PoolSettlement,
    compute_digit_prize,
    compute_pool_prizes,
    compute_pool_settlement,
    count_hits,
    digit_tier,
    match_suffix_length,
)
from .settlement import SettlementEngine, SettlementSummary

__all__ = [
    "Allocation",
    "DigitTier",
    "PoolSettlement",
    "SeriesCapacityTracker",
    "SettlementEngine",
    "SettlementSummary",
    "TicketNumberAllocator",
    "allocate_ticket_numbers",
    "compute_digit_prize",
    "compute_pool_prizes",
    "compute_pool_settlement",
    "count_hits",
    "digit_tier",
    "draw_unique_residue_numbers",
    "format_ticket_number",
    "match_suffix_length",
    "resolve_next_draw",
    "resolve_next_weekly_draw",
    "sales_cutoff",
]
