"""Environment-driven defaults for the engine.

Values are read once at import time; per-game settings stored on
:class:`~lotterycore.models.Game` take precedence over these.
"""

from __future__ import annotations

import os
from datetime import timedelta, timezone
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _decimal_list(raw: str) -> tuple[Decimal, ...]:
    return tuple(Decimal(part.strip()) for part in raw.split(",") if part.strip())


OPERATING_UTC_OFFSET_MINUTES = int(os.getenv("OPERATING_UTC_OFFSET_MINUTES", "-180"))
# Fixed civil offset, no daylight-saving adjustment.
OPERATING_TZ = timezone(timedelta(minutes=OPERATING_UTC_OFFSET_MINUTES))

DEFAULT_CUTOFF_MINUTES = int(os.getenv("DEFAULT_CUTOFF_MINUTES", "10"))
ALLOCATION_MAX_ATTEMPTS = int(os.getenv("ALLOCATION_MAX_ATTEMPTS", "10000"))
SECOND_CHANCE_MAX_ATTEMPTS = int(os.getenv("SECOND_CHANCE_MAX_ATTEMPTS", "10"))

POOL_RATE = Decimal(os.getenv("POOL_RATE", "0.70"))
POOL_TIER_RATES = _decimal_list(os.getenv("POOL_TIER_RATES", "0.5,0.15,0.05"))

__all__ = [
    "ALLOCATION_MAX_ATTEMPTS",
    "DEFAULT_CUTOFF_MINUTES",
    "OPERATING_TZ",
    "OPERATING_UTC_OFFSET_MINUTES",
    "POOL_RATE",
    "POOL_TIER_RATES",
    "SECOND_CHANCE_MAX_ATTEMPTS",
]
