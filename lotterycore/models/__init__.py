from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .game import (  # noqa: F401
    Game,
    GameKind,
    RESIDUE_MODULUS,
    NumberingMode,
    UnclaimedPolicy,
    validate_game_config,
)
from .series import Series, SeriesStatus  # noqa: F401
from .draw import Draw, Match, MatchOutcome  # noqa: F401
from .ticket import Ticket, TicketNumber, TicketStatus  # noqa: F401

__all__ = [
    "Base",
    "Draw",
    "Game",
    "GameKind",
    "Match",
    "MatchOutcome",
    "NumberingMode",
    "RESIDUE_MODULUS",
    "Series",
    "SeriesStatus",
    "Ticket",
    "TicketNumber",
    "TicketStatus",
    "UnclaimedPolicy",
    "validate_game_config",
]
