"""Error kinds raised by the engine."""

from __future__ import annotations


class LotteryEngineError(Exception):
    """Base class for every engine error."""


class ConfigurationError(LotteryEngineError, ValueError):
    """A game configuration can never produce a valid result.

    Raised at configuration time and never retried automatically.
    """


class CapacityError(LotteryEngineError):
    """The series (or draw) cannot accept the sale right now."""


class SeriesFullError(CapacityError):
    """The series has sold all of its slots."""


class NumberUnavailableError(CapacityError):
    """A requested number is already issued in the series."""


class LiabilityLimitError(CapacityError):
    """Accepting the sale would exceed the configured risk limit."""


class AllocationExhaustion(LotteryEngineError):
    """Random sampling hit its attempt cap without completing the ticket."""


class SettlementPreconditionError(LotteryEngineError):
    """A settlement run was started before results were published."""


__all__ = [
    "AllocationExhaustion",
    "CapacityError",
    "ConfigurationError",
    "LiabilityLimitError",
    "LotteryEngineError",
    "NumberUnavailableError",
    "SeriesFullError",
    "SettlementPreconditionError",
]
