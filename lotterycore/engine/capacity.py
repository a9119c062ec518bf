"""Series capacity tracking.

The tracker owns the series state machine::

    ACTIVE --(sold_count reaches capacity)--> FULL
    ACTIVE/FULL <--(pause / resume)--> PAUSED
    any --(close)--> CLOSED   (irreversible)

FULL and CLOSED series only stop being the channel's current series when an
operator (or the game's auto-cycle policy) opens the next one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import CapacityError, SeriesFullError
from ..models import Game, Series, SeriesStatus

logger = logging.getLogger(__name__)


class SeriesCapacityTracker:
    """Reserve series slots and apply administrative transitions.

    Every method works inside the caller's transaction; nothing is committed
    here.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def reserve_slot(self, series: Series) -> int:
        """Atomically take the next slot of ``series``.

        The increment is a single guarded ``UPDATE`` so two concurrent
        reservations can never act on the same pre-increment value. The
        series turns FULL in the same statement when the last slot goes.

        Returns
        -------
        int
            The 1-based slot index just reserved.

        Raises
        ------
        SeriesFullError
            If every slot is already sold.
        CapacityError
            If the series is PAUSED or CLOSED.
        """
        if series.id is None:
            raise ValueError("Series must be persisted before reserving a slot")

        stmt = (
            update(Series)
            .where(
                Series.id == series.id,
                Series.status == SeriesStatus.ACTIVE.value,
                Series.sold_count < Series.capacity,
            )
            .values(
                sold_count=Series.sold_count + 1,
                status=case(
                    (
                        Series.sold_count + 1 >= Series.capacity,
                        SeriesStatus.FULL.value,
                    ),
                    else_=Series.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.refresh(series, attribute_names=["sold_count", "status"])

        if result.rowcount == 0:
            status = SeriesStatus(series.status)
            logger.warning(
                f"Reservation rejected for series {series.series_number} "
                f"(channel={series.channel_id}, status={status.value})"
            )
            if status in (SeriesStatus.FULL, SeriesStatus.ACTIVE):
                raise SeriesFullError(
                    f"All {series.capacity} tickets of series "
                    f"{series.series_number} are sold"
                )
            raise CapacityError(
                f"Series {series.series_number} is {status.value} and cannot sell"
            )

        slot = series.sold_count
        logger.debug(
            f"Reserved slot {slot}/{series.capacity} in series "
            f"{series.series_number} (channel={series.channel_id})"
        )
        if series.status == SeriesStatus.FULL:
            logger.info(
                f"Series {series.series_number} of channel {series.channel_id} is FULL"
            )
        return slot

    def current_status(self, series: Series) -> SeriesStatus:
        """Return the stored status of ``series``, re-read from the database."""
        self._session.refresh(series, attribute_names=["status", "sold_count"])
        return SeriesStatus(series.status)

    def current_series(self, game: Game, channel_id: str) -> Series:
        """Return the channel's current series, opening series 1 lazily."""
        series = Series.current_for(self._session, game.id, channel_id)
        if series is not None:
            return series
        return self._open(game, channel_id, 1)

    def open_next_series(self, game: Game, channel_id: str) -> Series:
        """Open series ``n + 1`` for the channel.

        A current series that is still ACTIVE or PAUSED is closed first.
        """
        current = Series.current_for(self._session, game.id, channel_id)
        if current is None:
            return self._open(game, channel_id, 1)
        if current.status in (SeriesStatus.ACTIVE, SeriesStatus.PAUSED):
            self.close(current)
        series = self._open(game, channel_id, current.series_number + 1)
        logger.info(
            f"Channel {channel_id} rotated from series {current.series_number} "
            f"to {series.series_number}"
        )
        return series

    def cycle_full_series(self, game: Game, channel_id: str, full: Series) -> Series:
        """Move the channel past the FULL series ``full``.

        Opens series ``full.series_number + 1``. When a concurrent sale has
        already moved the channel on, its current series is returned and
        nothing is closed.
        """
        current = Series.current_for(self._session, game.id, channel_id)
        if current is not None and current.series_number > full.series_number:
            logger.debug(
                f"Channel {channel_id} already moved past series {full.series_number}"
            )
            return current
        series = self._open(game, channel_id, full.series_number + 1)
        logger.info(
            f"Channel {channel_id} cycled from FULL series {full.series_number} "
            f"to {series.series_number}"
        )
        return series

    def pause(self, series: Series) -> Series:
        status = self.current_status(series)
        if status is SeriesStatus.CLOSED:
            raise ValueError("A closed series cannot be paused")
        series.status = SeriesStatus.PAUSED.value
        self._session.flush()
        return series

    def resume(self, series: Series) -> Series:
        status = self.current_status(series)
        if status is not SeriesStatus.PAUSED:
            raise ValueError(f"Only a paused series can be resumed (status={status.value})")
        series.status = (
            SeriesStatus.FULL.value
            if series.sold_count >= series.capacity
            else SeriesStatus.ACTIVE.value
        )
        self._session.flush()
        return series

    def close(self, series: Series) -> Series:
        if self.current_status(series) is SeriesStatus.CLOSED:
            return series
        series.status = SeriesStatus.CLOSED.value
        series.closed_at = datetime.now(timezone.utc)
        self._session.flush()
        return series

    def _open(self, game: Game, channel_id: str, series_number: int) -> Series:
        if game.id is None:
            raise ValueError("Game must be persisted before opening a series")
        series = Series(
            game_id=game.id,
            channel_id=channel_id,
            series_number=series_number,
            capacity=game.max_tickets_per_series,
            sold_count=0,
            status=SeriesStatus.ACTIVE.value,
        )
        try:
            with self._session.begin_nested():
                self._session.add(series)
        except IntegrityError:
            # Another sale opened the same series concurrently; use theirs.
            existing = self._session.scalar(
                select(Series).where(
                    Series.game_id == game.id,
                    Series.channel_id == channel_id,
                    Series.series_number == series_number,
                )
            )
            if existing is None:
                raise
            return existing
        return series


__all__ = ["SeriesCapacityTracker"]
