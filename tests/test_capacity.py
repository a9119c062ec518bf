from __future__ import annotations

import tempfile
import threading
import unittest
from pathlib import Path

from sqlalchemy import func, select, update

from lotterycore.db.engine import get_sessionmaker, make_engine
from lotterycore.engine import SeriesCapacityTracker
from lotterycore.errors import CapacityError, SeriesFullError
from lotterycore.models import Base, Game, Series, SeriesStatus


class SeriesCapacityTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _game(self, session, capacity: int = 3) -> Game:
        game = Game(
            name="Milhar",
            extraction_times=["08:00", "11:00"],
            max_tickets_per_series=capacity,
        )
        session.add(game)
        session.flush()
        return game

    def test_first_series_is_created_lazily(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            tracker = SeriesCapacityTracker(session)
            series = tracker.current_series(game, "pos-1")
            self.assertEqual(series.series_number, 1)
            self.assertEqual(series.capacity, 3)
            self.assertEqual(series.status, SeriesStatus.ACTIVE)
            self.assertIs(tracker.current_series(game, "pos-1"), series)
            self.assertEqual(tracker.current_series(game, "pos-2").series_number, 1)

    def test_reservations_fill_series_then_fail(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            tracker = SeriesCapacityTracker(session)
            series = tracker.current_series(game, "pos-1")

            slots = [tracker.reserve_slot(series) for _ in range(3)]
            self.assertEqual(slots, [1, 2, 3])
            self.assertEqual(series.sold_count, 3)
            self.assertEqual(tracker.current_status(series), SeriesStatus.FULL)

            with self.assertRaises(SeriesFullError):
                tracker.reserve_slot(series)
            self.assertEqual(series.sold_count, 3)

    def test_full_series_is_not_reassigned(self) -> None:
        with self.Session() as session:
            game = self._game(session, capacity=1)
            tracker = SeriesCapacityTracker(session)
            series = tracker.current_series(game, "pos-1")
            tracker.reserve_slot(series)
            with self.assertRaises(CapacityError):
                tracker.reserve_slot(series)
            self.assertIs(tracker.current_series(game, "pos-1"), series)

    def test_paused_series_blocks_reservation(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            tracker = SeriesCapacityTracker(session)
            series = tracker.current_series(game, "pos-1")
            tracker.reserve_slot(series)
            tracker.pause(series)

            with self.assertRaises(CapacityError) as ctx:
                tracker.reserve_slot(series)
            self.assertNotIsInstance(ctx.exception, SeriesFullError)

            tracker.resume(series)
            self.assertEqual(series.status, SeriesStatus.ACTIVE)
            self.assertEqual(tracker.reserve_slot(series), 2)

    def test_resume_of_full_series_stays_full(self) -> None:
        with self.Session() as session:
            game = self._game(session, capacity=1)
            tracker = SeriesCapacityTracker(session)
            series = tracker.current_series(game, "pos-1")
            tracker.reserve_slot(series)
            tracker.pause(series)
            tracker.resume(series)
            self.assertEqual(series.status, SeriesStatus.FULL)

    def test_close_is_irreversible(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            tracker = SeriesCapacityTracker(session)
            series = tracker.current_series(game, "pos-1")
            tracker.close(series)
            self.assertIsNotNone(series.closed_at)

            with self.assertRaises(CapacityError):
                tracker.reserve_slot(series)
            with self.assertRaises(ValueError):
                tracker.resume(series)
            with self.assertRaises(ValueError):
                tracker.pause(series)

    def test_open_next_series(self) -> None:
        with self.Session() as session:
            game = self._game(session, capacity=1)
            tracker = SeriesCapacityTracker(session)
            first = tracker.current_series(game, "pos-1")
            tracker.reserve_slot(first)

            second = tracker.open_next_series(game, "pos-1")
            self.assertEqual(second.series_number, 2)
            self.assertEqual(second.sold_count, 0)
            self.assertEqual(second.status, SeriesStatus.ACTIVE)
            self.assertEqual(first.status, SeriesStatus.FULL)
            self.assertIs(tracker.current_series(game, "pos-1"), second)

            third = tracker.open_next_series(game, "pos-1")
            self.assertEqual(third.series_number, 3)
            self.assertEqual(second.status, SeriesStatus.CLOSED)

    def test_cycling_a_full_series_keeps_a_newer_one_open(self) -> None:
        with self.Session() as session:
            game = self._game(session, capacity=1)
            tracker = SeriesCapacityTracker(session)
            full = tracker.current_series(game, "pos-1")
            tracker.reserve_slot(full)

            newer = tracker.cycle_full_series(game, "pos-1", full)
            self.assertEqual(newer.series_number, 2)

            # A late sale still holding series 1 joins series 2.
            again = tracker.cycle_full_series(game, "pos-1", full)
            self.assertIs(again, newer)
            self.assertEqual(newer.status, SeriesStatus.ACTIVE)
            self.assertIsNone(newer.closed_at)
            self.assertEqual(session.scalar(select(func.count(Series.id))), 2)

            tracker.reserve_slot(newer)
            third = tracker.cycle_full_series(game, "pos-1", newer)
            self.assertEqual(third.series_number, 3)
            self.assertEqual(newer.status, SeriesStatus.FULL)

    def test_capacity_is_snapshotted_per_series(self) -> None:
        with self.Session() as session:
            game = self._game(session, capacity=2)
            tracker = SeriesCapacityTracker(session)
            first = tracker.current_series(game, "pos-1")
            game.max_tickets_per_series = 5
            second = tracker.open_next_series(game, "pos-1")
            self.assertEqual(first.capacity, 2)
            self.assertEqual(second.capacity, 5)

    def test_current_status_reads_the_database(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            series = SeriesCapacityTracker(session).current_series(game, "pos-1")
            session.commit()
            series_id = series.id

        with self.Session() as other:
            other.execute(
                update(Series)
                .where(Series.id == series_id)
                .values(status=SeriesStatus.PAUSED.value)
            )
            other.commit()

        with self.Session() as session:
            series = session.get(Series, series_id)
            tracker = SeriesCapacityTracker(session)
            self.assertEqual(tracker.current_status(series), SeriesStatus.PAUSED)

    def test_unpersisted_series_is_rejected(self) -> None:
        with self.Session() as session:
            tracker = SeriesCapacityTracker(session)
            with self.assertRaises(ValueError):
                tracker.reserve_slot(Series(channel_id="pos-1", series_number=1, capacity=1))


class ConcurrentReservationTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        path = Path(self._tmpdir.name) / "lottery.db"
        self.engine = make_engine(
            f"sqlite+pysqlite:///{path}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()
        self._tmpdir.cleanup()

    def test_last_slot_goes_to_exactly_one_reservation(self) -> None:
        with self.Session() as session:
            game = Game(name="Milhar", extraction_times=["08:00"], max_tickets_per_series=2)
            session.add(game)
            session.flush()
            tracker = SeriesCapacityTracker(session)
            series = tracker.current_series(game, "pos-1")
            tracker.reserve_slot(series)
            session.commit()
            series_id = series.id

        barrier = threading.Barrier(2)
        slots: list[int] = []
        errors: list[Exception] = []
        lock = threading.Lock()

        def reserve() -> None:
            barrier.wait()
            with self.Session() as session:
                try:
                    series = session.get(Series, series_id)
                    slot = SeriesCapacityTracker(session).reserve_slot(series)
                    session.commit()
                    with lock:
                        slots.append(slot)
                except CapacityError as exc:
                    session.rollback()
                    with lock:
                        errors.append(exc)

        threads = [threading.Thread(target=reserve) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(slots, [2])
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], SeriesFullError)

        with self.Session() as session:
            series = session.get(Series, series_id)
            self.assertEqual(series.sold_count, 2)
            self.assertEqual(series.status, SeriesStatus.FULL)


if __name__ == "__main__":
    unittest.main()
