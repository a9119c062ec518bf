from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select

from lotterycore.db.engine import get_sessionmaker, make_engine
from lotterycore.errors import (
    CapacityError,
    ConfigurationError,
    LiabilityLimitError,
    SeriesFullError,
)
from lotterycore.models import (
    Base,
    Draw,
    Game,
    NumberingMode,
    Series,
    SeriesStatus,
    TicketNumber,
    TicketStatus,
)
from lotterycore.workflows import (
    cancel_ticket,
    close_series,
    confirm_payment,
    get_or_create_draw,
    get_or_create_series,
    open_next_series,
    pause_series,
    publish_digit_result,
    register_game,
    resume_series,
    sell_ticket,
    series_stats,
    update_game_config,
)

BRT = timezone(timedelta(hours=-3))


def at(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2026, 10, 19, hour, minute, second, tzinfo=BRT)


class WorkflowTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _game(self, session, **overrides) -> Game:
        values = dict(
            name="Milhar",
            extraction_times=["08:00", "11:00", "16:00"],
            cutoff_minutes=10,
            max_tickets_per_series=3,
        )
        values.update(overrides)
        return register_game(session, Game(**values))


class RegisterGameTests(WorkflowTestCase):
    def test_invalid_configuration_is_not_persisted(self) -> None:
        with self.Session() as session:
            with self.assertRaises(ConfigurationError):
                self._game(session, max_tickets_per_series=0)
            with self.assertRaises(ConfigurationError):
                self._game(session, name="Empty", extraction_times=[])
            self.assertEqual(session.scalar(select(func.count(Game.id))), 0)

    def test_cannot_register_twice(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            with self.assertRaises(ValueError):
                register_game(session, game)


class SellTicketTests(WorkflowTestCase):
    def test_sale_attaches_to_resolved_draw(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            before = sell_ticket(
                session, game, "pos-1", "2.50", numbers=[1234], now=at(7, 50, 59)
            )
            after = sell_ticket(session, game, "pos-1", 2, numbers=[1234], now=at(7, 51))

            self.assertEqual(before.draw.draw_instant, after.draw.draw_instant - timedelta(hours=3))
            self.assertEqual(before.amount, Decimal("2.50"))
            self.assertEqual(before.status, TicketStatus.PENDING)
            self.assertEqual(before.numbers, [1234])
            self.assertEqual(before.ticket_code, "1")
            self.assertEqual(after.series_slot, 2)
            self.assertEqual(session.scalar(select(func.count(Draw.id))), 2)

    def test_draw_instant_is_stored_in_utc(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(7, 0))
            session.commit()
            stored = session.get(Draw, ticket.draw_id)
            session.refresh(stored)
            self.assertEqual(
                stored.draw_instant.replace(tzinfo=None), datetime(2026, 10, 19, 11, 0)
            )

    def test_full_series_cycles_to_next(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            tickets = [
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
                for _ in range(4)
            ]

            self.assertEqual([t.series_number for t in tickets], [1, 1, 1, 2])
            self.assertEqual(tickets[3].series_slot, 1)
            first = session.get(Series, tickets[0].series_id)
            self.assertEqual(first.status, SeriesStatus.FULL)
            self.assertEqual(first.sold_count, 3)

    def test_full_series_without_auto_cycle_rejects(self) -> None:
        with self.Session() as session:
            game = self._game(session, auto_cycle_series=False)
            for _ in range(3):
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            with self.assertRaises(SeriesFullError):
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))

            open_next_series(session, game, "pos-1")
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            self.assertEqual((ticket.series_number, ticket.series_slot), (2, 1))

    def test_paused_series_is_never_cycled(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            series = get_or_create_series(session, game, "pos-1")
            pause_series(session, series)

            with self.assertRaises(CapacityError):
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            self.assertEqual(session.scalar(select(func.count(Series.id))), 1)

            resume_series(session, series)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            self.assertEqual(ticket.series_slot, 2)

    def test_closed_series_rejects_sales(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            series = get_or_create_series(session, game, "pos-1")
            close_series(session, series)
            with self.assertRaises(CapacityError):
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))

    def test_idempotent_retry_returns_same_ticket(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            first = sell_ticket(
                session,
                game,
                "pos-1",
                1,
                numbers=[1234],
                now=at(9, 0),
                idempotency_key="req-1",
            )
            session.commit()
            again = sell_ticket(
                session,
                game,
                "pos-1",
                1,
                numbers=[1234],
                now=at(9, 5),
                idempotency_key="req-1",
            )
            self.assertEqual(again.id, first.id)
            series = session.get(Series, first.series_id)
            self.assertEqual(series.sold_count, 1)

    def test_invalid_amount(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            with self.assertRaises(ValueError):
                sell_ticket(session, game, "pos-1", 0, numbers=[1234], now=at(9, 0))

    def test_published_draw_rejects_sales(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            publish_digit_result(session, ticket.draw, "1234")
            with self.assertRaises(CapacityError):
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            series = session.get(Series, ticket.series_id)
            self.assertEqual(series.sold_count, 1)

    def test_chosen_numbers_are_validated(self) -> None:
        with self.Session() as session:
            game = self._game(session, numbers_per_ticket=2)
            for numbers in (None, [], [10000], [-1], [7, 7], [1, 2, 3], ["12"]):
                with self.subTest(numbers=numbers), self.assertRaises(ValueError):
                    sell_ticket(session, game, "pos-1", 1, numbers=numbers, now=at(9, 0))
            self.assertEqual(session.scalar(select(func.count(Series.id))), 0)

            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[9, 3], now=at(9, 0))
            self.assertEqual(ticket.numbers, [3, 9])
            self.assertEqual(ticket.series_slot, 1)

    def test_random_game_rejects_chosen_numbers(self) -> None:
        with self.Session() as session:
            game = self._game(
                session, numbering_mode=NumberingMode.RANDOM.value, max_tickets_per_series=10
            )
            with self.assertRaises(ValueError):
                sell_ticket(session, game, "pos-1", 1, numbers=[5], now=at(9, 0))

    def test_digit_game_rejects_picks(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            with self.assertRaises(ValueError):
                sell_ticket(session, game, "pos-1", 1, picks=["HOME"], now=at(9, 0))


class LiabilityTests(WorkflowTestCase):
    def _risk_game(self, session) -> Game:
        return self._game(
            session,
            numbering_mode=NumberingMode.RANDOM.value,
            numbers_per_ticket=1,
            max_tickets_per_series=100,
            prize_multiplier=Decimal("100"),
            max_liability=Decimal("1000"),
        )

    def test_possible_prize_is_recorded(self) -> None:
        with self.Session() as session:
            game = self._risk_game(session)
            ticket = sell_ticket(session, game, "pos-1", 5, anchor=1234, now=at(9, 0))
            self.assertEqual(ticket.possible_prize, Decimal("500"))

    def test_limit_applies_per_number_across_channels(self) -> None:
        with self.Session() as session:
            game = self._risk_game(session)
            sell_ticket(session, game, "pos-1", 5, anchor=1234, now=at(9, 0))
            sell_ticket(session, game, "pos-2", 5, anchor=1234, now=at(9, 0))

            with self.assertRaises(LiabilityLimitError):
                sell_ticket(session, game, "pos-3", 1, anchor=1234, now=at(9, 0))
            # The rejected sale left nothing behind.
            self.assertIsNone(Series.current_for(session, game.id, "pos-3"))

            # Other numbers and other draws are unaffected.
            sell_ticket(session, game, "pos-3", 5, anchor=4321, now=at(9, 0))
            sell_ticket(session, game, "pos-3", 5, anchor=1234, now=at(12, 0))

    def test_chosen_numbers_are_shared_within_the_limit(self) -> None:
        with self.Session() as session:
            game = self._game(
                session,
                max_tickets_per_series=100,
                prize_multiplier=Decimal("100"),
                max_liability=Decimal("1000"),
            )
            sell_ticket(session, game, "pos-1", 5, numbers=[1234], now=at(9, 0))
            second = sell_ticket(session, game, "pos-1", 4, numbers=[1234], now=at(9, 0))
            self.assertEqual(second.possible_prize, Decimal("400"))
            self.assertEqual(second.series_slot, 2)

            with self.assertRaises(LiabilityLimitError):
                sell_ticket(session, game, "pos-2", 2, numbers=[1234], now=at(9, 0))
            sell_ticket(session, game, "pos-2", 2, numbers=[4321], now=at(9, 0))

    def test_cancelled_tickets_free_their_exposure(self) -> None:
        with self.Session() as session:
            game = self._risk_game(session)
            first = sell_ticket(session, game, "pos-1", 10, anchor=1234, now=at(9, 0))
            with self.assertRaises(LiabilityLimitError):
                sell_ticket(session, game, "pos-2", 1, anchor=1234, now=at(9, 0))
            cancel_ticket(session, first)
            sell_ticket(session, game, "pos-2", 1, anchor=1234, now=at(9, 0))


class TicketLifecycleTests(WorkflowTestCase):
    def test_confirm_payment(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            confirm_payment(session, ticket)
            self.assertEqual(ticket.status, TicketStatus.PAID)
            paid_at = ticket.paid_at
            confirm_payment(session, ticket)
            self.assertEqual(ticket.paid_at, paid_at)

    def test_cancelled_ticket_cannot_be_paid(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            cancel_ticket(session, ticket)
            with self.assertRaises(ValueError):
                confirm_payment(session, ticket)

    def test_cancel_releases_numbers_but_not_slot(self) -> None:
        with self.Session() as session:
            game = self._game(
                session,
                numbering_mode=NumberingMode.RANDOM.value,
                max_tickets_per_series=10,
            )
            ticket = sell_ticket(session, game, "pos-1", 1, anchor=77, now=at(9, 0))
            cancel_ticket(session, ticket)

            self.assertEqual(ticket.status, TicketStatus.CANCELLED)
            self.assertIsNotNone(ticket.cancelled_at)
            self.assertEqual(ticket.numbers, [77])
            self.assertEqual(session.scalar(select(func.count(TicketNumber.id))), 0)

            again = sell_ticket(session, game, "pos-1", 1, anchor=77, now=at(9, 0))
            self.assertEqual(again.series_slot, 2)
            cancel_ticket(session, ticket)  # no-op

    def test_cancel_after_publication_is_refused(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            publish_digit_result(session, ticket.draw, 1)
            with self.assertRaises(ValueError):
                cancel_ticket(session, ticket)

    def test_winner_cannot_be_cancelled(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            ticket.status = TicketStatus.WINNER.value
            with self.assertRaises(ValueError):
                cancel_ticket(session, ticket)


class DrawWorkflowTests(WorkflowTestCase):
    def test_get_or_create_draw_is_keyed_by_instant(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            first = get_or_create_draw(session, game, at(11, 0))
            same = get_or_create_draw(
                session, game, datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)
            )
            other = get_or_create_draw(session, game, at(16, 0))
            self.assertIs(first, same)
            self.assertIsNot(first, other)

    def test_publish_digit_result_once(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            draw = get_or_create_draw(session, game, at(11, 0))
            publish_digit_result(session, draw, [1234, "56"])
            self.assertEqual(draw.result_numbers, ["1234", "0056"])
            self.assertTrue(draw.is_published)
            with self.assertRaises(ValueError):
                publish_digit_result(session, draw, "9999")

    def test_publish_rejects_bad_numbers(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            draw = get_or_create_draw(session, game, at(11, 0))
            with self.assertRaises(ValueError):
                publish_digit_result(session, draw, "12-4")
            with self.assertRaises(ValueError):
                publish_digit_result(session, draw, [])
            self.assertFalse(draw.is_published)


class SeriesAdministrationTests(WorkflowTestCase):
    def test_series_stats(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            for _ in range(2):
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            sell_ticket(session, game, "pos-2", 1, numbers=[1234], now=at(9, 0))

            stats = series_stats(session, game)
            self.assertEqual([(s.channel_id, s.sold) for s in stats], [("pos-1", 2), ("pos-2", 1)])
            self.assertEqual(stats[0].remaining, 1)
            self.assertEqual(stats[0].percentage, 66.7)
            self.assertEqual(stats[0].status, SeriesStatus.ACTIVE)
            self.assertEqual(len(series_stats(session, game, "pos-2")), 1)

    def test_numbering_fields_frozen_during_open_series(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))

            with self.assertRaises(ConfigurationError):
                update_game_config(session, game, max_tickets_per_series=10)
            self.assertEqual(game.max_tickets_per_series, 3)

            update_game_config(session, game, prize_milhar=Decimal("4000"))
            self.assertEqual(game.prize_milhar, Decimal("4000"))

            close_series(session, get_or_create_series(session, game, "pos-1"))
            update_game_config(session, game, max_tickets_per_series=10)

            # A closed series is not reopened by a sale.
            with self.assertRaises(CapacityError):
                sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            series = open_next_series(session, game, "pos-1")
            self.assertEqual(series.capacity, 10)
            ticket = sell_ticket(session, game, "pos-1", 1, numbers=[1234], now=at(9, 0))
            self.assertEqual((ticket.series_number, ticket.ticket_code), (2, "01"))

    def test_failed_update_restores_values(self) -> None:
        with self.Session() as session:
            game = self._game(session)
            with self.assertRaises(ConfigurationError):
                update_game_config(session, game, cutoff_minutes=0, prize_dezena=5)
            self.assertEqual(game.cutoff_minutes, 10)
            self.assertIsNone(game.prize_dezena)
            with self.assertRaises(ValueError):
                update_game_config(session, game, id=5)


if __name__ == "__main__":
    unittest.main()
