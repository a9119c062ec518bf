from datetime import datetime, timezone
from decimal import Decimal

from lotterycore.db.engine import get_sessionmaker, make_engine
from lotterycore.models import Base, Game, GameKind, NumberingMode, UnclaimedPolicy
from lotterycore.workflows import register_game, sell_ticket


def main() -> None:
    """Reset the development database and seed one digit game and one pool game."""
    engine = make_engine()

    # Tables have no FK cycles, so drop_all can run in dependency order.
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        milhar = register_game(
            session,
            Game(
                name="Milhar",
                extraction_times=["11:00", "14:00", "18:00", "21:00"],
                numbering_mode=NumberingMode.RANDOM.value,
                numbers_per_ticket=4,
                prize_milhar=Decimal("1000"),
                prize_centena=Decimal("30"),
                prize_dezena=Decimal("10"),
                prize_multiplier=Decimal("1000"),
                max_liability=Decimal("50000"),
                second_chance_enabled=True,
                second_chance_range_start=1,
                second_chance_range_end=99999,
            ),
        )
        loteca = register_game(
            session,
            Game(
                name="Loteca",
                kind=GameKind.POOL.value,
                extraction_times=["20:00"],
                numbers_per_ticket=14,
                unclaimed_policy=UnclaimedPolicy.ROLLOVER.value,
            ),
        )

        for anchor in (1234, 4321, 7777):
            sell_ticket(session, milhar, "pos-01", Decimal("2"), anchor=anchor, now=now)
        sell_ticket(session, loteca, "pos-01", Decimal("10"), picks=["HOME"] * 14, now=now)

    print("Seeded games: Milhar, Loteca")


if __name__ == "__main__":
    main()
