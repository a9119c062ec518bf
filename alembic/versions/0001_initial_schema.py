"""initial lottery schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "games",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("extraction_times", sa.JSON(), nullable=False),
        sa.Column("cutoff_minutes", sa.Integer(), nullable=False),
        sa.Column("numbering_mode", sa.String(length=12), nullable=False),
        sa.Column("max_tickets_per_series", sa.Integer(), nullable=False),
        sa.Column("numbers_per_ticket", sa.Integer(), nullable=False),
        sa.Column("number_range", sa.Integer(), nullable=False),
        sa.Column("auto_cycle_series", sa.Boolean(), nullable=False),
        sa.Column("prize_milhar", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("prize_centena", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("prize_dezena", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("prize_multiplier", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("max_liability", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("pool_rate", sa.Numeric(precision=6, scale=4), nullable=True),
        sa.Column("pool_tier_rates", sa.JSON(), nullable=True),
        sa.Column("unclaimed_policy", sa.String(length=10), nullable=False),
        sa.Column("second_chance_enabled", sa.Boolean(), nullable=False),
        sa.Column("second_chance_weekday", sa.Integer(), nullable=False),
        sa.Column("second_chance_time", sa.String(length=5), nullable=False),
        sa.Column("second_chance_range_start", sa.Integer(), nullable=True),
        sa.Column("second_chance_range_end", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_games")),
        sa.UniqueConstraint("name", name="games_name_key"),
    )

    op.create_table(
        "series",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("game_id", ID_TYPE, nullable=False),
        sa.Column("channel_id", sa.String(length=64), nullable=False),
        sa.Column("series_number", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("sold_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["game_id"],
            ["games.id"],
            name=op.f("fk_series_game_id_games"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_series")),
        sa.UniqueConstraint(
            "game_id", "channel_id", "series_number", name="uq_series_channel_number"
        ),
    )
    op.create_index("ix_series_game_channel", "series", ["game_id", "channel_id"])

    op.create_table(
        "draws",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("game_id", ID_TYPE, nullable=False),
        sa.Column("draw_instant", sa.DateTime(timezone=True), nullable=False),
        sa.Column("result_numbers", sa.JSON(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_collected", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("pool_amount", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("rollover_in", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("rollover_out", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["game_id"],
            ["games.id"],
            name=op.f("fk_draws_game_id_games"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draws")),
        sa.UniqueConstraint("game_id", "draw_instant", name="uq_draws_game_instant"),
    )
    op.create_index(op.f("ix_draws_game_id"), "draws", ["game_id"])

    op.create_table(
        "matches",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID_TYPE, nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("home_team", sa.String(length=100), nullable=True),
        sa.Column("away_team", sa.String(length=100), nullable=True),
        sa.Column("result", sa.String(length=4), nullable=True),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_matches_draw_id_draws"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_matches")),
        sa.UniqueConstraint("draw_id", "order", name="uq_matches_draw_order"),
    )
    op.create_index(op.f("ix_matches_draw_id"), "matches", ["draw_id"])

    op.create_table(
        "tickets",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("game_id", ID_TYPE, nullable=False),
        sa.Column("series_id", ID_TYPE, nullable=False),
        sa.Column("draw_id", ID_TYPE, nullable=False),
        sa.Column("channel_id", sa.String(length=64), nullable=False),
        sa.Column("series_number", sa.Integer(), nullable=False),
        sa.Column("series_slot", sa.Integer(), nullable=False),
        sa.Column("ticket_code", sa.String(length=32), nullable=False),
        sa.Column("numbers", sa.JSON(), nullable=False),
        sa.Column("picks", sa.JSON(), nullable=True),
        sa.Column("draw_instant", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount", sa.Numeric(precision=16, scale=2), nullable=False),
        sa.Column("possible_prize", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("hit_count", sa.Integer(), nullable=True),
        sa.Column("prize_amount", sa.Numeric(precision=16, scale=2), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("second_chance_number", sa.Integer(), nullable=True),
        sa.Column("second_chance_draw_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(length=64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_tickets_draw_id_draws"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["game_id"],
            ["games.id"],
            name=op.f("fk_tickets_game_id_games"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["series_id"],
            ["series.id"],
            name=op.f("fk_tickets_series_id_series"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_tickets")),
        sa.UniqueConstraint("idempotency_key", name="uq_tickets_idempotency_key"),
        sa.UniqueConstraint("series_id", "series_slot", name="uq_tickets_series_slot"),
    )
    op.create_index(op.f("ix_tickets_draw_id"), "tickets", ["draw_id"])
    op.create_index(op.f("ix_tickets_game_id"), "tickets", ["game_id"])
    op.create_index("ix_tickets_status", "tickets", ["status"])

    op.create_table(
        "ticket_numbers",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("ticket_id", ID_TYPE, nullable=False),
        sa.Column("series_id", ID_TYPE, nullable=False),
        sa.Column("draw_id", ID_TYPE, nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_ticket_numbers_draw_id_draws"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["series_id"],
            ["series.id"],
            name=op.f("fk_ticket_numbers_series_id_series"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["ticket_id"],
            ["tickets.id"],
            name=op.f("fk_ticket_numbers_ticket_id_tickets"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ticket_numbers")),
        sa.UniqueConstraint(
            "series_id", "number", name="uq_ticket_numbers_series_number"
        ),
    )
    op.create_index(
        "ix_ticket_numbers_draw_number", "ticket_numbers", ["draw_id", "number"]
    )
    op.create_index(op.f("ix_ticket_numbers_ticket_id"), "ticket_numbers", ["ticket_id"])


def downgrade() -> None:
    op.drop_index(op.f("ix_ticket_numbers_ticket_id"), table_name="ticket_numbers")
    op.drop_index("ix_ticket_numbers_draw_number", table_name="ticket_numbers")
    op.drop_table("ticket_numbers")
    op.drop_index("ix_tickets_status", table_name="tickets")
    op.drop_index(op.f("ix_tickets_game_id"), table_name="tickets")
    op.drop_index(op.f("ix_tickets_draw_id"), table_name="tickets")
    op.drop_table("tickets")
    op.drop_index(op.f("ix_matches_draw_id"), table_name="matches")
    op.drop_table("matches")
    op.drop_index(op.f("ix_draws_game_id"), table_name="draws")
    op.drop_table("draws")
    op.drop_index("ix_series_game_channel", table_name="series")
    op.drop_table("series")
    op.drop_table("games")
