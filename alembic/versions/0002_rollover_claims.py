"""track rollover claims and shared chosen numbers

Revision ID: 0002_rollover_claims
Revises: 0001_initial_schema
Create Date: 2026-10-26 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_rollover_claims"
down_revision: Union[str, None] = "0001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    with op.batch_alter_table("draws") as batch_op:
        batch_op.add_column(
            sa.Column("rollover_claimed_by_id", ID_TYPE, nullable=True)
        )
        batch_op.create_foreign_key(
            op.f("fk_draws_rollover_claimed_by_id_draws"),
            "draws",
            ["rollover_claimed_by_id"],
            ["id"],
            ondelete="SET NULL",
        )

    with op.batch_alter_table("ticket_numbers") as batch_op:
        batch_op.alter_column("series_id", existing_type=ID_TYPE, nullable=True)


def downgrade() -> None:
    op.execute("DELETE FROM ticket_numbers WHERE series_id IS NULL")
    with op.batch_alter_table("ticket_numbers") as batch_op:
        batch_op.alter_column("series_id", existing_type=ID_TYPE, nullable=False)

    with op.batch_alter_table("draws") as batch_op:
        batch_op.drop_constraint(
            op.f("fk_draws_rollover_claimed_by_id_draws"), type_="foreignkey"
        )
        batch_op.drop_column("rollover_claimed_by_id")
