from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from lotterycore.db.engine import make_engine


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to ``target_revision``."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def describe_schema() -> list[str]:
    """Return one ``table(columns)`` line per table of the configured database."""
    engine = make_engine()
    try:
        insp = inspect(engine)
        return [
            f"{table}({len(insp.get_columns(table))} columns)"
            for table in sorted(insp.get_table_names())
            if table != "alembic_version"
        ]
    finally:
        engine.dispose()


def main() -> None:
    upgrade_db()
    print("Lottery schema:", ", ".join(describe_schema()))


if __name__ == "__main__":
    main()
