"""Compare the configured database with the lottery models.

Exit codes: 0 when in sync, 1 when differences exist, 2 on errors.
"""

from __future__ import annotations

import sys

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext
from sqlalchemy.engine import Engine

from lotterycore.db.engine import make_engine
from lotterycore.models import Base


def pending_operations(engine: Engine) -> list:
    """Return the autogenerate operations that would bring the database in sync."""
    with engine.connect() as connection:
        context = MigrationContext.configure(
            connection=connection,
            opts={
                "compare_type": True,
                "compare_server_default": True,
                "render_as_batch": connection.dialect.name == "sqlite",
            },
        )
        upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    if upgrade_ops is None:
        raise RuntimeError("autogenerate produced no upgrade operations")
    return list(upgrade_ops.ops or [])


def _format_ops(ops, indent: int = 0) -> list[str]:
    lines = []
    for op in ops:
        lines.append(f"{'  ' * indent}- {op}")
        lines.extend(_format_ops(getattr(op, "ops", None) or [], indent + 1))
    return lines


def main() -> int:
    engine = make_engine()
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        ops = pending_operations(engine)
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2
    finally:
        engine.dispose()

    if not ops:
        print(f"Schema drift check: OK for {url_display}.")
        return 0
    print(f"Schema drift check: FAILED for {url_display}. Differences detected:")
    print("\n".join(_format_ops(ops)))
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
