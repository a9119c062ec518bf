import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .utils import resolve_sqlite_url

# Get DB url
load_dotenv()
# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
)


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        # Take the write lock up front; two deferred readers upgrading to
        # writers would otherwise fail with "database is locked".
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(
    database_url: Optional[str] = None, echo: bool = False, **engine_kwargs
) -> Engine:
    url = database_url or DEFAULT_SQLITE_URL
    engine = create_engine(url, echo=echo, future=True, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        _configure_sqlite(engine)
    return engine


def get_sessionmaker(engine: Engine):
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Keep tickets readable after the sale commits
        future=True,
    )
