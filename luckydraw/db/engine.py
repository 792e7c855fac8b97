from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from .utils import resolve_sqlite_url

# Get DB url
load_dotenv()
# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
)
DEFAULT_LOCK_TIMEOUT = float(os.getenv("DB_LOCK_TIMEOUT", "5"))


def make_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    lock_timeout: Optional[float] = None,
):
    """Create an engine whose transactions can serialize concurrent draws.

    ``lock_timeout`` (seconds) bounds how long a transaction waits for a
    conflicting lock before failing. It defaults to ``DB_LOCK_TIMEOUT``.
    """
    url = database_url or DEFAULT_SQLITE_URL
    timeout = DEFAULT_LOCK_TIMEOUT if lock_timeout is None else lock_timeout

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            future=True,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )

        # SQLite has no row locks. Taking the RESERVED lock when the
        # transaction begins makes concurrent writers queue up behind it.
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    engine = create_engine(url, echo=echo, future=True)
    if engine.dialect.name == "postgresql":

        @event.listens_for(engine, "begin")
        def _set_lock_timeout(conn):
            conn.exec_driver_sql(f"SET LOCAL lock_timeout = '{int(timeout * 1000)}ms'")

    return engine


def get_sessionmaker(engine):
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Keep objects accessible after commit for display
        future=True,
    )
