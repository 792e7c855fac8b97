"""Alembic environment for the ``prizes`` and ``participants`` tables.

The database URL comes from ``DB_URL`` (see ``.env.example``), falling back to
the bundled SQLite file. Online migrations go through ``make_engine`` so they
see the same SQLite pragmas and lock timeout as the selection engine.
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / ".env")

from luckydraw.db.engine import DEFAULT_SQLITE_URL, make_engine  # noqa: E402
from luckydraw.db.utils import resolve_sqlite_url  # noqa: E402
from luckydraw.models import Base  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    env_url = os.getenv("DB_URL")
    return resolve_sqlite_url(env_url, ROOT_DIR) if env_url else DEFAULT_SQLITE_URL


DATABASE_URL = _database_url()
# ConfigParser interpolation
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""

    _configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a live connection."""

    engine = make_engine(database_url=DATABASE_URL)
    try:
        with engine.connect() as connection:
            _configure(
                connection=connection,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
