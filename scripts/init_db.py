from __future__ import annotations

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, inspect, select

from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.models import Participant, Prize

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def report() -> None:
    """Print the tables and how far the draw has progressed."""
    engine = make_engine()
    tables = sorted(inspect(engine).get_table_names())
    print("Tables:", ", ".join(tables))
    if "participants" not in tables:
        return

    with get_sessionmaker(engine)() as session:
        total = session.scalar(select(func.count(Participant.id))) or 0
        won = session.scalar(
            select(func.count(Participant.id)).where(Participant.is_winner.is_(True))
        ) or 0
        prizes = session.scalar(select(func.count(Prize.id))) or 0
    print(f"Prizes: {prizes}  Participants: {total}  Winners so far: {won}")
    engine.dispose()


def main() -> None:
    """Upgrade to the revision given on the command line (default: head)."""
    upgrade_db(sys.argv[1] if len(sys.argv) > 1 else "head")
    report()


if __name__ == "__main__":
    main()
