"""Operator console for running a draw without the display front end.

Examples::

    luckydraw import participants.csv
    luckydraw summary
    luckydraw draw 3
    luckydraw cancel 42
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from luckydraw.broadcast import Broadcaster
from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.selection import SelectionEngine
from luckydraw.workflows import (
    GameController,
    import_participants_csv,
    list_participants,
    list_prize_summaries,
    reset_participants,
)


def _print_event(event: str, payload) -> None:
    print(json.dumps({"event": event, "payload": payload}, ensure_ascii=False, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--db-url", default=None, help="Overrides DB_URL")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import participants from a CSV file")
    p.add_argument("csv_path", type=Path)
    sub.add_parser("reset", help="Delete every participant")
    sub.add_parser("summary", help="Show prizes with remaining slots and winners")
    sub.add_parser("participants", help="List participants with their won state")
    for name in ("validate", "draw"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a prize")
        p.add_argument("prize_id", type=int)
    p = sub.add_parser("cancel", help="Revert a participant's win")
    p.add_argument("participant_id", type=int)
    return parser


def _run(args: argparse.Namespace, Session) -> int:
    if args.command in ("import", "reset"):
        with Session.begin() as session:
            if args.command == "import":
                text = args.csv_path.read_text(encoding="utf-8")
                count = import_participants_csv(session, text)
            else:
                count = reset_participants(session)
        print(f"{args.command}: {count} participant(s)")
        return 0

    if args.command in ("summary", "participants"):
        with Session() as session:
            rows = (
                list_prize_summaries(session)
                if args.command == "summary"
                else list_participants(session)
            )
        print(json.dumps(rows, ensure_ascii=False, indent=2))
        return 0

    broadcaster = Broadcaster()
    broadcaster.subscribe(_print_event)
    controller = GameController(SelectionEngine(Session), broadcaster)
    if args.command == "validate":
        result = controller.start_spin(args.prize_id)
    elif args.command == "draw":
        result = controller.stop_spin(args.prize_id)
    else:
        result = controller.cancel_result(args.participant_id)
    return 0 if result.ok else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    engine = make_engine(args.db_url)
    try:
        return _run(args, get_sessionmaker(engine))
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
