import csv
import io
import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .broadcast import (
    DATA_REFRESH_REQUIRED,
    SPIN_COMPLETED,
    SPIN_ERROR,
    SPIN_STARTED,
    SYNC_PRIZE_IMAGE,
    Broadcaster,
)
from .models import Participant, Prize
from .selection import (
    SelectionEngine,
    SelectionFailure,
    SelectionResult,
    prize_summaries,
)

logger = logging.getLogger(__name__)

load_dotenv()
DEFAULT_AVATAR_URL_TEMPLATE = os.getenv("AVATAR_URL_TEMPLATE", "avatars/{code}.jpg")
DEFAULT_DEPARTMENT = "Unknown"


# -------- selection requests --------


def request_validate(engine: SelectionEngine, prize_id: int) -> SelectionResult:
    """Pre-flight check used to gate the spin animation. Advisory only."""
    return engine.validate(prize_id)


def request_draw(engine: SelectionEngine, prize_id: int) -> SelectionResult:
    """Commit a draw for ``prize_id``; the result is authoritative."""
    return engine.draw(prize_id)


def request_cancel(engine: SelectionEngine, participant_id: int) -> SelectionResult:
    """Revert a participant's win."""
    return engine.cancel(participant_id)


# -------- read endpoints --------


def list_prize_summaries(session: Session) -> list[dict[str, Any]]:
    """Return prizes in display order with ``remaining`` and their winners.

    This backs the summary screen shown after (or between) draws.
    """
    return [summary.to_json() for summary in prize_summaries(session)]


def list_participants(session: Session) -> list[dict[str, Any]]:
    """Return every participant, ordered by name, with won state and prize."""
    return [p.to_json() for p in Participant.ordered_by_name(session)]


# -------- realtime control --------


class GameController:
    """Map operator intents onto the selection engine and broadcast outcomes.

    The controller never lets a display start spinning unless the pre-flight
    check passed, and reports every engine failure as a ``spin_error`` event
    carrying the error kind and message.
    """

    def __init__(self, engine: SelectionEngine, broadcaster: Broadcaster) -> None:
        self.engine = engine
        self.broadcaster = broadcaster

    def _emit_error(self, failure: SelectionFailure) -> None:
        logger.info("Spin error (%s): %s", failure.kind.value, failure.message)
        self.broadcaster.emit(SPIN_ERROR, failure.to_json())

    def select_prize(self, prize_id: int, image_url: Optional[str] = None) -> None:
        """Show the chosen prize on every display."""
        self.broadcaster.emit(
            SYNC_PRIZE_IMAGE, {"prize_id": prize_id, "image_url": image_url}
        )

    def start_spin(self, prize_id: int) -> SelectionResult:
        """Validate ``prize_id`` and tell displays to spin only when it passes."""
        result = request_validate(self.engine, prize_id)
        if result.ok:
            self.broadcaster.emit(SPIN_STARTED, {"prize_id": prize_id})
        else:
            self._emit_error(result.error)
        return result

    def stop_spin(self, prize_id: int) -> SelectionResult:
        """Run the draw and broadcast the winners (or the failure)."""
        result = request_draw(self.engine, prize_id)
        if result.ok:
            self.broadcaster.emit(
                SPIN_COMPLETED, [winner.to_json() for winner in result.winners]
            )
        else:
            self._emit_error(result.error)
        return result

    def cancel_result(self, participant_id: int) -> SelectionResult:
        """Revert a win and ask clients to reload their data."""
        result = request_cancel(self.engine, participant_id)
        if result.ok:
            self.broadcaster.emit(
                DATA_REFRESH_REQUIRED, {"participant_id": participant_id}
            )
        else:
            self._emit_error(result.error)
        return result


# -------- participant administration --------


def _is_header(row: list[str]) -> bool:
    return len(row) >= 2 and row[0].lower() == "code" and row[1].lower() == "name"


def import_participants_csv(
    session: Session,
    text: str,
    *,
    avatar_url_template: Optional[str] = None,
) -> int:
    """Create participants from ``code,name[,department]`` CSV rows.

    Import is idempotent by code: rows whose (upper-cased) code already exists,
    either in the database or earlier in the same file, are skipped. Rows
    without a code or name are ignored. An optional ``code,name`` header in the
    first non-blank row is skipped.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    text : str
        CSV content.
    avatar_url_template : Optional[str], default: None
        Format string receiving ``code`` (lower-cased). Defaults to
        ``AVATAR_URL_TEMPLATE`` from the environment.

    Returns
    -------
    int
        Number of participants created.
    """
    template = avatar_url_template or DEFAULT_AVATAR_URL_TEMPLATE
    existing = set(session.scalars(select(Participant.code)).all())

    created: list[Participant] = []
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    first_row = True
    for raw in reader:
        row = [cell.strip() for cell in raw]
        if not row or not any(row):
            continue
        if first_row:
            first_row = False
            if _is_header(row):
                continue
        code, name = (row + ["", ""])[:2]
        department = row[2] if len(row) > 2 and row[2] else DEFAULT_DEPARTMENT
        if not code or not name:
            continue

        code = code.upper()
        if code in existing:
            continue
        existing.add(code)
        created.append(
            Participant(
                code=code,
                name=name,
                department=department,
                avatar_url=template.format(code=code.lower()),
            )
        )

    session.add_all(created)
    session.flush()
    logger.info("Imported %d participant(s)", len(created))
    return len(created)


def reset_participants(session: Session) -> int:
    """Delete every participant. Returns the number of rows removed."""
    result = session.execute(delete(Participant))
    session.flush()
    logger.info("Removed %d participant(s)", result.rowcount)
    return result.rowcount


# -------- prize administration --------


def _positive_int(field: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a positive integer") from None
    if number <= 0:
        raise ValueError(f"{field} must be a positive integer")
    return number


def _load_prize_for_update(session: Session, prize_id: int) -> Prize:
    # Same row lock the draw takes, so the winner count cannot move under us.
    prize = session.get(Prize, prize_id, with_for_update=True)
    if prize is None:
        raise ValueError(f"Prize {prize_id} does not exist")
    return prize


def create_prize(
    session: Session,
    *,
    name: str,
    quantity: int,
    batch_size: int = 1,
    image_url: Optional[str] = None,
    sort_order: int = 0,
) -> Prize:
    """Persist a new prize."""
    if not name or not name.strip():
        raise ValueError("Prize name must not be empty")

    prize = Prize(
        name=name.strip(),
        quantity=_positive_int("quantity", quantity),
        batch_size=_positive_int("batch_size", batch_size),
        image_url=image_url,
        sort_order=sort_order,
    )
    session.add(prize)
    session.flush()
    return prize


_UPDATABLE_PRIZE_FIELDS = {"name", "quantity", "batch_size", "image_url", "sort_order"}


def update_prize(session: Session, prize_id: int, **changes: Any) -> Prize:
    """Apply ``changes`` to a prize.

    ``quantity`` may not drop below the number of participants already holding
    the prize. The prize row is locked for the rest of the transaction, so a
    concurrent draw either finishes first and is counted or waits.

    Raises
    ------
    ValueError
        If the prize does not exist, or an unknown field or an invalid value is
        supplied.
    """
    unknown = set(changes) - _UPDATABLE_PRIZE_FIELDS
    if unknown:
        raise ValueError(f"Unknown prize field(s): {', '.join(sorted(unknown))}")

    prize = _load_prize_for_update(session, prize_id)

    if "name" in changes:
        name = changes["name"]
        if not name or not name.strip():
            raise ValueError("Prize name must not be empty")
        changes["name"] = name.strip()
    if "batch_size" in changes:
        changes["batch_size"] = _positive_int("batch_size", changes["batch_size"])
    if "quantity" in changes:
        changes["quantity"] = _positive_int("quantity", changes["quantity"])
        winners = prize.winner_count(session)
        if changes["quantity"] < winners:
            raise ValueError(
                f"quantity cannot be lower than the {winners} winner(s) already drawn"
            )

    for key, value in changes.items():
        setattr(prize, key, value)
    session.flush()
    return prize


def delete_prize(session: Session, prize_id: int) -> None:
    """Delete a prize, first reverting any participants who hold it.

    Raises
    ------
    ValueError
        If the prize does not exist.
    """
    prize = _load_prize_for_update(session, prize_id)

    holders = session.scalars(
        select(Participant).where(Participant.prize_id == prize_id)
    ).all()
    for participant in holders:
        participant.clear_win()
    session.flush()

    session.delete(prize)
    session.flush()
    logger.info("Deleted prize %s and reverted %d winner(s)", prize_id, len(holders))
