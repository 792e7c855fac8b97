"""Transactional winner selection for prizes."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..models import Participant, Prize
from .errors import ErrorKind, SelectionError, SelectionResult, WinnerRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SelectionEngine:
    """The only code path that moves a participant from unwon to won.

    Each public operation runs in its own transaction opened from the
    ``sessionmaker`` handed to the constructor, and reports its outcome as a
    :class:`SelectionResult` instead of raising.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        rng_factory: Optional[Callable[[], random.Random]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create a selection engine bound to a session factory.

        Parameters
        ----------
        session_factory : sessionmaker
            Factory used to open one session (and one transaction) per call.
        rng_factory : Optional[Callable[[], random.Random]], default: None
            Returns the pseudo-random source for a single draw. Defaults to a
            freshly seeded :class:`random.Random`.
        clock : Optional[Callable[[], datetime]], default: None
            Source of the won-at timestamps. Defaults to the current UTC time.
        """

        self._session_factory = session_factory
        self._rng_factory = rng_factory or random.Random
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------ public

    def validate(self, prize_id: int) -> SelectionResult:
        """Check whether ``prize_id`` could be drawn right now, without writing.

        The check is advisory. A concurrent draw can still make the following
        :meth:`draw` fail, and that failure is the one that counts.
        """

        return self._run("validate", lambda session: self._validate(session, prize_id))

    def draw(self, prize_id: int) -> SelectionResult:
        """Atomically pick and commit a batch of winners for ``prize_id``.

        Notes
        -----
        Inside a single transaction the engine:

        1. Re-fetches and locks the prize row.
        2. Re-counts current winners and fails with ``PRIZE_EXHAUSTED`` when the
           prize is full.
        3. Computes ``limit = min(batch_size, quantity - winners)``.
        4. Locks every unwon participant row.
        5. Samples ``limit`` of them uniformly at random.
        6. Marks each one won with this prize and a timestamp, then commits.

        Any failure rolls the whole transaction back.
        """

        result = self._run("draw", lambda session: self._draw(session, prize_id))
        if result.ok:
            logger.info(
                "Drew %d winner(s) for prize %s: %s",
                len(result.winners),
                prize_id,
                ", ".join(w.code for w in result.winners),
            )
        return result

    def cancel(self, participant_id: int, *, lock: bool = False) -> SelectionResult:
        """Revert ``participant_id`` to unwon.

        By default the row is updated without taking the draw lock, so a cancel
        racing a draw on the same participant is last-write-wins. Pass
        ``lock=True`` to lock the participant row first.
        """

        result = self._run(
            "cancel", lambda session: self._cancel(session, participant_id, lock)
        )
        if result.ok:
            logger.info("Cancelled win of participant %s", participant_id)
        return result

    # ---------------------------------------------------------------- internal

    def _run(
        self, operation: str, body: Callable[[Session], SelectionResult]
    ) -> SelectionResult:
        """Run ``body`` in one transaction and turn failures into results."""

        try:
            with self._session_factory.begin() as session:
                return body(session)
        except SelectionError as exc:
            return SelectionResult.failure(exc.kind, exc.message)
        except SQLAlchemyError as exc:
            logger.warning("%s failed at the store: %s", operation, exc)
            return SelectionResult.failure(
                ErrorKind.TRANSACTION_FAILURE,
                f"Could not complete {operation}: {exc.__class__.__name__}",
            )

    def _load_prize(self, session: Session, prize_id: int, *, lock: bool) -> Prize:
        prize = session.get(Prize, prize_id, with_for_update=lock)
        if prize is None:
            raise SelectionError(ErrorKind.NOT_FOUND, f"Prize {prize_id} does not exist")
        return prize

    def _check_not_exhausted(self, session: Session, prize: Prize) -> int:
        """Return the current winner count, raising when the prize is full."""

        winners = prize.winner_count(session)
        if winners >= prize.quantity:
            raise SelectionError(
                ErrorKind.PRIZE_EXHAUSTED,
                f'Prize "{prize.name}" is exhausted '
                f"(awarded {winners}/{prize.quantity})",
            )
        return winners

    def _validate(self, session: Session, prize_id: int) -> SelectionResult:
        prize = self._load_prize(session, prize_id, lock=False)
        self._check_not_exhausted(session, prize)

        eligible = session.scalar(
            select(func.count(Participant.id)).where(Participant.is_winner.is_(False))
        )
        if not eligible:
            raise SelectionError(
                ErrorKind.NO_ELIGIBLE_PARTICIPANTS, "No participants left to draw"
            )
        return SelectionResult.success()

    def _draw(self, session: Session, prize_id: int) -> SelectionResult:
        # Locking the prize row serializes draws of the same prize, so the
        # winner count below cannot go stale before commit.
        prize = self._load_prize(session, prize_id, lock=True)
        winners = self._check_not_exhausted(session, prize)
        limit = min(prize.batch_size, prize.quantity - winners)

        candidate_ids = list(
            session.scalars(
                select(Participant.id)
                .where(Participant.is_winner.is_(False))
                .order_by(Participant.id)
                .with_for_update()
            ).all()
        )
        if not candidate_ids:
            raise SelectionError(
                ErrorKind.NO_ELIGIBLE_PARTICIPANTS, "No participants left to draw"
            )

        rng = self._rng_factory()
        chosen_ids = rng.sample(candidate_ids, min(limit, len(candidate_ids)))

        by_id = {
            p.id: p
            for p in session.scalars(
                select(Participant).where(Participant.id.in_(chosen_ids))
            ).all()
        }
        records: list[WinnerRecord] = []
        for participant_id in chosen_ids:
            participant = by_id[participant_id]
            participant.mark_won(prize, self._clock())
            records.append(WinnerRecord.from_participant(participant, prize))

        session.flush()
        return SelectionResult.success(records)

    def _cancel(self, session: Session, participant_id: int, lock: bool) -> SelectionResult:
        participant = session.get(Participant, participant_id, with_for_update=lock)
        if participant is None:
            raise SelectionError(
                ErrorKind.NOT_FOUND, f"Participant {participant_id} does not exist"
            )
        participant.clear_win()
        session.flush()
        return SelectionResult.success()


__all__ = ["SelectionEngine"]
