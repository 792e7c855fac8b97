"""Read-only remaining-slot figures for display.

The numbers here can be stale by the time a draw commits; the draw re-checks
them inside its own transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from ..models import Participant, Prize
from .errors import WinnerRecord


@dataclass
class PrizeSummary:
    """A prize annotated with its remaining slots and current winners."""

    prize: Prize
    remaining: int
    winners: list[Participant] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        data = self.prize.to_json()
        data["remaining"] = self.remaining
        data["winners"] = [
            WinnerRecord.from_participant(w, self.prize).to_json() for w in self.winners
        ]
        return data


def _winner_counts(session: Session) -> dict[int, int]:
    rows = session.execute(
        select(Participant.prize_id, func.count(Participant.id))
        .where(Participant.prize_id.isnot(None))
        .group_by(Participant.prize_id)
    ).all()
    return {prize_id: count for prize_id, count in rows}


def remaining_by_prize(session: Session) -> dict[int, int]:
    """Map every prize id to ``quantity - current winners`` (floored at zero)."""

    counts = _winner_counts(session)
    return {
        prize.id: max(0, prize.quantity - counts.get(prize.id, 0))
        for prize in Prize.ordered(session)
    }


def available_prizes(session: Session) -> list[Prize]:
    """Return prizes that still have remaining slots, in display order."""

    remaining = remaining_by_prize(session)
    return [prize for prize in Prize.ordered(session) if remaining[prize.id] > 0]


def prize_summaries(session: Session) -> list[PrizeSummary]:
    """Return every prize with its remaining count and winner list."""

    winners_by_prize: dict[int, list[Participant]] = {}
    stmt = (
        select(Participant)
        .options(joinedload(Participant.prize))
        .where(Participant.prize_id.isnot(None))
        .order_by(Participant.won_at.asc(), Participant.id.asc())
    )
    for participant in session.scalars(stmt).all():
        winners_by_prize.setdefault(participant.prize_id, []).append(participant)

    summaries: list[PrizeSummary] = []
    for prize in Prize.ordered(session):
        winners = winners_by_prize.get(prize.id, [])
        summaries.append(
            PrizeSummary(
                prize=prize,
                remaining=max(0, prize.quantity - len(winners)),
                winners=winners,
            )
        )
    return summaries


__all__ = [
    "PrizeSummary",
    "available_prizes",
    "prize_summaries",
    "remaining_by_prize",
]
