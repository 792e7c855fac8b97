"""Error kinds and result objects returned by the selection engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from ..db.utils import dt_iso

if TYPE_CHECKING:
    from ..models import Participant, Prize


class ErrorKind(str, enum.Enum):
    """Failure modes surfaced verbatim to the control surface."""

    NOT_FOUND = "not_found"
    PRIZE_EXHAUSTED = "prize_exhausted"
    NO_ELIGIBLE_PARTICIPANTS = "no_eligible_participants"
    TRANSACTION_FAILURE = "transaction_failure"


class SelectionError(Exception):
    """Raised inside a selection transaction to abort and roll it back."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass(frozen=True)
class SelectionFailure:
    """Error kind plus an operator-facing message."""

    kind: ErrorKind
    message: str

    def to_json(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class WinnerRecord:
    """Denormalized winner details, enough to render without another query.

    Attributes
    ----------
    participant_id : int
        Primary key of the winning participant.
    code : str
        External participant code.
    name : str
        Display name.
    department : Optional[str]
        Department or tag.
    avatar_url : Optional[str]
        Relative URL of the participant's picture.
    prize_id : int
        Prize won.
    prize_name : str
        Name of the prize won.
    won_at : datetime
        Commit-time timestamp recorded on the participant.
    """

    participant_id: int
    code: str
    name: str
    department: Optional[str]
    avatar_url: Optional[str]
    prize_id: int
    prize_name: str
    won_at: datetime

    @classmethod
    def from_participant(cls, participant: "Participant", prize: "Prize") -> "WinnerRecord":
        if participant.won_at is None:
            raise ValueError("Participant has no won_at timestamp")
        return cls(
            participant_id=participant.id,
            code=participant.code,
            name=participant.name,
            department=participant.department,
            avatar_url=participant.avatar_url,
            prize_id=prize.id,
            prize_name=prize.name,
            won_at=participant.won_at,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "code": self.code,
            "name": self.name,
            "department": self.department,
            "avatar_url": self.avatar_url,
            "prize_id": self.prize_id,
            "prize_name": self.prize_name,
            "won_at": dt_iso(self.won_at),
        }


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of ``validate``, ``draw`` or ``cancel``.

    ``error`` is ``None`` on success. ``winners`` is only populated by a
    successful draw.
    """

    winners: list[WinnerRecord] = field(default_factory=list)
    error: Optional[SelectionFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, winners: Optional[list[WinnerRecord]] = None) -> "SelectionResult":
        return cls(winners=list(winners or []))

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "SelectionResult":
        return cls(error=SelectionFailure(kind=kind, message=message))


__all__ = [
    "ErrorKind",
    "SelectionError",
    "SelectionFailure",
    "SelectionResult",
    "WinnerRecord",
]
