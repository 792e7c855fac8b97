"""Participants eligible to win at most one prize at a time."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    false,
    select,
)
from sqlalchemy.orm import (
    Mapped,
    Session,
    joinedload,
    mapped_column,
    relationship,
    validates,
)

from ..db.utils import dt_iso
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .prize import Prize


class Participant(Base):
    """A person imported for the event.

    ``is_winner``, ``prize_id`` and ``won_at`` move together: either all three
    are set or none of them is. The table carries a CHECK constraint for it.
    """

    def __init__(
        self,
        code: str,
        name: str,
        department: Optional[str] = None,
        avatar_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        """Create a new, unwon :class:`Participant`.

        Parameters
        ----------
        code : str
            Unique external code (e.g. employee number). Stored upper-cased.
        name : str
            Display name.
        department : str, optional
            Department or tag shown next to the name.
        avatar_url : str, optional
            Relative URL of the participant's picture.
        created_at : datetime, optional
            Explicit creation timestamp.
        """

        self.code = code
        self.name = name
        self.department = department
        self.avatar_url = avatar_url
        self.is_winner = False
        self.prize_id = None
        self.won_at = None
        if created_at is not None:
            self.created_at = created_at

    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_winner: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    prize_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("prizes.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    won_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # relationships
    prize: Mapped[Optional["Prize"]] = relationship(back_populates="winners")

    __table_args__ = (
        CheckConstraint(
            "(is_winner AND prize_id IS NOT NULL AND won_at IS NOT NULL) OR "
            "(NOT is_winner AND prize_id IS NULL AND won_at IS NULL)",
            name="winner_state_consistent",
        ),
        Index("ix_participants_is_winner", "is_winner"),
    )

    def __repr__(self) -> str:
        return (
            f"<Participant(id={self.id}, code='{self.code}', name='{self.name}', "
            f"is_winner={self.is_winner}, prize_id={self.prize_id})>"
        )

    @validates("code")
    def _normalize_code(self, _key: str, value: str) -> str:
        normalized = (value or "").strip().upper()
        if not normalized:
            raise ValueError("Participant code must not be empty")
        return normalized

    @classmethod
    def get_by_code(cls, session: Session, code: str) -> Optional["Participant"]:
        """Retrieve a participant by their external code (case-insensitive)."""

        return session.scalar(select(cls).where(cls.code == code.strip().upper()))

    @classmethod
    def ordered_by_name(cls, session: Session) -> list["Participant"]:
        """Return every participant ordered by display name."""

        return list(
            session.scalars(
                select(cls)
                .options(joinedload(cls.prize))
                .order_by(cls.name.asc(), cls.id.asc())
            ).all()
        )

    def mark_won(self, prize: "Prize", won_at: datetime) -> None:
        """Transition UNWON -> WON. Only the selection engine calls this."""

        if self.is_winner:
            raise ValueError(f"Participant {self.code} has already won")
        self.is_winner = True
        self.prize = prize
        self.prize_id = prize.id
        self.won_at = won_at

    def clear_win(self) -> None:
        """Transition back to UNWON, clearing the prize and timestamp."""

        self.is_winner = False
        self.prize = None
        self.prize_id = None
        self.won_at = None

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable dict including the held prize, if any."""

        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "department": self.department,
            "avatar_url": self.avatar_url,
            "is_winner": self.is_winner,
            "prize_id": self.prize_id,
            "prize_name": self.prize.name if self.prize is not None else None,
            "won_at": dt_iso(self.won_at),
        }


__all__ = ["Participant"]
