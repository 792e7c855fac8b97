"""Prize definitions allocated by the selection engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    String,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .participant import Participant


class Prize(Base):
    """An allocatable reward with a fixed total quantity and a per-draw batch size."""

    __tablename__ = "prizes"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Name shown on the display screen."""

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    """Total number of winners this prize can ever have."""

    batch_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    """Maximum number of winners drawn by a single spin."""

    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    """Image shown on the display while the prize is selected."""

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Display ordering; lower values come first."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    winners: Mapped[list["Participant"]] = relationship(back_populates="prize")
    """Participants currently holding this prize."""

    __table_args__ = (
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("batch_size > 0", name="batch_size_positive"),
    )

    def __init__(
        self,
        *,
        name: str,
        quantity: int,
        batch_size: int = 1,
        image_url: Optional[str] = None,
        sort_order: int = 0,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        self.name = name
        self.quantity = quantity
        self.batch_size = batch_size
        self.image_url = image_url
        self.sort_order = sort_order
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Prize(id={id}, name={name}, quantity={qty}, batch_size={batch})>".format(
            id=self.id,
            name=self.name,
            qty=self.quantity,
            batch=self.batch_size,
        )

    def winner_count(self, session: Session) -> int:
        """Count participants currently referencing this prize."""
        from .participant import Participant

        return session.scalar(
            select(func.count(Participant.id)).where(Participant.prize_id == self.id)
        ) or 0

    def remaining(self, session: Session) -> int:
        """Return ``quantity - winners``, never below zero."""
        return max(0, self.quantity - self.winner_count(session))

    @classmethod
    def ordered(cls, session: Session) -> list["Prize"]:
        """Return every prize in display order."""
        return list(
            session.scalars(select(cls).order_by(cls.sort_order.asc(), cls.id.asc())).all()
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "batch_size": self.batch_size,
            "image_url": self.image_url,
            "sort_order": self.sort_order,
            "created_at": dt_iso(self.created_at),
            "updated_at": dt_iso(self.updated_at),
        }


__all__ = ["Prize"]
