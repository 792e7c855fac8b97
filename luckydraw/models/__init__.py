from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .prize import Prize  # noqa: F401
from .participant import Participant  # noqa: F401

__all__ = [
    "Base",
    "Prize",
    "Participant",
]
