"""Declarative base shared by the lucky-draw tables."""

from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from ..db.metadata import metadata_obj

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Base for ``Prize`` and ``Participant``; carries the naming convention."""

    metadata = metadata_obj
