"""Winner selection and eligibility queries."""

from .eligibility import (
    PrizeSummary,
    available_prizes,
    prize_summaries,
    remaining_by_prize,
)
from .engine import SelectionEngine
from .errors import (
    ErrorKind,
    SelectionError,
    SelectionFailure,
    SelectionResult,
    WinnerRecord,
)

__all__ = [
    "ErrorKind",
    "PrizeSummary",
    "SelectionEngine",
    "SelectionError",
    "SelectionFailure",
    "SelectionResult",
    "WinnerRecord",
    "available_prizes",
    "prize_summaries",
    "remaining_by_prize",
]
