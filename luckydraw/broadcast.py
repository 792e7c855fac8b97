"""In-process fan-out of draw events to connected display/control clients."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

SYNC_PRIZE_IMAGE = "sync_prize_image"
SPIN_STARTED = "spin_started"
SPIN_COMPLETED = "spin_completed"
SPIN_ERROR = "spin_error"
DATA_REFRESH_REQUIRED = "data_refresh_required"

EventHandler = Callable[[str, Any], None]


class Broadcaster:
    """Deliver named events to every subscribed handler.

    A transport (socket server, SSE endpoint, test recorder) subscribes a
    handler and forwards ``(event, payload)`` to its clients.
    """

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` and return a callable that unsubscribes it."""

        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, payload: Optional[Any] = None) -> None:
        """Send ``event`` to all handlers.

        A failing handler is logged and skipped so that one broken client
        cannot keep the others from updating.
        """

        logger.debug("Broadcasting %s to %d handler(s)", event, len(self._handlers))
        for handler in list(self._handlers):
            try:
                handler(event, payload)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, event)


__all__ = [
    "Broadcaster",
    "EventHandler",
    "SYNC_PRIZE_IMAGE",
    "SPIN_STARTED",
    "SPIN_COMPLETED",
    "SPIN_ERROR",
    "DATA_REFRESH_REQUIRED",
]
