from __future__ import annotations

import logging
from threading import Lock
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .router import EventRouter
    from .transport import Transport

logger = logging.getLogger(__name__)

POLL_INTERVAL_SEC = 0.25


class PhaseClock:
    """One background task per room with a running game.

    The task only polls ``EventRouter.tick``; expiry itself is dispatched
    by the router through its normal, room-locked path.
    """

    def __init__(self, router: "EventRouter", transport: "Transport") -> None:
        self.router = router
        self.transport = transport
        self._guard = Lock()
        self._running: set[str] = set()

    def is_running(self, room_id: str) -> bool:
        with self._guard:
            return room_id in self._running

    def ensure(self, room_id: str) -> None:
        with self._guard:
            if room_id in self._running:
                return
            self._running.add(room_id)
        logger.debug("phase clock started for room %s", room_id)
        self.transport.start_background_task(self._run, room_id)

    def _run(self, room_id: str) -> None:
        try:
            while True:
                if not self.router.tick(room_id):
                    with self._guard:
                        # A new game may have started between the tick and here.
                        if self.router.has_session(room_id):
                            continue
                        self._running.discard(room_id)
                    break
                self.transport.sleep(POLL_INTERVAL_SEC)
        except Exception:
            logger.exception("phase clock for room %s crashed", room_id)
            with self._guard:
                self._running.discard(room_id)
        logger.debug("phase clock stopped for room %s", room_id)
