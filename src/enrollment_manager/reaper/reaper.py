"""Background thread that purges expired seat locks."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from enrollment_manager.capacity import SeatLockManager

logger = logging.getLogger(__name__)

# Seconds between two sweeps
DEFAULT_INTERVAL = 300.0


class Reaper:
    """Runs :meth:`SeatLockManager.purge_expired` on a fixed interval.

    Availability checks already ignore lapsed locks, so the reaper only
    tidies rows and cached counts. A failed sweep is logged and the next
    one runs on schedule.
    """

    def __init__(self, seat_locks: SeatLockManager, interval: float = DEFAULT_INTERVAL) -> None:
        """Initialize the Reaper.

        Args:
            seat_locks: SeatLockManager that performs the purge.
            interval: Seconds between sweeps.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.seat_locks = seat_locks
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """Run a single sweep.

        Returns:
            Number of registrations canceled, 0 if the sweep failed.
        """
        try:
            purged = self.seat_locks.purge_expired()
        except Exception:
            logger.exception("Seat lock sweep failed")
            return 0
        if purged:
            logger.info("Reaper released %d expired seat lock(s)", purged)
        return purged

    def _loop(self) -> None:
        logger.info("Reaper started (interval=%ss)", self.interval)
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self.interval)
        logger.info("Reaper stopped")

    def start(self) -> None:
        """Start sweeping in a daemon thread. No-op if already running."""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="seat-lock-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread to stop and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
