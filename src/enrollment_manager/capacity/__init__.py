"""Capacity - seat counting and temporary seat locks."""

from enrollment_manager.capacity.exceptions import CapacityError, CapacityFullError
from enrollment_manager.capacity.ledger import CapacityLedger
from enrollment_manager.capacity.seat_lock import LOCK_DURATION, SeatLockManager

__all__ = [
    "LOCK_DURATION",
    "CapacityError",
    "CapacityFullError",
    "CapacityLedger",
    "SeatLockManager",
]
