"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CHECKED_IN = "Checked-In"
    CHECKED_OUT = "Checked-Out"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-Show"


# Statuses that no longer accept lifecycle transitions
TERMINAL_STATUSES = frozenset({
    ReservationStatus.CHECKED_OUT,
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
})

# Statuses that never occupy a room, for counting, allocation and single-room checks
NON_BLOCKING_STATUSES = frozenset({
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
})


class BookingOutcome(str, Enum):
    BOOKED = "BOOKED"
    NO_AVAILABILITY = "NO_AVAILABILITY"
    CONFLICT = "CONFLICT"
    STORE_FAILURE = "STORE_FAILURE"
