"""Domain Exceptions"""


class ReservationError(Exception):
    """Base error type for reservation domain errors."""


class UnknownRoomTypeError(ReservationError, ValueError):
    """Raised when a room type is not part of the room catalog."""

    def __init__(self, room_type: str):
        super().__init__(f"Unknown room type: {room_type!r}")
        self.room_type = room_type


class CatalogError(ReservationError, ValueError):
    """Raised when a room catalog has duplicate names or overlapping bands."""


class StoreError(ReservationError):
    """Raised when the reservation store cannot complete an operation."""


class RoomConflictError(StoreError):
    """Raised when a write would put two active reservations on one room for overlapping nights."""

    def __init__(self, room_number: int, message: str = ""):
        super().__init__(message or f"Room {room_number} is already booked for overlapping nights")
        self.room_number = room_number
