"""Domain Entities - Aggregates"""
import re
from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Optional
from decimal import Decimal

from domain.enums import ReservationStatus, TERMINAL_STATUSES, NON_BLOCKING_STATUSES
from domain.value_objects import DateRange

PHONE_PATTERN = re.compile(r"^\+?\d{8,15}$")


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""

    # Identity, assigned by the store on insert
    reservation_id: Optional[int] = None

    # Owning staff user
    user_id: int

    # Guest
    guest_name: str
    phone_number: str

    # Room assignment
    room_number: int
    room_type: str

    # Value Objects
    date_range: DateRange

    # Status
    status: ReservationStatus = ReservationStatus.PENDING

    total_price: Decimal = Field(ge=0)

    # Metadata
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        user_id: int,
        guest_name: str,
        phone_number: str,
        room_number: int,
        room_type: str,
        date_range: DateRange,
        total_price: Decimal
    ) -> "Reservation":
        """Create new reservation with validation"""
        guest_name = Reservation.normalize_guest_name(guest_name)
        phone_number = Reservation.normalize_phone_number(phone_number)

        return Reservation(
            user_id=user_id,
            guest_name=guest_name,
            phone_number=phone_number,
            room_number=room_number,
            room_type=room_type,
            date_range=date_range,
            total_price=total_price,
            status=ReservationStatus.PENDING
        )

    # ==================== CONVENIENCE ACCESSORS ====================
    @property
    def check_in(self) -> date:
        return self.date_range.check_in

    @property
    def check_out(self) -> date:
        return self.date_range.check_out

    # ==================== MODIFICATION METHODS ====================
    def reschedule(self, new_date_range: DateRange) -> None:
        """Replace the stay interval"""
        self.date_range = new_date_range

    def reassign(self, room_number: int, room_type: str, total_price: Decimal) -> None:
        """Move the reservation to another room"""
        self.room_number = room_number
        self.room_type = room_type
        self.total_price = total_price

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self) -> None:
        """Confirm a pending reservation"""
        if self.status != ReservationStatus.PENDING:
            raise ValueError(
                f"Cannot confirm reservation with status {self.status.value}"
            )
        self.status = ReservationStatus.CONFIRMED

    def check_in_guest(self) -> None:
        """Mark guest as checked in"""
        if self.status not in [ReservationStatus.PENDING, ReservationStatus.CONFIRMED]:
            raise ValueError(
                f"Cannot check in with status {self.status.value}"
            )
        self.status = ReservationStatus.CHECKED_IN

    def check_out_guest(self) -> None:
        """Process guest check-out"""
        if self.status != ReservationStatus.CHECKED_IN:
            raise ValueError(
                f"Cannot check out with status {self.status.value}"
            )
        self.status = ReservationStatus.CHECKED_OUT

    def cancel(self) -> None:
        """Cancel reservation"""
        if not self.is_cancellable():
            raise ValueError(
                f"Cannot cancel reservation with status {self.status.value}"
            )
        self.status = ReservationStatus.CANCELLED

    def soft_cancel(self) -> None:
        """Flip to Cancelled from any state, keeping the record"""
        self.status = ReservationStatus.CANCELLED

    def mark_no_show(self) -> None:
        """Mark guest as no-show"""
        if self.status not in [ReservationStatus.PENDING, ReservationStatus.CONFIRMED]:
            raise ValueError(
                f"Cannot mark as no-show with status {self.status.value}"
            )
        self.status = ReservationStatus.NO_SHOW

    # ==================== QUERY METHODS ====================
    def is_cancellable(self) -> bool:
        return self.status in [
            ReservationStatus.PENDING,
            ReservationStatus.CONFIRMED
        ]

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def blocks_room(self) -> bool:
        """Whether this reservation occupies its room for overlap purposes"""
        return self.status not in NON_BLOCKING_STATUSES

    def get_nights(self) -> int:
        return self.date_range.nights()

    # ==================== VALIDATION METHODS ====================
    @staticmethod
    def normalize_guest_name(guest_name: str) -> str:
        guest_name = (guest_name or "").strip()
        if not guest_name:
            raise ValueError("Guest name is required")
        return guest_name

    @staticmethod
    def normalize_phone_number(phone_number: str) -> str:
        phone_number = (phone_number or "").strip()
        if not PHONE_PATTERN.match(phone_number):
            raise ValueError("Phone number must be 8-15 digits with an optional leading +")
        return phone_number
