"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List, Set
from datetime import date

from domain.entities import Reservation
from domain.enums import ReservationStatus
from domain.value_objects import DateRange


class ReservationRepository(ABC):
    """Repository interface for the Reservation Aggregate.

    Writes that place a reservation on a room (insert, update_full,
    update_dates_only) must re-check, atomically with the write, that no
    other blocking reservation of the same room overlaps the new interval,
    and raise RoomConflictError otherwise. Backend failures raise StoreError.
    """

    @abstractmethod
    async def booked_room_numbers(
        self,
        room_type: str,
        date_range: DateRange,
        exclude_reservation_id: Optional[int] = None
    ) -> Set[int]:
        """Rooms of a type held by blocking reservations overlapping the interval"""
        pass

    @abstractmethod
    async def insert(self, reservation: Reservation) -> Reservation:
        """Persist a new reservation and return it with its assigned ID"""
        pass

    @abstractmethod
    async def update_full(
        self,
        reservation: Reservation,
        expected_status: Optional[ReservationStatus] = None
    ) -> bool:
        """Overwrite every field of an existing reservation.

        With expected_status set, nothing is written (and False is returned)
        unless the stored status still equals it.
        """
        pass

    @abstractmethod
    async def update_status(
        self,
        reservation_id: int,
        expected_status: ReservationStatus,
        new_status: ReservationStatus
    ) -> bool:
        """Compare-and-set on status alone; False when the row is gone or its status moved on"""
        pass

    @abstractmethod
    async def update_dates_only(self, reservation_id: int, check_in: date, check_out: date) -> bool:
        """Change only the stay interval of an existing reservation"""
        pass

    @abstractmethod
    async def delete(self, reservation_id: int) -> bool:
        """Hard delete"""
        pass

    @abstractmethod
    async def soft_cancel(self, reservation_id: int) -> bool:
        """Flip status to Cancelled, keeping the record"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: int) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """All reservations, newest first"""
        pass

    @abstractmethod
    async def find_by_user(self, user_id: int) -> List[Reservation]:
        """Reservations created by a staff user"""
        pass

    @abstractmethod
    async def find_by_check_in_date(self, check_in: date) -> List[Reservation]:
        """Reservations arriving on an exact date"""
        pass

    @abstractmethod
    async def find_by_check_in_month(self, year: int, month: int) -> List[Reservation]:
        """Reservations arriving in a calendar month"""
        pass

    @abstractmethod
    async def find_by_check_in_year(self, year: int) -> List[Reservation]:
        """Reservations arriving in a calendar year"""
        pass
