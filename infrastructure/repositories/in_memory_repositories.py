"""In-Memory Repository Implementations"""
import logging
import threading
from itertools import count
from typing import Optional, List, Dict, Set
from datetime import date

from domain.repositories import ReservationRepository
from domain.entities import Reservation
from domain.enums import ReservationStatus
from domain.exceptions import RoomConflictError
from domain.value_objects import DateRange

logger = logging.getLogger(__name__)


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository.

    A single lock makes each overlap re-check and the write that follows it
    one atomic step, also when the repository is shared across threads.
    Stored reservations are copies; callers never hold live references.
    """

    def __init__(self):
        self._storage: Dict[int, Reservation] = {}
        self._ids = count(1)
        self._lock = threading.Lock()

    def _conflicting(self, room_number: int, date_range: DateRange, exclude_id: Optional[int]) -> bool:
        for r in self._storage.values():
            if r.reservation_id == exclude_id or r.room_number != room_number:
                continue
            if r.blocks_room() and r.date_range.overlaps(date_range):
                return True
        return False

    async def booked_room_numbers(
        self,
        room_type: str,
        date_range: DateRange,
        exclude_reservation_id: Optional[int] = None
    ) -> Set[int]:
        with self._lock:
            return {
                r.room_number for r in self._storage.values()
                if r.room_type == room_type
                and r.reservation_id != exclude_reservation_id
                and r.blocks_room()
                and r.date_range.overlaps(date_range)
            }

    async def insert(self, reservation: Reservation) -> Reservation:
        """Save reservation to memory"""
        with self._lock:
            if reservation.blocks_room() and self._conflicting(
                reservation.room_number, reservation.date_range, None
            ):
                raise RoomConflictError(reservation.room_number)
            stored = reservation.model_copy(update={"reservation_id": next(self._ids)}, deep=True)
            self._storage[stored.reservation_id] = stored
            logger.info(f"Inserted reservation ID = {stored.reservation_id}")
            return stored.model_copy(deep=True)

    async def update_full(
        self,
        reservation: Reservation,
        expected_status: Optional[ReservationStatus] = None
    ) -> bool:
        with self._lock:
            current = self._storage.get(reservation.reservation_id)
            if current is None:
                return False
            if expected_status is not None and current.status != expected_status:
                logger.warning(
                    f"Reservation {reservation.reservation_id} is {current.status.value}, "
                    f"expected {expected_status.value}; update skipped"
                )
                return False
            if reservation.blocks_room() and self._conflicting(
                reservation.room_number, reservation.date_range, reservation.reservation_id
            ):
                raise RoomConflictError(reservation.room_number)
            self._storage[reservation.reservation_id] = reservation.model_copy(deep=True)
            return True

    async def update_status(
        self,
        reservation_id: int,
        expected_status: ReservationStatus,
        new_status: ReservationStatus
    ) -> bool:
        with self._lock:
            current = self._storage.get(reservation_id)
            if current is None or current.status != expected_status:
                return False
            self._storage[reservation_id] = current.model_copy(update={"status": new_status})
            return True

    async def update_dates_only(self, reservation_id: int, check_in: date, check_out: date) -> bool:
        new_range = DateRange(check_in=check_in, check_out=check_out)
        with self._lock:
            current = self._storage.get(reservation_id)
            if current is None:
                return False
            if current.blocks_room() and self._conflicting(
                current.room_number, new_range, reservation_id
            ):
                raise RoomConflictError(current.room_number)
            self._storage[reservation_id] = current.model_copy(update={"date_range": new_range})
            return True

    async def delete(self, reservation_id: int) -> bool:
        with self._lock:
            if reservation_id in self._storage:
                del self._storage[reservation_id]
                return True
            logger.warning(f"No reservation found to delete: id={reservation_id}")
            return False

    async def soft_cancel(self, reservation_id: int) -> bool:
        with self._lock:
            current = self._storage.get(reservation_id)
            if current is None:
                return False
            cancelled = current.model_copy(deep=True)
            cancelled.soft_cancel()
            self._storage[reservation_id] = cancelled
            return True

    async def find_by_id(self, reservation_id: int) -> Optional[Reservation]:
        with self._lock:
            found = self._storage.get(reservation_id)
            return found.model_copy(deep=True) if found else None

    def _select(self, predicate) -> List[Reservation]:
        with self._lock:
            matches = [r.model_copy(deep=True) for r in self._storage.values() if predicate(r)]
        return sorted(matches, key=lambda r: r.reservation_id, reverse=True)

    async def find_all(self) -> List[Reservation]:
        return self._select(lambda r: True)

    async def find_by_user(self, user_id: int) -> List[Reservation]:
        return self._select(lambda r: r.user_id == user_id)

    async def find_by_check_in_date(self, check_in: date) -> List[Reservation]:
        return self._select(lambda r: r.check_in == check_in)

    async def find_by_check_in_month(self, year: int, month: int) -> List[Reservation]:
        return self._select(lambda r: r.check_in.year == year and r.check_in.month == month)

    async def find_by_check_in_year(self, year: int) -> List[Reservation]:
        return self._select(lambda r: r.check_in.year == year)
