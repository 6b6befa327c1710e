"""Application Services - Business use cases"""
import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set

from pydantic import BaseModel

from domain.catalog import RoomCatalog, DEFAULT_CATALOG
from domain.entities import Reservation
from domain.enums import BookingOutcome, ReservationStatus
from domain.exceptions import RoomConflictError, StoreError
from domain.policies import calculate_total, first_free_room, free_room_count, matches_search
from domain.repositories import ReservationRepository
from domain.value_objects import DateRange

logger = logging.getLogger(__name__)


class BookingResult(BaseModel):
    """Outcome of a booking or date-change request"""
    outcome: BookingOutcome
    reservation: Optional[Reservation] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome == BookingOutcome.BOOKED


class RoomTypeLocks:
    """One asyncio.Lock per room type.

    Availability check, room pick and write for a room type run under that
    type's lock, so allocations of the same type never interleave within an
    event loop. Cross-process safety comes from the store's own re-check.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def for_type(self, room_type: str) -> asyncio.Lock:
        lock = self._locks.get(room_type)
        if lock is None:
            lock = self._locks.setdefault(room_type, asyncio.Lock())
        return lock

    def for_types(self, *room_types: str) -> List[asyncio.Lock]:
        """Locks for several types in a fixed order"""
        return [self.for_type(t) for t in sorted(set(room_types))]


class AvailabilityService:
    """Availability calculator, room allocator and price quotes"""

    def __init__(self, repository: ReservationRepository, catalog: Optional[RoomCatalog] = None):
        self.repository = repository
        self.catalog = catalog or DEFAULT_CATALOG

    async def booked_rooms(
        self,
        room_type: str,
        date_range: DateRange,
        exclude_reservation_id: Optional[int] = None
    ) -> Set[int]:
        """Booked set for a type and interval"""
        self.catalog.get(room_type)
        return await self.repository.booked_room_numbers(room_type, date_range, exclude_reservation_id)

    async def available_count(self, room_type: str, date_range: DateRange) -> int:
        """Free rooms of a type over the interval"""
        room_range = self.catalog.get(room_type)
        booked = await self.repository.booked_room_numbers(room_type, date_range)
        return free_room_count(room_range, booked)

    async def availability_summary(self, date_range: DateRange) -> Dict[str, int]:
        """Free room count for every catalog type"""
        return {
            room_range.name: await self.available_count(room_range.name, date_range)
            for room_range in self.catalog
        }

    async def assign_room(
        self,
        room_type: str,
        date_range: DateRange,
        exclude_reservation_id: Optional[int] = None
    ) -> Optional[int]:
        """Propose the lowest free room number; reserves nothing"""
        room_range = self.catalog.get(room_type)
        booked = await self.repository.booked_room_numbers(room_type, date_range, exclude_reservation_id)
        return first_free_room(room_range, booked)

    async def is_room_available(
        self,
        room_number: int,
        date_range: DateRange,
        exclude_reservation_id: Optional[int] = None
    ) -> bool:
        room_range = self.catalog.type_for_room(room_number)
        if room_range is None:
            return False
        booked = await self.repository.booked_room_numbers(room_range.name, date_range, exclude_reservation_id)
        return room_number not in booked

    def quote_price(self, room_type: str, date_range: DateRange) -> Decimal:
        return calculate_total(self.catalog, room_type, date_range)


class ReservationService:
    """Service for Reservation business use cases"""

    def __init__(self,
                 repository: ReservationRepository,
                 catalog: Optional[RoomCatalog] = None,
                 room_locks: Optional[RoomTypeLocks] = None):
        self.repository = repository
        self.catalog = catalog or DEFAULT_CATALOG
        self.availability = AvailabilityService(repository, self.catalog)
        self.room_locks = room_locks or RoomTypeLocks()

    # ==================== BOOKING ====================
    async def create_reservation(
        self,
        user_id: int,
        guest_name: str,
        phone_number: str,
        room_type: str,
        check_in: date,
        check_out: date
    ) -> BookingResult:
        """Book the first free room of a type for the interval"""
        # Validation happens before any store access
        date_range = DateRange(check_in=check_in, check_out=check_out)
        self.catalog.get(room_type)
        Reservation.normalize_guest_name(guest_name)
        Reservation.normalize_phone_number(phone_number)

        async with self.room_locks.for_type(room_type):
            try:
                room_number = await self.availability.assign_room(room_type, date_range)
                if room_number is None:
                    logger.info(f"No {room_type} rooms free for {check_in}..{check_out}")
                    return BookingResult(
                        outcome=BookingOutcome.NO_AVAILABILITY,
                        message=f"No available {room_type} rooms."
                    )

                reservation = Reservation.create(
                    user_id=user_id,
                    guest_name=guest_name,
                    phone_number=phone_number,
                    room_number=room_number,
                    room_type=room_type,
                    date_range=date_range,
                    total_price=self.availability.quote_price(room_type, date_range)
                )
                stored = await self.repository.insert(reservation)
            except RoomConflictError as e:
                logger.warning(f"Booking conflict for {room_type}: {e}")
                return BookingResult(outcome=BookingOutcome.CONFLICT, message=str(e))
            except StoreError as e:
                logger.error(f"Store failure while booking {room_type}: {e}")
                return BookingResult(outcome=BookingOutcome.STORE_FAILURE, message=str(e))

        logger.info(
            f"Reservation {stored.reservation_id} booked: room {stored.room_number} "
            f"({room_type}) {check_in}..{check_out} by user {user_id}"
        )
        return BookingResult(outcome=BookingOutcome.BOOKED, reservation=stored)

    @asynccontextmanager
    async def _locked_reservation(self, reservation_id: int, *also_types: str):
        """Yield a fresh read of a reservation taken under its room-type lock.

        The first read only picks the lock; the yielded copy is read again once
        the lock is held. Yields None when the reservation does not exist.
        """
        reservation = await self.repository.find_by_id(reservation_id)
        if not reservation:
            yield None
            return
        async with AsyncExitStack() as stack:
            for lock in self.room_locks.for_types(reservation.room_type, *also_types):
                await stack.enter_async_context(lock)
            yield await self.repository.find_by_id(reservation_id)

    async def _status_moved_on(self, reservation_id: int) -> Optional[Reservation]:
        """Re-read after a compare-and-set miss; None when the row is gone"""
        current = await self.repository.find_by_id(reservation_id)
        if current is not None:
            logger.warning(
                f"Reservation {reservation_id} changed to {current.status.value} concurrently"
            )
        return current

    async def change_dates(
        self,
        reservation_id: int,
        new_check_in: date,
        new_check_out: date
    ) -> Optional[BookingResult]:
        """Move a reservation to new dates.

        The current room is kept when it is still free for the new interval
        and only the dates are written; the stored total is left as it was.
        Otherwise the first free room of the same type is assigned and the
        total is recomputed.
        """
        new_range = DateRange(check_in=new_check_in, check_out=new_check_out)

        try:
            async with self._locked_reservation(reservation_id) as reservation:
                if not reservation:
                    return None
                if reservation.date_range == new_range:
                    return BookingResult(outcome=BookingOutcome.BOOKED, reservation=reservation)

                keeps_room = (
                    not reservation.blocks_room()
                    or await self.availability.is_room_available(
                        reservation.room_number, new_range, exclude_reservation_id=reservation_id
                    )
                )
                if keeps_room:
                    if not await self.repository.update_dates_only(reservation_id, new_check_in, new_check_out):
                        logger.warning(f"Reservation {reservation_id} vanished before its dates were written")
                        return None
                    reservation.reschedule(new_range)
                else:
                    room_number = await self.availability.assign_room(
                        reservation.room_type, new_range, exclude_reservation_id=reservation_id
                    )
                    if room_number is None:
                        return BookingResult(
                            outcome=BookingOutcome.NO_AVAILABILITY,
                            reservation=reservation,
                            message=f"No available {reservation.room_type} rooms."
                        )
                    read_status = reservation.status
                    reservation.reschedule(new_range)
                    reservation.reassign(
                        room_number,
                        reservation.room_type,
                        self.availability.quote_price(reservation.room_type, new_range)
                    )
                    if not await self.repository.update_full(reservation, expected_status=read_status):
                        current = await self._status_moved_on(reservation_id)
                        if current is None:
                            return None
                        return BookingResult(
                            outcome=BookingOutcome.CONFLICT,
                            reservation=current,
                            message=f"Reservation {reservation_id} became {current.status.value} while being moved."
                        )
        except RoomConflictError as e:
            logger.warning(f"Date change conflict for reservation {reservation_id}: {e}")
            return BookingResult(outcome=BookingOutcome.CONFLICT, message=str(e))
        except StoreError as e:
            logger.error(f"Store failure while changing dates of {reservation_id}: {e}")
            return BookingResult(outcome=BookingOutcome.STORE_FAILURE, message=str(e))

        logger.info(f"Reservation {reservation_id} moved to {new_check_in}..{new_check_out}")
        return BookingResult(outcome=BookingOutcome.BOOKED, reservation=reservation)

    async def update_reservation(
        self,
        reservation_id: int,
        guest_name: str,
        phone_number: str,
        room_number: int,
        room_type: str,
        check_in: date,
        check_out: date,
        status: ReservationStatus,
        total_price: Decimal
    ) -> Optional[Reservation]:
        """Overwrite every editable field of a reservation, in any state"""
        date_range = DateRange(check_in=check_in, check_out=check_out)
        room_range = self.catalog.get(room_type)
        if not room_range.contains(room_number):
            raise ValueError(
                f"Room {room_number} is outside the {room_type} range "
                f"{room_range.start_id}-{room_range.end_id}"
            )
        guest_name = Reservation.normalize_guest_name(guest_name)
        phone_number = Reservation.normalize_phone_number(phone_number)

        async with self._locked_reservation(reservation_id, room_type) as reservation:
            if not reservation:
                return None
            read_status = reservation.status

            reservation.guest_name = guest_name
            reservation.phone_number = phone_number
            reservation.reschedule(date_range)
            reservation.reassign(room_number, room_type, total_price)
            reservation.status = status

            if not await self.repository.update_full(reservation, expected_status=read_status):
                current = await self._status_moved_on(reservation_id)
                if current is None:
                    return None
                raise ValueError(
                    f"Reservation {reservation_id} became {current.status.value} while being updated"
                )
        logger.info(f"Reservation {reservation_id} fully updated")
        return reservation

    # ==================== LIFECYCLE ====================
    async def _transition(self, reservation_id: int, action: str) -> Optional[Reservation]:
        async with self._locked_reservation(reservation_id) as reservation:
            if not reservation:
                return None

            previous = reservation.status
            getattr(reservation, action)()
            # Only the status is written, and only if nobody moved it since the read
            if not await self.repository.update_status(reservation_id, previous, reservation.status):
                current = await self._status_moved_on(reservation_id)
                if current is None:
                    return None
                raise ValueError(f"Reservation became {current.status.value} concurrently")
        logger.info(
            f"Reservation {reservation_id} status {previous.value} -> {reservation.status.value}"
        )
        return reservation

    async def confirm_reservation(self, reservation_id: int) -> Optional[Reservation]:
        try:
            return await self._transition(reservation_id, "confirm")
        except ValueError as e:
            raise ValueError(f"Cannot confirm reservation: {str(e)}")

    async def check_in_guest(self, reservation_id: int) -> Optional[Reservation]:
        try:
            return await self._transition(reservation_id, "check_in_guest")
        except ValueError as e:
            raise ValueError(f"Cannot check in: {str(e)}")

    async def check_out_guest(self, reservation_id: int) -> Optional[Reservation]:
        try:
            return await self._transition(reservation_id, "check_out_guest")
        except ValueError as e:
            raise ValueError(f"Cannot check out: {str(e)}")

    async def cancel_reservation(self, reservation_id: int) -> Optional[Reservation]:
        try:
            return await self._transition(reservation_id, "cancel")
        except ValueError as e:
            raise ValueError(f"Cannot cancel reservation: {str(e)}")

    async def mark_no_show(self, reservation_id: int) -> Optional[Reservation]:
        try:
            return await self._transition(reservation_id, "mark_no_show")
        except ValueError as e:
            raise ValueError(f"Cannot mark as no-show: {str(e)}")

    async def soft_cancel_reservation(self, reservation_id: int) -> bool:
        """Cancel from any state, keeping the record"""
        cancelled = await self.repository.soft_cancel(reservation_id)
        if cancelled:
            logger.info(f"Reservation {reservation_id} soft-cancelled")
        return cancelled

    async def delete_reservation(self, reservation_id: int) -> bool:
        deleted = await self.repository.delete(reservation_id)
        if deleted:
            logger.info(f"Reservation {reservation_id} deleted")
        return deleted

    # ==================== QUERIES ====================
    async def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        return await self.repository.find_by_id(reservation_id)

    async def get_all_reservations(self) -> List[Reservation]:
        return await self.repository.find_all()

    async def get_reservations_by_user(self, user_id: int) -> List[Reservation]:
        return await self.repository.find_by_user(user_id)

    async def get_daily_reservations(self, day: date) -> List[Reservation]:
        return await self.repository.find_by_check_in_date(day)

    async def get_monthly_reservations(self, year: int, month: int) -> List[Reservation]:
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
        return await self.repository.find_by_check_in_month(year, month)

    async def get_yearly_reservations(self, year: int) -> List[Reservation]:
        return await self.repository.find_by_check_in_year(year)

    async def search_reservations(self, guest: str = "", room: str = "", day: str = "") -> List[Reservation]:
        """Filter all reservations by guest name, room number and date text"""
        reservations = await self.repository.find_all()
        return [r for r in reservations if matches_search(r, guest, room, day)]
