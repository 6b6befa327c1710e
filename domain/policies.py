"""Domain Policies - pure availability, allocation and pricing rules"""
from datetime import date
from decimal import Decimal
from typing import AbstractSet, Optional

from domain.catalog import RoomCatalog
from domain.value_objects import DateRange, RoomTypeRange


def intervals_overlap(a: DateRange, b: DateRange) -> bool:
    """A=[a1,a2) and B=[b1,b2) overlap iff NOT(a2 <= b1 OR a1 >= b2)"""
    return a.overlaps(b)


def first_free_room(room_range: RoomTypeRange, booked: AbstractSet[int]) -> Optional[int]:
    """Lowest room number of the band that is not in the booked set"""
    for room_number in room_range.room_numbers():
        if room_number not in booked:
            return room_number
    return None


def free_room_count(room_range: RoomTypeRange, booked: AbstractSet[int]) -> int:
    """Pool size minus booked rooms of the band, floored at 0"""
    occupied = sum(1 for room_number in booked if room_range.contains(room_number))
    return max(0, room_range.pool_size - occupied)


def nights_between(check_in: date, check_out: date) -> int:
    """Whole nights between two dates; a same-day stay still bills one night"""
    return max(1, (check_out - check_in).days)


def calculate_total(catalog: RoomCatalog, room_type: str, date_range: DateRange) -> Decimal:
    """Nightly rate times night count"""
    rate = catalog.nightly_rate(room_type)
    return rate * nights_between(date_range.check_in, date_range.check_out)


def matches_search(reservation, guest: str = "", room: str = "", day: str = "") -> bool:
    """Front-desk table filter; blank criteria match everything"""
    guest = (guest or "").strip().lower()
    room = (room or "").strip()
    day = (day or "").strip()

    if guest and guest not in reservation.guest_name.lower():
        return False
    if room and room not in str(reservation.room_number):
        return False
    if day and not (
        day in reservation.check_in.isoformat() or day in reservation.check_out.isoformat()
    ):
        return False
    return True
