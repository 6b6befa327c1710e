#!/usr/bin/env python3
"""
Concurrency tests: no room is ever held by two overlapping active stays,
and no status change is silently overwritten
"""

import asyncio
import pytest
from concurrent.futures import ThreadPoolExecutor
from collections import Counter
from datetime import date, timedelta
from decimal import Decimal

from domain.catalog import RoomCatalog
from domain.entities import Reservation
from domain.enums import BookingOutcome, ReservationStatus
from domain.exceptions import RoomConflictError
from domain.value_objects import DateRange, RoomTypeRange
from application.services import ReservationService, RoomTypeLocks
from infrastructure.repositories.in_memory_repositories import InMemoryReservationRepository
from infrastructure.repositories.sqlite_repository import SQLiteReservationRepository


JUNE_1 = date(2024, 6, 1)
JUNE_3 = date(2024, 6, 3)


class SlowReadRepository(InMemoryReservationRepository):
    """Yields to the event loop after every availability read, so callers interleave"""

    async def booked_room_numbers(self, room_type, date_range, exclude_reservation_id=None):
        booked = await super().booked_room_numbers(room_type, date_range, exclude_reservation_id)
        await asyncio.sleep(0.01)
        return booked


class SlowFindMixin:
    """Holds every single-row read for a while before handing it back"""

    find_delay = 0.05

    async def find_by_id(self, reservation_id):
        found = await super().find_by_id(reservation_id)
        await asyncio.sleep(self.find_delay)
        return found


class SlowFindRepository(SlowFindMixin, InMemoryReservationRepository):
    pass


class SlowFindSQLiteRepository(SlowFindMixin, SQLiteReservationRepository):
    pass


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def three_rooms():
    return RoomCatalog([
        RoomTypeRange(name="Standard", start_id=100, end_id=102, nightly_rate=Decimal("3000.00")),
        RoomTypeRange(name="Deluxe", start_id=200, end_id=202, nightly_rate=Decimal("5000.00")),
    ])


@pytest.fixture
def slow_repo():
    return SlowReadRepository()


@pytest.fixture
def sqlite_repo(tmp_path):
    repo = SQLiteReservationRepository(f"sqlite:///{tmp_path / 'hotel.db'}")
    repo.init()
    return repo


@pytest.fixture
def slow_find_repo():
    return SlowFindRepository()


@pytest.fixture
def slow_find_sqlite_repo(tmp_path):
    repo = SlowFindSQLiteRepository(f"sqlite:///{tmp_path / 'hotel.db'}")
    repo.init()
    return repo


async def book(service, room_type="Standard", check_in=JUNE_1, check_out=JUNE_3, guest_name="Guest"):
    return await service.create_reservation(
        user_id=1,
        guest_name=guest_name,
        phone_number="0771234567",
        room_type=room_type,
        check_in=check_in,
        check_out=check_out
    )


def assert_no_double_booking(reservations):
    active = [r for r in reservations if r.blocks_room()]
    for i, a in enumerate(active):
        for b in active[i + 1:]:
            if a.room_number == b.room_number:
                assert not a.date_range.overlaps(b.date_range), (
                    f"Room {a.room_number} double booked by reservations "
                    f"{a.reservation_id} and {b.reservation_id}"
                )


async def soft_cancel_after(service, reservation_id, delay):
    await asyncio.sleep(delay)
    return await service.soft_cancel_reservation(reservation_id)


def staggered_stays(count):
    """Overlapping stays of 1-3 nights starting on consecutive days"""
    return [
        (JUNE_1 + timedelta(days=i % 5), JUNE_1 + timedelta(days=i % 5 + 1 + i % 3))
        for i in range(count)
    ]


# ============================================================================
# SINGLE-PROCESS CONCURRENCY
# ============================================================================

class TestConcurrentBookingInMemory:
    """asyncio.gather against the in-memory store"""

    @pytest.mark.concurrency
    async def test_last_standard_room(self, slow_repo):
        """Two requests race for the last free Standard room"""
        for room in range(100, 150):
            await slow_repo.insert(Reservation.create(
                user_id=1,
                guest_name=f"Guest {room}",
                phone_number="0771234567",
                room_number=room,
                room_type="Standard",
                date_range=DateRange(check_in=JUNE_1, check_out=JUNE_3),
                total_price=Decimal("6000")
            ))
        service = ReservationService(slow_repo)

        results = await asyncio.gather(book(service, guest_name="A"), book(service, guest_name="B"))

        outcomes = Counter(r.outcome for r in results)
        assert outcomes[BookingOutcome.BOOKED] == 1
        assert outcomes[BookingOutcome.BOOKED] + outcomes[BookingOutcome.NO_AVAILABILITY] + outcomes[BookingOutcome.CONFLICT] == 2
        winner = next(r for r in results if r.succeeded)
        assert winner.reservation.room_number == 150
        assert_no_double_booking(await slow_repo.find_all())

    @pytest.mark.concurrency
    async def test_room_type_lock_serializes(self, slow_repo, three_rooms):
        """One shared service: allocations of a type queue behind its lock"""
        service = ReservationService(slow_repo, three_rooms)

        results = await asyncio.gather(*(book(service, guest_name=f"G{i}") for i in range(20)))

        outcomes = Counter(r.outcome for r in results)
        assert outcomes[BookingOutcome.BOOKED] == 3
        assert outcomes[BookingOutcome.NO_AVAILABILITY] == 17
        assert sorted(r.reservation.room_number for r in results if r.succeeded) == [100, 101, 102]
        assert_no_double_booking(await slow_repo.find_all())

    @pytest.mark.concurrency
    async def test_store_guard_without_shared_lock(self, slow_repo, three_rooms):
        """Separate lock registries: the store re-check alone prevents double booking"""
        services = [ReservationService(slow_repo, three_rooms, RoomTypeLocks()) for _ in range(20)]

        results = await asyncio.gather(*(book(s, guest_name=f"G{i}") for i, s in enumerate(services)))

        outcomes = Counter(r.outcome for r in results)
        assert outcomes[BookingOutcome.CONFLICT] >= 1
        assert 1 <= outcomes[BookingOutcome.BOOKED] <= 3
        assert outcomes[BookingOutcome.STORE_FAILURE] == 0
        stored = await slow_repo.find_all()
        assert len(stored) == outcomes[BookingOutcome.BOOKED]
        assert_no_double_booking(stored)

    @pytest.mark.concurrency
    async def test_staggered_intervals(self, slow_repo, three_rooms):
        services = [ReservationService(slow_repo, three_rooms, RoomTypeLocks()) for _ in range(4)]
        stays = staggered_stays(40)

        results = await asyncio.gather(*(
            book(services[i % 4], check_in=ci, check_out=co, guest_name=f"G{i}")
            for i, (ci, co) in enumerate(stays)
        ))

        assert any(r.succeeded for r in results)
        assert all(r.outcome != BookingOutcome.STORE_FAILURE for r in results)
        assert_no_double_booking(await slow_repo.find_all())

    @pytest.mark.concurrency
    async def test_types_do_not_block_each_other(self, slow_repo, three_rooms):
        service = ReservationService(slow_repo, three_rooms)

        results = await asyncio.gather(
            *(book(service, room_type="Standard") for _ in range(3)),
            *(book(service, room_type="Deluxe") for _ in range(3)),
        )

        assert all(r.succeeded for r in results)
        assert sorted(r.reservation.room_number for r in results) == [100, 101, 102, 200, 201, 202]

    @pytest.mark.concurrency
    async def test_booking_and_date_changes(self, slow_repo, three_rooms):
        service = ReservationService(slow_repo, three_rooms)
        existing = [(await book(service, check_in=JUNE_1 + timedelta(days=2 * i),
                                check_out=JUNE_1 + timedelta(days=2 * i + 2))).reservation
                    for i in range(3)]

        await asyncio.gather(
            *(service.change_dates(r.reservation_id, JUNE_1, date(2024, 6, 7)) for r in existing),
            *(book(service, check_in=date(2024, 6, 2), check_out=date(2024, 6, 4)) for _ in range(3)),
        )

        assert_no_double_booking(await slow_repo.find_all())


class TestConcurrentBookingSQLite:
    """asyncio.gather against the SQLite store"""

    @pytest.mark.concurrency
    @pytest.mark.integration
    async def test_room_type_lock_serializes(self, sqlite_repo, three_rooms):
        service = ReservationService(sqlite_repo, three_rooms)

        results = await asyncio.gather(*(book(service, guest_name=f"G{i}") for i in range(10)))

        outcomes = Counter(r.outcome for r in results)
        assert outcomes[BookingOutcome.BOOKED] == 3
        assert outcomes[BookingOutcome.NO_AVAILABILITY] == 7
        assert_no_double_booking(await sqlite_repo.find_all())

    @pytest.mark.concurrency
    @pytest.mark.integration
    async def test_store_guard_without_shared_lock(self, sqlite_repo, three_rooms):
        services = [ReservationService(sqlite_repo, three_rooms, RoomTypeLocks()) for _ in range(10)]

        results = await asyncio.gather(*(book(s, guest_name=f"G{i}") for i, s in enumerate(services)))

        outcomes = Counter(r.outcome for r in results)
        assert 1 <= outcomes[BookingOutcome.BOOKED] <= 3
        assert outcomes[BookingOutcome.STORE_FAILURE] == 0
        stored = await sqlite_repo.find_all()
        assert len(stored) == outcomes[BookingOutcome.BOOKED]
        assert_no_double_booking(stored)


# ============================================================================
# LIFECYCLE AND EDITS RUNNING AGAINST EACH OTHER
# ============================================================================

class TestConcurrentLifecycle:
    """Status changes, soft cancels and edits of one reservation interleaving"""

    @pytest.mark.concurrency
    @pytest.mark.parametrize("cancel_delay", [0, 0.075])
    async def test_check_in_against_soft_cancel(self, slow_find_repo, cancel_delay):
        """The cancellation lands before or during the check-in's locked read"""
        service = ReservationService(slow_find_repo)
        rid = (await book(service)).reservation.reservation_id

        checked_in, cancelled = await asyncio.gather(
            service.check_in_guest(rid),
            soft_cancel_after(service, rid, cancel_delay),
            return_exceptions=True
        )

        assert cancelled is True
        assert isinstance(checked_in, ValueError)
        assert str(checked_in).startswith("Cannot check in:")
        assert (await slow_find_repo.find_by_id(rid)).status == ReservationStatus.CANCELLED

    @pytest.mark.concurrency
    async def test_transitions_do_not_lose_updates(self, slow_find_repo):
        service = ReservationService(slow_find_repo)
        rid = (await book(service)).reservation.reservation_id
        completed = []

        async def run(action):
            try:
                completed.append((await action(rid)).status)
            except ValueError:
                pass

        await asyncio.gather(
            run(service.confirm_reservation),
            run(service.cancel_reservation),
            run(service.check_in_guest),
            run(service.mark_no_show),
        )

        assert completed
        assert (await slow_find_repo.find_by_id(rid)).status == completed[-1]

    @pytest.mark.concurrency
    async def test_check_in_against_date_change(self, slow_find_repo, three_rooms):
        service = ReservationService(slow_find_repo, three_rooms)
        rid = (await book(service)).reservation.reservation_id

        checked_in, moved = await asyncio.gather(
            service.check_in_guest(rid),
            service.change_dates(rid, JUNE_1, date(2024, 6, 5)),
        )

        assert checked_in.status == ReservationStatus.CHECKED_IN
        assert moved.outcome == BookingOutcome.BOOKED
        stored = await slow_find_repo.find_by_id(rid)
        assert stored.status == ReservationStatus.CHECKED_IN
        assert stored.check_out == date(2024, 6, 5)

    @pytest.mark.concurrency
    @pytest.mark.parametrize("cancel_delay", [0, 0.075])
    async def test_soft_cancel_against_room_move(self, slow_find_repo, three_rooms, cancel_delay):
        """The move needs another room, so the whole row is rewritten"""
        service = ReservationService(slow_find_repo, three_rooms)
        rid = (await book(service, check_in=JUNE_1, check_out=JUNE_3)).reservation.reservation_id
        await book(service, check_in=date(2024, 6, 5), check_out=date(2024, 6, 7))

        moved, cancelled = await asyncio.gather(
            service.change_dates(rid, date(2024, 6, 5), date(2024, 6, 8)),
            soft_cancel_after(service, rid, cancel_delay),
        )

        assert cancelled is True
        assert moved.outcome in (BookingOutcome.BOOKED, BookingOutcome.CONFLICT)
        assert (await slow_find_repo.find_by_id(rid)).status == ReservationStatus.CANCELLED
        assert_no_double_booking(await slow_find_repo.find_all())

    @pytest.mark.concurrency
    async def test_soft_cancel_against_full_update(self, slow_find_repo, three_rooms):
        service = ReservationService(slow_find_repo, three_rooms)
        rid = (await book(service)).reservation.reservation_id

        updated, cancelled = await asyncio.gather(
            service.update_reservation(
                rid, "Kamala Silva", "0771234567", 101, "Standard",
                JUNE_1, JUNE_3, ReservationStatus.CONFIRMED, Decimal("6000")
            ),
            soft_cancel_after(service, rid, 0.075),
            return_exceptions=True
        )

        assert cancelled is True
        assert isinstance(updated, ValueError)
        stored = await slow_find_repo.find_by_id(rid)
        assert stored.status == ReservationStatus.CANCELLED
        assert stored.room_number == 100

    @pytest.mark.concurrency
    async def test_full_update_against_date_change(self, slow_find_repo, three_rooms):
        service = ReservationService(slow_find_repo, three_rooms)
        first = (await book(service)).reservation.reservation_id
        second = (await book(service)).reservation.reservation_id

        results = await asyncio.gather(
            service.change_dates(first, JUNE_1, date(2024, 6, 6)),
            service.update_reservation(
                second, "Kamala Silva", "0771234567", 100, "Standard",
                date(2024, 6, 4), date(2024, 6, 7), ReservationStatus.CONFIRMED, Decimal("9000")
            ),
            return_exceptions=True
        )

        assert all(not isinstance(r, Exception) or isinstance(r, RoomConflictError) for r in results)
        assert_no_double_booking(await slow_find_repo.find_all())

    @pytest.mark.concurrency
    @pytest.mark.integration
    async def test_check_in_against_soft_cancel_sqlite(self, slow_find_sqlite_repo):
        service = ReservationService(slow_find_sqlite_repo)
        rid = (await book(service)).reservation.reservation_id

        checked_in, cancelled = await asyncio.gather(
            service.check_in_guest(rid),
            soft_cancel_after(service, rid, 0.075),
            return_exceptions=True
        )

        assert cancelled is True
        assert isinstance(checked_in, ValueError)
        assert (await slow_find_sqlite_repo.find_by_id(rid)).status == ReservationStatus.CANCELLED


# ============================================================================
# MULTI-THREADED CONCURRENCY
# ============================================================================

class TestConcurrentBookingThreads:
    """Worker threads, each with its own event loop and lock registry, sharing one database file"""

    @staticmethod
    def _book_in_thread(repo, catalog, check_in, check_out, guest_name):
        service = ReservationService(repo, catalog, RoomTypeLocks())
        return asyncio.run(book(service, check_in=check_in, check_out=check_out, guest_name=guest_name))

    @pytest.mark.concurrency
    @pytest.mark.integration
    def test_same_interval(self, sqlite_repo, three_rooms):
        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [
                pool.submit(self._book_in_thread, sqlite_repo, three_rooms, JUNE_1, JUNE_3, f"G{i}")
                for i in range(16)
            ]
            results = [f.result() for f in futures]

        outcomes = Counter(r.outcome for r in results)
        assert 1 <= outcomes[BookingOutcome.BOOKED] <= 3
        assert outcomes[BookingOutcome.STORE_FAILURE] == 0
        stored = asyncio.run(sqlite_repo.find_all())
        assert len(stored) == outcomes[BookingOutcome.BOOKED]
        assert_no_double_booking(stored)

    @pytest.mark.concurrency
    @pytest.mark.integration
    def test_staggered_intervals(self, sqlite_repo, three_rooms):
        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [
                pool.submit(self._book_in_thread, sqlite_repo, three_rooms, ci, co, f"G{i}")
                for i, (ci, co) in enumerate(staggered_stays(24))
            ]
            results = [f.result() for f in futures]

        assert any(r.succeeded for r in results)
        assert all(r.outcome != BookingOutcome.STORE_FAILURE for r in results)
        assert_no_double_booking(asyncio.run(sqlite_repo.find_all()))
