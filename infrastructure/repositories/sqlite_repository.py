"""SQLite Repository Implementation"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple

from domain.entities import Reservation
from domain.enums import NON_BLOCKING_STATUSES, ReservationStatus
from domain.exceptions import RoomConflictError, StoreError
from domain.repositories import ReservationRepository
from domain.value_objects import DateRange

logger = logging.getLogger(__name__)

BASE_COLUMNS = (
    "id, user_id, guest_name, room_number, room_type, check_in, check_out, "
    "phone_number, status, total_price, created_at"
)

# Same half-open predicate as DateRange.overlaps, with ISO dates compared as text
_OVERLAP_SQL = "NOT (check_out <= ? OR check_in >= ?)"

_NON_BLOCKING = tuple(sorted(s.value for s in NON_BLOCKING_STATUSES))
_NOT_RELEASED_SQL = f"status NOT IN ({', '.join('?' * len(_NON_BLOCKING))})"


class SQLiteReservationRepository(ReservationRepository):
    """ReservationRepository backed by a SQLite file.

    Every write that places a reservation on a room opens a
    BEGIN IMMEDIATE transaction, which takes the database write lock before
    the overlap re-check, so check and write cannot interleave with another
    writer in this or any other process. Blocking sqlite3 calls run in
    worker threads.
    """

    def __init__(self, db_url: str, timeout: float = 30.0):
        # Format: sqlite:///path
        if db_url.startswith("sqlite:///"):
            self.db_path = db_url.replace("sqlite:///", "", 1)
        else:
            self.db_path = db_url
        self.timeout = timeout

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"SQLiteReservationRepository using database at {self.db_path}")

    def _conn(self) -> sqlite3.Connection:
        try:
            # Autocommit mode; transactions are opened explicitly
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
            conn.row_factory = sqlite3.Row
            return conn
        except sqlite3.Error as e:
            logger.error(f"Database connection error: {e}")
            raise StoreError(f"Cannot connect to reservation database: {e}") from e

    # ------------------------------------
    # Lifecycle
    # ------------------------------------
    def init(self) -> None:
        """Create the reservations table and its indexes"""
        conn = self._conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reservations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    guest_name TEXT NOT NULL,
                    room_number INTEGER NOT NULL,
                    room_type TEXT NOT NULL,
                    check_in TEXT NOT NULL,
                    check_out TEXT NOT NULL,
                    phone_number TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'Pending',
                    total_price TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    CHECK (check_in < check_out)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_res_type_dates "
                "ON reservations (room_type, check_in, check_out)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_res_room_dates "
                "ON reservations (room_number, check_in, check_out)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_res_user ON reservations (user_id)")
        except sqlite3.Error as e:
            logger.error(f"SQLite error while creating tables: {e}")
            raise StoreError(f"Cannot initialise reservation tables: {e}") from e
        finally:
            conn.close()

    # ------------------------------------
    # Row mapping
    # ------------------------------------
    @staticmethod
    def _map(row: sqlite3.Row) -> Reservation:
        return Reservation(
            reservation_id=row["id"],
            user_id=row["user_id"],
            guest_name=row["guest_name"],
            room_number=row["room_number"],
            room_type=row["room_type"],
            date_range=DateRange(
                check_in=date.fromisoformat(row["check_in"]),
                check_out=date.fromisoformat(row["check_out"]),
            ),
            phone_number=row["phone_number"],
            status=ReservationStatus(row["status"]),
            total_price=Decimal(row["total_price"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _params(r: Reservation) -> Tuple[Any, ...]:
        return (
            r.user_id,
            r.guest_name,
            r.room_number,
            r.room_type,
            r.check_in.isoformat(),
            r.check_out.isoformat(),
            r.phone_number,
            r.status.value,
            str(r.total_price),
            r.created_at.isoformat(),
        )

    @staticmethod
    def _assert_room_free(
        conn: sqlite3.Connection,
        room_number: int,
        date_range: DateRange,
        exclude_id: Optional[int],
    ) -> None:
        row = conn.execute(
            f"SELECT COUNT(*) FROM reservations WHERE room_number = ? AND id IS NOT ? "
            f"AND {_NOT_RELEASED_SQL} AND {_OVERLAP_SQL}",
            (
                room_number,
                exclude_id,
                *_NON_BLOCKING,
                date_range.check_in.isoformat(),
                date_range.check_out.isoformat(),
            ),
        ).fetchone()
        if row[0]:
            raise RoomConflictError(room_number)

    def _write(self, operation: str, work):
        """Run work(conn) inside an immediate transaction"""
        conn = self._conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                result = work(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            return result
        except RoomConflictError:
            logger.warning(f"Room conflict rejected in {operation}")
            raise
        except sqlite3.Error as e:
            logger.error(f"SQLite error in {operation}: {e}")
            raise StoreError(f"{operation} failed: {e}") from e
        finally:
            conn.close()

    def _read(self, operation: str, sql: str, params: Tuple[Any, ...] = ()) -> List[sqlite3.Row]:
        conn = self._conn()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"SQLite error in {operation}: {e}")
            raise StoreError(f"{operation} failed: {e}") from e
        finally:
            conn.close()

    # ------------------------------------
    # Synchronous implementations
    # ------------------------------------
    def _booked_room_numbers(
        self, room_type: str, date_range: DateRange, exclude_id: Optional[int]
    ) -> Set[int]:
        rows = self._read(
            "booked_room_numbers",
            f"SELECT DISTINCT room_number FROM reservations WHERE room_type = ? AND id IS NOT ? "
            f"AND {_NOT_RELEASED_SQL} AND {_OVERLAP_SQL}",
            (
                room_type,
                exclude_id,
                *_NON_BLOCKING,
                date_range.check_in.isoformat(),
                date_range.check_out.isoformat(),
            ),
        )
        return {row[0] for row in rows}

    def _insert(self, reservation: Reservation) -> Reservation:
        def work(conn: sqlite3.Connection) -> int:
            if reservation.blocks_room():
                self._assert_room_free(conn, reservation.room_number, reservation.date_range, None)
            cur = conn.execute(
                "INSERT INTO reservations (user_id, guest_name, room_number, room_type, "
                "check_in, check_out, phone_number, status, total_price, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._params(reservation),
            )
            return cur.lastrowid

        new_id = self._write("insert", work)
        logger.info(f"Inserted reservation ID = {new_id}")
        return reservation.model_copy(update={"reservation_id": new_id}, deep=True)

    def _update_full(self, reservation: Reservation, expected_status: Optional[ReservationStatus]) -> bool:
        def work(conn: sqlite3.Connection) -> bool:
            if expected_status is not None:
                row = conn.execute(
                    "SELECT status FROM reservations WHERE id = ?", (reservation.reservation_id,)
                ).fetchone()
                if row is None or row["status"] != expected_status.value:
                    return False
            if reservation.blocks_room():
                self._assert_room_free(
                    conn, reservation.room_number, reservation.date_range, reservation.reservation_id
                )
            cur = conn.execute(
                "UPDATE reservations SET user_id = ?, guest_name = ?, room_number = ?, "
                "room_type = ?, check_in = ?, check_out = ?, phone_number = ?, status = ?, "
                "total_price = ? WHERE id = ?",
                self._params(reservation)[:-1] + (reservation.reservation_id,),
            )
            return cur.rowcount > 0

        return self._write("update_full", work)

    def _update_status(
        self, reservation_id: int, expected_status: ReservationStatus, new_status: ReservationStatus
    ) -> bool:
        def work(conn: sqlite3.Connection) -> bool:
            cur = conn.execute(
                "UPDATE reservations SET status = ? WHERE id = ? AND status = ?",
                (new_status.value, reservation_id, expected_status.value),
            )
            return cur.rowcount > 0

        return self._write("update_status", work)

    def _update_dates_only(self, reservation_id: int, check_in: date, check_out: date) -> bool:
        new_range = DateRange(check_in=check_in, check_out=check_out)

        def work(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                "SELECT room_number, status FROM reservations WHERE id = ?", (reservation_id,)
            ).fetchone()
            if row is None:
                return False
            if row["status"] not in _NON_BLOCKING:
                self._assert_room_free(conn, row["room_number"], new_range, reservation_id)
            cur = conn.execute(
                "UPDATE reservations SET check_in = ?, check_out = ? WHERE id = ?",
                (check_in.isoformat(), check_out.isoformat(), reservation_id),
            )
            return cur.rowcount > 0

        return self._write("update_dates_only", work)

    def _delete(self, reservation_id: int) -> bool:
        def work(conn: sqlite3.Connection) -> bool:
            return conn.execute("DELETE FROM reservations WHERE id = ?", (reservation_id,)).rowcount > 0

        deleted = self._write("delete", work)
        if not deleted:
            logger.warning(f"No reservation found to delete: id={reservation_id}")
        return deleted

    def _soft_cancel(self, reservation_id: int) -> bool:
        def work(conn: sqlite3.Connection) -> bool:
            cur = conn.execute(
                "UPDATE reservations SET status = ? WHERE id = ?",
                (ReservationStatus.CANCELLED.value, reservation_id),
            )
            return cur.rowcount > 0

        return self._write("soft_cancel", work)

    def _select(self, operation: str, where: str = "", params: Tuple[Any, ...] = ()) -> List[Reservation]:
        sql = f"SELECT {BASE_COLUMNS} FROM reservations"
        if where:
            sql += f" WHERE {where}"
        sql += " ORDER BY id DESC"
        return [self._map(row) for row in self._read(operation, sql, params)]

    # ------------------------------------
    # ReservationRepository
    # ------------------------------------
    async def booked_room_numbers(
        self,
        room_type: str,
        date_range: DateRange,
        exclude_reservation_id: Optional[int] = None
    ) -> Set[int]:
        return await asyncio.to_thread(
            self._booked_room_numbers, room_type, date_range, exclude_reservation_id
        )

    async def insert(self, reservation: Reservation) -> Reservation:
        return await asyncio.to_thread(self._insert, reservation)

    async def update_full(
        self,
        reservation: Reservation,
        expected_status: Optional[ReservationStatus] = None
    ) -> bool:
        return await asyncio.to_thread(self._update_full, reservation, expected_status)

    async def update_status(
        self,
        reservation_id: int,
        expected_status: ReservationStatus,
        new_status: ReservationStatus
    ) -> bool:
        return await asyncio.to_thread(self._update_status, reservation_id, expected_status, new_status)

    async def update_dates_only(self, reservation_id: int, check_in: date, check_out: date) -> bool:
        return await asyncio.to_thread(self._update_dates_only, reservation_id, check_in, check_out)

    async def delete(self, reservation_id: int) -> bool:
        return await asyncio.to_thread(self._delete, reservation_id)

    async def soft_cancel(self, reservation_id: int) -> bool:
        return await asyncio.to_thread(self._soft_cancel, reservation_id)

    async def find_by_id(self, reservation_id: int) -> Optional[Reservation]:
        found = await asyncio.to_thread(self._select, "find_by_id", "id = ?", (reservation_id,))
        return found[0] if found else None

    async def find_all(self) -> List[Reservation]:
        return await asyncio.to_thread(self._select, "find_all")

    async def find_by_user(self, user_id: int) -> List[Reservation]:
        return await asyncio.to_thread(self._select, "find_by_user", "user_id = ?", (user_id,))

    async def find_by_check_in_date(self, check_in: date) -> List[Reservation]:
        return await asyncio.to_thread(
            self._select, "find_by_check_in_date", "check_in = ?", (check_in.isoformat(),)
        )

    async def find_by_check_in_month(self, year: int, month: int) -> List[Reservation]:
        return await asyncio.to_thread(
            self._select,
            "find_by_check_in_month",
            "strftime('%Y', check_in) = ? AND strftime('%m', check_in) = ?",
            (f"{year:04d}", f"{month:02d}"),
        )

    async def find_by_check_in_year(self, year: int) -> List[Reservation]:
        return await asyncio.to_thread(
            self._select, "find_by_check_in_year", "strftime('%Y', check_in) = ?", (f"{year:04d}",)
        )
