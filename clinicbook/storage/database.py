"""SQLite Storage - Durable AppointmentStore.

Provides a lightweight wrapper around SQLite for storing appointment
documents. Queryable columns sit next to the JSON document, and a
partial unique index rejects a second live appointment for the same
doctor and start time at commit.

Supports optional connection pooling for high-throughput scenarios.
"""

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Callable, Collection
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from functools import partial
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Iterator, TypeVar

from clinicbook.config import DATABASE_PATH
from clinicbook.models import LIVE_STATUSES, Appointment, AppointmentStatus
from clinicbook.storage.base import DependencyFailureError, SlotTakenError
from clinicbook.storage.serializers import (
    dump_appointment,
    format_timestamp,
    load_appointment,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMORY = ":memory:"

_LIVE_SQL = ", ".join(f"'{s.value}'" for s in sorted(LIVE_STATUSES, key=lambda s: s.value))

# Shared executor for running sync SQLite calls off the event loop
_executor: ThreadPoolExecutor | None = None


def get_executor() -> ThreadPoolExecutor:
    """Get or create the shared thread pool executor."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="clinicbook-db")
    return _executor


def shutdown_executor() -> None:
    """Shutdown the thread pool executor.

    Call this during application shutdown to clean up resources.
    """
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=True)
        _executor = None


class ConnectionPool:
    """Thread-safe SQLite connection pool.

    Maintains a pool of reusable connections for high-throughput scenarios.
    Connections are returned to the pool after use instead of being closed.
    """

    def __init__(self, db_path: str | Path, pool_size: int = 5):
        """Initialize connection pool.

        Args:
            db_path: Path to SQLite database
            pool_size: Maximum number of connections to maintain
        """
        self._db_path = db_path
        self._pool_size = pool_size
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self._lock = threading.Lock()
        self._total_connections = 0

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection."""
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a connection from the pool.

        Creates a new connection if pool is empty and under limit,
        otherwise blocks until one is returned.

        Yields:
            Database connection (returned to pool on exit)
        """
        conn = None
        try:
            try:
                conn = self._pool.get_nowait()
            except Empty:
                with self._lock:
                    if self._total_connections < self._pool_size:
                        conn = self._create_connection()
                        self._total_connections += 1

                if conn is None:
                    conn = self._pool.get()

            yield conn

        finally:
            if conn is not None:
                try:
                    self._pool.put_nowait(conn)
                except Full:
                    # Pool was reset while this connection was out
                    conn.close()
                    with self._lock:
                        self._total_connections -= 1

    def close_all(self) -> None:
        """Close all connections in the pool."""
        while True:
            try:
                conn = self._pool.get_nowait()
                conn.close()
            except Empty:
                break
        with self._lock:
            self._total_connections = 0


class SQLiteAppointmentStore:
    """SQLite-backed AppointmentStore.

    Supports two connection modes:
    - Default: Creates new connection per operation (simple, safe)
    - Pooled: Reuses connections from pool (high-throughput)

    ":memory:" always uses a single pooled connection so every
    operation sees the same database.

    Example:
        store = SQLiteAppointmentStore()
        store = SQLiteAppointmentStore(use_pool=True, pool_size=10)
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        use_pool: bool = False,
        pool_size: int = 5,
    ):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file (default: outputs/clinicbook.db)
            use_pool: Enable connection pooling for high-throughput scenarios
            pool_size: Maximum connections in pool (only used if use_pool=True)
        """
        if db_path is None:
            db_path = DATABASE_PATH

        self._pool: ConnectionPool | None = None
        if str(db_path) == MEMORY:
            self.db_path: Path | str = MEMORY
            self._pool = ConnectionPool(MEMORY, pool_size=1)
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            if use_pool:
                self._pool = ConnectionPool(self.db_path, pool_size)

        self._init_db()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection.

        Uses pool if enabled, otherwise creates new connection.
        """
        if self._pool is not None:
            with self._pool.get_connection() as conn:
                yield conn
        else:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            try:
                yield conn
            finally:
                conn.close()

    def close(self) -> None:
        """Close database connections.

        For pooled mode, closes all connections in pool.
        """
        if self._pool is not None:
            self._pool.close_all()

    def _init_db(self) -> None:
        """Initialize database tables."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS appointments (
                    appointment_id TEXT PRIMARY KEY,
                    patient_id TEXT NOT NULL,
                    doctor_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    date_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_appointments_doctor_time
                ON appointments(doctor_id, date_time)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_appointments_patient
                ON appointments(patient_id)
            """)
            conn.execute(f"""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_live_doctor_slot
                ON appointments(doctor_id, date_time)
                WHERE status IN ({_LIVE_SQL})
            """)
            conn.commit()

    # =========================================================================
    # Sync operations (run in the executor)
    # =========================================================================

    def _row_values(self, appointment: Appointment) -> tuple[Any, ...]:
        return (
            appointment.patient_id,
            appointment.doctor_id,
            appointment.status.value,
            format_timestamp(appointment.date_time),
            format_timestamp(appointment.end_time),
            format_timestamp(appointment.updated_at),
            dump_appointment(appointment),
            appointment.appointment_id,
        )

    def _write(self, sql: str, appointment: Appointment) -> int:
        with self._get_connection() as conn:
            try:
                cursor = conn.execute(sql, self._row_values(appointment))
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                if "doctor_id" in str(e):
                    raise SlotTakenError(appointment.doctor_id, appointment.date_time) from e
                raise DependencyFailureError.for_store(
                    f"Appointment store rejected the write: {e}"
                ) from e
            return cursor.rowcount

    def create_sync(self, appointment: Appointment) -> None:
        self._write(
            """INSERT INTO appointments
               (patient_id, doctor_id, status, date_time, end_time,
                updated_at, document, appointment_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            appointment,
        )

    def save_sync(self, appointment: Appointment) -> None:
        updated = self._write(
            """UPDATE appointments
               SET patient_id = ?, doctor_id = ?, status = ?, date_time = ?,
                   end_time = ?, updated_at = ?, document = ?
               WHERE appointment_id = ?""",
            appointment,
        )
        if updated == 0:
            raise DependencyFailureError.for_store(
                f"Appointment {appointment.appointment_id} does not exist in the store"
            )

    def find_by_id_sync(self, appointment_id: str) -> Appointment | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document FROM appointments WHERE appointment_id = ?",
                (appointment_id,),
            ).fetchone()
        if row:
            return load_appointment(row["document"])
        return None

    def find_conflicting_sync(
        self, doctor_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""SELECT document FROM appointments
                    WHERE doctor_id = ?
                      AND status IN ({_LIVE_SQL})
                      AND date_time < ?
                      AND end_time > ?
                    ORDER BY date_time""",
                (doctor_id, format_timestamp(end), format_timestamp(start)),
            ).fetchall()
        return [load_appointment(row["document"]) for row in rows]

    def list_appointments_sync(
        self,
        doctor_id: str | None = None,
        patient_id: str | None = None,
        statuses: Collection[AppointmentStatus] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Appointment]:
        query = "SELECT document FROM appointments WHERE 1=1"
        params: list = []

        if doctor_id:
            query += " AND doctor_id = ?"
            params.append(doctor_id)
        if patient_id:
            query += " AND patient_id = ?"
            params.append(patient_id)
        if statuses is not None:
            if not statuses:
                return []
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(AppointmentStatus(s).value for s in statuses)
        if start:
            query += " AND date_time >= ?"
            params.append(format_timestamp(start))
        if end:
            query += " AND date_time < ?"
            params.append(format_timestamp(end))

        query += " ORDER BY date_time"
        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [load_appointment(row["document"]) for row in rows]

    # =========================================================================
    # AppointmentStore protocol
    # =========================================================================

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(get_executor(), partial(fn, *args, **kwargs))
        except sqlite3.Error as e:
            logger.error(f"SQLite error in {fn.__name__}: {e}")
            raise DependencyFailureError.for_store("Appointment store is unavailable") from e

    async def find_conflicting(
        self, doctor_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        return await self._run(self.find_conflicting_sync, doctor_id, start, end)

    async def create(self, appointment: Appointment) -> None:
        await self._run(self.create_sync, appointment)

    async def save(self, appointment: Appointment) -> None:
        await self._run(self.save_sync, appointment)

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        return await self._run(self.find_by_id_sync, appointment_id)

    async def list_appointments(
        self,
        *,
        doctor_id: str | None = None,
        patient_id: str | None = None,
        statuses: Collection[AppointmentStatus] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Appointment]:
        return await self._run(
            self.list_appointments_sync,
            doctor_id=doctor_id,
            patient_id=patient_id,
            statuses=statuses,
            start=start,
            end=end,
        )
