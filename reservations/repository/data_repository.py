"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional, Sequence
from uuid import uuid4

from reservations.domain.constraints import overlapping_periods
from reservations.domain.errors import ConflictError, StorageError
from reservations.domain.models import (
    ClassPeriod,
    EventKind,
    Reservation,
    ReservationEvent,
    ResourceType,
    Shift,
)
from reservations.utils.config import Settings, get_settings
from reservations.utils.logger import get_logger


logger = get_logger(__name__)


_RESERVATION_COLUMNS = """
    r.id,
    r.resource_type,
    r.resource_instance_id,
    r.date,
    r.shift,
    r.periods,
    r.requester,
    r.group_label,
    r.attributes,
    r.notes,
    r.created_at,
    r.created_by
"""


class DataRepository:
    """Encapsulates SQLite access so the reservation service stays storage-agnostic.

    Every claimed period is stored as its own row in ``ReservationSlots`` under
    a unique key, and inserts run inside ``BEGIN IMMEDIATE`` so the conflict
    lookup and the insert share one database write lock across processes.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            connection = sqlite3.connect(
                self._db_path,
                timeout=self._settings.sqlite_busy_timeout_seconds,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open database: {exc}") from exc
        try:
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA foreign_keys = ON;")
            yield connection
        finally:
            connection.close()

    @contextmanager
    def _write_transaction(self, conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        conn.execute("BEGIN IMMEDIATE;")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise
        conn.execute("COMMIT;")

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS Reservations (
                        id TEXT PRIMARY KEY,
                        resource_type TEXT NOT NULL,
                        resource_instance_id TEXT NOT NULL,
                        date TEXT NOT NULL,
                        shift TEXT NOT NULL,
                        periods TEXT NOT NULL,
                        requester TEXT NOT NULL CHECK (length(trim(requester)) > 0),
                        group_label TEXT NOT NULL CHECK (length(trim(group_label)) > 0),
                        attributes TEXT NOT NULL DEFAULT '{}',
                        notes TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL,
                        created_by TEXT
                    );

                    CREATE TABLE IF NOT EXISTS ReservationSlots (
                        reservation_id TEXT NOT NULL,
                        resource_type TEXT NOT NULL,
                        resource_instance_id TEXT NOT NULL,
                        date TEXT NOT NULL,
                        shift TEXT NOT NULL,
                        period TEXT NOT NULL,
                        UNIQUE (resource_type, resource_instance_id, date, shift, period),
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id) ON DELETE CASCADE
                    );

                    CREATE TABLE IF NOT EXISTS ReservationAuditLog (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        reservation_id TEXT NOT NULL,
                        resource_type TEXT NOT NULL,
                        action TEXT NOT NULL CHECK (action IN ('CREATED', 'CANCELLED')),
                        actor TEXT,
                        recorded_at TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_reservations_type_date
                    ON Reservations(resource_type, date, created_at);

                    CREATE INDEX IF NOT EXISTS idx_slots_reservation
                    ON ReservationSlots(reservation_id);
                    """
                )
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"Database initialization failed: {exc}") from exc

    def insert_reservation(self, reservation: Reservation) -> None:
        """Atomically check for overlapping slots and persist the reservation.

        Raises ``ConflictError`` with the earliest colliding reservation when
        any claimed period is already taken.
        """
        try:
            with self._connect() as conn, self._write_transaction(conn):
                conflict = self._find_conflict(conn, reservation)
                if conflict is not None:
                    raise conflict
                conn.execute(
                    """
                    INSERT INTO Reservations (
                        id,
                        resource_type,
                        resource_instance_id,
                        date,
                        shift,
                        periods,
                        requester,
                        group_label,
                        attributes,
                        notes,
                        created_at,
                        created_by
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        reservation.id,
                        reservation.resource_type.value,
                        reservation.resource_instance_id,
                        reservation.date.isoformat(),
                        reservation.shift.value,
                        json.dumps([period.value for period in reservation.periods]),
                        reservation.requester,
                        reservation.group_label,
                        json.dumps(reservation.attributes),
                        reservation.notes,
                        reservation.created_at.isoformat(),
                        reservation.created_by,
                    ),
                )
                conn.executemany(
                    """
                    INSERT INTO ReservationSlots (
                        reservation_id,
                        resource_type,
                        resource_instance_id,
                        date,
                        shift,
                        period
                    )
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    [
                        (
                            reservation.id,
                            reservation.resource_type.value,
                            reservation.resource_instance_id,
                            reservation.date.isoformat(),
                            reservation.shift.value,
                            period.value,
                        )
                        for period in reservation.periods
                    ],
                )
                self._append_audit(
                    conn,
                    reservation_id=reservation.id,
                    resource_type=reservation.resource_type,
                    action="CREATED",
                    actor=reservation.created_by,
                )
        except sqlite3.IntegrityError as exc:
            # Only reachable if a writer bypassed the immediate transaction.
            try:
                conflict = self._find_conflict_standalone(reservation)
            except sqlite3.Error as lookup_exc:
                raise StorageError(f"Conflict lookup failed: {lookup_exc}") from lookup_exc
            if conflict is not None:
                raise conflict from exc
            raise StorageError(f"Reservation insert rejected: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Reservation insert failed: {exc}") from exc

    def _find_conflict(
        self,
        conn: sqlite3.Connection,
        reservation: Reservation,
    ) -> Optional[ConflictError]:
        placeholders = ",".join("?" for _ in reservation.periods)
        row = conn.execute(
            f"""
            SELECT {_RESERVATION_COLUMNS}
            FROM Reservations AS r
            WHERE r.id IN (
                SELECT s.reservation_id
                FROM ReservationSlots AS s
                WHERE s.resource_type = ?
                  AND s.resource_instance_id = ?
                  AND s.date = ?
                  AND s.shift = ?
                  AND s.period IN ({placeholders})
            )
            ORDER BY r.created_at ASC, r.rowid ASC
            LIMIT 1;
            """,
            (
                reservation.resource_type.value,
                reservation.resource_instance_id,
                reservation.date.isoformat(),
                reservation.shift.value,
                *(period.value for period in reservation.periods),
            ),
        ).fetchone()
        if row is None:
            return None
        existing = _row_to_reservation(row)
        return ConflictError(
            conflicting=existing,
            overlapping_periods=overlapping_periods(existing.periods, reservation.periods),
        )

    def _find_conflict_standalone(self, reservation: Reservation) -> Optional[ConflictError]:
        with self._connect() as conn:
            return self._find_conflict(conn, reservation)

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_RESERVATION_COLUMNS} FROM Reservations AS r WHERE r.id = ?;",
                    (reservation_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Reservation lookup failed: {exc}") from exc
        if row is None:
            return None
        return _row_to_reservation(row)

    def list_reservations(
        self,
        resource_type: ResourceType,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        shift: Optional[Shift] = None,
        resource_instance_id: Optional[str] = None,
        requester: Optional[str] = None,
    ) -> list[Reservation]:
        """Return live reservations ordered by date, then creation time."""
        clauses = ["r.resource_type = ?"]
        params: list[object] = [resource_type.value]
        if start_date is not None:
            clauses.append("r.date >= ?")
            params.append(start_date.isoformat())
        if end_date is not None:
            clauses.append("r.date <= ?")
            params.append(end_date.isoformat())
        if shift is not None:
            clauses.append("r.shift = ?")
            params.append(shift.value)
        if resource_instance_id is not None:
            clauses.append("r.resource_instance_id = ?")
            params.append(resource_instance_id)
        if requester:
            clauses.append("instr(lower(r.requester), lower(?)) > 0")
            params.append(requester.strip())

        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"""
                    SELECT {_RESERVATION_COLUMNS}
                    FROM Reservations AS r
                    WHERE {" AND ".join(clauses)}
                    ORDER BY r.date ASC, r.created_at ASC, r.rowid ASC;
                    """,
                    tuple(params),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Reservation listing failed: {exc}") from exc
        return [_row_to_reservation(row) for row in rows]

    def delete_reservation(
        self,
        reservation_id: str,
        actor: Optional[str] = None,
    ) -> Optional[Reservation]:
        """Remove a reservation and its slots; ``None`` when it does not exist."""
        try:
            with self._connect() as conn, self._write_transaction(conn):
                row = conn.execute(
                    f"SELECT {_RESERVATION_COLUMNS} FROM Reservations AS r WHERE r.id = ?;",
                    (reservation_id,),
                ).fetchone()
                if row is None:
                    return None
                reservation = _row_to_reservation(row)
                conn.execute(
                    "DELETE FROM ReservationSlots WHERE reservation_id = ?;",
                    (reservation_id,),
                )
                conn.execute(
                    "DELETE FROM Reservations WHERE id = ?;",
                    (reservation_id,),
                )
                self._append_audit(
                    conn,
                    reservation_id=reservation_id,
                    resource_type=reservation.resource_type,
                    action="CANCELLED",
                    actor=actor,
                )
                return reservation
        except sqlite3.Error as exc:
            raise StorageError(f"Reservation cancellation failed: {exc}") from exc

    def _append_audit(
        self,
        conn: sqlite3.Connection,
        *,
        reservation_id: str,
        resource_type: ResourceType,
        action: str,
        actor: Optional[str],
    ) -> None:
        conn.execute(
            """
            INSERT INTO ReservationAuditLog (
                reservation_id,
                resource_type,
                action,
                actor,
                recorded_at
            )
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                reservation_id,
                resource_type.value,
                action,
                actor,
                datetime.now(timezone.utc).isoformat(),
            ),
        )

    def list_audit_entries(self, reservation_id: str) -> list[tuple[str, Optional[str]]]:
        """Return (action, actor) pairs for one reservation, oldest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT action, actor
                    FROM ReservationAuditLog
                    WHERE reservation_id = ?
                    ORDER BY id ASC;
                    """,
                    (reservation_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Audit lookup failed: {exc}") from exc
        return [(str(row["action"]), row["actor"]) for row in rows]

    def latest_audit_id(self) -> int:
        """Highest audit row id so far; 0 for an empty log."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT COALESCE(MAX(id), 0) AS last_id FROM ReservationAuditLog;"
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Audit lookup failed: {exc}") from exc
        return int(row["last_id"])

    def list_events_after(
        self,
        resource_type: ResourceType,
        after_id: int,
        limit: int = 100,
    ) -> list[tuple[int, ReservationEvent]]:
        """Changes for one type recorded after ``after_id``, as (audit id, event) pairs.

        Writers commit one at a time under ``BEGIN IMMEDIATE``, so audit ids grow
        in commit order and a reader never sees a lower id appear later. CREATED
        events carry the reservation while it is still live.
        """
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"""
                    SELECT
                        a.id AS audit_id,
                        a.reservation_id AS audit_reservation_id,
                        a.action,
                        a.recorded_at,
                        {_RESERVATION_COLUMNS}
                    FROM ReservationAuditLog AS a
                    LEFT JOIN Reservations AS r
                      ON r.id = a.reservation_id AND a.action = 'CREATED'
                    WHERE a.resource_type = ? AND a.id > ?
                    ORDER BY a.id ASC
                    LIMIT ?;
                    """,
                    (resource_type.value, after_id, limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Change feed lookup failed: {exc}") from exc

        events = []
        for row in rows:
            reservation = _row_to_reservation(row) if row["id"] is not None else None
            events.append(
                (
                    int(row["audit_id"]),
                    ReservationEvent(
                        kind=EventKind(row["action"]),
                        resource_type=resource_type,
                        reservation_id=str(row["audit_reservation_id"]),
                        occurred_at=datetime.fromisoformat(row["recorded_at"]),
                        reservation=reservation,
                    ),
                )
            )
        return events

    def count_reservations(self) -> int:
        return self._count("Reservations")

    def count_slots(self) -> int:
        return self._count("ReservationSlots")

    def _count(self, table: str) -> int:
        try:
            with self._connect() as conn:
                row = conn.execute(f"SELECT COUNT(*) AS count FROM {table};").fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Counting {table} failed: {exc}") from exc
        return int(row["count"])

    def seed_demo_reservations_if_empty(self, today: Optional[date] = None) -> int:
        """Insert a small deterministic demo schedule into an empty database."""
        if self.count_reservations() > 0:
            logger.info("Reservations already present; skipping demo seed")
            return 0

        anchor = today or datetime.now(timezone.utc).date()
        monday = anchor - timedelta(days=anchor.weekday())
        demo_rows: Sequence[tuple] = (
            (ResourceType.STATION_POOL, "Station 1", 0, Shift.MORNING, ("1st", "2nd"), "T. Silva", "7A", {"subject": "Mathematics"}),
            (ResourceType.STATION_POOL, "Station 3", 0, Shift.AFTERNOON, ("4th",), "R. Costa", "9B", {"subject": "Geography"}),
            (ResourceType.SCIENCE_LAB, "SCIENCE_LAB", 1, Shift.MORNING, ("3rd", "4th"), "T. Alves", "8A", {"subject": "Science", "experiment_name": "Density columns", "needs_technician": True}),
            (ResourceType.MAKER_LAB, "MAKER_LAB", 2, Shift.AFTERNOON, ("1st", "2nd", "3rd"), "M. Souza", "6C", {"subject": "Technology", "project_name": "Line follower", "equipment_used": ["Robotics Kits", "Electronics Bench"]}),
            (ResourceType.KITCHEN, "KITCHEN", 3, Shift.MORNING, ("2nd",), "A. Lima", "5A", {"subject": "Science", "project_name": "Bread fermentation", "ingredients_requested": "flour, yeast"}),
            (ResourceType.LIBRARY_ROOM, "LIBRARY_ROOM", 3, Shift.AFTERNOON, ("5th",), "C. Rocha", "4B", {"subject": "Portuguese", "activity_type": "Storytelling", "needs_media_projector": False}),
            (ResourceType.AUDITORIUM, "AUDITORIUM", 4, Shift.MORNING, ("1st", "2nd"), "Coordination", "All 9th grades", {"subject": "Career guidance", "event_name": "Career day", "event_type": "Lecture", "needs_sound": True, "needs_projector": True, "needs_air_conditioning": True}),
        )
        seeded = 0
        created_at = datetime.now(timezone.utc)
        for resource_type, instance_id, offset, shift, periods, requester, group_label, attributes in demo_rows:
            self.insert_reservation(
                Reservation(
                    id=uuid4().hex,
                    resource_type=resource_type,
                    resource_instance_id=instance_id,
                    date=monday + timedelta(days=offset),
                    shift=shift,
                    periods=tuple(ClassPeriod(label) for label in periods),
                    requester=requester,
                    group_label=group_label,
                    attributes=attributes,
                    notes="",
                    created_at=created_at + timedelta(microseconds=seeded),
                    created_by="demo-seed",
                )
            )
            seeded += 1
        logger.info("Demo seed inserted %s reservations", seeded)
        return seeded


def _row_to_reservation(row: sqlite3.Row) -> Reservation:
    return Reservation(
        id=str(row["id"]),
        resource_type=ResourceType(row["resource_type"]),
        resource_instance_id=str(row["resource_instance_id"]),
        date=date.fromisoformat(row["date"]),
        shift=Shift(row["shift"]),
        periods=tuple(ClassPeriod(label) for label in json.loads(row["periods"])),
        requester=str(row["requester"]),
        group_label=str(row["group_label"]),
        attributes=json.loads(row["attributes"]),
        notes=str(row["notes"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        created_by=row["created_by"],
    )
