"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Sequence

from odin.domain.models import (
    Booking,
    BookingStatus,
    ItemStatus,
    Member,
    MemberStatus,
    Resource,
    ResourceKind,
    ScoringPeriod,
    Semester,
    Snapshot,
    Solicitation,
    SolicitationStatus,
    Tag,
    TagTemplate,
    TimeInterval,
)
from odin.utils.config import Settings, get_settings
from odin.utils.logger import get_logger


logger = get_logger(__name__)


class StaleWriteError(RuntimeError):
    """Raised when the state a decision was computed from changed before commit."""


def _to_db_instant(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _from_db_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _split_areas(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(area for area in raw.split(",") if area)


def _row_to_member(row: sqlite3.Row) -> Member:
    return Member(
        member_id=int(row["id"]),
        name=str(row["name"]),
        email=str(row["email"]),
        area=str(row["area"]),
        status=MemberStatus(row["status"]),
        created_at=_from_db_instant(row["created_at"]),
    )


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=int(row["id"]),
        kind=ResourceKind(row["resource_kind"]),
        resource_id=int(row["resource_id"]),
        owner_id=int(row["owner_id"]),
        interval=TimeInterval(
            _from_db_instant(row["starts_at"]),
            _from_db_instant(row["ends_at"]),
        ),
        title=str(row["title"]),
        status=BookingStatus(row["status"]),
        description=str(row["description"] or ""),
    )


def _row_to_template(row: sqlite3.Row) -> TagTemplate:
    return TagTemplate(
        template_id=int(row["id"]),
        name=str(row["name"]),
        base_value=int(row["base_value"]),
        is_scalable=bool(row["is_scalable"]),
        escalation_value=None if row["escalation_value"] is None else int(row["escalation_value"]),
        escalation_streak_days=(
            None if row["escalation_streak_days"] is None else int(row["escalation_streak_days"])
        ),
        description=str(row["description"] or ""),
        areas=_split_areas(row["areas"]),
        period_id=None if row["period_id"] is None else int(row["period_id"]),
    )


def _row_to_tag(row: sqlite3.Row) -> Tag:
    return Tag(
        tag_id=int(row["id"]),
        template_id=int(row["template_id"]),
        target_id=str(row["target_id"]),
        value=int(row["value"]),
        date_performed=_from_db_instant(row["date_performed"]),
        description=str(row["description"] or ""),
        assigner_id=None if row["assigner_id"] is None else int(row["assigner_id"]),
        period_id=None if row["period_id"] is None else int(row["period_id"]),
        semester_id=None if row["semester_id"] is None else int(row["semester_id"]),
        snapshot_semester_id=(
            None if row["snapshot_semester_id"] is None else int(row["snapshot_semester_id"])
        ),
    )


def _row_to_period(row: sqlite3.Row) -> ScoringPeriod:
    return ScoringPeriod(
        period_id=int(row["id"]),
        name=str(row["name"]),
        is_active=bool(row["is_active"]),
        created_at=_from_db_instant(row["created_at"]),
    )


def _row_to_semester(row: sqlite3.Row) -> Semester:
    return Semester(
        semester_id=int(row["id"]),
        name=str(row["name"]),
        starts_on=date.fromisoformat(row["starts_on"]),
        ends_on=date.fromisoformat(row["ends_on"]),
        is_active=bool(row["is_active"]),
    )


def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    return Snapshot(
        semester_id=int(row["semester_id"]),
        semester_name=str(row["semester_name"]),
        target_id=str(row["target_id"]),
        total_points=int(row["total_points"]),
        taken_at=_from_db_instant(row["taken_at"]),
    )


def _row_to_solicitation(row: sqlite3.Row) -> Solicitation:
    return Solicitation(
        solicitation_id=int(row["id"]),
        requester_id=int(row["requester_id"]),
        target_ids=tuple(str(item) for item in json.loads(row["target_ids"])),
        template_ids=tuple(int(item) for item in json.loads(row["template_ids"])),
        date_performed=_from_db_instant(row["date_performed"]),
        description=str(row["description"] or ""),
        is_for_enterprise=bool(row["is_for_enterprise"]),
        status=SolicitationStatus(row["status"]),
        reviewer_notes=str(row["reviewer_notes"] or ""),
    )


class LedgerTransaction:
    """Reads and writes that must see and leave one consistent ledger (semester close and rollback)."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def snapshot_exists(self, semester_id: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM SemesterSnapshots WHERE semester_id = ? LIMIT 1;",
            (semester_id,),
        ).fetchone()
        return row is not None

    def approved_members(self) -> list[Member]:
        rows = self._conn.execute(
            "SELECT * FROM Members WHERE status = ? ORDER BY id ASC;",
            (MemberStatus.APPROVED.value,),
        ).fetchall()
        return [_row_to_member(row) for row in rows]

    def live_totals(self) -> dict[str, int]:
        rows = self._conn.execute("SELECT target_id, total_points FROM ScoreBoards;").fetchall()
        return {str(row["target_id"]): int(row["total_points"]) for row in rows}

    def insert_snapshot(self, snapshot: Snapshot) -> None:
        self._conn.execute(
            """
            INSERT INTO SemesterSnapshots (
                semester_id, semester_name, target_id, total_points, taken_at
            )
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                snapshot.semester_id,
                snapshot.semester_name,
                snapshot.target_id,
                snapshot.total_points,
                _to_db_instant(snapshot.taken_at),
            ),
        )

    def reset_live_totals(self) -> None:
        self._conn.execute("UPDATE ScoreBoards SET total_points = 0;")

    def archive_live_tags(self, semester_id: int) -> int:
        cursor = self._conn.execute(
            "UPDATE Tags SET snapshot_semester_id = ? WHERE snapshot_semester_id IS NULL;",
            (semester_id,),
        )
        return int(cursor.rowcount)

    def delete_snapshots(self, semester_id: int) -> list[Snapshot]:
        rows = self._conn.execute(
            "SELECT * FROM SemesterSnapshots WHERE semester_id = ? ORDER BY id ASC;",
            (semester_id,),
        ).fetchall()
        self._conn.execute(
            "DELETE FROM SemesterSnapshots WHERE semester_id = ?;",
            (semester_id,),
        )
        return [_row_to_snapshot(row) for row in rows]

    def restore_totals(self, snapshots: Sequence[Snapshot]) -> None:
        self._conn.executemany(
            """
            INSERT INTO ScoreBoards (target_id, total_points) VALUES (?, ?)
            ON CONFLICT(target_id) DO UPDATE SET total_points = total_points + excluded.total_points;
            """,
            [(snapshot.target_id, snapshot.total_points) for snapshot in snapshots],
        )

    def unarchive_tags(self, semester_id: int) -> int:
        cursor = self._conn.execute(
            "UPDATE Tags SET snapshot_semester_id = NULL WHERE snapshot_semester_id = ?;",
            (semester_id,),
        )
        return int(cursor.rowcount)


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _immediate(self) -> Iterator[sqlite3.Connection]:
        """Hold the write lock from the first read so check-then-write cannot interleave."""
        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE;")
            yield connection
            connection.commit()
        except BaseException:
            connection.rollback()
            raise
        finally:
            connection.close()

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        with self._immediate() as conn:
            yield LedgerTransaction(conn)

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS Members (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL UNIQUE,
                        area TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'PENDING',
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS Rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE,
                        description TEXT,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS ReservableItems (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE,
                        description TEXT,
                        status TEXT NOT NULL DEFAULT 'AVAILABLE',
                        areas TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        resource_kind TEXT NOT NULL
                            CHECK (resource_kind IN ('ROOM', 'ITEM', 'EXTERNAL')),
                        resource_id INTEGER NOT NULL,
                        owner_id INTEGER NOT NULL,
                        title TEXT NOT NULL,
                        description TEXT,
                        starts_at TEXT NOT NULL,
                        ends_at TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'APPROVED',
                        created_at TEXT NOT NULL,
                        CHECK (starts_at < ends_at),
                        FOREIGN KEY (owner_id) REFERENCES Members(id)
                    );

                    CREATE TABLE IF NOT EXISTS BookingListVersions (
                        resource_kind TEXT NOT NULL,
                        resource_id INTEGER NOT NULL,
                        version INTEGER NOT NULL DEFAULT 0,
                        PRIMARY KEY (resource_kind, resource_id)
                    );

                    CREATE TABLE IF NOT EXISTS ScoringPeriods (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE,
                        is_active INTEGER NOT NULL DEFAULT 0 CHECK (is_active IN (0, 1)),
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS Semesters (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE,
                        starts_on TEXT NOT NULL,
                        ends_on TEXT NOT NULL,
                        is_active INTEGER NOT NULL DEFAULT 0 CHECK (is_active IN (0, 1))
                    );

                    CREATE TABLE IF NOT EXISTS TagTemplates (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        description TEXT,
                        base_value INTEGER NOT NULL,
                        is_scalable INTEGER NOT NULL DEFAULT 0,
                        escalation_value INTEGER,
                        escalation_streak_days INTEGER,
                        areas TEXT NOT NULL DEFAULT '',
                        period_id INTEGER,
                        UNIQUE (period_id, name),
                        FOREIGN KEY (period_id) REFERENCES ScoringPeriods(id)
                    );

                    CREATE TABLE IF NOT EXISTS Tags (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        template_id INTEGER NOT NULL,
                        target_id TEXT NOT NULL,
                        value INTEGER NOT NULL,
                        date_performed TEXT NOT NULL,
                        description TEXT,
                        assigner_id INTEGER,
                        period_id INTEGER,
                        semester_id INTEGER,
                        snapshot_semester_id INTEGER,
                        created_at TEXT NOT NULL,
                        FOREIGN KEY (template_id) REFERENCES TagTemplates(id)
                    );

                    CREATE TABLE IF NOT EXISTS ScoreBoards (
                        target_id TEXT PRIMARY KEY,
                        total_points INTEGER NOT NULL DEFAULT 0
                    );

                    CREATE TABLE IF NOT EXISTS SemesterSnapshots (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        semester_id INTEGER NOT NULL,
                        semester_name TEXT NOT NULL,
                        target_id TEXT NOT NULL,
                        total_points INTEGER NOT NULL,
                        taken_at TEXT NOT NULL,
                        UNIQUE (semester_id, target_id),
                        FOREIGN KEY (semester_id) REFERENCES Semesters(id)
                    );

                    CREATE TABLE IF NOT EXISTS Solicitations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        requester_id INTEGER NOT NULL,
                        target_ids TEXT NOT NULL,
                        template_ids TEXT NOT NULL,
                        date_performed TEXT NOT NULL,
                        description TEXT,
                        is_for_enterprise INTEGER NOT NULL DEFAULT 0,
                        status TEXT NOT NULL DEFAULT 'PENDING',
                        reviewer_notes TEXT,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_bookings_resource_start
                    ON Bookings(resource_kind, resource_id, starts_at);

                    CREATE INDEX IF NOT EXISTS idx_tags_target_template_date
                    ON Tags(target_id, template_id, date_performed);

                    CREATE INDEX IF NOT EXISTS idx_tags_live
                    ON Tags(snapshot_semester_id);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed rooms, items, an active rule version and semester only when empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                now = _utc_now()
                cursor.executemany(
                    "INSERT INTO Rooms (name, description, created_at) VALUES (?, ?, ?);",
                    [
                        ("Salinha 1", "Sala de reuniões do térreo", now),
                        ("Salinha 2", "Sala de reuniões do primeiro andar", now),
                    ],
                )
                cursor.executemany(
                    """
                    INSERT INTO ReservableItems (name, description, status, areas, created_at)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [
                        ("Projetor", "Projetor Epson", ItemStatus.AVAILABLE.value, "GERAL", now),
                        ("Câmera", "Câmera DSLR", ItemStatus.AVAILABLE.value, "MARKETING", now),
                    ],
                )
                cursor.execute(
                    "INSERT INTO ScoringPeriods (name, is_active, created_at) VALUES (?, 1, ?);",
                    ("Versão inicial", now),
                )
                period_id = int(cursor.lastrowid)
                today = datetime.now(timezone.utc).date()
                first_half = today.month <= 6
                cursor.execute(
                    """
                    INSERT INTO Semesters (name, starts_on, ends_on, is_active)
                    VALUES (?, ?, ?, 1);
                    """,
                    (
                        f"{today.year}.{1 if first_half else 2}",
                        date(today.year, 1 if first_half else 7, 1).isoformat(),
                        date(today.year, 6 if first_half else 12, 30 if first_half else 31).isoformat(),
                    ),
                )
                cursor.executemany(
                    """
                    INSERT INTO TagTemplates (
                        name, description, base_value, is_scalable,
                        escalation_value, escalation_streak_days, areas, period_id
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    [
                        ("Presença em reunião geral", "", 10, 0, None, None, "GERAL", period_id),
                        ("Atraso em reunião", "", -5, 1, -5, 7, "GERAL", period_id),
                        ("Post no blog", "", 20, 1, 5, 14, "MARKETING", period_id),
                    ],
                )
                conn.commit()
            logger.info("Demo seed completed")
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # --- members ---

    def create_member(self, name: str, email: str, area: str) -> Member:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Members (name, email, area, status, created_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (name, email, area, MemberStatus.PENDING.value, _utc_now()),
            )
            conn.commit()
            member_id = int(cursor.lastrowid)
        member = self.get_member(member_id)
        assert member is not None
        return member

    def get_member(self, member_id: int) -> Optional[Member]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM Members WHERE id = ?;", (member_id,)).fetchone()
            return None if row is None else _row_to_member(row)

    def email_exists(self, email: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM Members WHERE email = ?;", (email,)).fetchone()
            return row is not None

    def list_members(self, status: Optional[MemberStatus] = None) -> list[Member]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM Members ORDER BY id ASC;").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM Members WHERE status = ? ORDER BY id ASC;",
                    (status.value,),
                ).fetchall()
            return [_row_to_member(row) for row in rows]

    def set_member_status(self, member_id: int, status: MemberStatus) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE Members SET status = ? WHERE id = ?;",
                (status.value, member_id),
            )
            conn.commit()

    # --- resources ---

    def create_room(self, name: str, description: str = "") -> Resource:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO Rooms (name, description, created_at) VALUES (?, ?, ?);",
                (name, description, _utc_now()),
            )
            conn.commit()
            return Resource(
                kind=ResourceKind.ROOM,
                resource_id=int(cursor.lastrowid),
                name=name,
                description=description,
            )

    def list_rooms(self) -> list[Resource]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM Rooms ORDER BY id ASC;").fetchall()
            return [
                Resource(
                    kind=ResourceKind.ROOM,
                    resource_id=int(row["id"]),
                    name=str(row["name"]),
                    description=str(row["description"] or ""),
                )
                for row in rows
            ]

    def create_item(
        self,
        name: str,
        areas: Sequence[str],
        description: str = "",
        status: ItemStatus = ItemStatus.AVAILABLE,
    ) -> Resource:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO ReservableItems (name, description, status, areas, created_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (name, description, status.value, ",".join(areas), _utc_now()),
            )
            conn.commit()
            return Resource(
                kind=ResourceKind.ITEM,
                resource_id=int(cursor.lastrowid),
                name=name,
                status=status,
                areas=tuple(areas),
                description=description,
            )

    def list_items(self) -> list[Resource]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM ReservableItems ORDER BY id ASC;").fetchall()
            return [
                Resource(
                    kind=ResourceKind.ITEM,
                    resource_id=int(row["id"]),
                    name=str(row["name"]),
                    status=ItemStatus(row["status"]),
                    areas=_split_areas(row["areas"]),
                    description=str(row["description"] or ""),
                )
                for row in rows
            ]

    def set_item_status(self, item_id: int, status: ItemStatus) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE ReservableItems SET status = ? WHERE id = ?;",
                (status.value, item_id),
            )
            conn.commit()

    # --- bookings ---

    def list_bookings(
        self,
        kind: ResourceKind,
        resource_id: Optional[int] = None,
    ) -> list[Booking]:
        """Bookings of one resource ordered by start; the external resource takes no id."""
        query = "SELECT * FROM Bookings WHERE resource_kind = ?"
        params: list[object] = [kind.value]
        if resource_id is not None and kind is not ResourceKind.EXTERNAL:
            query += " AND resource_id = ?"
            params.append(resource_id)
        query += " ORDER BY starts_at ASC, id ASC;"
        with self._connect() as conn:
            return [_row_to_booking(row) for row in conn.execute(query, params).fetchall()]

    def list_all_bookings(self) -> list[Booking]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM Bookings ORDER BY starts_at ASC, id ASC;").fetchall()
            return [_row_to_booking(row) for row in rows]

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM Bookings WHERE id = ?;", (booking_id,)).fetchone()
            return None if row is None else _row_to_booking(row)

    def booking_list_version(self, kind: ResourceKind, resource_id: int) -> int:
        with self._connect() as conn:
            return self._read_version(conn, kind, resource_id)

    @staticmethod
    def _read_version(conn: sqlite3.Connection, kind: ResourceKind, resource_id: int) -> int:
        row = conn.execute(
            """
            SELECT version FROM BookingListVersions
            WHERE resource_kind = ? AND resource_id = ?;
            """,
            (kind.value, resource_id),
        ).fetchone()
        return 0 if row is None else int(row["version"])

    @staticmethod
    def _bump_version(conn: sqlite3.Connection, kind: ResourceKind, resource_id: int) -> None:
        conn.execute(
            """
            INSERT INTO BookingListVersions (resource_kind, resource_id, version)
            VALUES (?, ?, 1)
            ON CONFLICT(resource_kind, resource_id) DO UPDATE SET version = version + 1;
            """,
            (kind.value, resource_id),
        )

    def commit_booking(self, booking: Booking, expected_version: int) -> Booking:
        """Insert (``booking_id == 0``) or reschedule a booking if the resource's list is unchanged."""
        with self._immediate() as conn:
            current_version = self._read_version(conn, booking.kind, booking.resource_id)
            if current_version != expected_version:
                raise StaleWriteError(
                    f"Booking list for {booking.kind.value} {booking.resource_id} changed "
                    f"(expected v{expected_version}, found v{current_version})"
                )
            if booking.booking_id == 0:
                cursor = conn.execute(
                    """
                    INSERT INTO Bookings (
                        resource_kind, resource_id, owner_id, title, description,
                        starts_at, ends_at, status, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        booking.kind.value,
                        booking.resource_id,
                        booking.owner_id,
                        booking.title,
                        booking.description,
                        _to_db_instant(booking.interval.start),
                        _to_db_instant(booking.interval.end),
                        booking.status.value,
                        _utc_now(),
                    ),
                )
                booking_id = int(cursor.lastrowid)
            else:
                conn.execute(
                    """
                    UPDATE Bookings
                    SET starts_at = ?, ends_at = ?, title = ?, description = ?, status = ?
                    WHERE id = ?;
                    """,
                    (
                        _to_db_instant(booking.interval.start),
                        _to_db_instant(booking.interval.end),
                        booking.title,
                        booking.description,
                        booking.status.value,
                        booking.booking_id,
                    ),
                )
                booking_id = booking.booking_id
            self._bump_version(conn, booking.kind, booking.resource_id)
            row = conn.execute("SELECT * FROM Bookings WHERE id = ?;", (booking_id,)).fetchone()
            return _row_to_booking(row)

    def set_booking_status(self, booking_id: int, status: BookingStatus) -> None:
        with self._immediate() as conn:
            row = conn.execute(
                "SELECT resource_kind, resource_id FROM Bookings WHERE id = ?;",
                (booking_id,),
            ).fetchone()
            if row is None:
                return
            conn.execute(
                "UPDATE Bookings SET status = ? WHERE id = ?;",
                (status.value, booking_id),
            )
            self._bump_version(conn, ResourceKind(row["resource_kind"]), int(row["resource_id"]))

    def delete_booking(self, booking_id: int) -> bool:
        with self._immediate() as conn:
            row = conn.execute(
                "SELECT resource_kind, resource_id FROM Bookings WHERE id = ?;",
                (booking_id,),
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM Bookings WHERE id = ?;", (booking_id,))
            self._bump_version(conn, ResourceKind(row["resource_kind"]), int(row["resource_id"]))
            return True

    # --- scoring periods and semesters ---

    def create_scoring_period(self, name: str) -> ScoringPeriod:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO ScoringPeriods (name, is_active, created_at) VALUES (?, 0, ?);",
                (name, _utc_now()),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM ScoringPeriods WHERE id = ?;",
                (cursor.lastrowid,),
            ).fetchone()
            return _row_to_period(row)

    def get_scoring_period(self, period_id: int) -> Optional[ScoringPeriod]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM ScoringPeriods WHERE id = ?;", (period_id,)).fetchone()
            return None if row is None else _row_to_period(row)

    def list_scoring_periods(self) -> list[ScoringPeriod]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM ScoringPeriods ORDER BY id DESC;").fetchall()
            return [_row_to_period(row) for row in rows]

    def list_active_scoring_periods(self) -> list[ScoringPeriod]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM ScoringPeriods WHERE is_active = 1 ORDER BY id ASC;"
            ).fetchall()
            return [_row_to_period(row) for row in rows]

    def create_semester(self, name: str, starts_on: date, ends_on: date) -> Semester:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Semesters (name, starts_on, ends_on, is_active)
                VALUES (?, ?, ?, 0);
                """,
                (name, starts_on.isoformat(), ends_on.isoformat()),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM Semesters WHERE id = ?;", (cursor.lastrowid,)).fetchone()
            return _row_to_semester(row)

    def get_semester(self, semester_id: int) -> Optional[Semester]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM Semesters WHERE id = ?;", (semester_id,)).fetchone()
            return None if row is None else _row_to_semester(row)

    def semester_name_exists(self, name: str) -> bool:
        with self._connect() as conn:
            return conn.execute("SELECT 1 FROM Semesters WHERE name = ?;", (name,)).fetchone() is not None

    def scoring_period_name_exists(self, name: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM ScoringPeriods WHERE name = ?;", (name,)).fetchone()
            return row is not None

    def list_semesters(self) -> list[Semester]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM Semesters ORDER BY starts_on DESC;").fetchall()
            return [_row_to_semester(row) for row in rows]

    def list_active_semesters(self) -> list[Semester]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM Semesters WHERE is_active = 1 ORDER BY id ASC;").fetchall()
            return [_row_to_semester(row) for row in rows]

    def activate_exclusively(self, table: str, row_id: int) -> bool:
        """Deactivate every row of ``table`` and activate ``row_id`` in one transaction."""
        if table not in {"ScoringPeriods", "Semesters"}:
            raise ValueError(f"Unsupported activation table: {table}")
        with self._immediate() as conn:
            exists = conn.execute(f"SELECT 1 FROM {table} WHERE id = ?;", (row_id,)).fetchone()
            if exists is None:
                return False
            conn.execute(f"UPDATE {table} SET is_active = 0 WHERE id != ?;", (row_id,))
            conn.execute(f"UPDATE {table} SET is_active = 1 WHERE id = ?;", (row_id,))
            return True

    def deactivate(self, table: str, row_id: int) -> bool:
        if table not in {"ScoringPeriods", "Semesters"}:
            raise ValueError(f"Unsupported activation table: {table}")
        with self._connect() as conn:
            cursor = conn.execute(f"UPDATE {table} SET is_active = 0 WHERE id = ?;", (row_id,))
            conn.commit()
            return cursor.rowcount > 0

    # --- tag templates ---

    def create_template(
        self,
        name: str,
        base_value: int,
        is_scalable: bool,
        escalation_value: Optional[int],
        escalation_streak_days: Optional[int],
        areas: Sequence[str],
        period_id: Optional[int],
        description: str = "",
    ) -> TagTemplate:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO TagTemplates (
                    name, description, base_value, is_scalable,
                    escalation_value, escalation_streak_days, areas, period_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    name,
                    description,
                    base_value,
                    int(is_scalable),
                    escalation_value,
                    escalation_streak_days,
                    ",".join(areas),
                    period_id,
                ),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM TagTemplates WHERE id = ?;", (cursor.lastrowid,)).fetchone()
            return _row_to_template(row)

    def get_template(self, template_id: int) -> Optional[TagTemplate]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM TagTemplates WHERE id = ?;", (template_id,)).fetchone()
            return None if row is None else _row_to_template(row)

    def list_templates(self, period_id: Optional[int] = None) -> list[TagTemplate]:
        with self._connect() as conn:
            if period_id is None:
                rows = conn.execute("SELECT * FROM TagTemplates ORDER BY name ASC;").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM TagTemplates WHERE period_id = ? ORDER BY name ASC;",
                    (period_id,),
                ).fetchall()
            return [_row_to_template(row) for row in rows]

    def template_names(self, period_id: int) -> set[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT name FROM TagTemplates WHERE period_id = ?;",
                (period_id,),
            ).fetchall()
            return {str(row["name"]) for row in rows}

    # --- tags and totals ---

    def list_tag_history(self, target_id: str, template_id: int) -> list[Tag]:
        """Every tag of ``template_id`` given to ``target_id``, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM Tags
                WHERE target_id = ? AND template_id = ?
                ORDER BY date_performed ASC, id ASC;
                """,
                (target_id, template_id),
            ).fetchall()
            return [_row_to_tag(row) for row in rows]

    def commit_tags(
        self,
        drafts: Sequence[Tag],
        expected_last_tag_ids: Sequence[Optional[int]],
        solicitation_id: Optional[int] = None,
        reviewer_notes: str = "",
    ) -> list[Tag]:
        """Insert every draft and bump the live totals, or nothing if any pair's history moved.

        With ``solicitation_id`` the same transaction also approves that
        solicitation, provided it is still pending.
        """
        with self._immediate() as conn:
            if solicitation_id is not None:
                row = conn.execute(
                    "SELECT status FROM Solicitations WHERE id = ?;",
                    (solicitation_id,),
                ).fetchone()
                if row is None or row["status"] != SolicitationStatus.PENDING.value:
                    raise StaleWriteError(f"Solicitation {solicitation_id} is no longer pending")

            created_ids: list[int] = []
            for tag, expected_last_tag_id in zip(drafts, expected_last_tag_ids):
                row = conn.execute(
                    "SELECT MAX(id) AS last_id FROM Tags WHERE target_id = ? AND template_id = ?;",
                    (tag.target_id, tag.template_id),
                ).fetchone()
                last_id = None if row["last_id"] is None else int(row["last_id"])
                if last_id != expected_last_tag_id:
                    raise StaleWriteError(
                        f"Tag history for target {tag.target_id} / template {tag.template_id} changed"
                    )
                cursor = conn.execute(
                    """
                    INSERT INTO Tags (
                        template_id, target_id, value, date_performed, description,
                        assigner_id, period_id, semester_id, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        tag.template_id,
                        tag.target_id,
                        tag.value,
                        _to_db_instant(tag.date_performed),
                        tag.description,
                        tag.assigner_id,
                        tag.period_id,
                        tag.semester_id,
                        _utc_now(),
                    ),
                )
                conn.execute(
                    """
                    INSERT INTO ScoreBoards (target_id, total_points) VALUES (?, ?)
                    ON CONFLICT(target_id) DO UPDATE SET total_points = total_points + excluded.total_points;
                    """,
                    (tag.target_id, tag.value),
                )
                created_ids.append(int(cursor.lastrowid))

            if solicitation_id is not None:
                conn.execute(
                    "UPDATE Solicitations SET status = ?, reviewer_notes = ? WHERE id = ?;",
                    (SolicitationStatus.APPROVED.value, reviewer_notes, solicitation_id),
                )
            return [
                _row_to_tag(conn.execute("SELECT * FROM Tags WHERE id = ?;", (tag_id,)).fetchone())
                for tag_id in created_ids
            ]

    def get_tag(self, tag_id: int) -> Optional[Tag]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM Tags WHERE id = ?;", (tag_id,)).fetchone()
            return None if row is None else _row_to_tag(row)

    def delete_live_tag(self, tag_id: int) -> Optional[Tag]:
        with self._immediate() as conn:
            row = conn.execute(
                "SELECT * FROM Tags WHERE id = ? AND snapshot_semester_id IS NULL;",
                (tag_id,),
            ).fetchone()
            if row is None:
                return None
            tag = _row_to_tag(row)
            conn.execute("DELETE FROM Tags WHERE id = ?;", (tag_id,))
            conn.execute(
                "UPDATE ScoreBoards SET total_points = total_points - ? WHERE target_id = ?;",
                (tag.value, tag.target_id),
            )
            return tag

    def list_live_tags(self) -> list[Tag]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM Tags
                WHERE snapshot_semester_id IS NULL
                ORDER BY date_performed ASC, id ASC;
                """
            ).fetchall()
            return [_row_to_tag(row) for row in rows]

    def list_tags_for_target(self, target_id: str) -> list[Tag]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM Tags WHERE target_id = ? ORDER BY date_performed DESC, id DESC;",
                (target_id,),
            ).fetchall()
            return [_row_to_tag(row) for row in rows]

    def get_live_totals(self) -> dict[str, int]:
        with self._connect() as conn:
            rows = conn.execute("SELECT target_id, total_points FROM ScoreBoards;").fetchall()
            return {str(row["target_id"]): int(row["total_points"]) for row in rows}

    # --- snapshots ---

    def list_snapshots(
        self,
        semester_id: Optional[int] = None,
        target_id: Optional[str] = None,
    ) -> list[Snapshot]:
        query = "SELECT * FROM SemesterSnapshots WHERE 1 = 1"
        params: list[object] = []
        if semester_id is not None:
            query += " AND semester_id = ?"
            params.append(semester_id)
        if target_id is not None:
            query += " AND target_id = ?"
            params.append(target_id)
        query += " ORDER BY taken_at DESC, id ASC;"
        with self._connect() as conn:
            return [_row_to_snapshot(row) for row in conn.execute(query, params).fetchall()]

    # --- solicitations ---

    def create_solicitation(
        self,
        requester_id: int,
        target_ids: Sequence[str],
        template_ids: Sequence[int],
        date_performed: datetime,
        description: str,
        is_for_enterprise: bool,
    ) -> Solicitation:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Solicitations (
                    requester_id, target_ids, template_ids, date_performed,
                    description, is_for_enterprise, status, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    requester_id,
                    json.dumps(list(target_ids)),
                    json.dumps(list(template_ids)),
                    _to_db_instant(date_performed),
                    description,
                    int(is_for_enterprise),
                    SolicitationStatus.PENDING.value,
                    _utc_now(),
                ),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM Solicitations WHERE id = ?;", (cursor.lastrowid,)).fetchone()
            return _row_to_solicitation(row)

    def get_solicitation(self, solicitation_id: int) -> Optional[Solicitation]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM Solicitations WHERE id = ?;",
                (solicitation_id,),
            ).fetchone()
            return None if row is None else _row_to_solicitation(row)

    def list_solicitations(self, status: Optional[SolicitationStatus] = None) -> list[Solicitation]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM Solicitations ORDER BY id DESC;").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM Solicitations WHERE status = ? ORDER BY id DESC;",
                    (status.value,),
                ).fetchall()
            return [_row_to_solicitation(row) for row in rows]

    def set_solicitation_status(
        self,
        solicitation_id: int,
        status: SolicitationStatus,
        reviewer_notes: str,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE Solicitations SET status = ?, reviewer_notes = ? WHERE id = ?;",
                (status.value, reviewer_notes, solicitation_id),
            )
            conn.commit()
