"""
SQLite document stores for nominations, attachments, global settings and
the awards event (registrations, guests, tables, event settings).

Records are kept as JSON documents alongside a few indexed columns used for
lookups. Each operation opens its own connection so the store can be shared
between request handlers and worker threads.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, List, Optional, Set, Union
from uuid import uuid4

from .models import (
    AttachmentRecord,
    EventSettings,
    GlobalSetting,
    GuestRecord,
    NominationRecord,
    RegistrationRecord,
    TableRecord,
)


# Default database path
DEFAULT_DB_PATH = Path("data/nominations.db")


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def new_id() -> str:
    return uuid4().hex


class SQLiteStore:
    """
    Base for the SQLite-backed stores.

    Thread-safe: SQLite handles concurrent access with WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = db_path
        _ensure_db_dir(db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        raise NotImplementedError


class NominationDatabase(SQLiteStore):
    """SQLite database for nomination persistence."""

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS nominations (
                    id TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL,
                    guid TEXT NOT NULL,
                    submitted INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS attachments (
                    id TEXT PRIMARY KEY,
                    nomination_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    label TEXT NOT NULL,
                    value TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS counters (
                    id TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL DEFAULT 0
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_nominations_guid
                ON nominations(guid, submitted)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_attachments_nomination
                ON attachments(nomination_id, created_at)
            """)

    # -- counters -----------------------------------------------------------

    def next_sequence(self, name: str) -> int:
        """
        Atomically increment and return the named counter.

        The first call for a counter returns 1.
        """
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO counters (id, seq) VALUES (?, 1)
                ON CONFLICT(id) DO UPDATE SET seq = seq + 1
            """, (name,))
            row = conn.execute("SELECT seq FROM counters WHERE id = ?", (name,)).fetchone()
            return int(row["seq"])

    # -- nominations --------------------------------------------------------

    def save_nomination(self, record: NominationRecord) -> None:
        """Insert or replace a nomination document."""
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO nominations (id, seq, guid, submitted, created_at, document)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                record.id,
                record.seq,
                record.guid,
                int(record.submitted),
                record.created_at.isoformat(),
                record.model_dump_json(),
            ))

    def get_nomination(self, nomination_id: str) -> Optional[NominationRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document FROM nominations WHERE id = ?", (nomination_id,)
            ).fetchone()
            return NominationRecord.model_validate_json(row["document"]) if row else None

    def find_nominations(self, ids: Iterable[str]) -> List[NominationRecord]:
        """Nominations matching ``ids``, in the order the ids were given."""
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT id, document FROM nominations WHERE id IN ({placeholders})", wanted
            ).fetchall()
        found = {row["id"]: NominationRecord.model_validate_json(row["document"]) for row in rows}
        return [found[nomination_id] for nomination_id in wanted if nomination_id in found]

    def list_nominations(self, guid: Optional[str] = None, submitted: Optional[bool] = None) -> List[NominationRecord]:
        """List nominations ordered by sequence number, optionally filtered."""
        clauses: List[str] = []
        values: List[Any] = []
        if guid is not None:
            clauses.append("guid = ?")
            values.append(guid)
        if submitted is not None:
            clauses.append("submitted = ?")
            values.append(int(submitted))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT document FROM nominations {where} ORDER BY seq", values
            ).fetchall()
            return [NominationRecord.model_validate_json(row["document"]) for row in rows]

    def delete_nomination(self, nomination_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM nominations WHERE id = ?", (nomination_id,))
            return cursor.rowcount > 0

    # -- attachments --------------------------------------------------------

    def save_attachment(self, record: AttachmentRecord) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO attachments (id, nomination_id, created_at, document)
                VALUES (?, ?, ?, ?)
            """, (
                record.id,
                record.nomination,
                record.created_at.isoformat(),
                record.model_dump_json(),
            ))

    def get_attachment(self, attachment_id: str) -> Optional[AttachmentRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document FROM attachments WHERE id = ?", (attachment_id,)
            ).fetchone()
            return AttachmentRecord.model_validate_json(row["document"]) if row else None

    def list_attachments(self, nomination_id: str) -> List[AttachmentRecord]:
        """Attachments of a nomination in upload order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT document FROM attachments WHERE nomination_id = ? ORDER BY created_at, rowid",
                (nomination_id,),
            ).fetchall()
            return [AttachmentRecord.model_validate_json(row["document"]) for row in rows]

    def delete_attachment(self, attachment_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM attachments WHERE id = ?", (attachment_id,))
            return cursor.rowcount > 0

    # -- settings -----------------------------------------------------------

    def save_setting(self, setting: GlobalSetting) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (id, type, label, value) VALUES (?, ?, ?, ?)",
                (setting.id, setting.type, setting.label, setting.value),
            )

    def get_setting(self, setting_id: str) -> Optional[GlobalSetting]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM settings WHERE id = ?", (setting_id,)).fetchone()
            return GlobalSetting(**dict(row)) if row else None

    def find_settings(self, **filters: str) -> List[GlobalSetting]:
        """Settings whose columns equal every given filter (type, label, value)."""
        allowed = {"type", "label", "value"}
        unknown = set(filters) - allowed
        if unknown:
            raise ValueError(f"Unknown settings filter(s): {', '.join(sorted(unknown))}")
        where = " AND ".join(f"{column} = ?" for column in filters)
        query = "SELECT * FROM settings" + (f" WHERE {where}" if where else "") + " ORDER BY type, label"
        with self._get_connection() as conn:
            rows = conn.execute(query, list(filters.values())).fetchall()
            return [GlobalSetting(**dict(row)) for row in rows]

    def delete_setting(self, setting_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM settings WHERE id = ?", (setting_id,))
            return cursor.rowcount > 0



EventRecord = Union[RegistrationRecord, GuestRecord, TableRecord]

EVENT_SETTINGS_ID = "globalSettings"


class EventDatabase(SQLiteStore):
    """
    SQLite database for the awards event.

    Registrations, guests and tables reference each other by id, so changes
    that touch several records go through :meth:`commit`, which writes them in
    a single transaction.
    """

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS registrations (
                    id TEXT PRIMARY KEY,
                    guid TEXT NOT NULL,
                    organization TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS guests (
                    id TEXT PRIMARY KEY,
                    guid TEXT NOT NULL UNIQUE,
                    registration TEXT NOT NULL,
                    table_id TEXT,
                    created_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS event_tables (
                    id TEXT PRIMARY KEY,
                    guid TEXT NOT NULL UNIQUE,
                    tablename TEXT NOT NULL,
                    tableindex INTEGER NOT NULL,
                    document TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS event_settings (
                    id TEXT PRIMARY KEY,
                    document TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_registrations_guid
                ON registrations(guid)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_guests_registration
                ON guests(registration, created_at)
            """)

    # -- writes -------------------------------------------------------------

    def commit(self, save: Iterable[EventRecord] = (), delete: Iterable[EventRecord] = ()) -> None:
        """Save and delete records in one transaction."""
        with self._get_connection() as conn:
            for record in delete:
                conn.execute(f"DELETE FROM {_event_table(record)} WHERE id = ?", (record.id,))
            for record in save:
                _save_event_record(conn, record)

    def clear(self) -> None:
        """Delete every table, registration and guest."""
        with self._get_connection() as conn:
            for table in ("event_tables", "registrations", "guests"):
                conn.execute(f"DELETE FROM {table}")

    # -- registrations ------------------------------------------------------

    def get_registration(self, registration_id: str) -> Optional[RegistrationRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document FROM registrations WHERE id = ?", (registration_id,)
            ).fetchone()
            return RegistrationRecord.model_validate_json(row["document"]) if row else None

    def find_registration(self, guid: str) -> Optional[RegistrationRecord]:
        """Oldest registration created by ``guid``."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document FROM registrations WHERE guid = ? ORDER BY created_at, rowid LIMIT 1",
                (guid,),
            ).fetchone()
            return RegistrationRecord.model_validate_json(row["document"]) if row else None

    def list_registrations(self, organization: Optional[str] = None) -> List[RegistrationRecord]:
        query = "SELECT document FROM registrations"
        values: List[Any] = []
        if organization is not None:
            query += " WHERE organization = ?"
            values.append(organization)
        with self._get_connection() as conn:
            rows = conn.execute(query + " ORDER BY created_at, rowid", values).fetchall()
            return [RegistrationRecord.model_validate_json(row["document"]) for row in rows]

    # -- guests -------------------------------------------------------------

    def get_guest(self, guest_id: str) -> Optional[GuestRecord]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT document FROM guests WHERE id = ?", (guest_id,)).fetchone()
            return GuestRecord.model_validate_json(row["document"]) if row else None

    def guid_in_use(self, guid: str) -> bool:
        with self._get_connection() as conn:
            return conn.execute("SELECT 1 FROM guests WHERE guid = ?", (guid,)).fetchone() is not None

    def list_guests(self, registration: Optional[str] = None, table: Optional[str] = None) -> List[GuestRecord]:
        """Guests in creation order, optionally filtered by registration or table id."""
        clauses: List[str] = []
        values: List[Any] = []
        if registration is not None:
            clauses.append("registration = ?")
            values.append(registration)
        if table is not None:
            clauses.append("table_id = ?")
            values.append(table)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT document FROM guests {where} ORDER BY created_at, rowid", values
            ).fetchall()
            return [GuestRecord.model_validate_json(row["document"]) for row in rows]

    # -- tables -------------------------------------------------------------

    def get_table(self, table_id: str) -> Optional[TableRecord]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT document FROM event_tables WHERE id = ?", (table_id,)).fetchone()
            return TableRecord.model_validate_json(row["document"]) if row else None

    def find_table(self, guid: str) -> Optional[TableRecord]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT document FROM event_tables WHERE guid = ?", (guid,)).fetchone()
            return TableRecord.model_validate_json(row["document"]) if row else None

    def list_tables(self) -> List[TableRecord]:
        """Tables ordered by their layout index."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT document FROM event_tables ORDER BY tableindex, rowid"
            ).fetchall()
            return [TableRecord.model_validate_json(row["document"]) for row in rows]

    def count_tables(self) -> int:
        with self._get_connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM event_tables").fetchone()[0])

    def table_names(self) -> Set[str]:
        with self._get_connection() as conn:
            return {row["tablename"] for row in conn.execute("SELECT tablename FROM event_tables")}

    # -- event settings -----------------------------------------------------

    def get_event_settings(self) -> Optional[EventSettings]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document FROM event_settings WHERE id = ?", (EVENT_SETTINGS_ID,)
            ).fetchone()
            return EventSettings.model_validate_json(row["document"]) if row else None

    def save_event_settings(self, settings: EventSettings) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO event_settings (id, document) VALUES (?, ?)",
                (EVENT_SETTINGS_ID, settings.model_dump_json()),
            )


def _event_table(record: EventRecord) -> str:
    if isinstance(record, RegistrationRecord):
        return "registrations"
    if isinstance(record, GuestRecord):
        return "guests"
    return "event_tables"


def _save_event_record(conn: sqlite3.Connection, record: EventRecord) -> None:
    if isinstance(record, RegistrationRecord):
        conn.execute("""
            INSERT OR REPLACE INTO registrations (id, guid, organization, created_at, document)
            VALUES (?, ?, ?, ?, ?)
        """, (record.id, record.guid, record.organization, record.created_at.isoformat(), record.model_dump_json()))
    elif isinstance(record, GuestRecord):
        conn.execute("""
            INSERT OR REPLACE INTO guests (id, guid, registration, table_id, created_at, document)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            record.id,
            record.guid,
            record.registration,
            record.table,
            record.created_at.isoformat(),
            record.model_dump_json(),
        ))
    else:
        conn.execute("""
            INSERT OR REPLACE INTO event_tables (id, guid, tablename, tableindex, document)
            VALUES (?, ?, ?, ?, ?)
        """, (record.id, record.guid, record.tablename, record.tableindex, record.model_dump_json()))
