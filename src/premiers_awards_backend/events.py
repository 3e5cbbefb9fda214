"""
Awards event registration and seating.

This module holds the business logic behind the event API:
- Table registrations filed by ministries and organizations
- Guests attached to a registration
- Seating tables, including generation of the default layout
- The event settings record (event year and ticket sales window)

Registrations, guests and tables point at each other by id. The EventManager
keeps those references consistent: deleting a record detaches it everywhere
it is listed, and every multi-record change is committed in one transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Set
from zoneinfo import ZoneInfo

from omegaconf import DictConfig
from pydantic import BaseModel, ValidationError

from .database import EventDatabase, new_id
from .errors import InvalidInput, NoRecord, RecordExists
from .models import (
    EventSettings,
    EventSettingsUpdate,
    GuestCreate,
    GuestRecord,
    GuestUpdate,
    RegistrationCreate,
    RegistrationLists,
    RegistrationRecord,
    RegistrationUpdate,
    TableCreate,
    TableLists,
    TableRecord,
    TableUpdate,
)

logger = logging.getLogger(__name__)

REQUIRED_GUEST_FIELDS = ("firstname", "lastname", "attendancetype", "organization")


def table_names(letters: str, numbers: int) -> List[str]:
    """Every candidate table name: ``A1, G1, B1, ... L1, A2, ...`` for the default letters."""
    return [f"{letter}{number}" for number in range(1, numbers + 1) for letter in letters]


def next_table_name(candidates: Iterable[str], used: Set[str]) -> Optional[str]:
    for name in candidates:
        if name not in used:
            return name
    return None


class EventManager:
    """
    Central coordinator for event registrations, guests and tables.

    Read-modify-write operations hold a process-local lock, so concurrent
    list pushes or cascading deletes cannot interleave and lose an update.

    Attributes:
        db: Event document store
        default_settings: Event settings stored on first read
        candidate_names: Table names in the order they are handed out
        timezone: Zone applied to sales times given without an offset
    """

    def __init__(self, db: EventDatabase, program: DictConfig) -> None:
        events = program.events
        seating = events.seating
        self.db = db
        self.default_settings = EventSettings(
            year=int(events.year),
            salesopen=events.salesopen,
            salesclose=events.salesclose,
        )
        self.candidate_names = table_names(str(seating.letters), int(seating.numbers))
        self.default_tables = int(seating.default_tables)
        self.default_capacity = int(seating.default_capacity)
        self.default_type = str(seating.default_type)
        self.timezone = ZoneInfo(str(program.program.timezone))
        self._lock = Lock()

    # -- registrations ------------------------------------------------------

    def get_registration(self, key: str) -> RegistrationRecord:
        """Registration by id, or else by the guid of the user who filed it."""
        record = self.db.get_registration(key) or self.db.find_registration(key)
        if record is None:
            raise NoRecord(f"Registration {key} not found.")
        return record

    def list_registrations(self, organization: Optional[str] = None) -> List[RegistrationRecord]:
        return self.db.list_registrations(organization=organization)

    def user_registrations(self, user_guid: str) -> List[RegistrationRecord]:
        """Registrations that list ``user_guid`` among their users."""
        return [
            record
            for record in self.db.list_registrations()
            if any(user.guid == user_guid for user in record.users)
        ]

    def registration_guests(self, key: str) -> List[GuestRecord]:
        registration = self.get_registration(key)
        return self._guests_of(registration.id, registration.guests)

    def create_registration(self, data: RegistrationCreate) -> RegistrationRecord:
        now = _now()
        record = RegistrationRecord(id=new_id(), created_at=now, updated_at=now, **data.model_dump())
        self.db.commit(save=[record])
        logger.info(f"Created registration {record.id} for {record.organization or 'unknown organization'}")
        return record

    def update_registration(self, registration_id: str, data: RegistrationUpdate) -> RegistrationRecord:
        with self._lock:
            record = self._registration_for_write(registration_id)
            changes = data.changes()
            if "table" in changes:
                self._table_for_write(changes["table"])
            updated = _apply(record, changes, updated_at=_now())
            self.db.commit(save=[updated])
            return updated

    def push_registration(self, registration_id: str, data: RegistrationLists) -> RegistrationRecord:
        """Append users and guest ids not already listed."""
        with self._lock:
            record = self._registration_for_write(registration_id)
            self._require_guests(data.guests)
            users = _merge(record.users, data.users)
            guests = _merge(record.guests, data.guests)
            updated = _apply(record, {}, users=users, guests=guests, updated_at=_now())
            self.db.commit(save=[updated])
            return updated

    def pull_registration(self, registration_id: str, data: RegistrationLists) -> RegistrationRecord:
        with self._lock:
            record = self._registration_for_write(registration_id)
            pulled_users = {user.guid for user in data.users}
            users = [user for user in record.users if user.guid not in pulled_users]
            guests = [guest for guest in record.guests if guest not in data.guests]
            updated = _apply(record, {}, users=users, guests=guests, updated_at=_now())
            self.db.commit(save=[updated])
            return updated

    def delete_registration(self, registration_id: str) -> None:
        """Delete a registration together with its guests, detaching both from tables."""
        with self._lock:
            record = self._registration_for_write(registration_id)
            guests = self._guests_of(record.id, record.guests)
            guest_ids = {guest.id for guest in guests}
            tables = [
                _apply(
                    table,
                    {},
                    registrations=[item for item in table.registrations if item != record.id],
                    guests=[item for item in table.guests if item not in guest_ids],
                    updated_at=_now(),
                )
                for table in self.db.list_tables()
                if record.id in table.registrations or guest_ids.intersection(table.guests)
            ]
            self.db.commit(save=tables, delete=[record, *guests])
        logger.info(f"Deleted registration {registration_id} and {len(guests)} guest(s)")

    # -- guests -------------------------------------------------------------

    def get_guest(self, guest_id: str) -> GuestRecord:
        record = self.db.get_guest(guest_id)
        if record is None:
            raise NoRecord(f"Guest {guest_id} not found.")
        return record

    def list_guests(self) -> List[GuestRecord]:
        return self.db.list_guests()

    def create_guest(self, data: GuestCreate) -> GuestRecord:
        """
        Add a guest to a registration.

        Raises:
            InvalidInput: A required field is blank or the registration does not exist
            RecordExists: Another guest already uses the given guid
        """
        missing = [name for name in REQUIRED_GUEST_FIELDS if not getattr(data, name).strip()]
        if missing:
            raise InvalidInput(f"Guests require {', '.join(missing)}.")

        with self._lock:
            registration = self._registration_for_write(data.registration)
            guid = data.guid or new_id()
            if self.db.guid_in_use(guid):
                raise RecordExists(f"Guest {guid} already exists.")

            now = _now()
            fields = data.model_dump(exclude={"guid", "registration"})
            guest = GuestRecord(
                id=new_id(),
                guid=guid,
                registration=registration.id,
                created_at=now,
                updated_at=now,
                **fields,
            )
            listed = _apply(registration, {}, guests=_merge(registration.guests, [guest.id]), updated_at=now)
            self.db.commit(save=[guest, listed])
        logger.info(f"Added guest {guest.id} to registration {registration.id}")
        return guest

    def update_guest(self, guest_id: str, data: GuestUpdate) -> GuestRecord:
        with self._lock:
            guest = self._guest_for_write(guest_id)
            changes = data.changes()
            for name in REQUIRED_GUEST_FIELDS:
                if name in changes and not changes[name].strip():
                    raise InvalidInput(f"Guests require {name}.")
            if "table" in changes:
                self._table_for_write(changes["table"])
            updated = _apply(guest, changes, updated_at=_now())
            self.db.commit(save=[updated])
            return updated

    def delete_guest(self, guest_id: str) -> None:
        """Delete a guest and remove it from its registration and tables."""
        with self._lock:
            guest = self._guest_for_write(guest_id)
            now = _now()
            save: List[Any] = []
            registration = self.db.get_registration(guest.registration)
            if registration is not None and guest.id in registration.guests:
                remaining = [item for item in registration.guests if item != guest.id]
                save.append(_apply(registration, {}, guests=remaining, updated_at=now))
            save.extend(
                _apply(table, {}, guests=[item for item in table.guests if item != guest.id], updated_at=now)
                for table in self.db.list_tables()
                if guest.id in table.guests
            )
            self.db.commit(save=save, delete=[guest])

    # -- tables -------------------------------------------------------------

    def get_table(self, key: str) -> TableRecord:
        """Table by id, or else by guid."""
        record = self.db.get_table(key) or self.db.find_table(key)
        if record is None:
            raise NoRecord(f"Table {key} not found.")
        return record

    def list_tables(self) -> List[TableRecord]:
        return self.db.list_tables()

    def count_tables(self) -> int:
        return self.db.count_tables()

    def table_guests(self, key: str) -> List[GuestRecord]:
        table = self.get_table(key)
        seated = {guest.id: guest for guest in self.db.list_guests(table=table.id)}
        listed = [self.db.get_guest(guest_id) for guest_id in table.guests]
        ordered = [guest for guest in listed if guest is not None]
        ordered.extend(guest for guest_id, guest in seated.items() if guest_id not in table.guests)
        return ordered

    def create_table(self, data: TableCreate) -> TableRecord:
        """
        Create a table; a blank name takes the next unused generated name.

        Raises:
            InvalidInput: Missing capacity or type, or no generated name is left
            RecordExists: The name is already used by another table
        """
        with self._lock:
            used = self.db.table_names()
            name = data.tablename.strip() or next_table_name(self.candidate_names, used)
            if name is None:
                raise InvalidInput("Every generated table name is in use; name the table explicitly.")
            if name in used:
                raise RecordExists(f"Table {name} already exists.")
            if data.tablecapacity is None:
                raise InvalidInput("Tables require a capacity.")

            now = _now()
            record = _validated(
                TableRecord,
                id=new_id(),
                guid=new_id(),
                tablename=name,
                tablecapacity=data.tablecapacity,
                tableindex=data.tableindex if data.tableindex is not None else self.db.count_tables() + 1,
                tabletype=data.tabletype,
                organizations=data.organizations,
                created_at=now,
                updated_at=now,
            )
            self.db.commit(save=[record])
        logger.info(f"Created table {record.tablename} (capacity {record.tablecapacity})")
        return record

    def generate_tables(self) -> List[TableRecord]:
        """
        Replace every table with the default layout.

        Guests and registrations lose their table assignment; guests also lose
        their seat.
        """
        with self._lock:
            now = _now()
            guests = [
                _apply(guest, {}, table=None, seat="", updated_at=now)
                for guest in self.db.list_guests()
                if guest.table
            ]
            registrations = [
                _apply(record, {}, table=None, updated_at=now)
                for record in self.db.list_registrations()
                if record.table
            ]
            tables = [
                TableRecord(
                    id=new_id(),
                    guid=new_id(),
                    tablename=name,
                    tablecapacity=self.default_capacity,
                    tableindex=index,
                    tabletype=self.default_type,
                    created_at=now,
                    updated_at=now,
                )
                for index, name in enumerate(self.candidate_names[: self.default_tables], start=1)
            ]
            self.db.commit(save=[*guests, *registrations, *tables], delete=self.db.list_tables())
        logger.info(f"Generated {len(tables)} default table(s)")
        return self.db.list_tables()

    def update_table(self, table_id: str, data: TableUpdate) -> TableRecord:
        with self._lock:
            table = self._table_for_write(table_id)
            changes = data.changes()
            name = changes.get("tablename")
            if name is not None and name != table.tablename and name in self.db.table_names():
                raise RecordExists(f"Table {name} already exists.")
            updated = _apply(table, changes, updated_at=_now())
            self.db.commit(save=[updated])
            return updated

    def push_table(self, table_id: str, data: TableLists) -> TableRecord:
        """Append organizations, registration ids and guest ids not already listed."""
        with self._lock:
            table = self._table_for_write(table_id)
            self._require_guests(data.guests)
            for registration_id in data.registrations:
                self._registration_for_write(registration_id)
            updated = _apply(
                table,
                {},
                organizations=_merge(table.organizations, data.organizations),
                registrations=_merge(table.registrations, data.registrations),
                guests=_merge(table.guests, data.guests),
                updated_at=_now(),
            )
            self.db.commit(save=[updated])
            return updated

    def pull_table(self, table_id: str, data: TableLists) -> TableRecord:
        with self._lock:
            table = self._table_for_write(table_id)
            updated = _apply(
                table,
                {},
                organizations=[item for item in table.organizations if item not in data.organizations],
                registrations=[item for item in table.registrations if item not in data.registrations],
                guests=[item for item in table.guests if item not in data.guests],
                updated_at=_now(),
            )
            self.db.commit(save=[updated])
            return updated

    def delete_table(self, table_id: str) -> None:
        """Delete a table; its guests and registrations become unseated."""
        with self._lock:
            table = self._table_for_write(table_id)
            now = _now()
            guests = [
                _apply(guest, {}, table=None, seat="", updated_at=now)
                for guest in self.db.list_guests()
                if guest.table == table.id or guest.id in table.guests
            ]
            registrations = [
                _apply(record, {}, table=None, updated_at=now)
                for record in self.db.list_registrations()
                if record.table == table.id or record.id in table.registrations
            ]
            self.db.commit(save=[*guests, *registrations], delete=[table])
        logger.info(f"Deleted table {table.tablename}; unseated {len(guests)} guest(s)")

    def delete_all(self) -> List[TableRecord]:
        """Remove every table, registration and guest."""
        with self._lock:
            self.db.clear()
        logger.warning("Deleted all event tables, registrations and guests")
        return self.db.list_tables()

    # -- settings -----------------------------------------------------------

    def event_settings(self) -> EventSettings:
        """Stored event settings; the configured defaults are stored on first read."""
        with self._lock:
            return self._load_settings()

    def update_event_settings(self, data: EventSettingsUpdate) -> EventSettings:
        with self._lock:
            updated = self._load_settings().model_copy(update=data.model_dump(exclude_none=True))
            if self._localize(updated.salesclose) <= self._localize(updated.salesopen):
                raise InvalidInput("Ticket sales must close after they open.")
            self.db.save_event_settings(updated)
            return updated

    # -- helpers ------------------------------------------------------------

    def _load_settings(self) -> EventSettings:
        settings = self.db.get_event_settings()
        if settings is None:
            settings = self.default_settings
            self.db.save_event_settings(settings)
        return settings

    def _localize(self, moment: datetime) -> datetime:
        """Naive times are event-local."""
        return moment if moment.tzinfo is not None else moment.replace(tzinfo=self.timezone)

    def _registration_for_write(self, registration_id: str) -> RegistrationRecord:
        record = self.db.get_registration(registration_id)
        if record is None:
            raise InvalidInput(f"Registration {registration_id} does not exist.")
        return record

    def _guest_for_write(self, guest_id: str) -> GuestRecord:
        record = self.db.get_guest(guest_id)
        if record is None:
            raise InvalidInput(f"Guest {guest_id} does not exist.")
        return record

    def _table_for_write(self, table_id: str) -> TableRecord:
        record = self.db.get_table(table_id)
        if record is None:
            raise InvalidInput(f"Table {table_id} does not exist.")
        return record

    def _require_guests(self, guest_ids: Iterable[str]) -> None:
        for guest_id in guest_ids:
            self._guest_for_write(guest_id)

    def _guests_of(self, registration_id: str, listed: List[str]) -> List[GuestRecord]:
        """Guests filed under a registration, listed order first."""
        owned = {guest.id: guest for guest in self.db.list_guests(registration=registration_id)}
        ordered = [owned.pop(guest_id) for guest_id in listed if guest_id in owned]
        ordered.extend(owned.values())
        return ordered


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _merge(current: List[Any], added: Iterable[Any]) -> List[Any]:
    merged = list(current)
    for item in added:
        if item not in merged:
            merged.append(item)
    return merged


def _validated(model: type, **fields: Any) -> Any:
    try:
        return model.model_validate(fields)
    except ValidationError as exc:
        raise InvalidInput(_describe(exc)) from exc


def _apply(record: BaseModel, changes: Dict[str, Any], **fields: Any) -> Any:
    """Validated copy of ``record`` with ``changes`` and ``fields`` applied."""
    data = record.model_dump()
    data.update(changes)
    for key, value in fields.items():
        data[key] = value
    return _validated(type(record), **data)


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
