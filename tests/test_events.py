"""
Tests for awards event registration and seating.

Tests cover:
- Table name generation
- Registrations (lookup, user filter, list push/pull, cascading delete)
- Guests (validation, registration membership, seating)
- Tables (creation, default layout, deletion, list push/pull)
- Event settings defaults and updates
"""

from datetime import datetime, timezone

import pytest

from premiers_awards_backend.errors import InvalidInput, NoRecord, RecordExists
from premiers_awards_backend.events import next_table_name, table_names
from premiers_awards_backend.models import (
    EventSettingsUpdate,
    GuestCreate,
    GuestUpdate,
    RegistrationCreate,
    RegistrationLists,
    RegistrationUpdate,
    TableCreate,
    TableLists,
    TableUpdate,
)


def _registration(manager, **fields):
    data = {"guid": "registrar-1", "organization": "org-21", "users": [{"guid": "registrar-1"}]}
    data.update(fields)
    return manager.create_registration(RegistrationCreate(**data))


def _guest(manager, registration_id, **fields):
    data = {
        "registration": registration_id,
        "firstname": "Ada",
        "lastname": "Lovelace",
        "attendancetype": "guest",
        "organization": "org-21",
    }
    data.update(fields)
    return manager.create_guest(GuestCreate(**data))


def _table(manager, **fields):
    data = {"tablecapacity": 10, "tabletype": "Standard"}
    data.update(fields)
    return manager.create_table(TableCreate(**data))


class TestTableNames:
    def test_letters_cycle_before_numbers(self):
        names = table_names("AGBHCIDJEKFL", 10)
        assert names[:13] == ["A1", "G1", "B1", "H1", "C1", "I1", "D1", "J1", "E1", "K1", "F1", "L1", "A2"]
        assert len(names) == 120
        assert names[-1] == "L10"

    def test_next_unused(self):
        assert next_table_name(["A1", "G1", "B1"], {"A1"}) == "G1"
        assert next_table_name(["A1"], {"A1"}) is None


class TestRegistrations:
    def test_lookup_by_id_or_guid(self, event_manager):
        record = _registration(event_manager)

        assert event_manager.get_registration(record.id) == record
        assert event_manager.get_registration("registrar-1").id == record.id
        with pytest.raises(NoRecord):
            event_manager.get_registration("nobody")

    def test_filters(self, event_manager):
        mine = _registration(event_manager, users=[{"guid": "u-1"}, {"guid": "u-2"}])
        theirs = _registration(event_manager, guid="registrar-2", organization="org-5", users=[{"guid": "u-3"}])

        assert [item.id for item in event_manager.user_registrations("u-2")] == [mine.id]
        assert [item.id for item in event_manager.list_registrations("org-5")] == [theirs.id]
        assert len(event_manager.list_registrations()) == 2

    def test_update(self, event_manager):
        record = _registration(event_manager)
        updated = event_manager.update_registration(record.id, RegistrationUpdate(branch="Finance", submitted=True))

        assert (updated.branch, updated.submitted) == ("Finance", True)
        assert updated.organization == "org-21"
        assert event_manager.get_registration(record.id).branch == "Finance"

    def test_update_rejects_unknown_records(self, event_manager):
        record = _registration(event_manager)
        with pytest.raises(InvalidInput):
            event_manager.update_registration("missing", RegistrationUpdate(branch="Finance"))
        with pytest.raises(InvalidInput):
            event_manager.update_registration(record.id, RegistrationUpdate(table="no-such-table"))

    def test_push_and_pull(self, event_manager):
        record = _registration(event_manager)
        guest = _guest(event_manager, record.id)

        pushed = event_manager.push_registration(
            record.id, RegistrationLists(users=[{"guid": "u-9"}, {"guid": "registrar-1"}], guests=[guest.id])
        )
        assert [user.guid for user in pushed.users] == ["registrar-1", "u-9"]
        assert pushed.guests == [guest.id]

        pulled = event_manager.pull_registration(record.id, RegistrationLists(users=[{"guid": "registrar-1"}]))
        assert [user.guid for user in pulled.users] == ["u-9"]
        assert pulled.guests == [guest.id]

        with pytest.raises(InvalidInput):
            event_manager.push_registration(record.id, RegistrationLists(guests=["no-such-guest"]))

    def test_delete_removes_guests_and_seating(self, event_manager):
        record = _registration(event_manager)
        other = _registration(event_manager, guid="registrar-2")
        first = _guest(event_manager, record.id)
        second = _guest(event_manager, record.id, firstname="Grace", lastname="Hopper")
        kept = _guest(event_manager, other.id)
        table = _table(event_manager)
        event_manager.push_table(
            table.id, TableLists(registrations=[record.id, other.id], guests=[first.id, kept.id])
        )

        event_manager.delete_registration(record.id)

        with pytest.raises(NoRecord):
            event_manager.get_guest(second.id)
        assert [guest.id for guest in event_manager.list_guests()] == [kept.id]
        seated = event_manager.get_table(table.id)
        assert seated.registrations == [other.id]
        assert seated.guests == [kept.id]
        with pytest.raises(InvalidInput):
            event_manager.delete_registration(record.id)


class TestGuests:
    def test_guest_is_listed_on_registration(self, event_manager):
        record = _registration(event_manager)
        first = _guest(event_manager, record.id)
        second = _guest(event_manager, record.id, firstname="Grace", lastname="Hopper")

        assert first.guid and first.guid != second.guid
        assert event_manager.get_registration(record.id).guests == [first.id, second.id]
        assert [guest.id for guest in event_manager.registration_guests("registrar-1")] == [first.id, second.id]

    def test_required_fields(self, event_manager):
        record = _registration(event_manager)
        with pytest.raises(InvalidInput):
            _guest(event_manager, record.id, lastname="  ")
        with pytest.raises(InvalidInput):
            _guest(event_manager, "missing-registration")
        assert event_manager.list_guests() == []

    def test_duplicate_guid(self, event_manager):
        record = _registration(event_manager)
        _guest(event_manager, record.id, guid="guest-1")
        with pytest.raises(RecordExists):
            _guest(event_manager, record.id, guid="guest-1")

    def test_seat_assignment(self, event_manager):
        record = _registration(event_manager)
        guest = _guest(event_manager, record.id)
        table = _table(event_manager)

        seated = event_manager.update_guest(guest.id, GuestUpdate(table=table.id, seat="3", dietary=["vegan"]))

        assert (seated.table, seated.seat, seated.dietary) == (table.id, "3", ["vegan"])
        assert [item.id for item in event_manager.table_guests(table.id)] == [guest.id]
        with pytest.raises(InvalidInput):
            event_manager.update_guest(guest.id, GuestUpdate(table="no-such-table"))
        with pytest.raises(InvalidInput):
            event_manager.update_guest(guest.id, GuestUpdate(firstname=""))

    def test_delete_detaches_guest(self, event_manager):
        record = _registration(event_manager)
        guest = _guest(event_manager, record.id)
        table = _table(event_manager)
        event_manager.push_table(table.id, TableLists(guests=[guest.id]))

        event_manager.delete_guest(guest.id)

        assert event_manager.get_registration(record.id).guests == []
        assert event_manager.get_table(table.id).guests == []
        with pytest.raises(NoRecord):
            event_manager.get_guest(guest.id)


class TestTables:
    def test_generated_names_and_indexes(self, event_manager):
        first = _table(event_manager)
        second = _table(event_manager)
        named = _table(event_manager, tablename="Head Table", tabletype="Head")

        assert (first.tablename, first.tableindex) == ("A1", 1)
        assert (second.tablename, second.tableindex) == ("G1", 2)
        assert (named.tablename, named.tableindex) == ("Head Table", 3)
        assert event_manager.get_table(first.guid).id == first.id
        assert event_manager.count_tables() == 3

    def test_deleted_name_is_reused(self, event_manager):
        first = _table(event_manager)
        _table(event_manager)
        event_manager.delete_table(first.id)

        assert _table(event_manager).tablename == "A1"

    def test_invalid_tables(self, event_manager):
        _table(event_manager, tablename="A1")
        with pytest.raises(RecordExists):
            _table(event_manager, tablename="A1")
        with pytest.raises(InvalidInput):
            event_manager.create_table(TableCreate(tabletype="Standard"))
        with pytest.raises(InvalidInput):
            _table(event_manager, tabletype="")
        with pytest.raises(InvalidInput):
            _table(event_manager, tablecapacity=0)
        assert event_manager.count_tables() == 1

    def test_generate_default_layout(self, event_manager):
        record = _registration(event_manager)
        guest = _guest(event_manager, record.id)
        old = _table(event_manager, tablename="Old")
        event_manager.update_guest(guest.id, GuestUpdate(table=old.id, seat="1"))
        event_manager.update_registration(record.id, RegistrationUpdate(table=old.id))

        tables = event_manager.generate_tables()

        assert [table.tablename for table in tables] == ["A1", "G1", "B1", "H1", "C1", "I1", "D1", "J1", "E1", "K1"]
        assert [table.tableindex for table in tables] == list(range(1, 11))
        assert {(table.tablecapacity, table.tabletype) for table in tables} == {(10, "Standard")}
        unseated = event_manager.get_guest(guest.id)
        assert (unseated.table, unseated.seat) == (None, "")
        assert event_manager.get_registration(record.id).table is None
        with pytest.raises(NoRecord):
            event_manager.get_table(old.id)

    def test_delete_unseats_guests_and_registrations(self, event_manager):
        record = _registration(event_manager)
        guest = _guest(event_manager, record.id)
        table = _table(event_manager)
        event_manager.update_guest(guest.id, GuestUpdate(table=table.id, seat="4"))
        event_manager.update_registration(record.id, RegistrationUpdate(table=table.id))

        event_manager.delete_table(table.id)

        unseated = event_manager.get_guest(guest.id)
        assert (unseated.table, unseated.seat) == (None, "")
        assert event_manager.get_registration(record.id).table is None
        with pytest.raises(InvalidInput):
            event_manager.delete_table(table.id)

    def test_push_and_pull(self, event_manager):
        record = _registration(event_manager)
        guest = _guest(event_manager, record.id)
        table = _table(event_manager)

        event_manager.push_table(table.id, TableLists(organizations=["org-21"], guests=[guest.id]))
        pushed = event_manager.push_table(
            table.id, TableLists(organizations=["org-21", "org-5"], registrations=[record.id])
        )
        assert pushed.organizations == ["org-21", "org-5"]
        assert (pushed.registrations, pushed.guests) == ([record.id], [guest.id])

        pulled = event_manager.pull_table(table.id, TableLists(organizations=["org-21"], guests=[guest.id]))
        assert (pulled.organizations, pulled.guests) == (["org-5"], [])

        with pytest.raises(InvalidInput):
            event_manager.push_table(table.id, TableLists(registrations=["no-such-registration"]))

    def test_rename_to_existing_name(self, event_manager):
        first = _table(event_manager)
        _table(event_manager)
        with pytest.raises(RecordExists):
            event_manager.update_table(first.id, TableUpdate(tablename="G1"))
        assert event_manager.update_table(first.id, TableUpdate(tablecapacity=8)).tablecapacity == 8

    def test_delete_all(self, event_manager):
        record = _registration(event_manager)
        _guest(event_manager, record.id)
        _table(event_manager)

        assert event_manager.delete_all() == []
        assert event_manager.list_registrations() == []
        assert event_manager.list_guests() == []
        assert event_manager.count_tables() == 0


class TestEventSettings:
    def test_defaults_are_stored_on_first_read(self, event_manager):
        assert event_manager.db.get_event_settings() is None

        settings = event_manager.event_settings()

        assert settings.year == 2022
        assert settings.salesopen == datetime(2022, 10, 24, 8, 0)
        assert settings.salesclose == datetime(2022, 11, 7, 17, 0)
        assert event_manager.db.get_event_settings() == settings

    def test_update(self, event_manager):
        updated = event_manager.update_event_settings(EventSettingsUpdate(year=2023))
        assert updated.year == 2023
        assert updated.salesopen == datetime(2022, 10, 24, 8, 0)
        assert event_manager.event_settings().year == 2023

    def test_sales_must_close_after_opening(self, event_manager):
        # 14:00 UTC is 07:00 in Vancouver, an hour before the default opening
        with pytest.raises(InvalidInput):
            event_manager.update_event_settings(
                EventSettingsUpdate(salesclose=datetime(2022, 10, 24, 14, 0, tzinfo=timezone.utc))
            )
        updated = event_manager.update_event_settings(
            EventSettingsUpdate(salesclose=datetime(2022, 10, 24, 16, 0, tzinfo=timezone.utc))
        )
        assert updated.salesclose.hour == 16
