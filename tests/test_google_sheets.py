"""
Tests for the Google Sheets backends.

No real API calls: a fake client hands out in-memory worksheets that behave
like the parts of gspread.Worksheet the backends use.
"""

import json
from datetime import timedelta

import pytest

from pizza_ledger.audit import AuditLogger
from pizza_ledger.exceptions import ConflictError, PersistenceError
from pizza_ledger.ledger import LedgerService
from pizza_ledger.models.audit import AuditEventBuilder, AuditEventType
from pizza_ledger.models.ledger import Group, Member
from pizza_ledger.services.storage import google_sheets
from pizza_ledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    GROUP_COLUMNS,
    GoogleSheetsAuditStorage,
    GoogleSheetsGroupStorage,
)

CREATOR = "lead@example.com"


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage backends."""

    def __init__(self, header: list[str]):
        self.rows: list[list] = [list(header)]
        self.fail_with: Exception | None = None
        # Reads numbered above this fail with RuntimeError
        self.fail_reads_after: int | None = None
        self.reads = 0

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def get_all_values(self) -> list[list]:
        self._check()
        self.reads += 1
        if self.fail_reads_after is not None and self.reads > self.fail_reads_after:
            raise RuntimeError("read quota exceeded")
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None) -> None:
        self._check()
        self.rows.append(list(values))

    def update(self, range_name, values, value_input_option=None) -> None:
        self._check()
        row_number = int(range_name.lstrip("A"))
        self.rows[row_number - 1] = list(values[0])

    def delete_rows(self, index) -> None:
        self._check()
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.groups_sheet = FakeWorksheet(GROUP_COLUMNS)
        self.audit_sheet = FakeWorksheet(AUDIT_COLUMNS)

    def get_groups_sheet(self) -> FakeWorksheet:
        return self.groups_sheet

    def get_audit_sheet(self) -> FakeWorksheet:
        return self.audit_sheet


@pytest.fixture
def client():
    return FakeSheetsClient()


@pytest.fixture
def group_storage(client):
    return GoogleSheetsGroupStorage(client)


@pytest.fixture
def audit_storage(client):
    return GoogleSheetsAuditStorage(client)


def make_group(**kwargs) -> Group:
    return Group(name="Crew", admin_emails=[CREATOR], **kwargs)


class TestGoogleSheetsGroupStorage:
    """Tests for one-row-per-group storage."""

    async def test_write_appends_row(self, client, group_storage):
        """Test that a new group becomes one row."""
        group = make_group(members=[Member(display_name="Alex")])

        stored = await group_storage.write_group(group, 0)

        assert stored.version == 1
        assert len(client.groups_sheet.rows) == 2
        row = client.groups_sheet.rows[1]
        assert row[0] == group.id
        assert row[1] == "1"
        assert row[3] == "Crew"
        assert json.loads(row[4])["members"][0]["display_name"] == "Alex"

    async def test_update_rewrites_same_row(self, client, group_storage):
        """Test that updates replace the group's row in place."""
        group = make_group()
        stored = await group_storage.write_group(group, 0)

        await group_storage.write_group(stored.model_copy(update={"name": "Renamed"}), 1)

        assert len(client.groups_sheet.rows) == 2
        read = await group_storage.read_group(group.id)
        assert read.name == "Renamed"
        assert read.version == 2

    async def test_stale_write_conflicts(self, group_storage):
        """Test the version check."""
        group = make_group()
        await group_storage.write_group(group, 0)
        await group_storage.write_group(group, 1)

        with pytest.raises(ConflictError):
            await group_storage.write_group(group, 1)

    async def test_version_column_is_authoritative(self, client, group_storage):
        """Test that an edited version cell wins over the document."""
        group = make_group()
        await group_storage.write_group(group, 0)
        client.groups_sheet.rows[1][1] = "7"

        read = await group_storage.read_group(group.id)
        assert read.version == 7
        with pytest.raises(ConflictError):
            await group_storage.write_group(read, 1)

    async def test_read_missing(self, group_storage):
        """Test reading a group that isn't there."""
        assert await group_storage.read_group("nope") is None

    async def test_delete(self, client, group_storage):
        """Test removing a group row."""
        keep = make_group()
        drop = make_group()
        await group_storage.write_group(keep, 0)
        await group_storage.write_group(drop, 0)

        assert await group_storage.delete_group(drop.id) is True
        assert await group_storage.delete_group(drop.id) is False
        assert [row[0] for row in client.groups_sheet.rows[1:]] == [keep.id]

    async def test_list_skips_corrupt_rows(self, client, group_storage):
        """Test that unreadable rows don't hide the rest."""
        group = make_group()
        await group_storage.write_group(group, 0)
        client.groups_sheet.rows.append(["bad", "1", "", "Bad", "{not json"])
        client.groups_sheet.rows.append(["", "", "", "", ""])

        groups = await group_storage.list_groups()
        assert [g.id for g in groups] == [group.id]

    async def test_reads_legacy_row(self, client, group_storage):
        """Test that legacy documents stored in a row are upgraded."""
        legacy = {
            "name": "Old Crew",
            "members": {"Alex Doe": 14},
            "settings": {"adminEmails": [CREATOR]},
        }
        client.groups_sheet.rows.append(["old", "3", "", "Old Crew", json.dumps(legacy)])

        group = await group_storage.read_group("old")
        assert group.version == 3
        assert group.find_member("Alex Doe").balance == (2, 2)

    async def test_oversized_document_rejected(self, client, group_storage, monkeypatch):
        """Test that documents over the cell limit are refused before writing."""
        monkeypatch.setattr(google_sheets, "MAX_CELL_CHARS", 50)

        with pytest.raises(PersistenceError):
            await group_storage.write_group(make_group(), 0)
        assert len(client.groups_sheet.rows) == 1

    async def test_transport_failure(self, client, group_storage):
        """Test that backend failures surface as PersistenceError."""
        client.groups_sheet.fail_with = RuntimeError("quota exceeded")

        with pytest.raises(PersistenceError):
            await group_storage.read_group("any")
        with pytest.raises(PersistenceError):
            await group_storage.write_group(make_group(), 0)

    async def test_notifies_subscribers(self, group_storage):
        """Test change notifications for writes made through this process."""
        seen = []
        lists = []
        group = make_group()
        group_storage.subscribe_to_group(group.id, seen.append)
        group_storage.subscribe_to_group_list(lists.append)

        await group_storage.write_group(group, 0)
        await group_storage.delete_group(group.id)

        assert seen[0].id == group.id
        assert seen[1] is None
        assert [len(groups) for groups in lists] == [1, 0]

    async def test_list_refresh_failure_keeps_write(self, client, group_storage):
        """Test that a failed list refresh after a write doesn't fail the write."""
        seen = []
        lists = []
        group = make_group()
        group_storage.subscribe_to_group(group.id, seen.append)
        group_storage.subscribe_to_group_list(lists.append)
        # The write's own version check reads once; the list refresh is next
        client.groups_sheet.fail_reads_after = client.groups_sheet.reads + 1

        stored = await group_storage.write_group(group, 0)

        assert stored.version == 1
        assert [row[0] for row in client.groups_sheet.rows[1:]] == [group.id]
        assert [g.id for g in seen] == [group.id]
        assert lists == []

        client.groups_sheet.fail_reads_after = None
        assert (await group_storage.read_group(group.id)).version == 1


class TestGoogleSheetsAuditStorage:
    """Tests for the append-only audit sheet."""

    async def test_append_and_read_back(self, client, audit_storage):
        """Test that events survive the round trip through a row."""
        event = AuditEventBuilder.member_corrected("g1", "m1", "c1", -2, "typo", CREATOR)

        assert await audit_storage.append_event(event) is True

        events = await audit_storage.get_events_by_group("g1")
        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].event_type == AuditEventType.MEMBER_CORRECTED
        assert events[0].details["delta_slices"] == -2
        assert await audit_storage.get_events_by_group("g2") == []

    async def test_recent_events_newest_first(self, audit_storage):
        """Test ordering and limit of recent events."""
        first = AuditEventBuilder.group_created("g1", "One", CREATOR)
        second = AuditEventBuilder.group_created("g2", "Two", CREATOR).model_copy(
            update={"timestamp": first.timestamp + timedelta(seconds=1)}
        )
        await audit_storage.append_event(first)
        await audit_storage.append_event(second)

        recent = await audit_storage.get_recent_events(limit=1)
        assert [e.event_id for e in recent] == [second.event_id]

    async def test_append_failure_is_reported_not_raised(self, client, audit_storage):
        """Test that audit failures never break the caller."""
        client.audit_sheet.fail_with = RuntimeError("sheet locked")
        event = AuditEventBuilder.group_created("g1", "One", CREATOR)

        assert await audit_storage.append_event(event) is False


class TestLedgerOverSheets:
    """End-to-end flow with the Sheets backends."""

    async def test_meeting_and_correction(self, client, group_storage, audit_storage):
        """Test that a full flow lands in the sheets."""
        service = LedgerService(group_storage, AuditLogger(audit_storage))
        group = await service.create_group("Crew", CREATOR)
        member = await service.add_member(group.id, "Alex", CREATOR)

        await service.record_meeting(group.id, {member.id: 20}, CREATOR)
        await service.correct_member(group.id, member.id, -1, CREATOR)

        assert len(client.groups_sheet.rows) == 2
        assert client.groups_sheet.rows[1][1] == "4"

        stored = await service.get_group(group.id)
        assert len(stored.meetings) == 1
        assert len(stored.corrections) == 1

        types = [e.event_type for e in await audit_storage.get_events_by_group(group.id)]
        assert types == [
            AuditEventType.GROUP_CREATED,
            AuditEventType.MEMBER_ADDED,
            AuditEventType.MEETING_RECORDED,
            AuditEventType.MEMBER_CORRECTED,
        ]

    async def test_meeting_survives_list_refresh_failure(self, client, group_storage, audit_storage):
        """Test that record_meeting succeeds when only the list refresh fails."""
        service = LedgerService(group_storage, AuditLogger(audit_storage))
        group = await service.create_group("Crew", CREATOR)
        alex = await service.add_member(group.id, "Alex", CREATOR)
        sam = await service.add_member(group.id, "Sam", CREATOR)
        lists = []
        service.subscribe_to_groups(lists.append)
        # Loading the group and the version check read; the third read fails
        client.groups_sheet.fail_reads_after = client.groups_sheet.reads + 2

        meeting = await service.record_meeting(group.id, {alex.id: 20, sam.id: 0}, CREATOR)

        assert lists == []
        client.groups_sheet.fail_reads_after = None
        stored = await service.get_group(group.id)
        assert [m.id for m in stored.meetings] == [meeting.id]
        assert stored.find_member(alex.id).balance != (0, 0)
        assert stored.find_member(sam.id).balance == (0, 0)
        assert stored.version == 4
        types = [e.event_type for e in await audit_storage.get_events_by_group(group.id)]
        assert types[-1] == AuditEventType.MEETING_RECORDED
