"""
Tests for Pizza Ledger

Test strategy:
1. Unit tests for individual components (models, validators, formula)
2. Integration tests for flows (with in-memory storage)
3. No real API calls in tests (use fakes)
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from pizza_ledger.engine import SliceBalance
from pizza_ledger.models.ledger import (
    Correction,
    Group,
    Meeting,
    MeetingEntry,
    Member,
    Role,
    derive_initials,
)
from pizza_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestMemberModel:
    """Tests for the Member model."""

    def test_member_creation(self):
        """Test Member model creation with defaults."""
        member = Member(display_name="Alex Doe")
        assert member.display_name == "Alex Doe"
        assert member.initials == "AD"
        assert member.role == Role.NORMAL
        assert member.balance == SliceBalance(0, 0)
        assert member.id

    def test_member_strips_whitespace(self):
        """Test that whitespace is stripped from the display name."""
        member = Member(display_name="  Sam  ")
        assert member.display_name == "Sam"
        assert member.initials == "S"

    def test_member_keeps_explicit_initials(self):
        """Test that given initials are not overwritten."""
        member = Member(display_name="Alex Doe", initials="XY")
        assert member.initials == "XY"

    def test_member_rejects_full_pizza_of_slices(self):
        """Test that slices must stay below one pizza."""
        with pytest.raises(PydanticValidationError):
            Member(display_name="Alex", total_slices=6)

    def test_member_rejects_negative_balance(self):
        """Test that negative balances are rejected."""
        with pytest.raises(PydanticValidationError):
            Member(display_name="Alex", total_pizzas=-1)

    def test_with_balance(self):
        """Test that with_balance returns an updated copy."""
        member = Member(display_name="Alex")
        updated = member.with_balance(SliceBalance(2, 3))
        assert updated.combined_slices == 15
        assert member.combined_slices == 0
        assert updated.id == member.id

    def test_derive_initials(self):
        """Test initials derivation."""
        assert derive_initials("alex van doe") == "AV"
        assert derive_initials("cher") == "C"
        assert derive_initials("   ") == ""


class TestGroupModel:
    """Tests for the Group aggregate."""

    def test_group_creation(self):
        """Test Group model creation with defaults."""
        group = Group(name="Design Crew", admin_emails=["Lead@Example.com"])
        assert group.curve_shift == 0.3
        assert group.emoji == "🍕"
        assert group.allow_everyone_enter_minutes is False
        assert group.creator_email == "lead@example.com"
        assert group.version == 0

    def test_admin_emails_normalized(self):
        """Test that admin e-mails are lower-cased and de-duplicated."""
        group = Group(
            name="Crew",
            admin_emails=["a@x.io", " A@X.io ", "b@x.io"],
        )
        assert group.admin_emails == ["a@x.io", "b@x.io"]

    def test_group_requires_admin(self):
        """Test that a group without admins is rejected."""
        with pytest.raises(PydanticValidationError):
            Group(name="Crew", admin_emails=[])

    def test_group_rejects_out_of_domain_shift(self):
        """Test that curve_shift must be above -2."""
        with pytest.raises(PydanticValidationError):
            Group(name="Crew", admin_emails=["a@x.io"], curve_shift=-2)

    def test_group_rejects_duplicate_member_ids(self):
        """Test that member ids are unique within a group."""
        with pytest.raises(PydanticValidationError, match="unique"):
            Group(
                name="Crew",
                admin_emails=["a@x.io"],
                members=[
                    Member(id="m1", display_name="Alex"),
                    Member(id="m1", display_name="Sam"),
                ],
            )

    def test_find_member(self):
        """Test member lookup by id."""
        group = Group(
            name="Crew",
            admin_emails=["a@x.io"],
            members=[Member(id="m1", display_name="Alex")],
        )
        assert group.find_member("m1").display_name == "Alex"
        assert group.find_member("missing") is None
        assert group.member_index("m1") == 0
        assert group.member_index("missing") == -1


class TestHistoryModels:
    """Tests for meetings and corrections."""

    def test_meeting_totals(self):
        """Test meeting totals and entry lookup."""
        meeting = Meeting(
            group_id="g1",
            entries=(
                MeetingEntry(member_id="m1", minutes_late=20, slices_awarded=4),
                MeetingEntry(member_id="m2", minutes_late=0, slices_awarded=0),
            ),
        )
        assert meeting.total_slices_awarded == 4
        assert meeting.entry_for("m1").minutes_late == 20
        assert meeting.entry_for("m3") is None

    def test_meeting_is_immutable(self):
        """Test that recorded meetings can't be edited."""
        meeting = Meeting(group_id="g1")
        with pytest.raises(PydanticValidationError):
            meeting.curve_shift = 1.0

    def test_correction_requires_author(self):
        """Test that a correction records who made it."""
        with pytest.raises(PydanticValidationError):
            Correction(group_id="g1", member_id="m1", delta_slices=2, by="")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            description="Group created",
        )
        assert event.event_type == AuditEventType.GROUP_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.member_added("g1", "m1", "Alex", "a@x.io")
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "member_added"
        assert log_dict["details"]["display_name"] == "Alex"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.member_corrected(
            "g1", "m1", "c1", -3, None, "a@x.io"
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "member_corrected"  # event_type
        assert row[4] == "g1"  # group_id
        assert row[7] == "a@x.io"  # actor
        assert '"delta_slices": -3' in row[9]

    def test_audit_event_builder_denied(self):
        """Test AuditEventBuilder.authorization_denied."""
        event = AuditEventBuilder.authorization_denied("g1", "add a member", "x@y.io")
        assert event.event_type == AuditEventType.AUTHORIZATION_DENIED
        assert event.severity == AuditSeverity.WARNING
        assert event.actor == "x@y.io"

    def test_audit_event_builder_write_failed(self):
        """Test that conflicts and save failures are distinguished."""
        conflict = AuditEventBuilder.write_failed("g1", "record a meeting", "boom", True)
        failure = AuditEventBuilder.write_failed("g1", "record a meeting", "boom", False)
        assert conflict.event_type == AuditEventType.WRITE_CONFLICT
        assert failure.event_type == AuditEventType.SAVE_FAILED
        assert failure.severity == AuditSeverity.ERROR


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
