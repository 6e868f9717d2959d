"""
Tests for input validation and the authorization gate.
"""

import math

import pytest

from pizza_ledger.auth import can_record_meeting, is_admin, normalize_identity, require_admin
from pizza_ledger.exceptions import AuthorizationError, ValidationError
from pizza_ledger.models.ledger import Group, Role
from pizza_ledger.validation import (
    normalize_minutes,
    round_delta,
    validate_curve_shift,
    validate_email,
    validate_initials,
    validate_member_name,
    validate_name,
    validate_role,
)


class TestNormalization:
    """Input with one obvious meaning is coerced."""

    def test_minutes_are_floored(self):
        """Test that fractional minutes are floored."""
        assert normalize_minutes(12.9) == 12
        assert normalize_minutes(7) == 7

    def test_negative_minutes_are_zero(self):
        """Test that early arrivals count as on time."""
        assert normalize_minutes(-4) == 0
        assert normalize_minutes(-0.5) == 0

    def test_minutes_must_be_numbers(self):
        """Test that non-numeric minutes are rejected."""
        with pytest.raises(ValidationError):
            normalize_minutes("5")
        with pytest.raises(ValidationError):
            normalize_minutes(True)
        with pytest.raises(ValidationError):
            normalize_minutes(math.nan)

    def test_round_delta(self):
        """Test that halves round up."""
        assert round_delta(2.5) == 3
        assert round_delta(-2.5) == -2
        assert round_delta(-2.6) == -3
        assert round_delta(4) == 4

    def test_email_is_normalized(self):
        """Test that e-mails are trimmed and lower-cased."""
        assert validate_email("  Lead@Example.COM ") == "lead@example.com"


class TestRejection:
    """Input with no sensible meaning raises ValidationError."""

    def test_empty_names(self):
        """Test that blank names are rejected."""
        with pytest.raises(ValidationError):
            validate_name("")
        with pytest.raises(ValidationError):
            validate_name("   ")
        with pytest.raises(ValidationError):
            validate_name("x" * 101)
        assert validate_name("  Crew ") == "Crew"

    def test_member_name_and_initials(self):
        """Test member names produce initials."""
        assert validate_member_name(" alex doe ") == ("alex doe", "AD")
        assert validate_initials(" ab ") == "AB"
        with pytest.raises(ValidationError):
            validate_initials("abc")

    def test_curve_shift_domain(self):
        """Test the curve shift bounds."""
        assert validate_curve_shift(0) == 0.0
        assert validate_curve_shift(-1.5) == -1.5
        for bad in (-2, -3, math.inf, math.nan):
            with pytest.raises(ValidationError):
                validate_curve_shift(bad)

    def test_bad_emails(self):
        """Test malformed e-mail addresses."""
        for bad in ("", "nobody", "a b@x.io", "@", None):
            with pytest.raises(ValidationError):
                validate_email(bad)

    def test_roles(self):
        """Test role parsing."""
        assert validate_role("admin") == Role.ADMIN
        assert validate_role(Role.NORMAL) == Role.NORMAL
        with pytest.raises(ValidationError):
            validate_role("owner")


class TestAuthorizationGate:
    """Tests for the admin e-mail gate."""

    def make_group(self, **kwargs) -> Group:
        return Group(name="Crew", admin_emails=["lead@example.com", "b@x.io"], **kwargs)

    def test_is_admin(self):
        """Test admin membership, case-insensitively."""
        group = self.make_group()
        assert is_admin(group, "lead@example.com")
        assert is_admin(group, " B@X.IO ")
        assert not is_admin(group, "visitor@example.com")
        assert not is_admin(group, "")

    def test_require_admin(self):
        """Test that outsiders are refused with context."""
        group = self.make_group()
        require_admin(group, "b@x.io", "add a member")

        with pytest.raises(AuthorizationError) as exc_info:
            require_admin(group, "visitor@example.com", "add a member")
        assert exc_info.value.group_id == group.id
        assert exc_info.value.operation == "add a member"

    def test_can_record_meeting(self):
        """Test the everyone-may-record switch."""
        closed = self.make_group()
        open_group = self.make_group(allow_everyone_enter_minutes=True)

        assert not can_record_meeting(closed, "visitor@example.com")
        assert can_record_meeting(closed, "b@x.io")
        assert can_record_meeting(open_group, "visitor@example.com")
        assert not can_record_meeting(open_group, "  ")

    def test_require_admin_with_meeting_permission(self):
        """Test that the gate accepts a different permission check."""
        closed = self.make_group()
        open_group = self.make_group(allow_everyone_enter_minutes=True)

        require_admin(open_group, "visitor@example.com", "record a meeting", can_record_meeting)
        with pytest.raises(AuthorizationError) as exc_info:
            require_admin(closed, "visitor@example.com", "record a meeting", can_record_meeting)
        assert exc_info.value.operation == "record a meeting"

    def test_normalize_identity(self):
        """Test identity normalization."""
        assert normalize_identity(" A@X.io ") == "a@x.io"
        assert normalize_identity(None) == ""
