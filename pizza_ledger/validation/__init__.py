"""Input validation package."""

from pizza_ledger.validation.validator import (
    normalize_minutes,
    round_delta,
    validate_curve_shift,
    validate_email,
    validate_initials,
    validate_member_name,
    validate_name,
    validate_role,
)

__all__ = [
    "normalize_minutes",
    "round_delta",
    "validate_curve_shift",
    "validate_email",
    "validate_initials",
    "validate_member_name",
    "validate_name",
    "validate_role",
]
