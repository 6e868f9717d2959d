"""
Ledger Input Validation

DESIGN DECISION: Validation happens at the service boundary, BEFORE any
state is read for modification. A rejected call never touches storage.

Two kinds of checks live here:

NORMALIZATION - input that has one obvious meaning is coerced:
- Minutes late are floored and clamped at zero
- Correction deltas are rounded to the nearest slice
- E-mails are trimmed and lower-cased

REJECTION - input with no sensible meaning raises ValidationError:
- Empty group or member names
- Curve shifts outside the formula's domain
- Non-finite numbers, malformed e-mails
"""

import math
import re
from typing import Union

from pizza_ledger.engine import CURVE_SHIFT_FLOOR, is_valid_curve_shift
from pizza_ledger.exceptions import ValidationError
from pizza_ledger.models.ledger import Role, derive_initials

Number = Union[int, float]

MAX_NAME_LENGTH = 100

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")


def _require_number(value: object, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValidationError(f"{field} must be finite, got {value}")
    return float(value)


def validate_name(name: str, field: str = "name") -> str:
    """Trimmed, non-empty, bounded name."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} must not be empty")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"{field} must be at most {MAX_NAME_LENGTH} characters")
    return cleaned


def validate_member_name(display_name: str) -> tuple[str, str]:
    """
    Validate a member name and derive its initials.

    Returns:
        (display_name, initials)
    """
    cleaned = validate_name(display_name, "display_name")
    initials = derive_initials(cleaned)
    if not initials:
        raise ValidationError("display_name must produce initials")
    return cleaned, initials


def validate_initials(initials: str) -> str:
    cleaned = (initials or "").strip().upper()
    if not 1 <= len(cleaned) <= 2:
        raise ValidationError("initials must be one or two characters")
    return cleaned


def validate_curve_shift(value: Number) -> float:
    """
    Raises:
        ValidationError: If value <= -2 (the formula's log would be undefined)
    """
    shift = _require_number(value, "curve_shift")
    if not is_valid_curve_shift(shift):
        raise ValidationError(f"curve_shift must be greater than {CURVE_SHIFT_FLOOR}, got {shift}")
    return shift


def validate_email(email: str) -> str:
    """Normalize an admin e-mail (trim, lower-case) and check its shape."""
    normalized = (email or "").strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        raise ValidationError(f"Not a valid e-mail address: {email!r}")
    return normalized


def validate_role(role: Union[Role, str]) -> Role:
    try:
        return Role(role)
    except ValueError as e:
        raise ValidationError(f"Unknown role: {role!r}") from e


def normalize_minutes(value: Number) -> int:
    """
    Whole minutes late, never negative.

    12.9 -> 12, -4 -> 0
    """
    minutes = _require_number(value, "minutes_late")
    return max(0, math.floor(minutes))


def round_delta(value: Number) -> int:
    """
    Nearest whole slice, halves rounded up.

    2.5 -> 3, -2.5 -> -2, -2.6 -> -3
    """
    delta = _require_number(value, "delta_slices")
    return math.floor(delta + 0.5)
