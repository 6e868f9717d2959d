"""Authorization package."""

from pizza_ledger.auth.gate import (
    can_record_meeting,
    is_admin,
    normalize_identity,
    require_admin,
)

__all__ = [
    "can_record_meeting",
    "is_admin",
    "normalize_identity",
    "require_admin",
]
