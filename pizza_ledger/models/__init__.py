"""
Data Models Package

This package contains all Pydantic models used by the pizza ledger.
Everything the ledger stores or reports conforms to these schemas.
"""

from pizza_ledger.models.ledger import (
    Correction,
    CorrectionHistoryItem,
    Group,
    HistoryItem,
    Meeting,
    MeetingEntry,
    MeetingHistoryItem,
    Member,
    Role,
    derive_initials,
    new_id,
    utcnow,
)
from pizza_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Correction",
    "CorrectionHistoryItem",
    "Group",
    "HistoryItem",
    "Meeting",
    "MeetingEntry",
    "MeetingHistoryItem",
    "Member",
    "Role",
    "derive_initials",
    "new_id",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
