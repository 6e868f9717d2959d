"""
Audit Models for the Pizza Ledger

Every ledger mutation (and every refused one) is logged for audit purposes.
This provides:
1. Traceability of who changed a balance and why
2. Debugging information when things go wrong
3. Visibility of denied admin actions

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
They are an operational trail, NOT a source of truth: balances are never
recomputed from this log.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from pizza_ledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Groups
    GROUP_CREATED = "group_created"
    GROUP_UPDATED = "group_updated"
    GROUP_DELETED = "group_deleted"
    CURVE_SHIFT_CHANGED = "curve_shift_changed"

    # Admin list
    ADMIN_ADDED = "admin_added"
    ADMIN_REMOVED = "admin_removed"

    # Members
    MEMBER_ADDED = "member_added"
    MEMBER_UPDATED = "member_updated"
    MEMBER_REMOVED = "member_removed"

    # Balances
    MEETING_RECORDED = "meeting_recorded"
    MEMBER_CORRECTED = "member_corrected"

    # Refusals and failures
    AUTHORIZATION_DENIED = "authorization_denied"
    WRITE_CONFLICT = "write_conflict"
    SAVE_FAILED = "save_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    group_id: Optional[str] = Field(
        default=None,
        description="Group the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'group', 'member', 'meeting')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Who did it
    actor: Optional[str] = Field(
        default=None,
        description="Identity of the caller"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "group_id": self.group_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor": self.actor,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, group_id, entity_type,
         entity_id, actor, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.group_id or "",
            self.entity_type or "",
            self.entity_id or "",
            self.actor or "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.group_created(group_id, name, actor)
        event = AuditEventBuilder.member_corrected(group_id, member_id, -3, ...)
    """

    @staticmethod
    def group_created(group_id: str, name: str, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            actor=actor,
            description=f"Group created: {name}",
            details={"name": name},
        )

    @staticmethod
    def group_updated(group_id: str, changes: dict[str, Any], actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_UPDATED,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            actor=actor,
            description=f"Group updated: {', '.join(sorted(changes))}",
            details=changes,
        )

    @staticmethod
    def group_deleted(group_id: str, name: str, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_DELETED,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            actor=actor,
            description=f"Group deleted: {name}",
            details={"name": name},
        )

    @staticmethod
    def curve_shift_changed(
        group_id: str,
        old_value: float,
        new_value: float,
        actor: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURVE_SHIFT_CHANGED,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            actor=actor,
            description=f"Curve shift changed from {old_value} to {new_value}",
            details={"old_value": old_value, "new_value": new_value},
        )

    @staticmethod
    def admin_changed(group_id: str, email: str, added: bool, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADMIN_ADDED if added else AuditEventType.ADMIN_REMOVED,
            group_id=group_id,
            entity_type="admin",
            entity_id=email,
            actor=actor,
            description=f"Admin {'added' if added else 'removed'}: {email}",
        )

    @staticmethod
    def member_added(group_id: str, member_id: str, display_name: str, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            actor=actor,
            description=f"Member added: {display_name}",
            details={"display_name": display_name},
        )

    @staticmethod
    def member_updated(
        group_id: str,
        member_id: str,
        changes: dict[str, Any],
        actor: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_UPDATED,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            actor=actor,
            description=f"Member updated: {', '.join(sorted(changes))}",
            details=changes,
        )

    @staticmethod
    def member_removed(group_id: str, member_id: str, display_name: str, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            actor=actor,
            description=f"Member removed: {display_name}",
            details={"display_name": display_name},
        )

    @staticmethod
    def meeting_recorded(
        group_id: str,
        meeting_id: str,
        member_count: int,
        total_slices: int,
        actor: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEETING_RECORDED,
            group_id=group_id,
            entity_type="meeting",
            entity_id=meeting_id,
            actor=actor,
            description=f"Meeting recorded: {total_slices} slices across {member_count} members",
            details={"member_count": member_count, "total_slices": total_slices},
        )

    @staticmethod
    def member_corrected(
        group_id: str,
        member_id: str,
        correction_id: str,
        delta_slices: int,
        reason: Optional[str],
        actor: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_CORRECTED,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            actor=actor,
            description=f"Balance corrected by {delta_slices:+d} slices",
            details={
                "correction_id": correction_id,
                "delta_slices": delta_slices,
                "reason": reason or "No reason provided",
            },
        )

    @staticmethod
    def authorization_denied(group_id: str, operation: str, actor: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHORIZATION_DENIED,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            actor=actor,
            description=f"Denied: {operation}",
            details={"operation": operation},
        )

    @staticmethod
    def write_failed(
        group_id: str,
        operation: str,
        error_message: str,
        conflict: bool,
        actor: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_CONFLICT if conflict else AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.WARNING if conflict else AuditSeverity.ERROR,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            actor=actor,
            description=f"Write failed during {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        group_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            group_id=group_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
