"""
Audit Logger

DESIGN DECISION: Every ledger mutation, and every refused one, is logged.
This provides:
1. Traceability of balance changes
2. Debugging capability
3. A record of denied admin actions

The audit logger:
- Is async so storage writes don't block the event loop
- Gracefully handles failures (a ledger write that succeeded is never
  reported as failed because its audit entry couldn't be stored)
"""

from typing import Optional

import structlog

from pizza_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from pizza_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), if one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("pizza_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_denied(self, group_id: str, operation: str, actor: str) -> None:
        """Log a refused admin-only operation."""
        await self.log(AuditEventBuilder.authorization_denied(
            group_id=group_id,
            operation=operation,
            actor=actor,
        ))

    async def log_write_failed(
        self,
        group_id: str,
        operation: str,
        error: Exception,
        conflict: bool,
        actor: Optional[str] = None,
    ) -> None:
        """Log a storage write that was refused or failed."""
        await self.log(AuditEventBuilder.write_failed(
            group_id=group_id,
            operation=operation,
            error_message=str(error),
            conflict=conflict,
            actor=actor,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        group_id: Optional[str] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            group_id=group_id,
        ))
