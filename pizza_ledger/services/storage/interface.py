"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

A group is stored as ONE document (members, meetings and corrections
included). Writing that document is the unit of atomicity: a meeting and the
balances it changed can never be persisted separately.

Concurrency is optimistic. Every write names the version it was based on;
if the stored version moved on, the write is refused with ConflictError and
nothing changes.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from pizza_ledger.models.audit import AuditEvent
from pizza_ledger.models.ledger import Group

GroupCallback = Callable[[Optional[Group]], None]
GroupListCallback = Callable[[list[Group]], None]
Unsubscribe = Callable[[], None]


class GroupStorageInterface(ABC):
    """
    Abstract interface for group storage operations.

    Any storage implementation (Google Sheets, a document DB, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def read_group(self, group_id: str) -> Optional[Group]:
        """
        Retrieve a group by its ID.

        Returns:
            A private copy of the group if found, None otherwise

        Raises:
            PersistenceError: If the backend could not be read
        """
        pass

    @abstractmethod
    async def write_group(self, group: Group, expected_version: int) -> Group:
        """
        Atomically store a whole group document.

        Args:
            group: The full group aggregate to store
            expected_version: Version the caller read (0 for a new group)

        Returns:
            The stored copy, with its version bumped

        Raises:
            ConflictError: If the stored version differs from expected_version
            PersistenceError: If the write failed
        """
        pass

    @abstractmethod
    async def delete_group(self, group_id: str) -> bool:
        """
        Delete a group document.

        Returns:
            True if a group was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_groups(self) -> list[Group]:
        """List every stored group, oldest first."""
        pass

    @abstractmethod
    def subscribe_to_group(self, group_id: str, on_change: GroupCallback) -> Unsubscribe:
        """
        Watch one group.

        on_change receives the new group after every write, or None once it
        is deleted. Returns a callable that stops the subscription.
        """
        pass

    @abstractmethod
    def subscribe_to_group_list(self, on_change: GroupListCallback) -> Unsubscribe:
        """Watch the full group list. Returns a callable that stops it."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_group(self, group_id: str) -> list[AuditEvent]:
        """All events for one group in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        pass
