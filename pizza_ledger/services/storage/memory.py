"""
In-Memory Storage Implementation

Used by the test-suite and for running the ledger without any external
backend. Groups are kept as serialized documents (the same dicts the Sheets
backend writes) so that every read goes through the codec and returns an
independent copy.
"""

import asyncio
from typing import Optional

from pizza_ledger.exceptions import ConflictError
from pizza_ledger.models.audit import AuditEvent
from pizza_ledger.models.ledger import Group
from pizza_ledger.services.storage.codec import group_from_document, group_to_document
from pizza_ledger.services.storage.interface import (
    AuditStorageInterface,
    GroupCallback,
    GroupListCallback,
    GroupStorageInterface,
    Unsubscribe,
)
from pizza_ledger.services.storage.subscriptions import ChangeNotifier


class InMemoryGroupStorage(GroupStorageInterface):
    """Dict-backed group storage with compare-and-swap writes."""

    def __init__(self):
        self._documents: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        self._notifier = ChangeNotifier()

    def _all_groups(self) -> list[Group]:
        groups = [group_from_document(gid, doc) for gid, doc in self._documents.items()]
        groups.sort(key=lambda g: g.created_at.timestamp())
        return groups

    def seed_document(self, group_id: str, document: dict) -> None:
        """Load a raw stored document (any supported shape) as-is."""
        self._documents[group_id] = document

    async def read_group(self, group_id: str) -> Optional[Group]:
        document = self._documents.get(group_id)
        if document is None:
            return None
        return group_from_document(group_id, document)

    async def write_group(self, group: Group, expected_version: int) -> Group:
        async with self._lock:
            current = self._documents.get(group.id)
            actual_version = current.get("version", 0) if current is not None else 0
            if actual_version != expected_version:
                raise ConflictError(group.id, expected_version, actual_version)

            stored = group.model_copy(update={"version": expected_version + 1}, deep=True)
            self._documents[group.id] = group_to_document(stored)

        self._notifier.notify(
            group.id,
            stored,
            self._all_groups() if self._notifier.has_list_watchers else None,
        )
        return stored.model_copy(deep=True)

    async def delete_group(self, group_id: str) -> bool:
        async with self._lock:
            existed = self._documents.pop(group_id, None) is not None

        if existed:
            self._notifier.notify(
                group_id,
                None,
                self._all_groups() if self._notifier.has_list_watchers else None,
            )
        return existed

    async def list_groups(self) -> list[Group]:
        return self._all_groups()

    def subscribe_to_group(self, group_id: str, on_change: GroupCallback) -> Unsubscribe:
        return self._notifier.watch_group(group_id, on_change)

    def subscribe_to_group_list(self, on_change: GroupListCallback) -> Unsubscribe:
        return self._notifier.watch_list(on_change)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_group(self, group_id: str) -> list[AuditEvent]:
        events = [e for e in self._events if e.group_id == group_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
