"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the shared storage backend because:
1. Group admins can inspect the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each group is ONE row: its whole aggregate (members, meetings, corrections)
is a JSON document in a single cell next to a version column. Updating a
group rewrites that one row in a single API call, so balances and the
meeting/correction that changed them can't be split.

TRADEOFFS:
- A cell holds at most 50,000 characters, which bounds the history size
- Sheets has no compare-and-swap: the version check and the row update are
  two calls. Writers in this process are serialized by a lock; writers in
  other processes can only be detected, not excluded, by the version check
- Change notifications only cover writes made through this process

The implementation follows the abstract interface, so we can swap
to a real document store later without changing business logic.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pizza_ledger.config import GoogleSheetsSettings, get_settings
from pizza_ledger.exceptions import ConflictError, PersistenceError
from pizza_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pizza_ledger.models.ledger import Group, utcnow
from pizza_ledger.services.storage.codec import group_from_document, group_to_document
from pizza_ledger.services.storage.interface import (
    AuditStorageInterface,
    GroupCallback,
    GroupListCallback,
    GroupStorageInterface,
    Unsubscribe,
)
from pizza_ledger.services.storage.subscriptions import ChangeNotifier

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Column mappings for Groups sheet
GROUP_COLUMNS = [
    "group_id",
    "version",
    "updated_at",
    "name",
    "document_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "group_id",
    "entity_type",
    "entity_id",
    "actor",
    "description",
    "details_json",
    "error_message",
]

MAX_CELL_CHARS = 50_000

# Transient API failures are retried; everything else surfaces immediately
sheets_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise PersistenceError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise PersistenceError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_groups_sheet(self) -> gspread.Worksheet:
        """Get or create the Groups worksheet."""
        return self._get_or_create_sheet(
            self._settings.groups_sheet_name, GROUP_COLUMNS, rows=500
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


async def _run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking gspread call without stalling the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)


class GoogleSheetsGroupStorage(GroupStorageInterface):
    """
    Google Sheets implementation of group storage.

    Groups are stored as rows in a worksheet with one group per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._write_lock = asyncio.Lock()
        self._notifier = ChangeNotifier()

    def _group_to_row(self, group: Group) -> list:
        """Convert a Group to a spreadsheet row."""
        document = json.dumps(group_to_document(group), ensure_ascii=False)
        if len(document) > MAX_CELL_CHARS:
            raise PersistenceError(
                f"Group {group.id} document is {len(document)} characters, "
                f"over the {MAX_CELL_CHARS} character cell limit"
            )
        return [
            group.id,
            str(group.version),
            utcnow().isoformat(),
            group.name,
            document,
        ]

    def _row_to_group(self, row: list) -> Group:
        """Convert a spreadsheet row to a Group."""
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        group_id = safe_get(0)
        try:
            document = json.loads(safe_get(4, "{}"))
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Group {group_id} has a corrupt document: {e}") from e
        if isinstance(document, dict):
            # The version column is authoritative
            document["version"] = self._row_version(row)
        return group_from_document(group_id, document)

    @staticmethod
    def _row_version(row: list) -> int:
        try:
            return int(row[1])
        except (IndexError, ValueError):
            return 0

    @sheets_retry
    def _fetch_rows(self) -> list[list]:
        sheet = self._client.get_groups_sheet()
        return sheet.get_all_values()[1:]  # Skip header

    def _find_row(self, rows: list[list], group_id: str) -> tuple[int, Optional[list]]:
        """Sheet row number (header is row 1) and contents, or (-1, None)."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == group_id:
                return idx, row
        return -1, None

    async def _load_rows(self) -> list[list]:
        try:
            return await _run_blocking(self._fetch_rows)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read groups: {e}") from e

    async def read_group(self, group_id: str) -> Optional[Group]:
        """Retrieve a group by its ID."""
        rows = await self._load_rows()
        _, row = self._find_row(rows, group_id)
        if row is None:
            return None
        return self._row_to_group(row)

    @sheets_retry
    def _put_row(self, row_number: int, values: list) -> None:
        sheet = self._client.get_groups_sheet()
        if row_number < 0:
            sheet.append_row(values, value_input_option="RAW")
        else:
            sheet.update(
                range_name=f"A{row_number}",
                values=[values],
                value_input_option="RAW",
            )

    async def write_group(self, group: Group, expected_version: int) -> Group:
        """Compare the version column, then rewrite the whole row."""
        async with self._write_lock:
            rows = await self._load_rows()
            row_number, row = self._find_row(rows, group.id)
            actual_version = self._row_version(row) if row is not None else 0
            if actual_version != expected_version:
                raise ConflictError(group.id, expected_version, actual_version)

            stored = group.model_copy(update={"version": expected_version + 1}, deep=True)
            values = self._group_to_row(stored)
            try:
                await _run_blocking(self._put_row, row_number, values)
            except Exception as e:
                raise PersistenceError(f"Failed to save group {group.id}: {e}") from e

        await self._notify(group.id, stored)
        return stored.model_copy(deep=True)

    @sheets_retry
    def _remove_row(self, row_number: int) -> None:
        sheet = self._client.get_groups_sheet()
        sheet.delete_rows(row_number)

    async def delete_group(self, group_id: str) -> bool:
        """Delete a group row."""
        async with self._write_lock:
            rows = await self._load_rows()
            row_number, _ = self._find_row(rows, group_id)
            if row_number < 0:
                return False
            try:
                await _run_blocking(self._remove_row, row_number)
            except Exception as e:
                raise PersistenceError(f"Failed to delete group {group_id}: {e}") from e

        await self._notify(group_id, None)
        return True

    async def list_groups(self) -> list[Group]:
        """List all groups, skipping rows that can't be parsed."""
        rows = await self._load_rows()

        groups = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                groups.append(self._row_to_group(row))
            except PersistenceError as e:
                logger.warning("group_row_skipped", group_id=row[0], error=str(e))

        groups.sort(key=lambda g: g.created_at.timestamp())
        return groups

    async def _notify(self, group_id: str, group: Optional[Group]) -> None:
        all_groups = None
        if self._notifier.has_list_watchers:
            try:
                all_groups = await self.list_groups()
            except PersistenceError as e:
                # The row is already written; only list watchers miss this change
                logger.warning("group_list_refresh_failed", group_id=group_id, error=str(e))
        self._notifier.notify(group_id, group, all_groups)

    def subscribe_to_group(self, group_id: str, on_change: GroupCallback) -> Unsubscribe:
        return self._notifier.watch_group(group_id, on_change)

    def subscribe_to_group_list(self, on_change: GroupListCallback) -> Unsubscribe:
        return self._notifier.watch_list(on_change)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            group_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            actor=safe_get(7) or None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )

    @sheets_retry
    def _append(self, row: list) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(row, value_input_option="RAW")

    @sheets_retry
    def _fetch_rows(self) -> list[list]:
        sheet = self._client.get_audit_sheet()
        return sheet.get_all_values()[1:]

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await _run_blocking(self._append, event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the ledger operation
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def _load_events(self) -> list[AuditEvent]:
        try:
            rows = await _run_blocking(self._fetch_rows)
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}") from e

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("audit_row_skipped", event_id=row[0], error=str(e))
        return events

    async def get_events_by_group(self, group_id: str) -> list[AuditEvent]:
        """Get events for a group in chronological order."""
        events = [e for e in await self._load_events() if e.group_id == group_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events, newest first."""
        events = await self._load_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
