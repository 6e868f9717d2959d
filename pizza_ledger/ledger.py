"""
Ledger Service for the Pizza Ledger

This module ties together the formula, the balance accumulator, the
authorization gate and the storage port, and defines every operation a
caller (UI or otherwise) can perform on groups, members, meetings and
corrections.

DESIGN DECISION: The service enforces the boundaries:
- Admin-only operations are refused BEFORE any input is looked at, so an
  outsider always gets AuthorizationError
- Input is validated before anything is changed
- Every mutation is ONE read-modify-write of the group document, so a
  meeting and the balances it changed are stored together or not at all
- Every step is audited

Concurrency: each group has its own asyncio.Lock, held for the whole
read-modify-write, and every write carries the version it was based on.
Writers in other processes surface as ConflictError. The service never
retries on its own; retry policy belongs to the caller.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Iterable, Mapping, Optional, Union

import structlog

from pizza_ledger.audit import AuditLogger
from pizza_ledger.auth import (
    can_record_meeting,
    is_admin,
    normalize_identity,
    require_admin,
)
from pizza_ledger.config import get_settings
from pizza_ledger.engine import (
    DEFAULT_CURVE_SHIFT,
    add_slices,
    adjust_slices,
    preview_curve,
    slices_for_minutes,
)
from pizza_ledger.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from pizza_ledger.models.audit import AuditEventBuilder
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
    utcnow,
)
from pizza_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGroupStorage,
    GroupCallback,
    GroupListCallback,
    GroupStorageInterface,
    InMemoryAuditStorage,
    InMemoryGroupStorage,
    Unsubscribe,
)
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

Permission = Callable[[Group, str], bool]


class _GroupEdit:
    """A private, mutable copy of a group being changed."""

    def __init__(self, group: Group):
        self.original = group
        self.draft = group.model_copy(deep=True)
        self.stored: Optional[Group] = None

    @property
    def changed(self) -> bool:
        return self.draft != self.original

    def member(self, member_id: str) -> Member:
        member = self.draft.find_member(member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found in group {self.draft.id}")
        return member

    def replace_member(self, updated: Member) -> None:
        idx = self.draft.member_index(updated.id)
        self.draft.members[idx] = updated


class LedgerService:
    """
    Orchestrates the pizza ledger.

    Every public mutation takes an explicit `actor` (the caller's e-mail).
    There is no ambient "current user".
    """

    def __init__(
        self,
        storage: GroupStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        default_curve_shift: float = DEFAULT_CURVE_SHIFT,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._default_curve_shift = validate_curve_shift(default_curve_shift)
        self._locks: dict[str, asyncio.Lock] = {}
        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # Internals
    # =========================================================================

    def _lock_for(self, group_id: str) -> asyncio.Lock:
        return self._locks.setdefault(group_id, asyncio.Lock())

    def _forget_lock(self, group_id: str, lock: asyncio.Lock) -> None:
        if self._locks.get(group_id) is lock:
            del self._locks[group_id]

    async def _load(self, group_id: str) -> Group:
        group = await self._storage.read_group(group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    async def _load_locked(self, group_id: str, lock: asyncio.Lock) -> Group:
        """Load under `lock`; unknown ids don't leave a lock behind."""
        try:
            return await self._load(group_id)
        except NotFoundError:
            self._forget_lock(group_id, lock)
            raise

    async def _authorize(
        self,
        group: Group,
        actor: str,
        operation: str,
        permitted: Permission = is_admin,
    ) -> None:
        try:
            require_admin(group, actor, operation, permitted)
        except AuthorizationError:
            await self._audit_logger.log_denied(group.id, operation, actor)
            raise

    async def _save(
        self,
        group: Group,
        expected_version: int,
        operation: str,
        actor: str,
    ) -> Group:
        try:
            return await self._storage.write_group(group, expected_version)
        except ConflictError as e:
            await self._audit_logger.log_write_failed(group.id, operation, e, conflict=True, actor=actor)
            raise
        except PersistenceError as e:
            await self._audit_logger.log_write_failed(group.id, operation, e, conflict=False, actor=actor)
            raise
        except Exception as e:
            await self._audit_logger.log_write_failed(group.id, operation, e, conflict=False, actor=actor)
            raise PersistenceError(f"Failed to save group {group.id}: {e}") from e

    @asynccontextmanager
    async def _edit(
        self,
        group_id: str,
        actor: str,
        operation: str,
        permitted: Permission = is_admin,
    ) -> AsyncIterator[_GroupEdit]:
        """
        Serialized read-modify-write of one group.

        The actor is authorized before the body runs, so input checks in
        the body only ever reach permitted callers. If the body raises,
        nothing is written. If it leaves the draft unchanged, nothing is
        written either.
        """
        lock = self._lock_for(group_id)
        async with lock:
            group = await self._load_locked(group_id, lock)
            await self._authorize(group, actor, operation, permitted)
            edit = _GroupEdit(group)
            yield edit
            if edit.changed:
                edit.stored = await self._save(edit.draft, group.version, operation, actor)

    # =========================================================================
    # Groups
    # =========================================================================

    async def create_group(
        self,
        name: str,
        actor: str,
        curve_shift: Optional[float] = None,
        color: Optional[str] = None,
        emoji: Optional[str] = None,
    ) -> Group:
        """
        Create a group administered by `actor`.

        The creator's e-mail becomes the first (permanent) admin.
        """
        name = validate_name(name)
        creator = validate_email(actor)
        shift = validate_curve_shift(
            self._default_curve_shift if curve_shift is None else curve_shift
        )

        fields = {}
        if color:
            fields["color"] = color
        if emoji:
            fields["emoji"] = emoji

        group = Group(
            name=name,
            curve_shift=shift,
            admin_emails=[creator],
            **fields,
        )
        stored = await self._save(group, 0, "create group", creator)

        await self._audit_logger.log(AuditEventBuilder.group_created(stored.id, name, creator))
        self._logger.info("group_created", group_id=stored.id, creator=creator)
        return stored

    async def delete_group(self, group_id: str, actor: str) -> None:
        """Delete a group with all its members, meetings and corrections."""
        lock = self._lock_for(group_id)
        async with lock:
            group = await self._load_locked(group_id, lock)
            await self._authorize(group, actor, "delete the group")
            try:
                deleted = await self._storage.delete_group(group_id)
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Failed to delete group {group_id}: {e}") from e
            if not deleted:
                self._forget_lock(group_id, lock)
                raise NotFoundError(f"Group {group_id} not found")
        self._forget_lock(group_id, lock)

        await self._audit_logger.log(
            AuditEventBuilder.group_deleted(group_id, group.name, normalize_identity(actor))
        )
        self._logger.info("group_deleted", group_id=group_id)

    async def update_group(
        self,
        group_id: str,
        actor: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        emoji: Optional[str] = None,
    ) -> Group:
        """Rename or re-theme a group. Omitted fields are left alone."""
        async with self._edit(group_id, actor, "update the group") as edit:
            changes = {}
            if name is not None:
                changes["name"] = validate_name(name)
            if color:
                changes["color"] = color.strip()
            if emoji:
                changes["emoji"] = emoji.strip()
            for field, value in changes.items():
                setattr(edit.draft, field, value)

        if edit.stored is None:
            return edit.original
        await self._audit_logger.log(
            AuditEventBuilder.group_updated(group_id, changes, normalize_identity(actor))
        )
        return edit.stored

    async def set_curve_shift(self, group_id: str, value: float, actor: str) -> None:
        """
        Change the formula shift for FUTURE meetings.

        Past meetings keep the awards they were recorded with.
        """
        async with self._edit(group_id, actor, "change the curve shift") as edit:
            shift = validate_curve_shift(value)
            old_value = edit.original.curve_shift
            edit.draft.curve_shift = shift

        if edit.stored is not None:
            await self._audit_logger.log(AuditEventBuilder.curve_shift_changed(
                group_id, old_value, shift, normalize_identity(actor)
            ))

    async def reset_curve_shift(self, group_id: str, actor: str) -> None:
        """Restore the configured default shift."""
        await self.set_curve_shift(group_id, self._default_curve_shift, actor)

    async def set_allow_everyone_enter_minutes(
        self,
        group_id: str,
        allow: bool,
        actor: str,
    ) -> None:
        """Let any signed-in actor record meetings for this group (or stop)."""
        async with self._edit(group_id, actor, "change who records meetings") as edit:
            edit.draft.allow_everyone_enter_minutes = bool(allow)

        if edit.stored is not None:
            await self._audit_logger.log(AuditEventBuilder.group_updated(
                group_id,
                {"allow_everyone_enter_minutes": bool(allow)},
                normalize_identity(actor),
            ))

    # =========================================================================
    # Admin e-mails
    # =========================================================================

    async def add_admin_email(self, group_id: str, email: str, actor: str) -> list[str]:
        """
        Grant admin rights to an e-mail.

        Adding an address that is already an admin (compared
        case-insensitively) is a no-op and returns the unchanged list.
        """
        async with self._edit(group_id, actor, "add an admin") as edit:
            email = validate_email(email)
            if email not in edit.draft.admin_emails:
                edit.draft.admin_emails = [*edit.draft.admin_emails, email]

        if edit.stored is None:
            return list(edit.original.admin_emails)
        await self._audit_logger.log(
            AuditEventBuilder.admin_changed(group_id, email, True, normalize_identity(actor))
        )
        return list(edit.stored.admin_emails)

    async def remove_admin_email(self, group_id: str, email: str, actor: str) -> list[str]:
        """
        Revoke admin rights.

        Raises:
            ValidationError: For the last remaining admin or the creator
            NotFoundError: If the e-mail is not an admin
        """
        async with self._edit(group_id, actor, "remove an admin") as edit:
            target = normalize_identity(email)
            admins = edit.draft.admin_emails
            if target not in admins:
                raise NotFoundError(f"{email} is not an admin of group {group_id}")
            if len(admins) <= 1:
                raise ValidationError("Cannot remove the last admin")
            if target == edit.draft.creator_email:
                raise ValidationError("The group creator must always remain an admin")
            edit.draft.admin_emails = [a for a in admins if a != target]

        await self._audit_logger.log(
            AuditEventBuilder.admin_changed(group_id, target, False, normalize_identity(actor))
        )
        return list(edit.stored.admin_emails)

    async def set_admin_emails(
        self,
        group_id: str,
        emails: Iterable[str],
        actor: str,
    ) -> list[str]:
        """
        Replace the whole admin list.

        Duplicates are dropped. The creator is kept first whether or not
        they are listed; the resulting list is never empty.
        """
        async with self._edit(group_id, actor, "replace the admin list") as edit:
            requested = [validate_email(e) for e in emails]
            creator = edit.draft.creator_email
            new_admins = [creator]
            for email in requested:
                if email not in new_admins:
                    new_admins.append(email)
            edit.draft.admin_emails = new_admins

        if edit.stored is None:
            return list(edit.original.admin_emails)
        before = set(edit.original.admin_emails)
        after = set(edit.stored.admin_emails)
        who = normalize_identity(actor)
        for email in sorted(after - before):
            await self._audit_logger.log(AuditEventBuilder.admin_changed(group_id, email, True, who))
        for email in sorted(before - after):
            await self._audit_logger.log(AuditEventBuilder.admin_changed(group_id, email, False, who))
        return list(edit.stored.admin_emails)

    # =========================================================================
    # Members
    # =========================================================================

    async def add_member(
        self,
        group_id: str,
        display_name: str,
        actor: str,
        role: Union[Role, str] = Role.NORMAL,
    ) -> Member:
        """Add a member with an empty balance."""
        async with self._edit(group_id, actor, "add a member") as edit:
            display_name, initials = validate_member_name(display_name)
            member = Member(display_name=display_name, initials=initials, role=validate_role(role))
            edit.draft.members.append(member)

        await self._audit_logger.log(AuditEventBuilder.member_added(
            group_id, member.id, display_name, normalize_identity(actor)
        ))
        return member

    async def remove_member(self, group_id: str, member_id: str, actor: str) -> None:
        """
        Remove a member immediately.

        Past meetings and corrections that name the member are kept as-is.
        """
        async with self._edit(group_id, actor, "remove a member") as edit:
            member = edit.member(member_id)
            edit.draft.members = [m for m in edit.draft.members if m.id != member_id]

        await self._audit_logger.log(AuditEventBuilder.member_removed(
            group_id, member_id, member.display_name, normalize_identity(actor)
        ))

    async def rename_member(
        self,
        group_id: str,
        member_id: str,
        display_name: str,
        actor: str,
        initials: Optional[str] = None,
    ) -> Member:
        """Rename a member. Initials are re-derived unless given."""
        async with self._edit(group_id, actor, "rename a member") as edit:
            display_name, derived = validate_member_name(display_name)
            initials = validate_initials(initials) if initials else derived
            updated = edit.member(member_id).model_copy(
                update={"display_name": display_name, "initials": initials}
            )
            edit.replace_member(updated)

        if edit.stored is not None:
            await self._audit_logger.log(AuditEventBuilder.member_updated(
                group_id,
                member_id,
                {"display_name": display_name, "initials": initials},
                normalize_identity(actor),
            ))
        return updated

    async def set_member_role(
        self,
        group_id: str,
        member_id: str,
        role: Union[Role, str],
        actor: str,
    ) -> Member:
        """Change a member's presentational role."""
        async with self._edit(group_id, actor, "change a member's role") as edit:
            role = validate_role(role)
            updated = edit.member(member_id).model_copy(update={"role": role})
            edit.replace_member(updated)

        if edit.stored is not None:
            await self._audit_logger.log(AuditEventBuilder.member_updated(
                group_id, member_id, {"role": role.value}, normalize_identity(actor)
            ))
        return updated

    # =========================================================================
    # Balances
    # =========================================================================

    async def record_meeting(
        self,
        group_id: str,
        minutes_by_member: Mapping[str, float],
        actor: str,
        at: Optional[datetime] = None,
    ) -> Meeting:
        """
        Record one meeting and award slices to every current member.

        Members missing from `minutes_by_member` were on time. Awards use
        the group's curve shift as it is NOW and are stored verbatim.

        Raises:
            NotFoundError: If minutes are given for an unknown member
        """
        async with self._edit(group_id, actor, "record a meeting", can_record_meeting) as edit:
            minutes = {
                member_id: normalize_minutes(value)
                for member_id, value in minutes_by_member.items()
            }
            group = edit.draft
            unknown = set(minutes) - {m.id for m in group.members}
            if unknown:
                raise NotFoundError(
                    f"Members not in group {group_id}: {', '.join(sorted(unknown))}"
                )

            entries = []
            updated_members = []
            for member in group.members:
                late = minutes.get(member.id, 0)
                awarded = slices_for_minutes(late, group.curve_shift)
                balance = add_slices(member.total_pizzas, member.total_slices, awarded)
                updated_members.append(member.with_balance(balance))
                entries.append(MeetingEntry(
                    member_id=member.id,
                    minutes_late=late,
                    slices_awarded=awarded,
                ))

            meeting = Meeting(
                group_id=group_id,
                at=at or utcnow(),
                curve_shift=group.curve_shift,
                entries=tuple(entries),
            )
            group.members = updated_members
            group.meetings.append(meeting)

        await self._audit_logger.log(AuditEventBuilder.meeting_recorded(
            group_id,
            meeting.id,
            member_count=len(meeting.entries),
            total_slices=meeting.total_slices_awarded,
            actor=normalize_identity(actor),
        ))
        self._logger.info(
            "meeting_recorded",
            group_id=group_id,
            meeting_id=meeting.id,
            total_slices=meeting.total_slices_awarded,
        )
        return meeting

    async def correct_member(
        self,
        group_id: str,
        member_id: str,
        delta_slices: float,
        actor: str,
        reason: Optional[str] = None,
    ) -> Correction:
        """
        Manually adjust a member's balance.

        The delta is rounded to a whole slice. A balance never drops below
        zero: an oversized negative delta leaves exactly zero.
        """
        async with self._edit(group_id, actor, "correct a balance") as edit:
            delta = round_delta(delta_slices)
            reason = (reason or "").strip() or None
            member = edit.member(member_id)
            balance = adjust_slices(member.total_pizzas, member.total_slices, delta)
            edit.replace_member(member.with_balance(balance))

            correction = Correction(
                group_id=group_id,
                member_id=member_id,
                delta_slices=delta,
                reason=reason,
                by=normalize_identity(actor),
            )
            edit.draft.corrections.append(correction)

        await self._audit_logger.log(AuditEventBuilder.member_corrected(
            group_id, member_id, correction.id, delta, reason, correction.by
        ))
        self._logger.info(
            "member_corrected",
            group_id=group_id,
            member_id=member_id,
            delta_slices=delta,
        )
        return correction

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_group(self, group_id: str) -> Group:
        """
        Raises:
            NotFoundError: If the group does not exist
        """
        return await self._load(group_id)

    async def list_groups(self) -> list[Group]:
        return await self._storage.list_groups()

    async def get_member(self, group_id: str, member_id: str) -> Member:
        group = await self._load(group_id)
        member = group.find_member(member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found in group {group_id}")
        return member

    async def get_meetings(self, group_id: str) -> list[Meeting]:
        """Meetings in the order they were recorded."""
        group = await self._load(group_id)
        return list(group.meetings)

    async def get_corrections(self, group_id: str) -> list[Correction]:
        """Corrections in the order they were made."""
        group = await self._load(group_id)
        return list(group.corrections)

    async def get_history(self, group_id: str) -> list[HistoryItem]:
        """Meetings and corrections on one timeline, newest first."""
        group = await self._load(group_id)
        items: list[HistoryItem] = [
            MeetingHistoryItem(at=m.at, meeting=m) for m in group.meetings
        ]
        items.extend(CorrectionHistoryItem(at=c.at, correction=c) for c in group.corrections)
        items.sort(key=lambda item: item.at.timestamp(), reverse=True)
        return items

    async def preview_curve(
        self,
        group_id: str,
        curve_shift: Optional[float] = None,
    ) -> list[tuple[int, int]]:
        """
        (minutes, slices) samples for the group's curve, or for a candidate
        shift before it is applied.
        """
        group = await self._load(group_id)
        shift = group.curve_shift if curve_shift is None else validate_curve_shift(curve_shift)
        return preview_curve(shift)

    # =========================================================================
    # Change notifications
    # =========================================================================

    def subscribe_to_group(self, group_id: str, on_change: GroupCallback) -> Unsubscribe:
        """Observe one group; on_change gets None once it is deleted."""
        return self._storage.subscribe_to_group(group_id, on_change)

    def subscribe_to_groups(self, on_change: GroupListCallback) -> Unsubscribe:
        """Observe the full group list."""
        return self._storage.subscribe_to_group_list(on_change)


def create_ledger_service(use_storage: bool = True) -> LedgerService:
    """
    Factory function to create a fully wired ledger service.

    Args:
        use_storage: Whether to use the configured storage backend.
                    Set to False for an in-memory ledger.

    Returns:
        The ledger service
    """
    logger = structlog.get_logger(__name__)
    ledger_settings = get_settings().ledger
    logging.getLogger("pizza_ledger").setLevel(ledger_settings.log_level)

    storage: GroupStorageInterface
    audit_logger: AuditLogger

    if use_storage and ledger_settings.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsGroupStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            storage = InMemoryGroupStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        storage = InMemoryGroupStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    return LedgerService(
        storage=storage,
        audit_logger=audit_logger,
        default_curve_shift=ledger_settings.default_curve_shift,
    )
