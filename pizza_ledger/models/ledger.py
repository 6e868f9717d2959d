"""
Core Data Models for the Pizza Ledger

These models define the strict schemas for everything the ledger stores.
They are designed to:
1. Enforce balance invariants at runtime (slices always in [0, 6))
2. Be serializable as a single group document for storage
3. Keep meetings and corrections immutable once recorded

DESIGN DECISION: A Group is an aggregate. Its members, meetings and
corrections travel together in one document, so a meeting and the balances
it changed are always written in the same storage call.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from pizza_ledger.engine import (
    DEFAULT_CURVE_SHIFT,
    SLICES_PER_PIZZA,
    SliceBalance,
    combined_slices,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def derive_initials(display_name: str) -> str:
    """
    Upper-case first letters of up to the first two name tokens.

    "Alex Doe" -> "AD", "cher" -> "C", "" -> ""
    """
    tokens = display_name.split()
    return "".join(token[0] for token in tokens[:2]).upper()


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    """
    Presentational role of a member.

    NOTE: This is NOT what authorizes mutations. Only the group's admin
    e-mail list does that.
    """
    ADMIN = "admin"
    NORMAL = "normal"


# =============================================================================
# MEMBER
# =============================================================================

class Member(BaseModel):
    """A person whose lateness is tracked within one group."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Identifier, unique within the group"
    )
    display_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Name shown to users"
    )
    initials: str = Field(
        default="",
        max_length=2,
        description="Derived from display_name when left empty"
    )
    role: Role = Field(default=Role.NORMAL)
    total_pizzas: int = Field(
        default=0,
        ge=0,
        description="Whole pizzas owed"
    )
    total_slices: int = Field(
        default=0,
        ge=0,
        lt=SLICES_PER_PIZZA,
        description="Remaining slices owed, always below one pizza"
    )

    @model_validator(mode='before')
    @classmethod
    def fill_initials(cls, data):
        if isinstance(data, dict) and not data.get("initials"):
            data = {**data, "initials": derive_initials(str(data.get("display_name", "")))}
        return data

    @property
    def balance(self) -> SliceBalance:
        return SliceBalance(self.total_pizzas, self.total_slices)

    @property
    def combined_slices(self) -> int:
        """Whole debt as a single slice count."""
        return combined_slices(self.total_pizzas, self.total_slices)

    def with_balance(self, balance: SliceBalance) -> 'Member':
        return self.model_copy(
            update={"total_pizzas": balance.pizzas, "total_slices": balance.slices}
        )


# =============================================================================
# MEETINGS & CORRECTIONS (immutable history)
# =============================================================================

class MeetingEntry(BaseModel):
    """What one member was awarded at one meeting."""
    model_config = ConfigDict(frozen=True)

    member_id: str
    minutes_late: int = Field(ge=0)
    slices_awarded: int = Field(ge=0)


class Meeting(BaseModel):
    """
    One lateness-tracking event.

    CRITICAL: slices_awarded is stored as computed at record time.
    Changing the group's curve later does NOT rewrite past meetings.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    group_id: str
    at: datetime = Field(default_factory=utcnow)
    curve_shift: float = Field(
        default=DEFAULT_CURVE_SHIFT,
        description="Shift the awards were computed with"
    )
    entries: tuple[MeetingEntry, ...] = Field(default_factory=tuple)

    @property
    def total_slices_awarded(self) -> int:
        return sum(entry.slices_awarded for entry in self.entries)

    def entry_for(self, member_id: str) -> Optional[MeetingEntry]:
        for entry in self.entries:
            if entry.member_id == member_id:
                return entry
        return None


class Correction(BaseModel):
    """A manual, admin-authored balance adjustment."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    group_id: str
    member_id: str
    delta_slices: int = Field(
        ...,
        description="Signed slice delta as requested (after rounding)"
    )
    reason: Optional[str] = Field(default=None, max_length=500)
    at: datetime = Field(default_factory=utcnow)
    by: str = Field(..., min_length=1, description="Actor who made the correction")


class MeetingHistoryItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["meeting"] = "meeting"
    at: datetime
    meeting: Meeting


class CorrectionHistoryItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["correction"] = "correction"
    at: datetime
    correction: Correction


HistoryItem = Union[MeetingHistoryItem, CorrectionHistoryItem]


# =============================================================================
# GROUP AGGREGATE
# =============================================================================

class Group(BaseModel):
    """
    A named set of members sharing one slice formula configuration.

    The first admin e-mail is the creator's and can never be removed.
    `version` is owned by the storage port and bumped on every write.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(default="#f59e0b")
    emoji: str = Field(default="🍕")
    created_at: datetime = Field(default_factory=utcnow)

    curve_shift: float = Field(
        default=DEFAULT_CURVE_SHIFT,
        gt=-2,
        description="Offset inside the logarithmic slice formula"
    )
    allow_everyone_enter_minutes: bool = Field(
        default=False,
        description="Let non-admins record meetings"
    )
    admin_emails: list[str] = Field(
        ...,
        min_length=1,
        description="Flat authorization list, creator first"
    )

    members: list[Member] = Field(default_factory=list)
    meetings: list[Meeting] = Field(default_factory=list)
    corrections: list[Correction] = Field(default_factory=list)

    version: int = Field(default=0, ge=0)

    @field_validator('admin_emails')
    @classmethod
    def normalize_admin_emails(cls, v: list[str]) -> list[str]:
        """Lower-case and de-duplicate, keeping first-seen order."""
        seen: list[str] = []
        for email in v:
            normalized = email.strip().lower()
            if normalized and normalized not in seen:
                seen.append(normalized)
        if not seen:
            raise ValueError("A group needs at least one admin e-mail")
        return seen

    @model_validator(mode='after')
    def validate_unique_members(self) -> 'Group':
        ids = [m.id for m in self.members]
        if len(ids) != len(set(ids)):
            raise ValueError("Member ids must be unique within a group")
        return self

    @property
    def creator_email(self) -> str:
        return self.admin_emails[0]

    def find_member(self, member_id: str) -> Optional[Member]:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def member_index(self, member_id: str) -> int:
        """Position of a member, or -1."""
        for idx, member in enumerate(self.members):
            if member.id == member_id:
                return idx
        return -1
