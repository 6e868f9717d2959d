"""
Group Document Codec

Converts between Group models and the plain dicts that storage backends
persist.

DESIGN DECISION: All defaulting of persisted data happens HERE, once, at the
storage boundary. Business logic only ever sees fully-typed Group objects.

Two document shapes are understood when reading:

1. Current shape - exactly `Group.model_dump(mode="json")`.
2. Legacy realtime-database shape - members stored as a mapping of
   `display name -> combined slice score`, formula settings nested under
   `settings` with camelCase keys:

       {
         "name": "Design Crew",
         "emoji": "🎨",
         "members": {"Alex Doe": 9, "Sam Lee": 0},
         "settings": {"curveShift": 0.3, "adminEmails": ["a@x.io"],
                      "allowEveryoneEnterMinutes": false}
       }

   A legacy score is a combined slice count, so 9 becomes
   (1 pizza, 3 slices).
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from pizza_ledger.engine import DEFAULT_CURVE_SHIFT, split_slices
from pizza_ledger.exceptions import PersistenceError
from pizza_ledger.models.ledger import Group, Role, derive_initials

LEGACY_DEFAULT_EMOJI = "🍕"
LEGACY_DEFAULT_COLOR = "#f59e0b"


def group_to_document(group: Group) -> dict[str, Any]:
    """Serialize a group to a JSON-compatible dict (without its id)."""
    return group.model_dump(mode="json", exclude={"id"})


def is_legacy_document(data: dict[str, Any]) -> bool:
    return isinstance(data.get("members"), dict) or "settings" in data


def _legacy_score(value: Any) -> int:
    """Non-numeric or negative scores were treated as zero by the old app."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


def _upgrade_legacy(data: dict[str, Any]) -> dict[str, Any]:
    settings = data.get("settings") or {}

    members = []
    for name, score in (data.get("members") or {}).items():
        balance = split_slices(_legacy_score(score))
        members.append({
            "id": name,
            "display_name": name,
            "initials": derive_initials(name),
            "role": Role.NORMAL.value,
            "total_pizzas": balance.pizzas,
            "total_slices": balance.slices,
        })

    upgraded: dict[str, Any] = {
        "name": data.get("name"),
        "emoji": data.get("emoji") or LEGACY_DEFAULT_EMOJI,
        "color": data.get("color") or LEGACY_DEFAULT_COLOR,
        "curve_shift": settings.get("curveShift", DEFAULT_CURVE_SHIFT),
        "allow_everyone_enter_minutes": settings.get("allowEveryoneEnterMinutes", False),
        "admin_emails": settings.get("adminEmails") or [],
        "members": members,
        "version": data.get("version", 0),
    }
    if data.get("createdAt"):
        upgraded["created_at"] = data["createdAt"]
    return upgraded


def group_from_document(group_id: str, data: dict[str, Any]) -> Group:
    """
    Build a Group from a stored document.

    Raises:
        PersistenceError: If the document cannot be turned into a valid
            group (for example a legacy group with no admin e-mails).
    """
    if not isinstance(data, dict):
        raise PersistenceError(f"Group {group_id} is not a document: {type(data).__name__}")

    payload = _upgrade_legacy(data) if is_legacy_document(data) else dict(data)
    payload["id"] = group_id

    try:
        return Group.model_validate(payload)
    except PydanticValidationError as e:
        raise PersistenceError(f"Stored group {group_id} is invalid: {e}") from e
