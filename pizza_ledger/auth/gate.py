"""
Authorization Gate

A group's admin e-mail list is the ONLY thing that authorizes mutations.
There are no roles or scopes: an actor is either on the list or not.
"""

from typing import Callable

from pizza_ledger.exceptions import AuthorizationError
from pizza_ledger.models.ledger import Group


def normalize_identity(actor: str) -> str:
    """Identities are e-mails, compared trimmed and lower-cased."""
    return (actor or "").strip().lower()


def is_admin(group: Group, actor: str) -> bool:
    """True if `actor` is on the group's admin e-mail list."""
    identity = normalize_identity(actor)
    return bool(identity) and identity in group.admin_emails


def can_record_meeting(group: Group, actor: str) -> bool:
    """Admins always can; everyone else only when the group allows it."""
    if group.allow_everyone_enter_minutes:
        return bool(normalize_identity(actor))
    return is_admin(group, actor)


def require_admin(
    group: Group,
    actor: str,
    operation: str,
    permitted: Callable[[Group, str], bool] = is_admin,
) -> None:
    """
    Refuse an operation the actor may not perform.

    `permitted` defaults to the admin check; meeting entry passes
    `can_record_meeting` instead.

    Raises:
        AuthorizationError: If the check fails
    """
    if not permitted(group, actor):
        raise AuthorizationError(actor, operation, group.id)
