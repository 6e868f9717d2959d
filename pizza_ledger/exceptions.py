"""
Ledger Error Taxonomy

Every ledger operation either completes all of its side effects or raises
exactly one of these. Callers can branch on the class to decide what to show
the user and whether a retry makes sense.
"""


class LedgerError(Exception):
    """Base exception for all ledger failures."""
    pass


class ValidationError(LedgerError):
    """Malformed input (empty name, out-of-domain curve shift, bad e-mail...)."""
    pass


class NotFoundError(LedgerError):
    """Referenced group or member does not exist."""
    pass


class AuthorizationError(LedgerError):
    """Actor is not allowed to perform the mutation."""

    def __init__(self, actor: str, operation: str, group_id: str):
        self.actor = actor
        self.operation = operation
        self.group_id = group_id
        super().__init__(
            f"{actor or '<anonymous>'} is not an admin of group {group_id} "
            f"and may not {operation}"
        )


class ConflictError(LedgerError):
    """
    Concurrent update detected by the storage port.

    Nothing was written. Safe to retry the whole operation.
    """

    def __init__(self, group_id: str, expected_version: int, actual_version: int):
        self.group_id = group_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Group {group_id} changed concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class PersistenceError(LedgerError):
    """Storage or transport failed. Do not assume partial success."""
    pass
