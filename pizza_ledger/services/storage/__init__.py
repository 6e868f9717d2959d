"""
Storage Services Package

Provides the abstract persistence port and its implementations.
Google Sheets is the shared backend; the in-memory backend serves tests and
local runs. Both store the same group documents via the codec.
"""

from pizza_ledger.services.storage.interface import (
    AuditStorageInterface,
    GroupCallback,
    GroupListCallback,
    GroupStorageInterface,
    Unsubscribe,
)
from pizza_ledger.services.storage.codec import (
    group_from_document,
    group_to_document,
    is_legacy_document,
)
from pizza_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryGroupStorage,
)
from pizza_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGroupStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "GroupCallback",
    "GroupListCallback",
    "GroupStorageInterface",
    "Unsubscribe",
    # Codec
    "group_from_document",
    "group_to_document",
    "is_legacy_document",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryGroupStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGroupStorage",
]
