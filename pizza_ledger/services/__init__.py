"""Services package."""

from pizza_ledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGroupStorage,
    GroupStorageInterface,
    InMemoryAuditStorage,
    InMemoryGroupStorage,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGroupStorage",
    "GroupStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryGroupStorage",
]
