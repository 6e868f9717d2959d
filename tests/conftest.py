"""Shared fixtures: an in-memory ledger with one group ready to use."""

import pytest

from pizza_ledger.audit import AuditLogger
from pizza_ledger.ledger import LedgerService
from pizza_ledger.services.storage import InMemoryAuditStorage, InMemoryGroupStorage

CREATOR = "lead@example.com"


@pytest.fixture
def storage():
    return InMemoryGroupStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def ledger(storage, audit_storage):
    return LedgerService(storage=storage, audit_logger=AuditLogger(audit_storage))


@pytest.fixture
async def group(ledger):
    return await ledger.create_group("Design Crew", CREATOR)
