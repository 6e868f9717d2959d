"""Audit logging package."""

from pizza_ledger.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
