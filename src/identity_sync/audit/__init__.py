"""Audit logging package."""

from .logger import ReconcileAuditLogger, configure_audit_logging

__all__ = [
    "ReconcileAuditLogger",
    "configure_audit_logging",
]
