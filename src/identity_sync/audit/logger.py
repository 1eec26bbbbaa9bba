"""Structured audit logging for reconciliation outcomes."""

import logging
from typing import Any

import structlog

from identity_sync.errors import IdentitySyncError, ValidationError
from identity_sync.models.entities import Account, Client


def configure_audit_logging(
    *,
    log_level: str | int,
    json_format: bool,
    service_name: str = "identity-sync",
) -> None:
    # Resolve log level via stdlib logging (NOT structlog)
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = int(log_level)

    logging.basicConfig(level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def _describe(entity: Client | Account | None) -> dict[str, Any]:
    if isinstance(entity, Client):
        return {"entity_kind": "client", "entity_name": entity.name, "entity_id": entity.id}
    if isinstance(entity, Account):
        return {
            "entity_kind": "account",
            "entity_name": entity.username,
            "entity_id": entity.id,
        }
    return {}


def _change_counts(plan: Any) -> dict[str, int]:
    # Plans are duck-typed to keep this module free of the planner import
    counts = {"created": 0, "updated": 0, "deleted": 0}
    changes = getattr(plan, "changes", None)
    if changes:
        for change_set in changes.values():
            counts["created"] += len(change_set.to_create)
            counts["updated"] += len(change_set.modified)
            counts["deleted"] += len(change_set.to_delete)
    secrets = getattr(plan, "secrets", None)
    if secrets is not None:
        counts["created"] += len(secrets.to_create)
        counts["deleted"] += len(secrets.to_delete)
    properties = getattr(plan, "properties", None)
    if properties is not None:
        counts["created"] += len(properties.to_create)
        counts["updated"] += len(properties.to_update)
    return counts


class ReconcileAuditLogger:
    """Audit logger for reconciliation outcomes.

    Secret values are never part of an event.
    """

    def __init__(self, enabled: bool = True, logger: Any = None):
        """Initialize audit logger.

        Args:
            enabled: Whether audit logging is enabled
            logger: Optional custom logger
        """
        self._enabled = enabled
        self._logger = logger or structlog.get_logger("audit")

    def log_success(
        self,
        operation: str,
        entity: Client | Account | None,
        plan: Any = None,
    ) -> None:
        """Log a completed reconciliation.

        Args:
            operation: create, update, read, delete or disable
            entity: Reconciled entity
            plan: Plan that was applied, if any
        """
        if not self._enabled:
            return

        log_data: dict[str, Any] = {
            "event": "reconcile_succeeded",
            "operation": operation,
            **_describe(entity),
        }
        if plan is not None:
            log_data.update(_change_counts(plan))

        self._logger.info(**log_data)

    def log_failure(
        self,
        operation: str,
        error: IdentitySyncError,
        entity: Client | Account | None = None,
    ) -> None:
        """Log a failed reconciliation.

        Configuration errors are logged as warnings; anything that reached
        the remote is an error.
        """
        if not self._enabled:
            return

        log_data: dict[str, Any] = {
            "event": "reconcile_failed",
            "operation": operation,
            "error_type": type(error).__name__,
            "error": str(error),
            "retryable": error.retryable,
            "requires_operator": error.requires_operator,
            **_describe(entity),
        }

        if isinstance(error, ValidationError):
            self._logger.warning(**log_data)
        else:
            self._logger.error(**log_data)
