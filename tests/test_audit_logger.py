from identity_sync.audit.logger import ReconcileAuditLogger
from identity_sync.errors import PartialFailure, RemoteError, ValidationError
from identity_sync.models.entities import Account, Client
from identity_sync.reconcile.planner import plan_create


def test_success_is_logged_as_info_with_change_counts(fake_logger, make_client):
    plan = plan_create(make_client(claims=("read", "write"), secrets=2))
    audit = ReconcileAuditLogger(enabled=True, logger=fake_logger)

    audit.log_success("create", Client(id=4, name="player-api"), plan)

    assert len(fake_logger.calls) == 1
    level, payload = fake_logger.calls[0]
    assert level == "info"
    assert payload["event"] == "reconcile_succeeded"
    assert payload["operation"] == "create"
    assert payload["entity_kind"] == "client"
    assert payload["entity_name"] == "player-api"
    assert payload["entity_id"] == 4
    assert payload["created"] == 7
    assert payload["deleted"] == 0


def test_configuration_errors_are_warnings(fake_logger):
    audit = ReconcileAuditLogger(logger=fake_logger)

    audit.log_failure("update", ValidationError("bad"), Account(id=2, username="u@example.com"))

    level, payload = fake_logger.calls[0]
    assert level == "warning"
    assert payload["event"] == "reconcile_failed"
    assert payload["entity_kind"] == "account"
    assert payload["entity_name"] == "u@example.com"
    assert payload["error"] == "bad"
    assert payload["retryable"] is False


def test_remote_failures_are_errors(fake_logger):
    audit = ReconcileAuditLogger(logger=fake_logger)

    audit.log_failure("create", RemoteError("creating client", status=503))
    audit.log_failure("create", PartialFailure(succeeded=[1], failed=["x"]))

    (level, remote), (_, partial) = fake_logger.calls
    assert level == "error"
    assert remote["retryable"] is True
    assert partial["requires_operator"] is True
    assert "entity_kind" not in remote


def test_disabled_audit_logger_emits_nothing(fake_logger):
    audit = ReconcileAuditLogger(enabled=False, logger=fake_logger)

    audit.log_success("read", Client(name="c"))
    audit.log_failure("read", RemoteError("reading client", status=404))

    assert fake_logger.calls == []
