"""Plans: what to write to the identity API for one entity.

Planning is pure; nothing here talks to the remote. Validation runs on the
entity that would be written, so an invalid plan is never produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from identity_sync.models.entities import (
    CLIENT_COLLECTIONS,
    Account,
    AccountState,
    ChildItem,
    Client,
    Property,
    normalize,
)
from identity_sync.reconcile.changeset import (
    ChangeSet,
    build_change_set,
    build_property_change_set,
)
from identity_sync.reconcile.secrets import SecretChangeSet, build_secret_change_set
from identity_sync.reconcile.validator import validate

logger = logging.getLogger(__name__)


@dataclass
class ClientPlan:
    """Changes needed to converge one client."""

    client: Client
    changes: dict[str, ChangeSet[ChildItem]] = field(default_factory=dict)
    secrets: SecretChangeSet = field(default_factory=SecretChangeSet)
    is_create: bool = False
    attributes_changed: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(
            self.is_create
            or self.attributes_changed
            or self.secrets.has_changes
            or any(c.has_changes for c in self.changes.values())
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready body for the client update call.

        Child collections are ordered deletes first. Only deleted secrets are
        sent and never with their value.
        """
        payload = self.client.model_dump(
            mode="json", by_alias=True, exclude={"secrets"}
        )
        payload["secrets"] = [
            s.model_dump(mode="json", by_alias=True, exclude={"value"})
            for s in self.secrets.payload
        ]
        return payload

    def bare_payload(self) -> dict[str, Any]:
        """JSON-ready body for the initial create call."""
        return self.client.bare().model_dump(mode="json", by_alias=True)

    def summary(self) -> str:
        lines = []
        verb = "create" if self.is_create else "update"
        lines.append(f"Client {self.client.name}: {verb}")

        if self.attributes_changed:
            lines.append("  ~ attributes")

        for spec in CLIENT_COLLECTIONS:
            changes = self.changes.get(spec.attr)
            if changes is None:
                continue
            for item in changes.to_create:
                lines.append(f"  + {spec.label}: {item.correlation_key}")
            for item in changes.modified:
                lines.append(f"  ~ {spec.label}: {item.correlation_key} (id={item.id})")
            for item in changes.to_delete:
                lines.append(f"  - {spec.label}: {item.correlation_key} (id={item.id})")

        if self.secrets.to_create:
            lines.append(f"  + secrets: {len(self.secrets.to_create)}")
        for secret in self.secrets.to_delete:
            lines.append(f"  - secret: id={secret.id}")

        if not self.has_changes:
            lines.append("  No changes needed")

        return "\n".join(lines)


_TOP_LEVEL_FIELDS = ("name", "display_name", "scopes", "grants", "enabled")


def _plan_client(previous: Client | None, desired: Client) -> ClientPlan:
    client = desired.model_copy(deep=True)
    plan = ClientPlan(client=client, is_create=previous is None)

    if previous is not None:
        client.id = previous.id or client.id
        plan.attributes_changed = any(
            getattr(previous, name) != getattr(desired, name)
            for name in _TOP_LEVEL_FIELDS
        )

    for spec in CLIENT_COLLECTIONS:
        old = getattr(previous, spec.attr) if previous is not None else []
        changes = build_change_set(old, getattr(desired, spec.attr))
        plan.changes[spec.attr] = changes
        setattr(client, spec.attr, changes.payload)

    plan.secrets = build_secret_change_set(
        previous.secrets if previous is not None else [],
        desired.secrets,
    )
    client.secrets = plan.secrets.entity_view

    if client.id:
        client.stamp_owner(client.id)

    validate(client)
    return plan


def plan_create(desired: Client) -> ClientPlan:
    """Plan the initial creation of a client.

    Raises:
        ValidationError: the declaration is malformed.
        InvariantViolation: a required collection is empty.
    """
    desired = normalize(desired.model_copy(deep=True))
    plan = _plan_client(None, desired)
    logger.debug("Planned create for client %s", desired.name)
    return plan


def plan_update(previous: Client, desired: Client) -> ClientPlan:
    """Plan the update of an existing client.

    Args:
        previous: Last reconciled state (carries remote ids)
        desired: New declaration, ids adopted from ``previous`` where known

    Raises:
        ValidationError: the declaration is malformed.
        InvariantViolation: a required collection would become empty.
    """
    desired = normalize(desired.model_copy(deep=True))
    plan = _plan_client(previous, desired)
    logger.debug("Planned update for client %s (id=%s)", desired.name, plan.client.id)
    return plan


@dataclass
class AccountPlan:
    """Changes needed to converge one account."""

    account: Account
    properties: ChangeSet[Property] = field(default_factory=ChangeSet)
    is_create: bool = False
    role_changed: bool = False
    state_change: AccountState | None = None

    @property
    def has_changes(self) -> bool:
        return bool(
            self.is_create
            or self.role_changed
            or self.state_change is not None
            or self.properties.to_create
            or self.properties.to_update
        )

    @property
    def property_writes(self) -> list[Property]:
        return [*self.properties.to_create, *self.properties.to_update]

    def summary(self) -> str:
        verb = "create" if self.is_create else "update"
        lines = [f"Account {self.account.username}: {verb}"]
        if self.role_changed:
            lines.append(f"  ~ role: {self.account.role}")
        if self.state_change is not None:
            lines.append(f"  ~ state: {self.state_change.value}")
        for prop in self.properties.to_create:
            lines.append(f"  + property: {prop.key}")
        for prop in self.properties.to_update:
            lines.append(f"  ~ property: {prop.key}")
        if not self.has_changes:
            lines.append("  No changes needed")
        return "\n".join(lines)


def plan_account_create(desired: Account) -> AccountPlan:
    account = normalize(desired.model_copy(deep=True))
    return AccountPlan(
        account=account,
        properties=build_property_change_set([], account.properties),
        is_create=True,
        role_changed=bool(account.role),
    )


def plan_account_update(previous: Account, desired: Account) -> AccountPlan:
    """Plan an account update.

    Only the role, the enabled state and property values can change; the
    password is write-once.

    Raises:
        ValidationError: a property was removed from the declaration.
    """
    account = normalize(desired.model_copy(deep=True))
    account.id = previous.id or account.id
    account.global_id = previous.global_id or account.global_id
    known = {p.key: p.id for p in previous.properties if p.id}
    for prop in account.properties:
        prop.id = prop.id or known.get(prop.key, 0)
    account.stamp_owner(account.id)

    plan = AccountPlan(
        account=account,
        properties=build_property_change_set(previous.properties, account.properties),
        role_changed=bool(account.role) and account.role != previous.role,
    )
    if account.enabled != previous.enabled:
        plan.state_change = (
            AccountState.ENABLED if account.enabled else AccountState.DISABLED
        )
    return plan
