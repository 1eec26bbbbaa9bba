"""Reconcilers: drive the identity API towards a desired entity.

Each public method returns a ``ReconcileResult``. Errors from the
reconciliation taxonomy are caught here and carried on the result, so a
caller never has to unwind a half-applied write through exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from identity_sync.audit import ReconcileAuditLogger
from identity_sync.errors import AccountLookupError, IdentitySyncError, SnapshotError
from identity_sync.models.entities import Account, AccountState, Client
from identity_sync.reconcile.correlator import correlate, correlate_properties
from identity_sync.reconcile.planner import (
    AccountPlan,
    ClientPlan,
    plan_account_create,
    plan_account_update,
    plan_create,
    plan_update,
)
from identity_sync.reconcile.secrets import create_secrets

if TYPE_CHECKING:
    from identity_sync.api.client import IdentityApiClient

logger = logging.getLogger(__name__)


def _remote_id(kind: str, snapshot: Any) -> int:
    """Id assigned by the remote, from a create or lookup answer."""
    try:
        remote_id = int(snapshot["id"])
    except (KeyError, TypeError, ValueError) as e:
        raise SnapshotError(kind, snapshot) from e
    if remote_id <= 0:
        raise SnapshotError(kind, snapshot)
    return remote_id


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation.

    ``entity`` is the state to persist. On failure it is whatever is known
    to exist remotely (it may be None when nothing was written).
    """

    operation: str
    entity: Client | Account | None = None
    plan: ClientPlan | AccountPlan | None = None
    error: IdentitySyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    @property
    def requires_operator(self) -> bool:
        return self.error is not None and self.error.requires_operator

    @property
    def name(self) -> str:
        if isinstance(self.entity, Client):
            return self.entity.name
        if isinstance(self.entity, Account):
            return self.entity.username
        return ""

    def summary(self) -> str:
        lines = []
        if self.plan is not None:
            lines.append(self.plan.summary())
        elif self.entity is not None:
            lines.append(f"{self.operation} {self.name}")

        if self.error is not None:
            lines.append(f"  Error ({type(self.error).__name__}): {self.error}")
            if self.requires_operator:
                lines.append("  Remote state may be mixed, manual inspection needed")

        return "\n".join(lines)


class ClientReconciler:
    """Create, update, read and delete identity clients."""

    def __init__(
        self,
        api: "IdentityApiClient",
        audit: ReconcileAuditLogger | None = None,
    ):
        self._api = api
        self._audit = audit or ReconcileAuditLogger()

    def _finish(self, result: ReconcileResult) -> ReconcileResult:
        if result.error is None:
            self._audit.log_success(result.operation, result.entity, result.plan)
        else:
            entity = result.entity
            if entity is None and result.plan is not None:
                entity = result.plan.client
            self._audit.log_failure(result.operation, result.error, entity)
        return result

    async def _apply(self, plan: ClientPlan, result: ReconcileResult) -> Client:
        client = plan.client
        snapshot = await self._api.update_client(plan.to_payload())
        # From here on the remote holds the written children
        result.entity = client
        if not snapshot:
            snapshot = await self._api.read_client(client.id)
        correlate(client, snapshot)
        await create_secrets(self._api, client.id, plan.secrets.to_create)
        return client.reconciled()

    async def create(self, desired: Client) -> ReconcileResult:
        """Create a client with all its child collections.

        The API only accepts top-level attributes on creation, so the
        children are written by a follow-up update once the id is known.
        """
        result = ReconcileResult("create")
        try:
            plan = result.plan = plan_create(desired)
            created = await self._api.create_client(plan.bare_payload())
            plan.client.stamp_owner(_remote_id("client", created))
            result.entity = plan.client
            logger.info("Created client %s (id=%s)", desired.name, plan.client.id)
            result.entity = await self._apply(plan, result)
        except IdentitySyncError as e:
            result.error = e
            if result.entity is not None:
                result.entity = result.entity.reconciled()
        return self._finish(result)

    async def update(self, previous: Client, desired: Client) -> ReconcileResult:
        """Converge an existing client from ``previous`` to ``desired``."""
        result = ReconcileResult("update")
        try:
            plan = result.plan = plan_update(previous, desired)
            if not plan.has_changes:
                logger.info("Client %s is up to date", desired.name)
                result.entity = plan.client.reconciled()
                return self._finish(result)
            result.entity = await self._apply(plan, result)
        except IdentitySyncError as e:
            result.error = e
            if result.entity is not None:
                result.entity = result.entity.reconciled()
            else:
                result.entity = previous
        return self._finish(result)

    async def read(self, client_id: int) -> ReconcileResult:
        """Read a client into its normalized form."""
        result = ReconcileResult("read")
        try:
            snapshot = await self._api.read_client(client_id)
            result.entity = Client.from_snapshot(snapshot)
        except IdentitySyncError as e:
            result.error = e
        return self._finish(result)

    async def delete(self, client: Client) -> ReconcileResult:
        result = ReconcileResult("delete", entity=client)
        try:
            await self._api.delete_client(client.id)
        except IdentitySyncError as e:
            result.error = e
        return self._finish(result)


class AccountReconciler:
    """Create, update, read and disable identity accounts.

    Accounts are never deleted remotely; deleting one disables it.
    """

    def __init__(
        self,
        api: "IdentityApiClient",
        audit: ReconcileAuditLogger | None = None,
    ):
        self._api = api
        self._audit = audit or ReconcileAuditLogger()

    def _finish(self, result: ReconcileResult) -> ReconcileResult:
        if result.error is None:
            self._audit.log_success(result.operation, result.entity, result.plan)
        else:
            entity = result.entity
            if entity is None and result.plan is not None:
                entity = result.plan.account
            self._audit.log_failure(result.operation, result.error, entity)
        return result

    async def _lookup(self, username: str) -> dict[str, Any]:
        matches = await self._api.find_accounts(username)
        if len(matches) > 1:
            raise AccountLookupError(
                f"Multiple accounts exist with the term {username}"
            )
        if not matches:
            raise AccountLookupError(f"No accounts found with term {username}")
        return matches[0]

    async def _write_properties(self, plan: AccountPlan) -> None:
        writes = plan.property_writes
        if not writes:
            return
        # Keys are unchanged for updates, so the create endpoint overwrites
        for prop in writes:
            prop.set_owner(plan.account.id)
            await self._api.add_property(prop.to_payload())

        # Property ids are only known from a read
        found = await self._lookup(plan.account.username)
        correlate_properties(plan.account, Account.from_snapshot(found))

    async def create(self, desired: Account) -> ReconcileResult:
        result = ReconcileResult("create")
        try:
            plan = result.plan = plan_account_create(desired)
            account = plan.account
            existed = await self._api.create_account(account.create_payload())

            found = await self._lookup(account.username)
            account.stamp_owner(_remote_id("account", found))
            account.global_id = found.get("globalId") or ""

            if existed:
                logger.info("Account %s already exists, enabling it", account.username)
                await self._api.set_account_state(account.id, AccountState.ENABLED.value)

            if account.role:
                await self._api.set_role(account.id, account.role)

            await self._write_properties(plan)

            account.status = "Enabled"
            account.enabled = True
            result.entity = account.reconciled()
        except IdentitySyncError as e:
            result.error = e
            if result.plan is not None and result.plan.account.id:
                result.entity = result.plan.account.reconciled()
        return self._finish(result)

    async def update(self, previous: Account, desired: Account) -> ReconcileResult:
        """Converge role, enabled state and property values."""
        result = ReconcileResult("update")
        try:
            plan = result.plan = plan_account_update(previous, desired)
            account = plan.account

            if plan.role_changed:
                await self._api.set_role(account.id, account.role)

            if plan.state_change is not None:
                await self._api.set_account_state(account.id, plan.state_change.value)
                account.status = "Enabled" if account.enabled else "Disabled"

            await self._write_properties(plan)
            result.entity = account.reconciled()
        except IdentitySyncError as e:
            result.error = e
            result.entity = previous
        return self._finish(result)

    async def read(self, username: str) -> ReconcileResult:
        result = ReconcileResult("read")
        try:
            snapshot = await self._lookup(username)
            result.entity = Account.from_snapshot(snapshot)
        except IdentitySyncError as e:
            result.error = e
        return self._finish(result)

    async def disable(self, account: Account) -> ReconcileResult:
        result = ReconcileResult("disable")
        try:
            await self._api.set_account_state(account.id, AccountState.DISABLED.value)
            result.entity = account.model_copy(
                update={"enabled": False, "status": "Disabled"}
            )
        except IdentitySyncError as e:
            result.error = e
            result.entity = account
        return self._finish(result)
