"""Secret lifecycle.

Secrets differ from the other child collections: the remote generates their
value through a dedicated call, one secret at a time, and an existing value
is never sent back. The only mutation allowed on an existing secret is
setting ``deleted``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from identity_sync.errors import PartialFailure, RemoteError, ValidationError
from identity_sync.models.entities import Secret

if TYPE_CHECKING:
    from identity_sync.api.client import IdentityApiClient

logger = logging.getLogger(__name__)


@dataclass
class SecretChangeSet:
    """Delta for the secrets of one client."""

    to_create: list[Secret] = field(default_factory=list)
    to_delete: list[Secret] = field(default_factory=list)
    unchanged: list[Secret] = field(default_factory=list)

    @property
    def payload(self) -> list[Secret]:
        """Secrets carried by the client update call."""
        return list(self.to_delete)

    @property
    def entity_view(self) -> list[Secret]:
        """Every secret the client holds once the plan is applied."""
        return [*self.to_delete, *self.unchanged, *self.to_create]

    @property
    def has_changes(self) -> bool:
        return bool(self.to_create or self.to_delete)


def build_secret_change_set(
    previous: Sequence[Secret],
    desired: Sequence[Secret],
) -> SecretChangeSet:
    """Diff previous secrets against desired ones.

    When ``previous`` is empty (first reconciliation of the client) every
    non-deleted desired secret is created, whatever its id.

    Raises:
        ValidationError: a desired secret references an id that the
            previous state does not know.
    """
    changes = SecretChangeSet()

    if not previous:
        for secret in desired:
            if secret.deleted:
                continue
            if secret.id:
                logger.warning(
                    "No previous secrets, creating a new secret in place of id=%s",
                    secret.id,
                )
            changes.to_create.append(Secret())
        return changes

    previous_by_id = {s.id: s for s in previous if s.is_active}
    desired_ids = {s.id for s in desired if s.id}

    for old in previous_by_id.values():
        if old.id not in desired_ids:
            changes.to_delete.append(old.model_copy(update={"deleted": True}))

    for secret in desired:
        if secret.id == 0:
            if not secret.deleted:
                changes.to_create.append(Secret())
            continue

        old = previous_by_id.get(secret.id)
        if old is None:
            if secret.deleted:
                # Already gone remotely
                continue
            raise ValidationError(f"Unknown secret id {secret.id}")

        if secret.deleted:
            changes.to_delete.append(old.model_copy(update={"deleted": True}))
        else:
            changes.unchanged.append(old.model_copy())

    return changes


async def create_secrets(
    api: "IdentityApiClient",
    client_id: int,
    pending: Sequence[Secret],
) -> list[int]:
    """Create each pending secret and stamp the remote answer onto it.

    Every call is attempted even after a failure; the calls are independent.

    Returns:
        Ids of the created secrets.

    Raises:
        PartialFailure: at least one call failed. Secrets created before or
            after the failure keep their stamped id and value.
    """
    succeeded: list[int] = []
    failed: list[Secret] = []
    errors: list[RemoteError] = []

    for secret in pending:
        try:
            created = await api.create_secret(client_id)
        except RemoteError as e:
            logger.warning("Failed to add secret to client %s: %s", client_id, e)
            failed.append(secret)
            errors.append(e)
            continue

        secret.id = int(created["id"])
        secret.value = created.get("value", "")
        secret.deleted = bool(created.get("deleted", False))
        succeeded.append(secret.id)
        logger.info("Added secret %s to client %s", secret.id, client_id)

    if failed:
        raise PartialFailure(succeeded=succeeded, failed=failed, errors=errors)
    return succeeded
