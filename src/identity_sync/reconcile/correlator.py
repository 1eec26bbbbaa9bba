"""Correlation of local child items with remote-assigned ids.

The identity API answers a write with the full client but does not say which
submitted item received which id. Both sides are sorted by value and matched
position by position, which only works because values are unique within a
collection (enforced by the validator).
"""

from __future__ import annotations

import logging
from typing import Any

from identity_sync.errors import CorrelationError
from identity_sync.models.entities import (
    CLIENT_COLLECTIONS,
    Account,
    ChildItem,
    Client,
    Secret,
    sort_items,
)

logger = logging.getLogger(__name__)


def _correlate_items(
    label: str,
    local: list[ChildItem],
    remote: list[ChildItem],
) -> None:
    local_live = sort_items([item for item in local if not item.deleted])
    remote_live = sort_items([item for item in remote if not item.deleted])

    local_keys = [item.correlation_key for item in local_live]
    remote_keys = [item.correlation_key for item in remote_live]
    if local_keys != remote_keys:
        raise CorrelationError(label, local_keys, remote_keys)

    for mine, theirs in zip(local_live, remote_live):
        if mine.id and mine.id != theirs.id:
            raise CorrelationError(
                label,
                local_keys,
                remote_keys,
                message=f"Remote id {theirs.id} does not match local id {mine.id} "
                f"for {mine.correlation_key!r}",
            )
        mine.id = theirs.id
        owner = theirs.owner_id
        if owner:
            mine.set_owner(owner)


def correlate(local: Client, snapshot: Client | dict[str, Any]) -> Client:
    """Stamp remote ids onto the local client's URLs and claims.

    Args:
        local: Client as submitted (mutated in place)
        snapshot: Remote answer to the write, parsed or raw

    Returns:
        The local client, normalized.

    Raises:
        CorrelationError: a collection differs in length or values.
    """
    remote = snapshot if isinstance(snapshot, Client) else Client.from_snapshot(snapshot)

    if remote.id and not local.id:
        local.id = remote.id

    for spec in CLIENT_COLLECTIONS:
        _correlate_items(
            spec.label,
            getattr(local, spec.attr),
            getattr(remote, spec.attr),
        )
        logger.debug("Correlated %s for client %s", spec.label, local.id)

    return local.sort_fields()


def adopt_ids(previous: Client, desired: Client) -> Client:
    """Carry ids from the last reconciled state onto a fresh declaration.

    Items declared in a configuration file have no ids. An item keeps its
    identity when an active previous item has the same kind and value;
    anything else is new. Secrets have no user-visible key, so pending
    desired secrets take the unclaimed previous secrets in id order.

    Returns:
        A copy of ``desired`` with ids filled in.
    """
    adopted = desired.model_copy(deep=True)
    if not adopted.id:
        adopted.id = previous.id

    for spec in CLIENT_COLLECTIONS:
        known = {
            item.correlation_key: item
            for item in getattr(previous, spec.attr)
            if item.is_active
        }
        for item in getattr(adopted, spec.attr):
            if item.id:
                continue
            match = known.get(item.correlation_key)
            if match is not None:
                item.id = match.id
                item.set_owner(match.owner_id or previous.id)

    claimed = {s.id for s in adopted.secrets if s.id}
    spare = [s for s in sorted(previous.secrets, key=lambda s: s.id)
             if s.is_active and s.id not in claimed]
    secrets: list[Secret] = []
    for secret in adopted.secrets:
        if not secret.id and spare:
            old = spare.pop(0)
            secret = old.model_copy(update={"deleted": secret.deleted})
        secrets.append(secret)
    adopted.secrets = secrets

    return adopted


def correlate_properties(local: Account, remote: Account) -> Account:
    """Copy remote ids of account properties by key.

    Properties are written one call at a time and matched by key, so a
    missing key is an error rather than a positional mismatch.
    """
    remote_by_key = {p.key: p for p in remote.properties if not p.deleted}
    for prop in local.properties:
        if prop.deleted:
            continue
        match = remote_by_key.get(prop.key)
        if match is None:
            raise CorrelationError(
                "properties",
                sorted(p.key for p in local.properties if not p.deleted),
                sorted(remote_by_key),
            )
        if match.id:
            prop.id = match.id
        prop.set_owner(remote.id or local.id)
    return local.sort_fields()
