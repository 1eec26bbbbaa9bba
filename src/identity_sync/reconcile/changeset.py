"""Change sets for child collections.

The identity API never hard-deletes child items: removing an item from the
configuration turns into an update that sets ``deleted`` on it. Every
declared item is resubmitted on update; the remote treats unchanged fields
as no-ops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, Sequence

from identity_sync.errors import ValidationError
from identity_sync.models.entities import ItemT, Property

logger = logging.getLogger(__name__)


@dataclass
class ChangeSet(Generic[ItemT]):
    """Delta for one child collection."""

    to_create: list[ItemT] = field(default_factory=list)
    to_update: list[ItemT] = field(default_factory=list)
    to_delete: list[ItemT] = field(default_factory=list)

    # Existing items whose submitted fields differ from the previous state.
    # Reporting only; they are already part of to_update.
    modified: list[ItemT] = field(default_factory=list)

    @property
    def payload(self) -> list[ItemT]:
        """Items to submit, deletes first.

        A value deleted and re-declared under a new id in the same run must
        not look duplicated to the remote.
        """
        return [*self.to_delete, *self.to_update]

    @property
    def has_changes(self) -> bool:
        return bool(self.to_create or self.to_delete or self.modified)


def build_change_set(
    previous: Sequence[ItemT],
    desired: Sequence[ItemT],
) -> ChangeSet[ItemT]:
    """Diff the previous reconciled items against the desired ones.

    Args:
        previous: Last reconciled items (empty on initial creation)
        desired: Newly declared items

    Returns:
        ChangeSet whose ``to_delete`` holds soft-deleted copies of the
        previous items no longer declared.
    """
    desired_ids = {item.id for item in desired if item.id}
    previous_by_id = {item.id: item for item in previous if item.is_active}
    changes: ChangeSet[ItemT] = ChangeSet()

    for old in previous_by_id.values():
        if old.id not in desired_ids:
            changes.to_delete.append(old.model_copy(update={"deleted": True}))

    for item in desired:
        item = item.model_copy()
        changes.to_update.append(item)
        if item.id == 0:
            if not item.deleted:
                changes.to_create.append(item)
            continue
        old = previous_by_id.get(item.id)
        if old is not None and (
            old.value != item.value or old.deleted != item.deleted
        ):
            changes.modified.append(item)

    return changes


def build_property_change_set(
    previous: Sequence[Property],
    desired: Sequence[Property],
) -> ChangeSet[Property]:
    """Diff account properties by key.

    Properties cannot be deleted and their keys cannot change: a new key is
    a new property. Only changed values are written, since each property is
    its own remote call.

    Raises:
        ValidationError: a previously written key is missing from desired.
    """
    desired_by_key = {p.key: p for p in desired if not p.deleted}
    previous_by_key = {p.key: p for p in previous if not p.deleted}

    missing = sorted(set(previous_by_key) - set(desired_by_key))
    if missing:
        raise ValidationError(
            f"Properties cannot be deleted: {', '.join(missing)}"
        )

    changes: ChangeSet[Property] = ChangeSet()
    for key, prop in desired_by_key.items():
        old = previous_by_key.get(key)
        if old is None:
            changes.to_create.append(prop.model_copy())
        elif old.value != prop.value:
            logger.debug("Property %s changed value", key)
            changes.to_update.append(prop.model_copy(update={"id": old.id}))
    return changes
