"""Invariant checks run before any remote write."""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from identity_sync.errors import InvariantViolation, ValidationError
from identity_sync.models.entities import (
    URL_COLLECTIONS,
    Account,
    ChildItem,
    Client,
    Entity,
)


def _check_keys(label: str, items: Iterable[ChildItem]) -> None:
    live = [item for item in items if not item.deleted]
    for item in live:
        if not item.correlation_key:
            raise ValidationError(f"Empty value in {label}")

    # Correlation is positional over value-sorted lists, so duplicates
    # would make the id assignment ambiguous.
    counts = Counter(item.correlation_key for item in live)
    duplicates = sorted(key for key, n in counts.items() if n > 1)
    if duplicates:
        raise ValidationError(
            f"Duplicate values in {label}: {', '.join(duplicates)}"
        )


def _check_url_types(client: Client) -> None:
    for url_type, attr in URL_COLLECTIONS.items():
        for url in getattr(client, attr):
            if url.type != url_type:
                raise ValidationError(
                    f"URL {url.value} of type {url.type.value} is listed as {url_type.value}"
                )


def violations(entity: Entity) -> list[InvariantViolation]:
    """Return every required collection left without an active item."""
    if isinstance(entity, Account):
        return []

    found: list[InvariantViolation] = []
    for spec, items in entity.iter_collections():
        if spec.required and not any(not item.deleted for item in items):
            found.append(InvariantViolation(spec.label))
    return found


def validate(entity: Entity) -> None:
    """Reject an entity that must not be written.

    Raises:
        ValidationError: empty or duplicate keys within one collection, or a
            URL kept in the collection of another URL type.
        InvariantViolation: the first required collection that is empty.
    """
    if isinstance(entity, Client):
        if not entity.name:
            raise ValidationError("Client name is required")
        _check_url_types(entity)
        for spec, items in entity.iter_collections():
            _check_keys(spec.label, items)
        # Secret values are generated remotely, only ids must be unique
        ids = Counter(s.id for s in entity.secrets if s.id and not s.deleted)
        if any(n > 1 for n in ids.values()):
            raise ValidationError("Duplicate secret ids")
    else:
        if not entity.username:
            raise ValidationError("Account username is required")
        _check_keys("properties", entity.properties)

    found = violations(entity)
    if found:
        raise found[0]
