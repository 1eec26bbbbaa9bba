"""Error taxonomy for identity reconciliation.

Configuration errors (``ValidationError``, ``InvariantViolation``) are raised
before any remote write. ``RemoteError`` wraps a non-success API status.
``CorrelationError``, ``SnapshotError`` and ``PartialFailure`` mean the
remote entity may be in a mixed state and an operator should look at it.
"""

from __future__ import annotations

from typing import Any, Sequence


class IdentitySyncError(Exception):
    """Base exception for reconciliation errors."""

    retryable: bool = False
    requires_operator: bool = False


class ValidationError(IdentitySyncError):
    """Malformed or unsupported local declaration."""

    pass


class InvariantViolation(ValidationError):
    """A required child collection would be left without active items."""

    def __init__(self, collection: str, message: str | None = None):
        super().__init__(
            message or f"There must be at least one non-deleted item in {collection}"
        )
        self.collection = collection


class CorrelationError(IdentitySyncError):
    """Remote snapshot cannot be aligned with the local declaration."""

    requires_operator = True

    def __init__(
        self,
        collection: str,
        local: Sequence[str],
        remote: Sequence[str],
        message: str | None = None,
    ):
        self.collection = collection
        self.local = list(local)
        self.remote = list(remote)
        super().__init__(
            (message or f"Cannot correlate {collection} with remote snapshot")
            + f": local={self.local} remote={self.remote}"
        )


class SnapshotError(IdentitySyncError):
    """A remote answer could not be parsed into an entity."""

    requires_operator = True

    def __init__(self, kind: str, detail: Any):
        self.kind = kind
        self.detail = detail
        super().__init__(f"Malformed {kind} snapshot from identity API: {detail}")


class RemoteError(IdentitySyncError):
    """The identity API returned a non-success status."""

    retryable = True

    def __init__(
        self,
        operation: str,
        status: int | None = None,
        message: str | None = None,
        response: Any = None,
    ):
        super().__init__(
            message
            or f"Identity API returned with status code {status} when {operation}"
        )
        self.operation = operation
        self.status = status
        self.response = response


class AuthenticationError(RemoteError):
    """Token acquisition failed."""

    pass


class AccountLookupError(IdentitySyncError):
    """Looking an account up by username did not yield exactly one match."""

    retryable = True


class PartialFailure(IdentitySyncError):
    """Some secrets were created before others failed.

    Already created secrets are not rolled back.
    """

    requires_operator = True

    def __init__(
        self,
        succeeded: Sequence[int],
        failed: Sequence[Any],
        errors: Sequence[IdentitySyncError] = (),
    ):
        self.succeeded = list(succeeded)
        self.failed = list(failed)
        self.errors = list(errors)
        super().__init__(
            f"Created {len(self.succeeded)} secret(s) before failing on "
            f"{len(self.failed)}: {'; '.join(str(e) for e in self.errors)}"
        )

    @property
    def created_count(self) -> int:
        return len(self.succeeded)
