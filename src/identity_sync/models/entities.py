"""Typed entities reconciled against the identity API.

Wire shape (camelCase) example for a client snapshot:

    {
      "id": 12,
      "name": "player-api",
      "displayName": "Player API",
      "scopes": "player-api",
      "grants": "client_credentials",
      "redirectUrls": [{"id": 3, "type": "redirectUri", "value": "https://a",
                        "clientId": 12, "deleted": false}],
      "corsUrls": [...],
      "postLogoutUrls": [...],
      "claims": [{"id": 7, "value": "read", "clientId": 12, "deleted": false}],
      "secrets": [...]
    }
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Iterator, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from identity_sync.errors import SnapshotError


class UrlType(str, Enum):
    """Kinds of client URL accepted by the identity API."""

    REDIRECT = "redirectUri"
    CORS = "corsUri"
    POST_LOGOUT = "postLogoutRedirectUri"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _none_as_blank(v: Any) -> Any:
    return "" if v is None else v


class ChildItem(_WireModel):
    """A list-valued sub-resource of an entity.

    ``id == 0`` means the remote has not assigned an id yet.
    """

    owner_field: ClassVar[str | None] = None

    id: int = Field(default=0, description="Remote-assigned id, 0 until created")
    value: str = Field(default="", description="Semantic payload")
    deleted: bool = Field(default=False, description="Terminal soft-delete marker")

    # The API answers null for values it hides, such as secret values
    _blank_value = field_validator("value", mode="before")(_none_as_blank)

    @property
    def correlation_key(self) -> str:
        return self.value

    @property
    def sort_key(self) -> tuple[str, int]:
        """Ascending by correlation key, ties by id (pending items first)."""
        return (self.correlation_key, self.id)

    @property
    def is_active(self) -> bool:
        return self.id != 0 and not self.deleted

    @property
    def owner_id(self) -> int | None:
        if self.owner_field is None:
            return None
        return getattr(self, self.owner_field)

    def set_owner(self, owner_id: int) -> None:
        if self.owner_field is not None:
            setattr(self, self.owner_field, owner_id)


class ClientUrl(ChildItem):
    """Redirect, CORS or post-logout URL of a client."""

    owner_field: ClassVar[str | None] = "client_id"

    type: UrlType = Field(..., description="URL kind")
    client_id: int = Field(default=0, description="Owning client id")


class Claim(ChildItem):
    """Claim issued to a client."""

    owner_field: ClassVar[str | None] = "client_id"

    client_id: int = Field(default=0, description="Owning client id")


class Secret(ChildItem):
    """Client secret. The value is generated remotely and write-once."""

    pass


class Property(ChildItem):
    """Key/value property of an account. Correlated by key."""

    owner_field: ClassVar[str | None] = "account_id"

    account_id: int = Field(default=0, description="Owning account id")
    key: str = Field(..., description="Property key, immutable once created")

    _blank_key = field_validator("key", mode="before")(_none_as_blank)

    @property
    def correlation_key(self) -> str:
        return self.key

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(
            by_alias=True, include={"account_id", "key", "value"}
        )


ItemT = TypeVar("ItemT", bound=ChildItem)


def sort_items(items: list[ItemT]) -> list[ItemT]:
    """Return items in the canonical order shared by reads and correlation."""
    return sorted(items, key=lambda item: item.sort_key)


def active_items(items: list[ItemT]) -> list[ItemT]:
    return [item for item in items if item.is_active]


@dataclass(frozen=True)
class CollectionSpec:
    """Describes one correlated child collection of a client."""

    attr: str
    label: str
    required: bool = True


CLIENT_COLLECTIONS: tuple[CollectionSpec, ...] = (
    CollectionSpec("redirect_urls", "redirect URLs"),
    CollectionSpec("cors_urls", "CORS URLs"),
    CollectionSpec("post_logout_urls", "post-logout URLs"),
    CollectionSpec("claims", "claims"),
)

URL_COLLECTIONS: dict[UrlType, str] = {
    UrlType.REDIRECT: "redirect_urls",
    UrlType.CORS: "cors_urls",
    UrlType.POST_LOGOUT: "post_logout_urls",
}


class Client(_WireModel):
    """An identity client and its child collections."""

    id: int = 0
    name: str = Field(..., description="Client name")
    display_name: str = ""
    scopes: str = ""
    grants: str = "client_credentials"
    enabled: bool = True

    # Lifetimes are not managed but the API rejects payloads without them
    consent_lifetime: str = "30d"
    identity_token_lifetime: str = "5m"
    access_token_lifetime: str = "1h"
    authorization_code_lifetime: str = "5m"
    sliding_refresh_token_lifetime: str = "15d"
    absolute_refresh_token_lifetime: str = "30d"

    redirect_urls: list[ClientUrl] = Field(default_factory=list)
    post_logout_urls: list[ClientUrl] = Field(default_factory=list)
    cors_urls: list[ClientUrl] = Field(default_factory=list)
    claims: list[Claim] = Field(default_factory=list)
    secrets: list[Secret] = Field(default_factory=list)

    # The API answers 400 when this field is missing
    managers: list[Any] = Field(default_factory=list)

    @field_validator(
        "redirect_urls",
        "post_logout_urls",
        "cors_urls",
        "claims",
        "secrets",
        "managers",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    _blank_strings = field_validator(
        "name",
        "display_name",
        "scopes",
        "grants",
        "consent_lifetime",
        "identity_token_lifetime",
        "access_token_lifetime",
        "authorization_code_lifetime",
        "sliding_refresh_token_lifetime",
        "absolute_refresh_token_lifetime",
        mode="before",
    )(_none_as_blank)

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> "Client":
        """Parse a remote snapshot into a normalized client.

        Raises:
            SnapshotError: the snapshot does not have the client shape.
        """
        try:
            client = cls.model_validate(snapshot)
        except pydantic.ValidationError as e:
            raise SnapshotError("client", e) from e
        return client.sort_fields()

    @property
    def urls(self) -> list[ClientUrl]:
        return [*self.redirect_urls, *self.cors_urls, *self.post_logout_urls]

    def set_urls(self, urls: list[ClientUrl]) -> None:
        """Partition a flat URL list into the typed collections."""
        for attr in URL_COLLECTIONS.values():
            setattr(self, attr, [])
        for url in urls:
            getattr(self, URL_COLLECTIONS[UrlType(url.type)]).append(url)

    def iter_collections(self) -> Iterator[tuple[CollectionSpec, list[ChildItem]]]:
        for spec in CLIENT_COLLECTIONS:
            yield spec, getattr(self, spec.attr)

    def sort_fields(self) -> "Client":
        """Sort every child collection in place."""
        for spec in CLIENT_COLLECTIONS:
            setattr(self, spec.attr, sort_items(getattr(self, spec.attr)))
        self.secrets = sort_items(self.secrets)
        return self

    def stamp_owner(self, client_id: int) -> None:
        """Record the client id on the client and every owned item."""
        self.id = client_id
        for _, items in self.iter_collections():
            for item in items:
                item.set_owner(client_id)

    def bare(self) -> "Client":
        """Copy with top-level attributes only, as sent on first creation."""
        return self.model_copy(
            update={
                "redirect_urls": [],
                "post_logout_urls": [],
                "cors_urls": [],
                "claims": [],
                "secrets": [],
                "managers": [],
            }
        )

    def reconciled(self) -> "Client":
        """Copy keeping only active items; this is what gets persisted."""
        copy = self.model_copy(deep=True)
        for spec in CLIENT_COLLECTIONS:
            setattr(copy, spec.attr, active_items(getattr(copy, spec.attr)))
        copy.secrets = active_items(copy.secrets)
        return copy.sort_fields()


class AccountState(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


# The API prepends system-managed properties to every account; the third
# one holds the username.
SYSTEM_PROPERTY_COUNT = 3
USERNAME_PROPERTY_INDEX = 2


class Account(_WireModel):
    """An identity account and its managed properties."""

    id: int = 0
    global_id: str = ""
    username: str = Field(..., description="Login name (email)")
    password: str = Field(default="", repr=False, description="Write-only")
    role: str = ""
    status: str = ""
    enabled: bool = True
    properties: list[Property] = Field(default_factory=list)

    @field_validator("properties", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> "Account":
        """Parse one entry of an ``accounts?Term=`` response.

        Raises:
            SnapshotError: the entry does not have the account shape.
        """
        if not isinstance(snapshot, dict):
            raise SnapshotError("account", snapshot)
        props = snapshot.get("properties") or []
        if not isinstance(props, list):
            raise SnapshotError("account", snapshot)
        username = ""
        if len(props) > USERNAME_PROPERTY_INDEX:
            holder = props[USERNAME_PROPERTY_INDEX]
            if not isinstance(holder, dict):
                raise SnapshotError("account", snapshot)
            username = holder.get("value") or ""
        try:
            status = snapshot.get("status") or ""
            account = cls(
                id=snapshot.get("id") or 0,
                global_id=snapshot.get("globalId") or "",
                username=username,
                role=snapshot.get("role") or "",
                status=status,
                enabled=status == "Enabled",
                properties=[
                    Property.model_validate(p) for p in props[SYSTEM_PROPERTY_COUNT:]
                ],
            )
        except pydantic.ValidationError as e:
            raise SnapshotError("account", e) from e
        return account.sort_fields()

    def create_payload(self) -> dict[str, Any]:
        # The API wants a list of usernames
        return {
            "usernames": [self.username],
            "password": self.password,
            "role": self.role,
            "status": self.status,
        }

    def sort_fields(self) -> "Account":
        self.properties = sort_items(self.properties)
        return self

    def stamp_owner(self, account_id: int) -> None:
        self.id = account_id
        for prop in self.properties:
            prop.set_owner(account_id)

    def reconciled(self) -> "Account":
        copy = self.model_copy(deep=True)
        copy.properties = [p for p in copy.properties if not p.deleted]
        return copy.sort_fields()


Entity = Client | Account


def normalize(entity: Entity) -> Entity:
    """Validate an entity and sort its collections into canonical order.

    Raises:
        ValidationError: duplicate keys, or a required collection is empty
            (``InvariantViolation``).
    """
    from identity_sync.reconcile.validator import validate

    validate(entity)
    return entity.sort_fields()
