"""Pytest configuration and fixtures."""

import copy

import pytest

from identity_sync.errors import RemoteError
from identity_sync.models.entities import (
    Account,
    Claim,
    Client,
    ClientUrl,
    Property,
    Secret,
    UrlType,
)

_CHILD_KEYS = ("redirectUrls", "corsUrls", "postLogoutUrls", "claims")
_TOP_LEVEL_KEYS = ("name", "displayName", "scopes", "grants", "enabled")


class FakeStructLogger:
    def __init__(self):
        self.calls = []

    def info(self, **kwargs):
        self.calls.append(("info", kwargs))

    def warning(self, **kwargs):
        self.calls.append(("warning", kwargs))

    def error(self, **kwargs):
        self.calls.append(("error", kwargs))


class FakeIdentityApi:
    """In-memory identity API.

    Mirrors the remote behaviors the reconcilers rely on: ids are assigned
    on write, soft-deleted items are kept, snapshots come back unordered and
    secret values are only returned by the secret creation call.
    """

    def __init__(self):
        self.calls = []
        self.clients: dict[int, dict] = {}
        self.accounts: list[dict] = []
        self.fail_on: dict[str, Exception] = {}
        self.fail_secret_calls: set[int] = set()
        # What client snapshots show for secret values and any field overrides
        self.hidden_secret_value: str | None = ""
        self.snapshot_overrides: dict = {}
        self.secret_calls = 0
        self.authenticated = False
        self._next_id = 100

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def authenticate(self):
        self.authenticated = True

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise self.fail_on[name]

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    # Clients

    async def create_client(self, payload):
        self._record("create_client", copy.deepcopy(payload))
        client_id = self._new_id()
        stored = {key: payload.get(key) for key in _TOP_LEVEL_KEYS}
        stored.update({"id": client_id, "secrets": []})
        stored.update({key: [] for key in _CHILD_KEYS})
        self.clients[client_id] = stored
        return copy.deepcopy(stored)

    async def update_client(self, payload):
        self._record("update_client", copy.deepcopy(payload))
        client_id = payload["id"]
        stored = self.clients[client_id]
        stored.update({key: payload.get(key) for key in _TOP_LEVEL_KEYS})

        for key in _CHILD_KEYS:
            existing = {item["id"]: item for item in stored[key]}
            for item in payload.get(key) or []:
                item = dict(item)
                if not item.get("id"):
                    item["id"] = self._new_id()
                item["clientId"] = client_id
                existing[item["id"]] = item
            # Remote order is unrelated to submission order
            stored[key] = list(reversed(list(existing.values())))

        for secret in payload.get("secrets") or []:
            for kept in stored["secrets"]:
                if kept["id"] == secret["id"]:
                    kept["deleted"] = secret["deleted"]

        return self._snapshot(client_id)

    def _snapshot(self, client_id):
        snapshot = copy.deepcopy(self.clients[client_id])
        for secret in snapshot["secrets"]:
            secret["value"] = self.hidden_secret_value
        snapshot.update(copy.deepcopy(self.snapshot_overrides))
        return snapshot

    async def read_client(self, client_id):
        self._record("read_client", client_id)
        return self._snapshot(client_id)

    async def delete_client(self, client_id):
        self._record("delete_client", client_id)
        self.clients.pop(client_id, None)

    async def create_secret(self, client_id):
        self._record("create_secret", client_id)
        self.secret_calls += 1
        if self.secret_calls in self.fail_secret_calls:
            raise RemoteError("adding secret", status=500)
        secret = {"id": self._new_id(), "value": f"generated-{self._next_id}", "deleted": False}
        self.clients[client_id]["secrets"].append(dict(secret))
        return secret

    # Accounts

    def add_account(self, username, status="Enabled", role="", properties=()):
        account_id = self._new_id()
        account = {
            "id": account_id,
            "globalId": f"global-{account_id}",
            "status": status,
            "role": role,
            "properties": [
                {"id": 1, "accountId": account_id, "key": "created", "value": "2021-01-01"},
                {"id": 2, "accountId": account_id, "key": "lastLogin", "value": ""},
                {"id": 3, "accountId": account_id, "key": "username", "value": username},
                *properties,
            ],
        }
        self.accounts.append(account)
        return account

    def _account(self, account_id):
        return next(a for a in self.accounts if a["id"] == account_id)

    async def create_account(self, payload):
        self._record("create_account", copy.deepcopy(payload))
        username = payload["usernames"][0]
        if any(a["properties"][2]["value"] == username for a in self.accounts):
            return True
        self.add_account(username, role=payload.get("role", ""))
        return False

    async def find_accounts(self, term):
        self._record("find_accounts", term)
        return [
            copy.deepcopy(a) for a in self.accounts if a["properties"][2]["value"] == term
        ]

    async def set_role(self, account_id, role):
        self._record("set_role", account_id, role)
        self._account(account_id)["role"] = role

    async def set_account_state(self, account_id, state):
        self._record("set_account_state", account_id, state)
        self._account(account_id)["status"] = state.capitalize()

    async def add_property(self, payload):
        self._record("add_property", dict(payload))
        account = self._account(payload["accountId"])
        for prop in account["properties"]:
            if prop["key"] == payload["key"]:
                prop["value"] = payload["value"]
                return
        account["properties"].append({"id": self._new_id(), **payload})


@pytest.fixture
def fake_api() -> FakeIdentityApi:
    return FakeIdentityApi()


@pytest.fixture
def fake_logger() -> FakeStructLogger:
    return FakeStructLogger()


@pytest.fixture
def make_client():
    """Factory for a valid client; collections can be overridden by value."""

    def _make(
        name: str = "player-api",
        redirect=("https://player.example.com/callback",),
        cors=("https://player.example.com",),
        post_logout=("https://player.example.com/logout",),
        claims=("read",),
        secrets: int = 1,
    ) -> Client:
        client = Client(
            name=name,
            display_name="Player API",
            scopes="player-api",
            claims=[Claim(value=v) for v in claims],
            secrets=[Secret() for _ in range(secrets)],
        )
        client.set_urls(
            [ClientUrl(type=UrlType.REDIRECT, value=v) for v in redirect]
            + [ClientUrl(type=UrlType.CORS, value=v) for v in cors]
            + [ClientUrl(type=UrlType.POST_LOGOUT, value=v) for v in post_logout]
        )
        return client

    return _make


@pytest.fixture
def make_account():
    def _make(
        username: str = "player@example.com",
        role: str = "Member",
        enabled: bool = True,
        properties: dict | None = None,
    ) -> Account:
        return Account(
            username=username,
            password="hunter2",
            role=role,
            enabled=enabled,
            properties=[
                Property(key=k, value=v) for k, v in (properties or {}).items()
            ],
        )

    return _make
