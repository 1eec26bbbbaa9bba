"""Identity API client.

Wraps the identity REST API for managing:
- Clients and their nested URLs, claims and secrets
- Accounts, their role, state and properties
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from identity_sync.api.settings import IdentityApiSettings
from identity_sync.errors import AuthenticationError, RemoteError

logger = logging.getLogger(__name__)

# Reply to a create for an account that already exists
ACCOUNT_NOT_UNIQUE = "AccountNotUnique"


@dataclass
class TokenInfo:
    """OAuth token information."""

    access_token: str
    expires_at: float

    def is_valid(self, leeway: int = 30) -> bool:
        """Check if token is still valid."""
        return time.time() < (self.expires_at - leeway)


class IdentityApiClient:
    """Async client for the identity REST API.

    One instance is opened per command and passed to the reconcilers; there
    is no module-level transport.
    """

    def __init__(
        self,
        settings: IdentityApiSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._transport = transport
        self._token: TokenInfo | None = None
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "IdentityApiClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            timeout=self._settings.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def authenticate(self) -> None:
        """Obtain an access token with the client credentials grant."""
        if not self._settings.has_client_credentials:
            raise AuthenticationError(
                "getting bearer token",
                message="No credentials provided. Use --client-id/--client-secret "
                "or IDENTITY_SYNC_CLIENT_ID/IDENTITY_SYNC_CLIENT_SECRET",
            )

        data = {
            "grant_type": "client_credentials",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "scope": self._settings.scope,
        }

        logger.debug("Authenticating with client credentials: %s", self._settings.client_id)

        try:
            response = await self._client.post(self._settings.token_endpoint, data=data)
        except httpx.TransportError as e:
            raise AuthenticationError(
                "getting bearer token",
                message=f"Identity server unreachable: {e}",
            ) from e

        if response.status_code != 200:
            raise AuthenticationError(
                "getting bearer token",
                status=response.status_code,
                message=f"Identity API returned with status {response.status_code} "
                "when getting bearer token",
            )

        payload = response.json()
        self._token = TokenInfo(
            access_token=payload["access_token"],
            expires_at=time.time() + float(payload.get("expires_in", 300)),
        )
        logger.info("Authenticated as client: %s", self._settings.client_id)

    async def _ensure_token(self) -> str:
        """Ensure we have a valid token."""
        if not self._token or not self._token.is_valid():
            await self.authenticate()
        return self._token.access_token

    async def _headers(self) -> dict[str, str]:
        """Get request headers with auth token."""
        token = await self._ensure_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self._settings.base_api_url}{path}"
        headers = await self._headers()
        try:
            response = await self._client.request(
                method, url, headers=headers, json=json, params=params
            )
        except httpx.TransportError as e:
            raise RemoteError(
                operation, message=f"Identity API unreachable when {operation}: {e}"
            ) from e
        return self._handle_response(response, operation)

    def _handle_response(self, response: httpx.Response, operation: str) -> Any:
        """Handle API response. Anything but 200 is a failure."""
        if response.status_code == 401:
            raise AuthenticationError(operation, status=401)

        if response.status_code != 200:
            raise RemoteError(
                operation,
                status=response.status_code,
                response=response.text,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                operation,
                status=response.status_code,
                message=f"Identity API returned a body that is not JSON when {operation}",
                response=response.text,
            ) from e

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    async def create_client(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a client. Returns the remote snapshot (with its id)."""
        logger.debug("Creating client: %s", payload.get("name"))
        snapshot = await self._request("POST", "client", "creating client", json=payload)
        logger.info("Created client: %s (id=%s)", payload.get("name"), snapshot.get("id"))
        return snapshot

    async def update_client(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Update a client and its nested collections. Returns the snapshot."""
        logger.debug("Updating client: %s (id=%s)", payload.get("name"), payload.get("id"))
        snapshot = await self._request("PUT", "client", "updating client", json=payload)
        logger.info("Updated client: %s", payload.get("name"))
        return snapshot

    async def read_client(self, client_id: int) -> dict[str, Any]:
        """Get a client by id."""
        return await self._request("GET", f"client/{client_id}", "reading client")

    async def delete_client(self, client_id: int) -> None:
        """Delete a client."""
        logger.debug("Deleting client: %s", client_id)
        await self._request("DELETE", f"client/{client_id}", "deleting client")
        logger.info("Deleted client: %s", client_id)

    async def create_secret(self, client_id: int) -> dict[str, Any]:
        """Add a secret to a client.

        The value is generated remotely. Returns ``{id, value, deleted}``.
        """
        logger.debug("Adding a secret to client %s", client_id)
        return await self._request("PUT", f"client/{client_id}/secret", "adding secret")

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def create_account(self, payload: dict[str, Any]) -> bool:
        """Create an account.

        Returns:
            True if the account already existed. The API still answers 200
            in that case, with an ``AccountNotUnique`` message.
        """
        logger.debug("Creating account: %s", payload.get("usernames"))
        body = await self._request("POST", "account", "creating account", json=payload)
        first = body[0] if isinstance(body, list) and body else {}
        if isinstance(first, dict) and first.get("message") == ACCOUNT_NOT_UNIQUE:
            logger.info("Account already exists: %s", payload.get("usernames"))
            return True
        return False

    async def find_accounts(self, term: str) -> list[dict[str, Any]]:
        """Search accounts by term (username)."""
        body = await self._request(
            "GET", "accounts", "retrieving account", params={"Term": term}
        )
        return body or []

    async def set_role(self, account_id: int, role: str) -> None:
        """Set the role of an account."""
        logger.debug("Setting role %s on account %s", role, account_id)
        await self._request(
            "PUT", f"account/{account_id}/role/{role}", "setting role on account"
        )

    async def set_account_state(self, account_id: int, state: str) -> None:
        """Enable or disable an account."""
        logger.debug("Setting state %s on account %s", state, account_id)
        await self._request(
            "PUT", f"account/{account_id}/state/{state}", f"setting account {state}"
        )

    async def add_property(self, payload: dict[str, Any]) -> None:
        """Add or update an account property.

        The same endpoint updates a property whose key already exists.
        """
        logger.debug("Writing property %s on account %s", payload.get("key"), payload.get("accountId"))
        await self._request("PUT", "account/property", "writing property", json=payload)
