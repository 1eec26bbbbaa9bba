"""Identity API connection settings.

Settings can be provided via:
1. Environment variables (IDENTITY_SYNC_*)
2. CLI arguments (--api-url, --client-id, etc.)
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCOPE = "identity-api identity-api-privileged"


class IdentityApiSettings(BaseSettings):
    """Identity API connection and authentication settings."""

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_SYNC_",
        extra="ignore",
    )

    # Connection
    api_url: str = Field(
        default="http://localhost:5000/api/",
        description="Identity API base URL",
    )
    token_url: str = Field(
        default="http://localhost:5000",
        description="Identity server URL issuing access tokens",
    )
    timeout: float = Field(
        default=30.0,
        description="HTTP request timeout in seconds",
    )

    # Client credentials
    client_id: str | None = Field(
        default=None,
        description="Client ID used to obtain API tokens",
    )
    client_secret: str | None = Field(
        default=None,
        description="Client secret used to obtain API tokens",
    )
    scope: str = Field(
        default=DEFAULT_SCOPE,
        description="Scopes requested with the token",
    )

    @property
    def base_api_url(self) -> str:
        """API URL with exactly one trailing slash."""
        return self.api_url.rstrip("/") + "/"

    @property
    def token_endpoint(self) -> str:
        return f"{self.token_url.rstrip('/')}/connect/token"

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def with_overrides(
        self,
        *,
        api_url: str | None = None,
        token_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> "IdentityApiSettings":
        """Create a new settings instance with CLI overrides applied."""
        return IdentityApiSettings(
            api_url=api_url or self.api_url,
            token_url=token_url or self.token_url,
            timeout=self.timeout,
            client_id=client_id or self.client_id,
            client_secret=client_secret or self.client_secret,
            scope=self.scope,
        )
