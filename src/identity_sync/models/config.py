"""Pydantic models for the desired-state YAML configuration.

Example YAML structure:
    clients:
      - name: player-api
        display_name: Player API
        scopes: player-api
        grants: client_credentials
        urls:
          - type: redirectUri
            value: https://player.example.com/callback
          - type: corsUri
            value: https://player.example.com
          - type: postLogoutRedirectUri
            value: https://player.example.com/logout
        claims:
          - read
          - write
        secrets: 1                  # number of secrets the client holds

    accounts:
      - username: admin@example.com
        password: ${ADMIN_PASSWORD}   # supports env vars
        role: Administrator
        properties:
          - key: team
            value: blue
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from identity_sync.models.entities import (
    Account,
    Claim,
    Client,
    ClientUrl,
    Property,
    Secret,
    UrlType,
)

# Pattern for ${VAR} and ${VAR:-default} interpolation
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(:-([^}]*))?\}")


def _resolve_env_str(s: str) -> str:
    """Resolve environment variable placeholders in a string."""
    def repl(m: re.Match[str]) -> str:
        val = os.getenv(m.group(1))
        if val is None or val == "":
            default = m.group(3)
            return default if default is not None else ""
        return val

    # Resolve repeatedly until stable (handles nested defaults)
    prev = None
    cur = s
    for _ in range(5):
        if cur == prev:
            break
        prev = cur
        cur = _ENV_PATTERN.sub(repl, cur)
    return cur


def _resolve_env(value: Any) -> Any:
    """Recursively resolve environment variables in a data structure."""
    if isinstance(value, str):
        return _resolve_env_str(value)
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    return value


class UrlConfig(BaseModel):
    type: UrlType = Field(..., description="redirectUri, corsUri or postLogoutRedirectUri")
    value: str = Field(..., description="The URL")


class ClientConfig(BaseModel):
    """Configuration for an identity client."""

    name: str = Field(..., description="Client name (unique identifier)")
    display_name: str = Field(default="", description="Display name")
    scopes: str = Field(default="", description="Space separated scopes")
    grants: str = Field(default="client_credentials", description="Grant type")
    enabled: bool = Field(default=True)

    urls: list[UrlConfig] = Field(default_factory=list)
    claims: list[str] = Field(default_factory=list)
    secrets: int = Field(
        default=1,
        ge=0,
        description="Number of secrets to keep; existing secrets are kept in id order",
    )

    @model_validator(mode="after")
    def default_display_name(self) -> "ClientConfig":
        """Use name as default display name if not provided."""
        if not self.display_name:
            self.display_name = self.name
        return self

    def to_entity(self) -> Client:
        """Build the desired client. Child items carry no ids yet."""
        client = Client(
            name=self.name,
            display_name=self.display_name,
            scopes=self.scopes,
            grants=self.grants,
            enabled=self.enabled,
            claims=[Claim(value=c) for c in self.claims],
            secrets=[Secret() for _ in range(self.secrets)],
        )
        client.set_urls([ClientUrl(type=u.type, value=u.value) for u in self.urls])
        return client


class PropertyConfig(BaseModel):
    key: str
    value: str


class AccountConfig(BaseModel):
    """Configuration for an identity account."""

    username: str = Field(..., description="Login name (email)")
    password: str = Field(default="", description="Initial password, never updated")
    role: str = Field(default="", description="Role to assign")
    enabled: bool = Field(default=True)
    properties: list[PropertyConfig] = Field(default_factory=list)

    def to_entity(self) -> Account:
        return Account(
            username=self.username,
            password=self.password,
            role=self.role,
            enabled=self.enabled,
            properties=[Property(key=p.key, value=p.value) for p in self.properties],
        )


class DesiredConfig(BaseModel):
    """Top-level desired state."""

    clients: list[ClientConfig] = Field(
        default_factory=list,
        description="Clients to create/sync",
    )
    accounts: list[AccountConfig] = Field(
        default_factory=list,
        description="Accounts to create/sync",
    )

    @model_validator(mode="after")
    def unique_names(self) -> "DesiredConfig":
        for label, names in (
            ("client name", [c.name for c in self.clients]),
            ("account username", [a.username for a in self.accounts]),
        ):
            seen: set[str] = set()
            for name in names:
                if name in seen:
                    raise ValueError(f"Duplicate {label}: {name}")
                seen.add(name)
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DesiredConfig":
        """Load configuration from a YAML file with env var interpolation."""
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        raw = yaml.safe_load(p.read_text())
        if not isinstance(raw, dict):
            raise ValueError(f"Config file must be a YAML mapping: {path}")

        # Resolve environment variables
        resolved = _resolve_env(raw)

        return cls.model_validate(resolved)
