"""Local record of the last reconciled state.

The file holds remote ids and generated secret values; it is what lets an
update know which remote items belong to which declaration.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from identity_sync.models.entities import Account, Client

logger = logging.getLogger(__name__)

WARNING = "This file contains sensitive credentials. DO NOT COMMIT."


class StateStore:
    """Reconciled clients keyed by name and accounts keyed by username."""

    def __init__(
        self,
        path: Path,
        clients: dict[str, Client] | None = None,
        accounts: dict[str, Account] | None = None,
    ):
        self.path = Path(path)
        self.clients: dict[str, Client] = clients or {}
        self.accounts: dict[str, Account] = accounts or {}

    @classmethod
    def load(cls, path: str | Path) -> "StateStore":
        """Load state; a missing file is an empty state."""
        p = Path(path)
        if not p.exists():
            logger.debug("No state file at %s, starting empty", p)
            return cls(p)

        raw = yaml.safe_load(p.read_text()) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"State file must be a YAML mapping: {path}")

        clients = {
            name: Client.model_validate(data).sort_fields()
            for name, data in (raw.get("clients") or {}).items()
        }
        accounts = {
            name: Account.model_validate(data).sort_fields()
            for name, data in (raw.get("accounts") or {}).items()
        }
        logger.debug("Loaded %d clients and %d accounts from %s", len(clients), len(accounts), p)
        return cls(p, clients, accounts)

    def save(self) -> None:
        output: dict[str, Any] = {
            "# WARNING": WARNING,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "clients": {
                name: client.model_dump(mode="json")
                for name, client in sorted(self.clients.items())
            },
            # Passwords are write-once and never persisted
            "accounts": {
                name: account.model_dump(mode="json", exclude={"password"})
                for name, account in sorted(self.accounts.items())
            },
        }
        self.path.write_text(yaml.safe_dump(output, default_flow_style=False, sort_keys=False))
        logger.info("Wrote state to: %s", self.path)

    def record(self, entity: Client | Account) -> None:
        if isinstance(entity, Client):
            self.clients[entity.name] = entity
        else:
            self.accounts[entity.username] = entity

    def forget(self, name: str) -> Client | Account | None:
        """Drop a tracked client or account and return it."""
        if name in self.clients:
            return self.clients.pop(name)
        return self.accounts.pop(name, None)

    def lookup(self, name: str) -> Client | Account | None:
        return self.clients.get(name) or self.accounts.get(name)
