"""Domain models."""

from .config import AccountConfig, ClientConfig, DesiredConfig
from .entities import (
    Account,
    AccountState,
    ChildItem,
    Claim,
    Client,
    ClientUrl,
    Property,
    Secret,
    UrlType,
    normalize,
)

__all__ = [
    "Account",
    "AccountConfig",
    "AccountState",
    "ChildItem",
    "Claim",
    "Client",
    "ClientConfig",
    "ClientUrl",
    "DesiredConfig",
    "Property",
    "Secret",
    "UrlType",
    "normalize",
]
