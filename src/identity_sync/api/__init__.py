"""Identity API transport."""

from .client import IdentityApiClient, TokenInfo
from .settings import IdentityApiSettings

__all__ = [
    "IdentityApiClient",
    "IdentityApiSettings",
    "TokenInfo",
]
