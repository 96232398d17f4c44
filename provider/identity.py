"""
identity.py - Provider identity.

Derives the provider's stable address from the operator secret and
registers (or reactivates) the matching provider row. Also home of
normalize_address, used at every boundary that touches a wallet address.
"""

import logging
import re
from typing import TYPE_CHECKING, Optional

from eth_account import Account

from provider.errors import InvalidIdentityError

if TYPE_CHECKING:
    from provider.backend import BackendClient

logger = logging.getLogger("identity")

DEFAULT_PRICE_PER_GB = 1.00

_PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def normalize_address(address: Optional[str]) -> str:
    """Canonical form for wallet addresses: stripped, lowercased, 0x-prefixed."""
    value = str(address or "").strip().lower()
    if not value:
        return ""
    if not value.startswith("0x"):
        value = "0x" + value
    return value


def normalize_secret(secret: str) -> str:
    secret = (secret or "").strip()
    if not secret.lower().startswith("0x"):
        secret = "0x" + secret
    return "0x" + secret[2:]


def derive_identity(secret: str) -> str:
    """Return the lowercase address controlled by ``secret``.

    Raises InvalidIdentityError for anything that is not a usable
    secp256k1 private key. No I/O happens here.
    """
    key = normalize_secret(secret)
    if not _PRIVATE_KEY_RE.match(key):
        raise InvalidIdentityError("private key must be 32 bytes of hex")
    try:
        acct = Account.from_key(key)
    except Exception as e:
        # eth-account raises a mix of ValueError and eth-keys ValidationError
        raise InvalidIdentityError(f"invalid private key: {type(e).__name__}") from e
    return normalize_address(acct.address)


def default_display_name(identity: str) -> str:
    return f"Provider {identity[:6]}"


class IdentityResolver:
    """Turns the operator secret into a registered, active provider row."""

    def __init__(
        self,
        backend: "BackendClient",
        capacity_gb: float,
        price_per_gb: float = DEFAULT_PRICE_PER_GB,
    ):
        self._backend = backend
        self._capacity_gb = capacity_gb
        self._price_per_gb = price_per_gb

    async def resolve(self, secret: str) -> dict:
        identity = derive_identity(secret)
        provider = await self._backend.get_or_create_provider(
            identity,
            display_name=default_display_name(identity),
            capacity_gb=self._capacity_gb,
            price_per_gb=self._price_per_gb,
        )
        logger.info(
            "Provider %s registered (id=%s capacity=%.2f GB)",
            identity, provider["id"], provider["available_capacity_gb"],
        )
        return provider
