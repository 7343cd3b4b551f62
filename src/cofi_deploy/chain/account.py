"""
Deployer identity - loads the account that signs every transaction.

Keys come from the environment or a ``.env`` file, using the per-network
variable names ``PRIVATE_KEY_<NETWORK>`` / ``ACCOUNT_ADDRESS_<NETWORK>``.
On devnet, when nothing is configured, the first predeployed account of
starknet-devnet is used.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv

from ..errors import ConfigError
from ..utils import to_hex_address


@dataclass(frozen=True)
class DeployerIdentity:
    address: str
    private_key: Optional[str]

    def __repr__(self) -> str:
        return f"DeployerIdentity(address={self.address!r})"


def load_env(env_path: Optional[Path] = None) -> None:
    """Load ``.env`` into the process environment (existing values win)."""
    env_path = env_path or Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _devnet_base_url(rpc_url: str) -> str:
    base = rpc_url.rstrip("/")
    if base.endswith("/rpc"):
        base = base[: -len("/rpc")]
    return base


def fetch_predeployed_accounts(rpc_url: str, timeout: float = 10.0) -> list[dict]:
    """
    Fetch starknet-devnet's predeployed accounts.

    Args:
        rpc_url: Devnet URL (with or without the ``/rpc`` suffix)

    Returns:
        List of dicts with address, private_key, public_key

    Raises:
        ConfigError: If the devnet cannot be reached
    """
    url = f"{_devnet_base_url(rpc_url)}/predeployed_accounts"
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.get(url)
            response.raise_for_status()
            accounts = response.json()
    except httpx.HTTPError as exc:
        raise ConfigError(f"Cannot fetch predeployed accounts from {url}: {exc}") from exc

    if not isinstance(accounts, list) or not accounts:
        raise ConfigError(f"No predeployed accounts returned by {url}")
    return accounts


def load_deployer(
    network: str,
    private_key_env: str,
    account_address_env: str,
    rpc_url: str,
) -> DeployerIdentity:
    """
    Resolve the deployer account for a network.

    Raises:
        ConfigError: If no identity is configured (non-devnet networks)
    """
    private_key = os.environ.get(private_key_env)
    address = os.environ.get(account_address_env)

    if private_key and address:
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        return DeployerIdentity(address=to_hex_address(address), private_key=private_key)

    if network == "devnet":
        first = fetch_predeployed_accounts(rpc_url)[0]
        return DeployerIdentity(
            address=to_hex_address(first["address"]),
            private_key=first["private_key"],
        )

    raise ConfigError(
        f"Deployer account not configured for {network}. "
        f"Set {private_key_env} and {account_address_env} in .env or the environment."
    )
