"""Network table and per-run deployment context."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from starknet_py.net.models.chains import StarknetChainId

from .chain.account import DeployerIdentity, load_deployer, load_env
from .errors import ConfigError
from .utils import to_hex_address

# USDC on Starknet mainnet; test networks deploy MockUSDC instead
MAINNET_USDC_ADDRESS = "0x033068f6539f8e6e6b131e6b2b814e6c34a5224bc66947c47dab9dfee93b35fb"

NETWORKS: dict[str, dict[str, Any]] = {
    "devnet": {
        "chain_id": StarknetChainId.SEPOLIA,
        "default_rpc_url": "http://127.0.0.1:5050/rpc",
        "rpc_env": "RPC_URL_DEVNET",
        "private_key_env": "PRIVATE_KEY_DEVNET",
        "account_address_env": "ACCOUNT_ADDRESS_DEVNET",
        "explorer_url": None,
    },
    "sepolia": {
        "chain_id": StarknetChainId.SEPOLIA,
        "default_rpc_url": "https://starknet-sepolia.public.blastapi.io/rpc/v0_8",
        "rpc_env": "RPC_URL_SEPOLIA",
        "private_key_env": "PRIVATE_KEY_SEPOLIA",
        "account_address_env": "ACCOUNT_ADDRESS_SEPOLIA",
        "explorer_url": "https://sepolia.voyager.online",
    },
    "mainnet": {
        "chain_id": StarknetChainId.MAINNET,
        "default_rpc_url": "https://starknet-mainnet.public.blastapi.io/rpc/v0_8",
        "rpc_env": "RPC_URL_MAINNET",
        "private_key_env": "PRIVATE_KEY_MAINNET",
        "account_address_env": "ACCOUNT_ADDRESS_MAINNET",
        "explorer_url": "https://voyager.online",
    },
}

DEFAULT_DEPLOYMENTS_DIR = Path("deployments")
DEFAULT_CONFIRMATION_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 2.0


@dataclass(frozen=True)
class DeployContext:
    """Everything a run needs to know about where and as whom it deploys."""

    network: str
    rpc_url: str
    deployer_address: str
    private_key: Optional[str]
    deployments_dir: Path
    artifacts_dir: Path
    package: Optional[str] = None
    confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    base_uri: str = ""
    usdc_address: str = MAINNET_USDC_ADDRESS

    def __repr__(self) -> str:
        return (
            f"DeployContext(network={self.network!r}, rpc_url={self.rpc_url!r}, "
            f"deployer_address={self.deployer_address!r})"
        )

    @property
    def chain_id(self) -> int:
        return NETWORKS[self.network]["chain_id"]

    def explorer_link(self, address: str) -> Optional[str]:
        base = NETWORKS[self.network]["explorer_url"]
        if base is None:
            return None
        return f"{base}/contract/{address}"


def network_config(network: str) -> dict[str, Any]:
    if network not in NETWORKS:
        raise ConfigError(
            f"Unknown network '{network}'. Choose one of: {', '.join(NETWORKS)}"
        )
    return NETWORKS[network]


def load_context(
    network: str,
    artifacts_dir: Path,
    deployments_dir: Path = DEFAULT_DEPLOYMENTS_DIR,
    package: Optional[str] = None,
    env_path: Optional[Path] = None,
    rpc_url: Optional[str] = None,
    require_identity: bool = True,
) -> DeployContext:
    """
    Build the run context for a network from the environment.

    Loads ``.env`` first, then reads the network's RPC URL, deployer
    identity, ``TOKEN_METADATA_URL`` and ``CONFIRMATION_TIMEOUT``.

    With ``require_identity=False`` (dry runs) a missing deployer is not an
    error: the context gets a zero address and no key.

    Raises:
        ConfigError: If the network is unknown or no deployer is configured
    """
    config = network_config(network)
    load_env(env_path)

    rpc_url = rpc_url or os.environ.get(config["rpc_env"], config["default_rpc_url"])
    if require_identity:
        identity = load_deployer(
            network,
            config["private_key_env"],
            config["account_address_env"],
            rpc_url,
        )
    else:
        identity = DeployerIdentity(
            address=to_hex_address(os.environ.get(config["account_address_env"]) or 0),
            private_key=None,
        )

    try:
        timeout = float(os.environ.get("CONFIRMATION_TIMEOUT", DEFAULT_CONFIRMATION_TIMEOUT))
    except ValueError as exc:
        raise ConfigError(f"Invalid CONFIRMATION_TIMEOUT: {exc}") from exc

    return DeployContext(
        network=network,
        rpc_url=rpc_url,
        deployer_address=identity.address,
        private_key=identity.private_key,
        deployments_dir=Path(deployments_dir),
        artifacts_dir=Path(artifacts_dir),
        package=package,
        confirmation_timeout=timeout,
        base_uri=os.environ.get("TOKEN_METADATA_URL", ""),
        usdc_address=os.environ.get("USDC_ADDRESS_MAINNET", MAINNET_USDC_ADDRESS),
    )
