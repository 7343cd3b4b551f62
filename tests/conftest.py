"""
Shared fixtures: a build directory of fake compiled classes, a resolver
with deterministic class hashes, and an in-memory chain gateway.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Optional, Sequence

import pytest

from cofi_deploy.chain.artifacts import ArtifactResolver, CompiledArtifact
from cofi_deploy.chain.calldata import DEPLOYER, Calldata, Named, Positional, Ref
from cofi_deploy.chain.gateway import (
    ChainCall,
    DeclaredClass,
    Deployment,
    Receipt,
    encode_calldata,
)
from cofi_deploy.config import DeployContext
from cofi_deploy.errors import DeployFailed, TransactionRejected
from cofi_deploy.ledger import LedgerStore
from cofi_deploy.topology import ContractSpec, Topology, WiringCall
from cofi_deploy.utils import to_hex_address

PACKAGE = "cofi"
DEPLOYER_ADDRESS = to_hex_address(0xDE9107E5)

ADDRESS_INPUT = "core::starknet::contract_address::ContractAddress"

# Constructor/function ABIs of the small test system
TEST_ABIS: dict[str, list[dict]] = {
    "CollectionA": [
        {"type": "constructor", "name": "constructor", "inputs": [{"name": "owner", "type": ADDRESS_INPUT}]},
        {
            "type": "interface",
            "name": "ICollection",
            "items": [
                {
                    "type": "function",
                    "name": "set_minter",
                    "inputs": [{"name": "minter", "type": ADDRESS_INPUT}],
                    "outputs": [],
                    "state_mutability": "external",
                }
            ],
        },
    ],
    "MarketplaceB": [
        {
            "type": "constructor",
            "name": "constructor",
            "inputs": [
                {"name": "collection_address", "type": ADDRESS_INPUT},
                {"name": "admin", "type": ADDRESS_INPUT},
            ],
        },
        {
            "type": "function",
            "name": "upgrade",
            "inputs": [{"name": "new_class_hash", "type": "core::starknet::class_hash::ClassHash"}],
            "outputs": [],
            "state_mutability": "external",
        },
    ],
}


def write_artifact(
    build_dir: Path,
    name: str,
    abi: Optional[list] = None,
    version: int = 1,
    package: str = PACKAGE,
) -> None:
    """Write a Sierra/CASM pair; bumping ``version`` changes the class hash."""
    build_dir.mkdir(parents=True, exist_ok=True)
    sierra = {"sierra_program": [hex(version)], "abi": abi or []}
    (build_dir / f"{package}_{name}.contract_class.json").write_text(json.dumps(sierra), encoding="utf-8")
    (build_dir / f"{package}_{name}.compiled_contract_class.json").write_text(
        json.dumps({"bytecode": [hex(version)]}), encoding="utf-8"
    )


class FakeResolver(ArtifactResolver):
    """Real file lookup, content-derived hashes without the Starknet hashing."""

    def class_hash_of(self, artifact: CompiledArtifact) -> int:
        return int(hashlib.sha256(artifact.sierra.encode("utf-8")).hexdigest()[:40], 16)

    def compiled_class_hash_of(self, artifact: CompiledArtifact) -> int:
        return int(hashlib.sha256(artifact.casm.encode("utf-8")).hexdigest()[:40], 16)


class FakeGateway:
    """
    In-memory chain.

    Records every call in ``calls`` as ``(operation, detail)``. A batch
    containing ``fail_entrypoint`` is accepted but reverts at confirmation,
    with none of its calls applied. Deploys of classes named in
    ``fail_deploy`` raise ``DeployFailed``; upgrades of contracts named in
    ``fail_upgrade`` revert.
    """

    def __init__(
        self,
        resolver: ArtifactResolver,
        fail_entrypoint: Optional[str] = None,
        fail_deploy: Sequence[str] = (),
        fail_upgrade: Sequence[str] = (),
    ) -> None:
        self.resolver = resolver
        self.fail_entrypoint = fail_entrypoint
        self.fail_deploy = set(fail_deploy)
        self.fail_upgrade = set(fail_upgrade)
        self.calls: list[tuple[str, object]] = []
        self.declared: dict[int, str] = {}
        self.instances: dict[str, dict] = {}
        self.applied: list[tuple[str, str, list[int]]] = []
        self._pending: dict[int, list[tuple[str, str, list[int]]]] = {}
        self._reverted: set[int] = set()
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return 0xA000 + self._counter

    def operations(self, kind: str) -> list[object]:
        return [detail for op, detail in self.calls if op == kind]

    async def declare(self, artifact: CompiledArtifact) -> DeclaredClass:
        self.calls.append(("declare", artifact.name))
        class_hash = self.resolver.class_hash_of(artifact)
        if class_hash in self.declared:
            return DeclaredClass(class_hash=class_hash, already_declared=True)
        self.declared[class_hash] = artifact.name
        return DeclaredClass(class_hash=class_hash, tx_hash=self._next())

    async def deploy(
        self,
        class_hash: int,
        constructor_args: Optional[Calldata],
        abi: Optional[list] = None,
    ) -> Deployment:
        name = self.declared[class_hash]
        self.calls.append(("deploy", name))
        if name in self.fail_deploy:
            raise DeployFailed("insufficient fee", step="deploy")
        calldata = encode_calldata(constructor_args, abi)
        address = to_hex_address(0xC0FFEE00 + self._next())
        self.instances[address] = {
            "contract": name,
            "class_hash": class_hash,
            "args": constructor_args,
            "calldata": calldata,
        }
        return Deployment(address=address, tx_hash=self._next())

    async def invoke_batch(self, calls: Sequence[ChainCall]) -> int:
        self.calls.append(("invoke", [(call.address, call.entrypoint) for call in calls]))
        tx_hash = self._next()
        effects = [
            (call.address, call.entrypoint, encode_calldata(call.calldata, call.abi, call.entrypoint))
            for call in calls
        ]
        reverts = any(call.entrypoint == self.fail_entrypoint for call in calls) or any(
            call.entrypoint == "upgrade"
            and self.instances.get(call.address, {}).get("contract") in self.fail_upgrade
            for call in calls
        )
        if reverts:
            self._reverted.add(tx_hash)
        else:
            self._pending[tx_hash] = effects
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: int) -> Receipt:
        self.calls.append(("wait", tx_hash))
        if tx_hash in self._reverted:
            raise TransactionRejected(f"Transaction {hex(tx_hash)} reverted", step="confirm")
        for address, entrypoint, calldata in self._pending.pop(tx_hash, []):
            self.applied.append((address, entrypoint, calldata))
            if entrypoint == "upgrade" and address in self.instances:
                self.instances[address]["class_hash"] = calldata[0]
        return Receipt(tx_hash=tx_hash, status="ACCEPTED_ON_L2", block_number=1)


def scenario_topology() -> Topology:
    """CollectionA, then MarketplaceB referencing it, wired with set_minter."""
    return Topology(
        contracts=(
            ContractSpec("CollectionA", Positional([DEPLOYER])),
            ContractSpec(
                "MarketplaceB",
                Named(collection_address=Ref("CollectionA"), admin=DEPLOYER),
                upgradeable=True,
            ),
        ),
        wiring=(WiringCall("CollectionA", "set_minter", Named(minter=Ref("MarketplaceB"))),),
    )


@pytest.fixture()
def build_dir(tmp_path: Path) -> Path:
    path = tmp_path / "contracts" / "target" / "dev"
    for name, abi in TEST_ABIS.items():
        write_artifact(path, name, abi)
    return path


@pytest.fixture()
def deployments_dir(tmp_path: Path) -> Path:
    return tmp_path / "deployments"


@pytest.fixture()
def context(build_dir: Path, deployments_dir: Path) -> DeployContext:
    return DeployContext(
        network="sepolia",
        rpc_url="http://127.0.0.1:5050/rpc",
        deployer_address=DEPLOYER_ADDRESS,
        private_key=None,
        deployments_dir=deployments_dir,
        artifacts_dir=build_dir,
        package=PACKAGE,
        base_uri="ipfs://cofi/",
    )


@pytest.fixture()
def resolver(build_dir: Path) -> FakeResolver:
    return FakeResolver(build_dir, package=PACKAGE)


@pytest.fixture()
def store(deployments_dir: Path) -> LedgerStore:
    return LedgerStore(deployments_dir)


@pytest.fixture()
def gateway(resolver: FakeResolver) -> FakeGateway:
    return FakeGateway(resolver)
