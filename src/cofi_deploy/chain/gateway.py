"""
Chain Gateway - Declare, deploy and invoke against a Starknet node.

Uses starknet-py's FullNodeClient + Account for signing and submission and
the Universal Deployer Contract for instance deployment. Every submission
returns a transaction hash; ``wait_for_confirmation`` is the only place that
blocks on the chain and it is always bounded by the configured timeout.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Protocol, Sequence

from starknet_py.hash.selector import get_selector_from_name
from starknet_py.net.account.account import Account
from starknet_py.net.client_errors import ClientError
from starknet_py.net.client_models import Call, TransactionExecutionStatus
from starknet_py.net.full_node_client import FullNodeClient
from starknet_py.net.signer.stark_curve_signer import KeyPair
from starknet_py.net.udc_deployer.deployer import Deployer
from starknet_py.transaction_errors import TransactionFailedError

from ..errors import (
    ConfigError,
    ConfirmationTimeout,
    DeclareFailed,
    DeployFailed,
    InvokeFailed,
    TransactionRejected,
)
from ..utils import to_hex_address
from .artifacts import ArtifactResolver, CompiledArtifact
from .calldata import Calldata, Named, Positional, encode_byte_array, flatten_felts, to_felt

if TYPE_CHECKING:
    from ..config import DeployContext

logger = logging.getLogger(__name__)

BYTE_ARRAY_TYPE = "core::byte_array::ByteArray"
U256_TYPE = "core::integer::u256"
_U128_MASK = (1 << 128) - 1


@dataclass(frozen=True)
class DeclaredClass:
    """Result of a declare: the class hash, and the tx if one was sent."""

    class_hash: int
    tx_hash: Optional[int] = None
    already_declared: bool = False


@dataclass(frozen=True)
class Deployment:
    address: str
    tx_hash: int


@dataclass(frozen=True)
class ChainCall:
    """One call inside a multicall. ``abi`` is needed for Named calldata."""

    address: str
    entrypoint: str
    calldata: Optional[Calldata] = None
    abi: Optional[list] = None


@dataclass(frozen=True)
class Receipt:
    tx_hash: int
    status: str
    block_number: Optional[int] = None


class ChainGateway(Protocol):
    async def declare(self, artifact: CompiledArtifact) -> DeclaredClass:
        ...

    async def deploy(
        self,
        class_hash: int,
        constructor_args: Optional[Calldata],
        abi: Optional[list] = None,
    ) -> Deployment:
        ...

    async def invoke_batch(self, calls: Sequence[ChainCall]) -> int:
        ...

    async def wait_for_confirmation(self, tx_hash: int) -> Receipt:
        ...


# ============ Calldata encoding ============


def _find_entry(abi: list, entrypoint: Optional[str]) -> Optional[dict]:
    """Find a function (or the constructor when ``entrypoint`` is None) in an ABI.

    Cairo 1 ABIs nest functions inside ``interface`` entries.
    """
    for entry in abi:
        kind = entry.get("type")
        if entrypoint is None and kind == "constructor":
            return entry
        if entrypoint is not None and kind == "function" and entry.get("name") == entrypoint:
            return entry
        if kind == "interface":
            found = _find_entry(entry.get("items", []), entrypoint)
            if found is not None:
                return found
    return None


def _encode_typed(value: Any, type_name: str) -> list[int]:
    if type_name == BYTE_ARRAY_TYPE and isinstance(value, str):
        return encode_byte_array(value)
    if type_name == U256_TYPE:
        number = to_felt(value)
        return [number & _U128_MASK, number >> 128]
    if isinstance(value, (list, tuple)):
        return flatten_felts([value])
    return [to_felt(value)]


def encode_calldata(
    calldata: Optional[Calldata],
    abi: Optional[list] = None,
    entrypoint: Optional[str] = None,
) -> list[int]:
    """
    Encode resolved calldata to felts in ABI order.

    Args:
        calldata: Positional or Named arguments with placeholders resolved
        abi: Contract ABI (required for Named arguments)
        entrypoint: Function name, or None for the constructor

    Returns:
        Raw calldata

    Raises:
        ValueError: If Named arguments cannot be matched against the ABI
    """
    if calldata is None:
        return []
    if isinstance(calldata, Positional):
        return flatten_felts(calldata.values)
    if not isinstance(calldata, Named):
        raise TypeError(f"Unsupported calldata: {calldata!r}")

    target = entrypoint or "constructor"
    if abi is None:
        raise ValueError(f"ABI required to encode named arguments for {target}")
    entry = _find_entry(abi, entrypoint)
    if entry is None:
        raise ValueError(f"{target} not found in ABI")

    inputs = entry.get("inputs", [])
    expected = [inp["name"] for inp in inputs]
    unknown = set(calldata.values) - set(expected)
    missing = [name for name in expected if name not in calldata.values]
    if unknown or missing:
        raise ValueError(
            f"Arguments for {target} do not match the ABI "
            f"(missing: {missing or '-'}, unexpected: {sorted(unknown) or '-'})"
        )

    felts: list[int] = []
    for inp in inputs:
        felts.extend(_encode_typed(calldata.values[inp["name"]], inp["type"]))
    return felts


# ============ Starknet gateway ============


class StarknetGateway:
    """ChainGateway backed by a Starknet JSON-RPC node."""

    def __init__(self, context: "DeployContext", resolver: ArtifactResolver) -> None:
        if not context.private_key:
            raise ConfigError(
                f"No deployer private key configured for {context.network}."
            )
        self.context = context
        self.client = FullNodeClient(node_url=context.rpc_url)
        self.account = Account(
            address=context.deployer_address,
            client=self.client,
            key_pair=KeyPair.from_private_key(context.private_key),
            chain=context.chain_id,
        )
        self.resolver = resolver

    async def _is_declared(self, class_hash: int) -> bool:
        try:
            await self.client.get_class_by_hash(class_hash=class_hash)
        except ClientError:
            return False
        return True

    async def declare(self, artifact: CompiledArtifact) -> DeclaredClass:
        class_hash = self.resolver.class_hash_of(artifact)
        if await self._is_declared(class_hash):
            logger.info("Class %s already declared, skipping", hex(class_hash))
            return DeclaredClass(class_hash=class_hash, already_declared=True)

        try:
            declare_tx = await self.account.sign_declare_v3(
                compiled_contract=artifact.sierra,
                compiled_class_hash=self.resolver.compiled_class_hash_of(artifact),
                auto_estimate=True,
            )
            resp = await self.client.declare(transaction=declare_tx)
        except ClientError as exc:
            raise DeclareFailed(str(exc), contract=artifact.name, step="declare") from exc

        logger.info("Declare tx for %s: %s", artifact.name, hex(resp.transaction_hash))
        return DeclaredClass(class_hash=resp.class_hash, tx_hash=resp.transaction_hash)

    async def deploy(
        self,
        class_hash: int,
        constructor_args: Optional[Calldata],
        abi: Optional[list] = None,
    ) -> Deployment:
        try:
            raw_calldata = encode_calldata(constructor_args, abi)
        except (TypeError, ValueError) as exc:
            raise DeployFailed(str(exc), step="encode") from exc

        deployer = Deployer()
        deploy_call, address = deployer.create_contract_deployment_raw(
            class_hash=class_hash,
            raw_calldata=raw_calldata,
        )
        try:
            resp = await self.account.execute_v3(calls=deploy_call, auto_estimate=True)
        except ClientError as exc:
            raise DeployFailed(str(exc), step="deploy") from exc

        return Deployment(address=to_hex_address(address), tx_hash=resp.transaction_hash)

    async def invoke_batch(self, calls: Sequence[ChainCall]) -> int:
        try:
            encoded = [
                Call(
                    to_addr=to_felt(call.address),
                    selector=get_selector_from_name(call.entrypoint),
                    calldata=encode_calldata(call.calldata, call.abi, call.entrypoint),
                )
                for call in calls
            ]
        except (TypeError, ValueError) as exc:
            raise InvokeFailed(str(exc), step="encode") from exc

        try:
            resp = await self.account.execute_v3(calls=encoded, auto_estimate=True)
        except ClientError as exc:
            raise InvokeFailed(str(exc), step="invoke") from exc
        return resp.transaction_hash

    async def wait_for_confirmation(self, tx_hash: int) -> Receipt:
        timeout = self.context.confirmation_timeout
        try:
            receipt = await asyncio.wait_for(
                self.client.wait_for_tx(tx_hash, check_interval=self.context.poll_interval),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ConfirmationTimeout(
                f"Transaction {hex(tx_hash)} not confirmed within {timeout}s", step="confirm"
            ) from exc
        except TransactionFailedError as exc:
            raise TransactionRejected(
                f"Transaction {hex(tx_hash)} failed: {exc}", step="confirm"
            ) from exc
        except ClientError as exc:
            raise TransactionRejected(
                f"Transaction {hex(tx_hash)} status unavailable: {exc}", step="confirm"
            ) from exc

        if receipt.execution_status == TransactionExecutionStatus.REVERTED:
            raise TransactionRejected(
                f"Transaction {hex(tx_hash)} reverted: {receipt.revert_reason}", step="confirm"
            )
        return Receipt(
            tx_hash=tx_hash,
            status=str(receipt.finality_status.value if receipt.finality_status else "ACCEPTED"),
            block_number=receipt.block_number,
        )
