"""Tests for ABI-ordered calldata encoding and the Starknet gateway's error mapping."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from cofi_deploy.chain.calldata import Named, Positional, encode_byte_array
from cofi_deploy.chain.gateway import StarknetGateway, encode_calldata
from cofi_deploy.config import DeployContext
from cofi_deploy.errors import ConfigError, ConfirmationTimeout, TransactionRejected

ADDRESS = "core::starknet::contract_address::ContractAddress"

ABI = [
    {
        "type": "constructor",
        "name": "constructor",
        "inputs": [
            {"name": "admin", "type": ADDRESS},
            {"name": "name", "type": "core::byte_array::ByteArray"},
            {"name": "fee", "type": "core::integer::u256"},
        ],
    },
    {
        "type": "interface",
        "name": "IThing",
        "items": [
            {
                "type": "function",
                "name": "set_ids",
                "inputs": [{"name": "ids", "type": "core::array::Array::<core::felt252>"}],
                "outputs": [],
            }
        ],
    },
]


class TestEncodeCalldata:
    def test_none(self) -> None:
        assert encode_calldata(None) == []

    def test_positional_is_flattened(self) -> None:
        assert encode_calldata(Positional(["0x10", 2, [3, 4]])) == [16, 2, 2, 3, 4]

    def test_named_follows_abi_order(self) -> None:
        args = Named(fee=(1 << 128) + 5, name="Cofi", admin="0x1")
        assert encode_calldata(args, ABI) == [1, *encode_byte_array("Cofi"), 5, 1]

    def test_named_function_inside_interface(self) -> None:
        assert encode_calldata(Named(ids=[7, 8]), ABI, "set_ids") == [2, 7, 8]

    def test_named_needs_abi(self) -> None:
        with pytest.raises(ValueError, match="ABI required"):
            encode_calldata(Named(admin="0x1"))

    def test_named_mismatch(self) -> None:
        with pytest.raises(ValueError, match="missing"):
            encode_calldata(Named(admin="0x1", extra=1), ABI)

    def test_unknown_entrypoint(self) -> None:
        with pytest.raises(ValueError, match="not found"):
            encode_calldata(Named(x=1), ABI, "nope")


@pytest.fixture()
def keyed_context(context: DeployContext) -> DeployContext:
    return replace(context, private_key="0x1234", confirmation_timeout=0.05)


class TestStarknetGateway:
    def test_requires_private_key(self, context: DeployContext, resolver) -> None:
        with pytest.raises(ConfigError, match="private key"):
            StarknetGateway(context, resolver)

    def test_confirmation_timeout(self, keyed_context: DeployContext, resolver) -> None:
        gateway = StarknetGateway(keyed_context, resolver)

        async def never(*args, **kwargs):
            await asyncio.sleep(10)

        with patch.object(gateway.client, "wait_for_tx", side_effect=never):
            with pytest.raises(ConfirmationTimeout) as exc_info:
                asyncio.run(gateway.wait_for_confirmation(0xABC))
        assert exc_info.value.step == "confirm"

    def test_reverted_receipt(self, keyed_context: DeployContext, resolver) -> None:
        from starknet_py.net.client_models import TransactionExecutionStatus

        gateway = StarknetGateway(keyed_context, resolver)
        receipt = SimpleNamespace(
            execution_status=TransactionExecutionStatus.REVERTED,
            revert_reason="nope",
            finality_status=None,
            block_number=3,
        )
        with patch.object(gateway.client, "wait_for_tx", new=AsyncMock(return_value=receipt)):
            with pytest.raises(TransactionRejected, match="reverted"):
                asyncio.run(gateway.wait_for_confirmation(0xABC))

    def test_failed_transaction_error(self, keyed_context: DeployContext, resolver) -> None:
        from starknet_py.transaction_errors import TransactionRevertedError

        gateway = StarknetGateway(keyed_context, resolver)
        error = TransactionRevertedError(message="out of gas")
        with patch.object(gateway.client, "wait_for_tx", new=AsyncMock(side_effect=error)):
            with pytest.raises(TransactionRejected, match="out of gas") as exc_info:
                asyncio.run(gateway.wait_for_confirmation(0xABC))
        assert exc_info.value.step == "confirm"

    def test_declare_skips_known_class(self, keyed_context: DeployContext, resolver) -> None:
        gateway = StarknetGateway(keyed_context, resolver)
        artifact = resolver.resolve("CollectionA")

        with patch.object(gateway.client, "get_class_by_hash", new=AsyncMock(return_value={})):
            with patch.object(gateway.account, "sign_declare_v3", new=AsyncMock()) as sign:
                declared = asyncio.run(gateway.declare(artifact))

        assert declared.already_declared
        assert declared.tx_hash is None
        assert declared.class_hash == resolver.class_hash_of(artifact)
        sign.assert_not_called()
