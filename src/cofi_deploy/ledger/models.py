from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from ..chain.calldata import Calldata, calldata_from_json
from ..utils import to_hex_address


@dataclass(frozen=True)
class DeploymentRecord:
    """
    Current deployment of one contract on one network.

    ``wired`` is set once a wiring multicall touching the contract has been
    confirmed; a freshly deployed instance starts unwired.
    """

    contract: str
    address: str
    class_hash: str
    constructor_args: Optional[Calldata] = None
    wired: bool = False

    @classmethod
    def create(
        cls,
        contract: str,
        address: int | str,
        class_hash: int | str,
        constructor_args: Optional[Calldata] = None,
    ) -> "DeploymentRecord":
        return cls(
            contract=contract,
            address=to_hex_address(address),
            class_hash=to_hex_address(class_hash),
            constructor_args=constructor_args,
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "DeploymentRecord":
        return cls(
            contract=payload["contract"],
            address=to_hex_address(payload["address"]),
            class_hash=to_hex_address(payload["classHash"]),
            constructor_args=calldata_from_json(payload.get("constructorArgs")),
            wired=payload.get("wired", False),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "contract": self.contract,
            "address": self.address,
            "classHash": self.class_hash,
        }
        if self.constructor_args is not None:
            result["constructorArgs"] = self.constructor_args.to_json()
        if self.wired:
            result["wired"] = True
        return result

    def with_class_hash(self, class_hash: int | str) -> "DeploymentRecord":
        """Same address and arguments, new class (the result of an upgrade)."""
        return replace(self, class_hash=to_hex_address(class_hash))

    def with_wired(self) -> "DeploymentRecord":
        return replace(self, wired=True)
