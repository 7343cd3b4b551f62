"""
Calldata values - constructor and call arguments before and after resolution.

Arguments are either ``Positional`` (ordered) or ``Named`` (mapped to ABI
input names). Values are literals (ints, hex/decimal strings, nested lists)
or placeholders: ``Ref("X")`` for the address contract X ends up at, and
``DEPLOYER`` for the deployer account address. Placeholders are replaced by
``resolve()`` once the addresses are known; the gateway encodes the result
to felts in ABI order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Union

from starknet_py.serialization.data_serializers.byte_array_serializer import (
    ByteArraySerializer,
)

from ..errors import TopologyError


@dataclass(frozen=True)
class Ref:
    """The resulting address of another contract in the topology."""

    contract: str

    def __str__(self) -> str:
        return f"<address of {self.contract}>"


@dataclass(frozen=True)
class _DeployerAddress:
    def __str__(self) -> str:
        return "<deployer>"


DEPLOYER = _DeployerAddress()


def _iter_refs(value: Any) -> Iterator[str]:
    if isinstance(value, Ref):
        yield value.contract
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_refs(item)


def _resolve_value(value: Any, addresses: Mapping[str, str], deployer: str) -> Any:
    if isinstance(value, Ref):
        if value.contract not in addresses:
            raise TopologyError(f"Unresolved reference to contract '{value.contract}'")
        return addresses[value.contract]
    if isinstance(value, _DeployerAddress):
        return deployer
    if isinstance(value, (list, tuple)):
        return [_resolve_value(item, addresses, deployer) for item in value]
    return value


@dataclass(frozen=True)
class Positional:
    values: tuple = ()

    def __init__(self, values: Any = ()) -> None:
        object.__setattr__(self, "values", tuple(values))

    def refs(self) -> set[str]:
        return {name for value in self.values for name in _iter_refs(value)}

    def resolve(self, addresses: Mapping[str, str], deployer: str) -> "Positional":
        return Positional(_resolve_value(v, addresses, deployer) for v in self.values)

    def to_json(self) -> list:
        return list(self.values)


@dataclass(frozen=True)
class Named:
    values: dict = field(default_factory=dict)

    def __init__(self, values: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        merged = dict(values or {})
        merged.update(kwargs)
        object.__setattr__(self, "values", merged)

    def refs(self) -> set[str]:
        return {name for value in self.values.values() for name in _iter_refs(value)}

    def resolve(self, addresses: Mapping[str, str], deployer: str) -> "Named":
        return Named(
            {key: _resolve_value(v, addresses, deployer) for key, v in self.values.items()}
        )

    def to_json(self) -> dict:
        return dict(self.values)


Calldata = Union[Positional, Named]


def calldata_from_json(payload: Any) -> Calldata | None:
    """Rebuild persisted constructor arguments (list -> Positional, dict -> Named)."""
    if payload is None:
        return None
    if isinstance(payload, dict):
        return Named(payload)
    if isinstance(payload, list):
        return Positional(payload)
    raise ValueError(f"Unsupported calldata payload: {payload!r}")


def to_felt(value: Any) -> int:
    """Convert a resolved literal to a field element."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    raise TypeError(f"Cannot convert {value!r} to a felt")


def flatten_felts(values: Any) -> list[int]:
    """Flatten resolved positional values into raw calldata.

    Nested lists are encoded Cairo-style: length prefix followed by items.
    """
    felts: list[int] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            felts.append(len(value))
            felts.extend(flatten_felts(value))
        else:
            felts.append(to_felt(value))
    return felts


def encode_byte_array(text: str) -> list[int]:
    """Encode ``text`` as a Cairo ByteArray.

    Layout: number of full 31-byte words, the words, the pending word and
    the pending word length.
    """
    return list(ByteArraySerializer().serialize(text))
