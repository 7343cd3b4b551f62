"""
Topology - which contracts make up the system on a network, and in what order.

A contract's constructor may reference other contracts' addresses
(``Ref``); those contracts must be deployed first. Ordering uses
``graphlib.TopologicalSorter``, taking ready nodes in declaration order so
the result is stable across runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import TYPE_CHECKING, Iterable, Optional

from .chain.calldata import DEPLOYER, Calldata, Named, Positional, Ref, encode_byte_array
from .errors import TopologyError

if TYPE_CHECKING:
    from .config import DeployContext


@dataclass(frozen=True)
class ContractSpec:
    """A contract to manage. ``artifact`` defaults to ``name``."""

    name: str
    constructor_args: Optional[Calldata] = None
    artifact: Optional[str] = None
    networks: Optional[frozenset[str]] = None
    upgradeable: bool = False

    @property
    def artifact_name(self) -> str:
        return self.artifact or self.name

    def enabled_on(self, network: str) -> bool:
        return self.networks is None or network in self.networks

    def dependencies(self) -> set[str]:
        if self.constructor_args is None:
            return set()
        return self.constructor_args.refs()


@dataclass(frozen=True)
class WiringCall:
    """A post-deployment configuration call on ``target``."""

    target: str
    entrypoint: str
    calldata: Optional[Calldata] = None

    def contracts(self) -> set[str]:
        names = {self.target}
        if self.calldata is not None:
            names |= self.calldata.refs()
        return names


@dataclass(frozen=True)
class Topology:
    contracts: tuple[ContractSpec, ...] = ()
    wiring: tuple[WiringCall, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "contracts", tuple(self.contracts))
        object.__setattr__(self, "wiring", tuple(self.wiring))
        seen: set[str] = set()
        for spec in self.contracts:
            if spec.name in seen:
                raise TopologyError(f"Duplicate contract '{spec.name}' in topology")
            seen.add(spec.name)

    def names(self) -> list[str]:
        return [spec.name for spec in self.contracts]

    def get(self, name: str) -> ContractSpec:
        for spec in self.contracts:
            if spec.name == name:
                return spec
        raise TopologyError(f"Contract '{name}' is not part of the topology")

    def _restricted(self, keep: set[str]) -> "Topology":
        return Topology(
            contracts=tuple(spec for spec in self.contracts if spec.name in keep),
            wiring=tuple(call for call in self.wiring if call.contracts() <= keep),
        )

    def for_network(self, network: str) -> "Topology":
        """Contracts (and wiring) enabled on ``network``."""
        return self._restricted(
            {spec.name for spec in self.contracts if spec.enabled_on(network)}
        )

    def only(self, names: Iterable[str]) -> "Topology":
        """Restrict to a subset of contracts, e.g. a ``--feature`` selection."""
        wanted = set(names)
        unknown = wanted - set(self.names())
        if unknown:
            raise TopologyError(
                f"Unknown contract(s) in selection: {', '.join(sorted(unknown))}"
            )
        return self._restricted(wanted)

    def upgradeable(self) -> list[str]:
        return [spec.name for spec in self.contracts if spec.upgradeable]

    def ordered(self, external: Iterable[str] = ()) -> list[ContractSpec]:
        """
        Contracts in dependency order.

        Args:
            external: Names that may be referenced without being part of this
                      topology (e.g. contracts already in the ledger)

        Raises:
            TopologyError: On unknown references or reference cycles
        """
        known = set(self.names())
        external = set(external)
        graph: dict[str, set[str]] = {}
        for spec in self.contracts:
            deps = spec.dependencies()
            unknown = deps - known - external
            if unknown:
                raise TopologyError(
                    f"'{spec.name}' references unknown contract(s): {', '.join(sorted(unknown))}"
                )
            if spec.name in deps:
                raise TopologyError(f"'{spec.name}' references its own address")
            graph[spec.name] = deps & known

        sorter = TopologicalSorter(graph)
        try:
            sorter.prepare()
        except CycleError as exc:
            cycle = " -> ".join(exc.args[1])
            raise TopologyError(f"Reference cycle in topology: {cycle}") from exc

        position = {name: index for index, name in enumerate(self.names())}
        order: list[str] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready(), key=position.__getitem__)
            order.extend(ready)
            sorter.done(*ready)
        return [self.get(name) for name in order]


def cofi_topology(context: "DeployContext") -> Topology:
    """
    The Cofi system: collection, distribution, marketplace, plus MockUSDC on
    test networks and Swap on mainnet.
    """
    test_networks = frozenset({"devnet", "sepolia"})
    usdc = Ref("MockUSDC") if context.network in test_networks else context.usdc_address

    contracts = [
        ContractSpec(
            "CofiCollection",
            Named(
                default_admin=DEPLOYER,
                pauser=DEPLOYER,
                minter=DEPLOYER,
                uri_setter=DEPLOYER,
                upgrader=DEPLOYER,
            ),
        ),
        ContractSpec("Distribution", Named(admin=DEPLOYER), upgradeable=True),
        ContractSpec(
            "MockUSDC",
            Named(default_admin=DEPLOYER, minter=DEPLOYER, upgrader=DEPLOYER),
            networks=test_networks,
        ),
        ContractSpec(
            "Marketplace",
            Named(
                cofi_collection_address=Ref("CofiCollection"),
                distribution_address=Ref("Distribution"),
                usdc_address=usdc,
                admin=DEPLOYER,
                market_fee=5000,
            ),
            upgradeable=True,
        ),
        ContractSpec(
            "Swap",
            Named(admin=DEPLOYER),
            networks=frozenset({"mainnet"}),
            upgradeable=True,
        ),
    ]
    wiring = [
        WiringCall("CofiCollection", "set_minter", Named(minter=Ref("Marketplace"))),
        WiringCall("CofiCollection", "set_base_uri", Positional(encode_byte_array(context.base_uri))),
        WiringCall("Distribution", "set_marketplace", Named(marketplace=Ref("Marketplace"))),
    ]
    return Topology(contracts, wiring).for_network(context.network)
