"""
Orchestrator - drives a network from its recorded state to the desired one.

Two modes:

- deploy: declare + deploy every contract of the network topology that the
  ledger does not know yet, in dependency order, then send the wiring calls
  that are still pending as one multicall.
- upgrade: declare a new class for already-deployed contracts and call
  ``upgrade(class_hash)`` on their existing addresses, one at a time.

Everything runs sequentially from a single deployer account: one
transaction is confirmed before the next one is sent. A record is registered
only after its transaction is confirmed. On failure, whatever was registered
so far is exported and the error is re-raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Iterable, Optional, TypeVar

from .chain.calldata import Positional
from .chain.gateway import ChainCall, ChainGateway
from .errors import ConfigError, DeployError, MissingPriorDeployment, TopologyError
from .ledger import DeploymentLedger, DeploymentRecord, ExportResult, LedgerStore
from .topology import ContractSpec, Topology, WiringCall
from .utils import to_hex_address

if TYPE_CHECKING:
    from .chain.artifacts import ArtifactResolver, CompiledArtifact
    from .config import DeployContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContractState(str, Enum):
    ABSENT = "absent"
    DECLARING = "declaring"
    DECLARED = "declared"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    UPGRADING = "upgrading"
    UPGRADED = "upgraded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PlanStep:
    contract: str
    action: str  # deploy | skip | upgrade | unchanged | missing
    detail: str = ""


@dataclass
class RunReport:
    network: str
    mode: str
    states: dict[str, ContractState] = field(default_factory=dict)
    deployed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    upgraded: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    wiring_tx: Optional[int] = None
    export: Optional[ExportResult] = None


class Orchestrator:
    """Sequences declare/deploy/upgrade operations for one network."""

    def __init__(
        self,
        context: "DeployContext",
        topology: Topology,
        store: LedgerStore,
        resolver: "ArtifactResolver",
        gateway: Optional[ChainGateway] = None,
    ) -> None:
        self.context = context
        self.topology = topology.for_network(context.network)
        self.store = store
        self.resolver = resolver
        self.gateway = gateway

    @property
    def network(self) -> str:
        return self.context.network

    # ============ Helpers ============

    def _require_gateway(self) -> ChainGateway:
        if self.gateway is None:
            raise ConfigError(f"No chain gateway configured for {self.network} (dry run only)")
        return self.gateway

    def _desired(self, features: Optional[Iterable[str]]) -> Topology:
        if features:
            return self.topology.only(features)
        return self.topology

    def _upgrade_targets(self, targets: Optional[Iterable[str]]) -> list[str]:
        upgradeable = self.topology.upgradeable()
        names = list(targets) if targets else upgradeable
        unknown = [name for name in names if name not in self.topology.names()]
        if unknown:
            raise TopologyError(
                f"Not part of the {self.network} topology: {', '.join(unknown)}"
            )
        fixed = [name for name in names if name not in upgradeable]
        if fixed:
            raise TopologyError(f"Not upgradeable on {self.network}: {', '.join(fixed)}")
        return names

    def _wiring_candidates(self, features: Optional[Iterable[str]]) -> list[WiringCall]:
        """Wiring of the network, or the calls touching a ``--feature`` selection."""
        if not features:
            return list(self.topology.wiring)
        selected = set(features)
        return [wiring for wiring in self.topology.wiring if wiring.contracts() & selected]

    @staticmethod
    def _pending_wiring(
        candidates: Iterable[WiringCall],
        ledger: DeploymentLedger,
        deploying: Iterable[str] = (),
    ) -> list[WiringCall]:
        """
        Calls that still have to be sent: every contract involved has an
        address (recorded, or about to be deployed) and at least one of them
        is not wired yet.
        """
        deploying = set(deploying)
        pending = []
        for wiring in candidates:
            involved = wiring.contracts()
            unaddressed = sorted(
                name for name in involved if name not in ledger and name not in deploying
            )
            if unaddressed:
                logger.debug(
                    "Leaving %s.%s for later: no address for %s",
                    wiring.target, wiring.entrypoint, ", ".join(unaddressed),
                )
                continue
            if any(name in deploying or not ledger.get(name).wired for name in involved):
                pending.append(wiring)
        return pending

    @staticmethod
    async def _step(contract: Optional[str], step: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except DeployError as exc:
            raise exc.annotate(contract, step)

    def _export_partial(self, ledger: DeploymentLedger, report: RunReport) -> None:
        if not ledger.dirty:
            return
        try:
            report.export = ledger.export()
        except OSError as exc:
            logger.error("Could not export partial progress for %s: %s", self.network, exc)

    def _set_state(self, report: RunReport, contract: str, state: ContractState) -> None:
        report.states[contract] = state
        logger.debug("%s -> %s", contract, state.value)

    # ============ Planning ============

    def plan(
        self,
        reset: bool = False,
        upgrade: bool = False,
        features: Optional[Iterable[str]] = None,
    ) -> list[PlanStep]:
        """Describe what a run would do, without any chain interaction."""
        if upgrade:
            ledger = self.store.load(self.network)
            steps = []
            for name in self._upgrade_targets(features):
                record = ledger.get(name)
                if record is None:
                    steps.append(PlanStep(name, "missing", "no deployment recorded"))
                    continue
                artifact = self.resolver.resolve(self.topology.get(name).artifact_name)
                new_hash = to_hex_address(self.resolver.class_hash_of(artifact))
                if new_hash == record.class_hash:
                    steps.append(PlanStep(name, "unchanged", record.class_hash))
                else:
                    steps.append(PlanStep(name, "upgrade", f"{record.class_hash} -> {new_hash}"))
            return steps

        ledger = self.store.load(self.network, reset=reset)
        steps = []
        for spec in self._desired(features).ordered(external=ledger.names()):
            record = ledger.get(spec.name)
            if record is not None:
                steps.append(PlanStep(spec.name, "skip", record.address))
            else:
                deps = ", ".join(sorted(spec.dependencies()))
                steps.append(PlanStep(spec.name, "deploy", f"after {deps}" if deps else ""))
        return steps

    # ============ Fresh deploy ============

    async def _deploy_one(
        self,
        spec: ContractSpec,
        artifact: "CompiledArtifact",
        addresses: dict[str, str],
        report: RunReport,
    ) -> DeploymentRecord:
        name = spec.name

        self._set_state(report, name, ContractState.DECLARING)
        declared = await self._step(name, "declare", self.gateway.declare(artifact))
        if declared.tx_hash is not None:
            await self._step(name, "declare", self.gateway.wait_for_confirmation(declared.tx_hash))
        self._set_state(report, name, ContractState.DECLARED)
        logger.info("Declared %s: %s", name, hex(declared.class_hash))

        args = None
        if spec.constructor_args is not None:
            try:
                args = spec.constructor_args.resolve(addresses, self.context.deployer_address)
            except TopologyError as exc:
                raise exc.annotate(name, "resolve")

        self._set_state(report, name, ContractState.DEPLOYING)
        deployment = await self._step(
            name, "deploy", self.gateway.deploy(declared.class_hash, args, artifact.abi)
        )
        logger.info(
            "Deploy tx for %s: %s (address %s)", name, hex(deployment.tx_hash), deployment.address
        )
        await self._step(name, "confirm", self.gateway.wait_for_confirmation(deployment.tx_hash))
        self._set_state(report, name, ContractState.DEPLOYED)
        logger.info("Deployed %s at %s", name, deployment.address)

        return DeploymentRecord.create(name, deployment.address, declared.class_hash, args)

    def _wiring_calls(self, wirings: list[WiringCall], addresses: dict[str, str]) -> list[ChainCall]:
        calls = []
        for wiring in wirings:
            calldata = wiring.calldata
            if calldata is not None:
                try:
                    calldata = calldata.resolve(addresses, self.context.deployer_address)
                except TopologyError as exc:
                    raise exc.annotate(wiring.target, "wiring")
            artifact = self.resolver.resolve(self.topology.get(wiring.target).artifact_name)
            calls.append(
                ChainCall(
                    address=addresses[wiring.target],
                    entrypoint=wiring.entrypoint,
                    calldata=calldata,
                    abi=artifact.abi,
                )
            )
        return calls

    async def _wire(self, wirings: list[WiringCall], addresses: dict[str, str]) -> int:
        calls = self._wiring_calls(wirings, addresses)
        logger.info(
            "Submitting %d wiring call(s): %s",
            len(calls),
            ", ".join(f"{w.target}.{w.entrypoint}" for w in wirings),
        )
        tx_hash = await self._step(None, "wiring", self.gateway.invoke_batch(calls))
        await self._step(None, "wiring", self.gateway.wait_for_confirmation(tx_hash))
        logger.info("Wiring tx confirmed: %s", hex(tx_hash))
        return tx_hash

    async def deploy(
        self,
        reset: bool = False,
        features: Optional[Iterable[str]] = None,
    ) -> RunReport:
        """
        Fresh-deploy mode.

        Wiring calls are sent for every contract that is not wired yet, so a
        run that failed during wiring is completed by the next one.

        Args:
            reset: Ignore the recorded deployments and deploy everything again
            features: Restrict the run to these contract names

        Returns:
            RunReport describing what happened

        Raises:
            ArtifactNotFound: Before any chain call, if a class is not compiled
            TopologyError: On unknown references or cycles
            ChainError: If a declare/deploy/invoke fails (partial progress is exported)
        """
        self._require_gateway()
        features = list(features) if features else None
        ledger = self.store.load(self.network, reset=reset)
        topology = self._desired(features)
        order = topology.ordered(external=ledger.names())
        report = RunReport(network=self.network, mode="deploy")

        pending = [spec for spec in order if spec.name not in ledger]
        for spec in order:
            self._set_state(
                report, spec.name, ContractState.ABSENT if spec in pending else ContractState.SKIPPED
            )

        candidates = self._wiring_candidates(features)

        # Every class must be resolvable before the first transaction
        artifacts = {spec.name: self.resolver.resolve(spec.artifact_name) for spec in pending}
        for wiring in self._pending_wiring(candidates, ledger, artifacts):
            self.resolver.resolve(self.topology.get(wiring.target).artifact_name)

        addresses = ledger.addresses()
        current: Optional[str] = None
        try:
            for spec in order:
                current = spec.name
                if spec.name in ledger:
                    report.skipped.append(spec.name)
                    logger.info("%s already deployed at %s, skipping", spec.name, addresses[spec.name])
                    continue

                record = await self._deploy_one(spec, artifacts[spec.name], addresses, report)
                ledger.register(spec.name, record)
                addresses[spec.name] = record.address
                report.deployed.append(spec.name)
            current = None

            wirings = self._pending_wiring(candidates, ledger)
            if wirings:
                report.wiring_tx = await self._wire(wirings, addresses)
                for name in sorted(set().union(*(wiring.contracts() for wiring in wirings))):
                    ledger.register(name, ledger.get(name).with_wired())
        except Exception:
            if current is not None:
                self._set_state(report, current, ContractState.FAILED)
            self._export_partial(ledger, report)
            raise

        report.export = ledger.export()
        return report

    # ============ Upgrade ============

    async def _upgrade_one(
        self,
        record: DeploymentRecord,
        artifact: "CompiledArtifact",
        report: RunReport,
    ) -> DeploymentRecord:
        name = record.contract

        self._set_state(report, name, ContractState.DECLARING)
        declared = await self._step(name, "declare", self.gateway.declare(artifact))
        if declared.tx_hash is not None:
            await self._step(name, "declare", self.gateway.wait_for_confirmation(declared.tx_hash))
        self._set_state(report, name, ContractState.DECLARED)
        logger.info("Declared new class for %s: %s", name, hex(declared.class_hash))

        self._set_state(report, name, ContractState.UPGRADING)
        call = ChainCall(
            address=record.address,
            entrypoint="upgrade",
            calldata=Positional([declared.class_hash]),
        )
        tx_hash = await self._step(name, "upgrade", self.gateway.invoke_batch([call]))
        logger.info("Upgrade tx for %s: %s", name, hex(tx_hash))
        await self._step(name, "confirm", self.gateway.wait_for_confirmation(tx_hash))
        self._set_state(report, name, ContractState.UPGRADED)
        logger.info("Upgraded %s at %s", name, record.address)

        return record.with_class_hash(declared.class_hash)

    async def upgrade(self, targets: Optional[Iterable[str]] = None) -> RunReport:
        """
        Upgrade mode: new classes behind existing addresses, never new instances.

        Args:
            targets: Contracts to upgrade (default: every upgradeable contract
                     of the network topology)

        Raises:
            MissingPriorDeployment: Before any chain call, if a target has no record
        """
        self._require_gateway()
        ledger = self.store.load(self.network)
        names = self._upgrade_targets(targets)
        report = RunReport(network=self.network, mode="upgrade")

        missing = [name for name in names if name not in ledger]
        if missing:
            raise MissingPriorDeployment(
                f"Cannot upgrade {', '.join(missing)} on {self.network}: no deployment "
                f"recorded in {self.store.latest_path(self.network)}. Run a fresh deploy first.",
                contract=missing[0],
                step="upgrade",
            )

        artifacts = {
            name: self.resolver.resolve(self.topology.get(name).artifact_name) for name in names
        }
        for name in names:
            self._set_state(report, name, ContractState.DEPLOYED)

        current: Optional[str] = None
        try:
            for name in names:
                current = name
                record = ledger.get(name)
                assert record is not None
                new_hash = to_hex_address(self.resolver.class_hash_of(artifacts[name]))
                if new_hash == record.class_hash:
                    self._set_state(report, name, ContractState.SKIPPED)
                    report.unchanged.append(name)
                    logger.info("%s class unchanged (%s), skipping", name, new_hash)
                    continue

                ledger.register(name, await self._upgrade_one(record, artifacts[name], report))
                report.upgraded.append(name)
            current = None
        except Exception:
            if current is not None:
                self._set_state(report, current, ContractState.FAILED)
            self._export_partial(ledger, report)
            raise

        report.export = ledger.export()
        return report

