__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Configuration
    "DeployContext",
    "NETWORKS",
    "load_context",
    # Errors
    "DeployError",
    "ConfigError",
    "TopologyError",
    "ArtifactNotFound",
    "CorruptLedger",
    "MissingPriorDeployment",
    "ChainError",
    "DeclareFailed",
    "DeployFailed",
    "InvokeFailed",
    "TransactionRejected",
    "ConfirmationTimeout",
    # Calldata
    "DEPLOYER",
    "Named",
    "Positional",
    "Ref",
    # Artifacts / chain
    "ArtifactResolver",
    "CompiledArtifact",
    "ChainCall",
    "ChainGateway",
    "StarknetGateway",
    # Ledger
    "DeploymentLedger",
    "DeploymentRecord",
    "ExportResult",
    "LedgerStore",
    # Topology
    "ContractSpec",
    "Topology",
    "WiringCall",
    "cofi_topology",
    # Orchestrator
    "ContractState",
    "Orchestrator",
    "PlanStep",
    "RunReport",
]

from .chain.artifacts import ArtifactResolver, CompiledArtifact
from .chain.calldata import DEPLOYER, Named, Positional, Ref
from .chain.gateway import ChainCall, ChainGateway, StarknetGateway
from .config import NETWORKS, DeployContext, load_context
from .errors import (
    ArtifactNotFound,
    ChainError,
    ConfigError,
    ConfirmationTimeout,
    CorruptLedger,
    DeclareFailed,
    DeployError,
    DeployFailed,
    InvokeFailed,
    MissingPriorDeployment,
    TopologyError,
    TransactionRejected,
)
from .ledger import DeploymentLedger, DeploymentRecord, ExportResult, LedgerStore
from .orchestrator import ContractState, Orchestrator, PlanStep, RunReport
from .topology import ContractSpec, Topology, WiringCall, cofi_topology
