"""Exception classes for cofi-deploy.

Every error carries an ``exit_code`` used by the CLI, and may carry the
contract and step that were being processed when it was raised.
"""

from __future__ import annotations

from typing import Optional


class DeployError(RuntimeError):
    """Base exception for deployment orchestration errors."""

    exit_code: int = 1

    def __init__(
        self,
        message: str = "",
        *,
        contract: Optional[str] = None,
        step: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.contract = contract
        self.step = step

    def annotate(self, contract: Optional[str], step: Optional[str]) -> "DeployError":
        """Fill in contract/step if they are not already known."""
        if self.contract is None:
            self.contract = contract
        if self.step is None:
            self.step = step
        return self

    def __str__(self) -> str:
        where = "/".join(part for part in (self.contract, self.step) if part)
        if where:
            return f"[{where}] {self.message}"
        return self.message


class ConfigError(DeployError, ValueError):
    """Raised when the run configuration (network, identity, paths) is invalid."""

    exit_code = 2


class TopologyError(DeployError, ValueError):
    """Raised for duplicate contracts, unknown references or reference cycles."""

    exit_code = 2


class ArtifactNotFound(DeployError, FileNotFoundError):
    """Raised when no compiled output exists for a contract."""

    exit_code = 3


class CorruptLedger(DeployError, ValueError):
    """Raised when a persisted manifest exists but cannot be parsed."""

    exit_code = 4


class MissingPriorDeployment(DeployError, LookupError):
    """Raised when upgrading a contract that has no deployment record."""

    exit_code = 5


class ChainError(DeployError):
    """Base class for failures reported by the chain gateway."""

    exit_code = 6


class DeclareFailed(ChainError):
    pass


class DeployFailed(ChainError):
    pass


class InvokeFailed(ChainError):
    pass


class TransactionRejected(ChainError):
    """Raised when a submitted transaction is reverted or rejected."""

    exit_code = 7


class ConfirmationTimeout(ChainError, TimeoutError):
    """Raised when a transaction is not confirmed within the bounded wait."""

    exit_code = 8
