"""
Ledger - durable, network-scoped deployment manifests.
"""

from .models import DeploymentRecord
from .store import DeploymentLedger, ExportResult, LedgerStore

__all__ = ["DeploymentLedger", "DeploymentRecord", "ExportResult", "LedgerStore"]
