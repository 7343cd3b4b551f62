"""
Deployment Ledger - durable per-network record of deployed contracts.

Layout under the deployments directory:

    <network>_latest.json               current record per contract (replaced atomically)
    <network>_<YYYYmmddTHHMMSSZ>.json   snapshot written at every export (never replaced)

The latest file is always replaced via a temporary file and an atomic
rename, so a crash mid-export leaves the previous latest file intact.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from ..errors import CorruptLedger
from ..utils import atomic_write, exclusive_write, snapshot_stamp
from .models import DeploymentRecord
from .schemas import SchemaValidationError, dump_json, validate_manifest

logger = logging.getLogger(__name__)

_SNAPSHOT_RE = re.compile(r"^(?P<network>[a-z0-9]+)_(?P<stamp>\d{8}T\d{6}Z)(?:-(?P<n>\d+))?\.json$")


@dataclass(frozen=True)
class ExportResult:
    latest: Path
    snapshot: Path


@dataclass
class DeploymentLedger:
    """In-memory ledger for one network, owned by a single run."""

    network: str
    store: Optional["LedgerStore"] = None
    _records: dict[str, DeploymentRecord] = field(default_factory=dict)
    dirty: bool = False

    def __contains__(self, contract: str) -> bool:
        return contract in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def get(self, contract: str) -> Optional[DeploymentRecord]:
        return self._records.get(contract)

    def names(self) -> list[str]:
        return list(self._records)

    def records(self) -> list[DeploymentRecord]:
        return list(self._records.values())

    def addresses(self) -> dict[str, str]:
        return {name: record.address for name, record in self._records.items()}

    def register(self, contract: str, record: DeploymentRecord) -> None:
        """Insert or overwrite the current record for ``contract``."""
        if record.contract != contract:
            raise ValueError(
                f"Record for '{record.contract}' registered under '{contract}'"
            )
        self._records[contract] = record
        self.dirty = True
        logger.debug("Registered %s at %s on %s", contract, record.address, self.network)

    def to_dict(self) -> dict[str, dict]:
        return {name: record.to_dict() for name, record in self._records.items()}

    def export(self) -> ExportResult:
        if self.store is None:
            raise RuntimeError(f"Ledger for {self.network} is not bound to a store")
        return self.store.export(self)


class LedgerStore:
    """Reads and writes ledgers in a deployments directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def latest_path(self, network: str) -> Path:
        return self.root / f"{network}_latest.json"

    def snapshot_path(self, network: str, stamp: str) -> Path:
        return self.root / f"{network}_{stamp}.json"

    def _parse(self, path: Path) -> dict[str, DeploymentRecord]:
        try:
            with path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CorruptLedger(f"Deployment manifest {path} is not valid JSON: {exc}") from exc

        try:
            validate_manifest(payload)
        except SchemaValidationError as exc:
            details = "; ".join(exc.errors)
            raise CorruptLedger(f"Deployment manifest {path} is malformed: {details}") from exc

        records: dict[str, DeploymentRecord] = {}
        for name, entry in payload.items():
            if entry["contract"] != name:
                raise CorruptLedger(
                    f"Deployment manifest {path}: entry '{name}' describes '{entry['contract']}'"
                )
            records[name] = DeploymentRecord.from_dict(entry)
        return records

    def load(self, network: str, reset: bool = False) -> DeploymentLedger:
        """
        Load the latest ledger for a network.

        Args:
            network: Network name
            reset: Start from an empty ledger (the files on disk are untouched)

        Returns:
            DeploymentLedger bound to this store

        Raises:
            CorruptLedger: If the latest file exists but cannot be parsed
        """
        path = self.latest_path(network)
        if reset or not path.exists():
            return DeploymentLedger(network=network, store=self)
        return DeploymentLedger(network=network, store=self, _records=self._parse(path))

    def export(self, ledger: DeploymentLedger) -> ExportResult:
        """
        Persist a ledger: replace the latest file, then add a snapshot.

        Returns:
            Paths of the latest file and the snapshot written
        """
        data = dump_json(ledger.to_dict())
        latest = self.latest_path(ledger.network)
        atomic_write(latest, data)
        snapshot = exclusive_write(self.snapshot_path(ledger.network, snapshot_stamp()), data)
        ledger.dirty = False
        logger.info("Exported %d record(s) to %s (snapshot %s)", len(ledger), latest, snapshot.name)
        return ExportResult(latest=latest, snapshot=snapshot)

    def snapshots(self, network: str) -> list[Path]:
        """All snapshots for a network, oldest first."""
        if not self.root.is_dir():
            return []
        found = []
        for path in self.root.iterdir():
            match = _SNAPSHOT_RE.match(path.name)
            if match and match.group("network") == network:
                found.append((match.group("stamp"), int(match.group("n") or 0), path))
        return [path for _, _, path in sorted(found)]

    def load_snapshot(self, path: Path) -> dict[str, DeploymentRecord]:
        return self._parse(Path(path))
