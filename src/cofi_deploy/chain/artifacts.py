"""
Artifact Resolver - Locates compiled Cairo contract classes.

Single source of truth: the Scarb build output (``contracts/target/dev``),
which holds ``<package>_<Contract>.contract_class.json`` (Sierra) and
``<package>_<Contract>.compiled_contract_class.json`` (CASM) per contract.
Resolution is a pure filesystem lookup; compilation happens upstream.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from starknet_py.common import create_casm_class, create_sierra_compiled_contract
from starknet_py.hash.casm_class_hash import compute_casm_class_hash
from starknet_py.hash.sierra_class_hash import compute_sierra_class_hash

from ..errors import ArtifactNotFound

SIERRA_SUFFIX = ".contract_class.json"
CASM_SUFFIX = ".compiled_contract_class.json"


def find_artifacts_dir(start: Optional[Path] = None) -> Path:
    """
    Locate the Scarb output directory.

    Searches from ``start`` (default: the current directory) upward for
    ``contracts/target/dev`` or ``target/dev``.
    """
    start = (start or Path.cwd()).resolve()
    for parent in [start, *start.parents]:
        for candidate in (parent / "contracts" / "target" / "dev", parent / "target" / "dev"):
            if candidate.is_dir():
                return candidate
    raise ArtifactNotFound(
        "Cannot find contracts/target/dev. Run 'scarb build' in the contracts/ directory."
    )


@dataclass(frozen=True)
class CompiledArtifact:
    """Compiled class of one contract: Sierra program plus CASM."""

    name: str
    sierra_path: Path
    casm_path: Path
    sierra: str = field(repr=False)
    casm: str = field(repr=False)

    @property
    def abi(self) -> list[dict[str, Any]]:
        abi = json.loads(self.sierra).get("abi", [])
        # Older Scarb releases emit the ABI as an embedded JSON string
        if isinstance(abi, str):
            abi = json.loads(abi)
        return abi


@lru_cache(maxsize=64)
def _sierra_class_hash(sierra: str) -> int:
    return compute_sierra_class_hash(create_sierra_compiled_contract(sierra))


@lru_cache(maxsize=64)
def _casm_class_hash(casm: str) -> int:
    casm_raw = json.loads(casm)
    casm_raw.setdefault("pythonic_hints", [])
    return compute_casm_class_hash(create_casm_class(json.dumps(casm_raw)))


class ArtifactResolver:
    """Resolves contract names to compiled artifacts in a build directory."""

    def __init__(self, artifacts_dir: Path, package: Optional[str] = None) -> None:
        self.artifacts_dir = Path(artifacts_dir)
        self.package = package

    def _sierra_path(self, contract_name: str) -> Path:
        if self.package:
            path = self.artifacts_dir / f"{self.package}_{contract_name}{SIERRA_SUFFIX}"
            if not path.is_file():
                raise ArtifactNotFound(
                    f"Compiled class not found: {path}. Run 'scarb build'.",
                    contract=contract_name,
                    step="resolve",
                )
            return path

        matches = sorted(self.artifacts_dir.glob(f"*_{contract_name}{SIERRA_SUFFIX}"))
        if not matches:
            raise ArtifactNotFound(
                f"No compiled class for {contract_name} in {self.artifacts_dir}. "
                "Run 'scarb build'.",
                contract=contract_name,
                step="resolve",
            )
        if len(matches) > 1:
            raise ArtifactNotFound(
                f"Ambiguous compiled classes for {contract_name}: "
                f"{', '.join(m.name for m in matches)}. Set the package name.",
                contract=contract_name,
                step="resolve",
            )
        return matches[0]

    def resolve(self, contract_name: str) -> CompiledArtifact:
        """
        Find the compiled class for a contract.

        Raises:
            ArtifactNotFound: If the Sierra or CASM file is missing
        """
        sierra_path = self._sierra_path(contract_name)
        casm_path = sierra_path.with_name(
            sierra_path.name[: -len(SIERRA_SUFFIX)] + CASM_SUFFIX
        )
        if not casm_path.is_file():
            raise ArtifactNotFound(
                f"CASM not found: {casm_path}. Cairo 1 classes need CASM to be declared.",
                contract=contract_name,
                step="resolve",
            )

        return CompiledArtifact(
            name=contract_name,
            sierra_path=sierra_path,
            casm_path=casm_path,
            sierra=sierra_path.read_text(encoding="utf-8"),
            casm=casm_path.read_text(encoding="utf-8"),
        )

    def class_hash_of(self, artifact: CompiledArtifact) -> int:
        """Sierra class hash; identical artifacts always hash identically."""
        return _sierra_class_hash(artifact.sierra)

    def compiled_class_hash_of(self, artifact: CompiledArtifact) -> int:
        return _casm_class_hash(artifact.casm)
