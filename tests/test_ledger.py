"""Tests for the deployment ledger and its durable store."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from cofi_deploy.chain.calldata import Named, Positional
from cofi_deploy.errors import CorruptLedger
from cofi_deploy.ledger import DeploymentRecord, LedgerStore
from cofi_deploy.utils import to_hex_address


def _record(name: str, address: int, class_hash: int = 0xCAFE, args=None) -> DeploymentRecord:
    return DeploymentRecord.create(name, address, class_hash, args)


@pytest.fixture()
def store(tmp_path: Path) -> LedgerStore:
    return LedgerStore(tmp_path / "deployments")


class TestRecord:
    def test_create_normalises(self) -> None:
        record = _record("A", 0x1, 0x2)
        assert record.address == to_hex_address(1)
        assert record.class_hash == to_hex_address(2)

    def test_dict_form(self) -> None:
        record = _record("A", 0x1, args=Named(admin="0x1"))
        assert record.to_dict() == {
            "contract": "A",
            "address": to_hex_address(1),
            "classHash": to_hex_address(0xCAFE),
            "constructorArgs": {"admin": "0x1"},
        }
        assert "constructorArgs" not in _record("B", 0x2).to_dict()

    def test_with_class_hash_keeps_address(self) -> None:
        record = _record("A", 0x1, 0x2, Positional(["0x1"]))
        upgraded = record.with_class_hash(0x3)
        assert upgraded.address == record.address
        assert upgraded.class_hash == to_hex_address(3)
        assert upgraded.constructor_args == record.constructor_args

    def test_wired_flag(self) -> None:
        record = _record("A", 0x1)
        assert not record.wired
        wired = record.with_wired()
        assert wired.to_dict()["wired"] is True
        assert DeploymentRecord.from_dict(wired.to_dict()) == wired
        assert wired.with_class_hash(0x3).wired


class TestLedger:
    def test_register_overwrites_current_record(self, store: LedgerStore) -> None:
        ledger = store.load("devnet")
        ledger.register("A", _record("A", 0x1))
        ledger.register("A", _record("A", 0x2))
        assert len(ledger) == 1
        assert ledger.get("A").address == to_hex_address(2)
        assert ledger.dirty

    def test_register_name_mismatch(self, store: LedgerStore) -> None:
        with pytest.raises(ValueError):
            store.load("devnet").register("A", _record("B", 0x1))

    def test_missing_file_is_empty(self, store: LedgerStore) -> None:
        ledger = store.load("sepolia")
        assert len(ledger) == 0
        assert not ledger.dirty


class TestStore:
    def test_export_then_load_round_trip(self, store: LedgerStore) -> None:
        ledger = store.load("sepolia")
        ledger.register("A", _record("A", 0x1, args=Positional(["0x5", 3, ["0x1", "0x2"]])))
        ledger.register("B", _record("B", 0x2, args=Named(a="0x1", fee=5000)))
        result = ledger.export()

        assert not ledger.dirty
        assert result.latest == store.latest_path("sepolia")
        loaded = store.load("sepolia")
        assert loaded.to_dict() == ledger.to_dict()
        assert loaded.names() == ["A", "B"]

    def test_reset_ignores_latest_but_keeps_files(self, store: LedgerStore) -> None:
        ledger = store.load("sepolia")
        ledger.register("A", _record("A", 0x1))
        ledger.export()

        assert len(store.load("sepolia", reset=True)) == 0
        assert store.latest_path("sepolia").exists()

    def test_networks_are_isolated(self, store: LedgerStore) -> None:
        ledger = store.load("devnet")
        ledger.register("A", _record("A", 0x1))
        ledger.export()
        assert len(store.load("sepolia")) == 0
        assert store.snapshots("sepolia") == []

    def test_snapshots_are_never_overwritten(self, store: LedgerStore) -> None:
        ledger = store.load("sepolia")
        ledger.register("A", _record("A", 0x1))
        with patch("cofi_deploy.ledger.store.snapshot_stamp", return_value="20240101T000000Z"):
            first = ledger.export()
            ledger.register("A", _record("A", 0x2))
            second = ledger.export()

        assert first.snapshot != second.snapshot
        assert second.snapshot.name == "sepolia_20240101T000000Z-1.json"
        assert store.snapshots("sepolia") == [first.snapshot, second.snapshot]
        assert store.load_snapshot(first.snapshot)["A"].address == to_hex_address(1)
        assert store.load_snapshot(second.snapshot)["A"].address == to_hex_address(2)

    def test_failed_latest_write_keeps_previous(self, store: LedgerStore) -> None:
        ledger = store.load("sepolia")
        ledger.register("A", _record("A", 0x1))
        ledger.export()
        before = store.latest_path("sepolia").read_bytes()

        ledger.register("A", _record("A", 0x2))
        with patch.object(Path, "replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                ledger.export()

        assert store.latest_path("sepolia").read_bytes() == before
        assert ledger.dirty
        assert store.load("sepolia").get("A").address == to_hex_address(1)


class TestCorruption:
    def _write(self, store: LedgerStore, text: str) -> None:
        path = store.latest_path("sepolia")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    def test_invalid_json(self, store: LedgerStore) -> None:
        self._write(store, "{not json")
        with pytest.raises(CorruptLedger, match="not valid JSON"):
            store.load("sepolia")

    def test_schema_violation(self, store: LedgerStore) -> None:
        self._write(store, json.dumps({"A": {"contract": "A", "address": "nope"}}))
        with pytest.raises(CorruptLedger, match="malformed"):
            store.load("sepolia")

    def test_key_mismatch(self, store: LedgerStore) -> None:
        entry = {"contract": "B", "address": "0x1", "classHash": "0x2"}
        self._write(store, json.dumps({"A": entry}))
        with pytest.raises(CorruptLedger, match="describes 'B'"):
            store.load("sepolia")

    def test_reset_bypasses_corrupt_file(self, store: LedgerStore) -> None:
        self._write(store, "{not json")
        assert len(store.load("sepolia", reset=True)) == 0

    def test_hand_written_short_hex_is_normalised(self, store: LedgerStore) -> None:
        self._write(store, json.dumps({"A": {"contract": "A", "address": "0x1", "classHash": "0xabc"}}))
        record = store.load("sepolia").get("A")
        assert record.address == to_hex_address(1)
        assert record.class_hash == to_hex_address(0xABC)
