from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def snapshot_stamp(moment: datetime | None = None) -> str:
    """Compact UTC timestamp used in snapshot file names."""
    moment = moment or utc_now()
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def to_hex_address(value: int | str) -> str:
    """Normalise a Starknet address or class hash to 0x + 64 hex digits."""
    if isinstance(value, str):
        value = int(value, 16) if value.lower().startswith("0x") else int(value)
    if value < 0:
        raise ValueError(f"Address must be non-negative: {value}")
    return "0x" + format(value, "064x")


def atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temporary file and an atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with tmp.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def exclusive_write(path: Path, data: bytes) -> Path:
    """Write ``data`` to a new file at ``path`` without replacing anything.

    If ``path`` is taken, ``-1``, ``-2``... is appended to the stem until a
    free name is found. Returns the path actually written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with tmp.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        candidate = path
        counter = 0
        while True:
            try:
                # link() refuses to replace an existing file
                os.link(tmp, candidate)
                return candidate
            except FileExistsError:
                counter += 1
                candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
    finally:
        tmp.unlink(missing_ok=True)
