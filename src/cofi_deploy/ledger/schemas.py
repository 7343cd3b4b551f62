"""Manifest schema validation."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator, ValidationError

MANIFEST_SCHEMA_PATH = Path(__file__).resolve().parent / "schemata" / "deployment.manifest.schema.json"


class SchemaValidationError(ValueError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


@lru_cache(maxsize=None)
def manifest_validator() -> Draft202012Validator:
    with MANIFEST_SCHEMA_PATH.open("r", encoding="utf-8") as f:
        schema = json.load(f)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def _format_error(error: ValidationError) -> str:
    location = "/".join(str(part) for part in error.path) or "<root>"
    return f"{location}: {error.message}"


def validate_manifest(payload: Any) -> None:
    errors = sorted(manifest_validator().iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    if errors:
        raise SchemaValidationError(
            "Deployment manifest does not match its schema.",
            errors=[_format_error(err) for err in errors],
        )


def dump_json(payload: Any) -> bytes:
    return (json.dumps(payload, indent=2) + "\n").encode("utf-8")
