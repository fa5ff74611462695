"""JSON Schema validation for wire payloads.

Schemas live in `zkattest/schemas/*.schema.json` (Draft 2020-12) and reference
each other through `common.schema.json`. Every object in them sets
`additionalProperties: false`. Turning validation off with
`exchange.validate_schemas` does not admit unknown fields: the deserializers
check member sets on their own (`serialize_provable.expect_members`).
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from zkattest.config import get_config
from zkattest.errors import SchemaValidationError

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
SCHEMA_BASE_URI = "https://schemas.zkattest.org/v0/"


def _load_schema(name: str) -> Any:
    path = SCHEMAS_DIR / f"{name}.schema.json"
    if not path.exists():
        raise SchemaValidationError(name, [f"Unknown schema: {path.name}"])
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    """Registry of all zkattest schemas, keyed by `$id`, for `$ref` resolution."""
    resources = []
    for path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        with open(path, encoding="utf-8") as f:
            schema = json.load(f)
        schema_id = schema.get("$id") or f"{SCHEMA_BASE_URI}{path.name}"
        resources.append((schema_id, Resource.from_contents(schema, default_specification=DRAFT202012)))
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(name: str) -> Draft202012Validator:
    return Draft202012Validator(_load_schema(name), registry=_schema_registry())


def validate_against_schema(obj: Any, name: str) -> List[str]:
    """Validate an object against a named schema.

    Returns list of validation error messages (empty if valid).
    """
    validator = schema_validator(name)
    return [f"{error.json_path}: {error.message}" for error in validator.iter_errors(obj)]


def validate_or_raise(obj: Any, name: str) -> None:
    if not get_config().exchange.validate_schemas.get():
        return
    errors = validate_against_schema(obj, name)
    if errors:
        raise SchemaValidationError(name, errors)
