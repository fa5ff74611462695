"""Canonical hashing primitives.

Design principles:
- Domain-separation prefixes are module constants, never runtime state
- Canonical JSON is deterministic (sorted keys, no whitespace, floats rejected)
- Every hash that enters a program is reduced into the scalar field
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Optional, Sequence

from zkattest.provable import FIELD_MODULUS, Bytes32, Field, to_fields

PREFIX_ROOT = "zkattest:v0"
PREFIX_ISSUER_NATIVE = f"{PREFIX_ROOT}:native"
PREFIX_ISSUER_IMPORTED = f"{PREFIX_ROOT}:imported"
PREFIX_CONTEXT = f"{PREFIX_ROOT}:context"
PREFIX_NONCE = f"{PREFIX_ROOT}:nonce"
PREFIX_CREDENTIAL = f"{PREFIX_ROOT}:credential"
PREFIX_PROOF = f"{PREFIX_ROOT}:proof"


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes (JCS/RFC8785 subset).

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected (use strings/ints for amounts)
    """
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def _prefix_block(prefix: Optional[str]) -> bytes:
    # fixed 33-byte block; no prefix and the empty prefix are distinct domains
    if prefix is None:
        return b"\x00" * 33
    return b"\x01" + hashlib.sha256(prefix.encode("utf-8")).digest()


def hash_fields(fields: Iterable[Field], prefix: Optional[str] = None) -> Field:
    """Field-native hash of a sequence of fields, optionally domain separated."""
    h = hashlib.sha256(_prefix_block(prefix))
    for f in fields:
        h.update(f.to_bytes())
    return Field(int.from_bytes(h.digest(), "big") % FIELD_MODULUS)


def canonical_hash(value: Any) -> Field:
    """Collision-resistant hash of an arbitrary typed value.

    Hashes the canonical JSON of the tagged serialization, so two values only
    collide if they have the same type and the same content.
    """
    from zkattest.serialize_provable import serialize_provable

    digest = hashlib.sha256(canonical_json_bytes(serialize_provable(value))).digest()
    return Field(int.from_bytes(digest, "big") % FIELD_MODULUS)


def hash_with_prefix(prefix: Optional[str], values: Sequence[Any]) -> Field:
    """Hash of several typed values, optionally domain separated by `prefix`."""
    return hash_fields([canonical_hash(v) for v in values], prefix=prefix)


def hash_packed(value: Any) -> Field:
    """Hash of the flattened field encoding of a value."""
    return hash_fields(to_fields(value))


def sha3_bytes(text: str) -> Bytes32:
    """General-purpose hash of a free-form string, kept outside the field."""
    return Bytes32(hashlib.sha3_256(text.encode("utf-8")).digest())
