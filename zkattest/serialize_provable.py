"""Tagged JSON form of typed values and their types.

Types:

    {"_type": "Field"}                       value classes
    {"_type": "Bytes", "size": 32}
    {"_type": "StaticArray", "innerType": <type>, "maxLength": 3}
    {"_type": "Struct", "properties": {"age": <type>, ...}}

Values:

    {"_type": "Field", "value": "18"}        Field, UInt8, UInt32, UInt64
    {"_type": "Bool", "value": true}
    {"_type": "Bytes", "size": 32, "value": "<hex>"}
    {"_type": "PublicKey", "value": "did:key:z..."}
    {"_type": "Signature", "value": "<base64url>"}
    {"_type": "Undefined"}
    {"_type": "StaticArray", "innerType": <type>, "value": [<value>, ...]}
    {"_type": "Struct", "value": {"age": <value>, ...}}
    {"_type": "VerificationKey", "value": {"data": "...", "hash": "..."}}
    {"_type": "Proof", "value": {"publicInput": <value>, "publicOutput": <value>,
                                 "maxProofsVerified": 0, "proof": "<base64url>"}}

Unknown tags and unknown members raise `UnsupportedTypeError`; nothing is
silently dropped.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from zkattest.errors import UnsupportedTypeError
from zkattest.keys import b64url_decode, b64url_encode
from zkattest.prover import Proof, VerificationKey
from zkattest.provable import (
    Bool,
    Bytes,
    Field,
    NestedType,
    PublicKey,
    Signature,
    StaticArray,
    StaticArrayType,
    UInt8,
    UInt32,
    UInt64,
    Undefined,
)

SUPPORTED_TYPES: Dict[str, type] = {
    "Field": Field,
    "Bool": Bool,
    "UInt8": UInt8,
    "UInt32": UInt32,
    "UInt64": UInt64,
    "PublicKey": PublicKey,
    "Signature": Signature,
    "Undefined": Undefined,
}

_INTEGER_TYPES = (Field, UInt8, UInt32, UInt64)


def expect_members(
    data: Any,
    required: Iterable[str],
    optional: Iterable[str] = (),
    what: str = "object",
) -> Dict[str, Any]:
    """Check that `data` is an object with exactly the given members.

    Runs whether or not schema validation is enabled, so unknown content is
    never dropped on the way in.
    """
    if not isinstance(data, dict):
        raise UnsupportedTypeError(f"Malformed {what}: expected an object, got {type(data).__name__}", value=data)
    required = set(required)
    missing = required - set(data)
    if missing:
        raise UnsupportedTypeError(f"Malformed {what}: missing {', '.join(sorted(missing))}", value=data)
    unknown = set(data) - required - set(optional)
    if unknown:
        raise UnsupportedTypeError(f"Malformed {what}: unknown members {', '.join(sorted(unknown))}", value=data)
    return data


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


def serialize_type(t: NestedType) -> Dict[str, Any]:
    if isinstance(t, dict):
        return {"_type": "Struct", "properties": {k: serialize_type(v) for k, v in t.items()}}
    if isinstance(t, StaticArrayType):
        return {"_type": "StaticArray", "innerType": serialize_type(t.inner), "maxLength": t.length}
    if isinstance(t, type) and issubclass(t, Bytes) and t.SIZE >= 0:
        return {"_type": "Bytes", "size": t.SIZE}
    if isinstance(t, type) and t.__name__ in SUPPORTED_TYPES and SUPPORTED_TYPES[t.__name__] is t:
        return {"_type": t.__name__}
    raise UnsupportedTypeError(f"Unsupported type: {t!r}", value=t)


_TYPE_MEMBERS: Dict[str, tuple] = {
    "Struct": ("properties",),
    "StaticArray": ("innerType", "maxLength"),
    "Bytes": ("size",),
}

_VALUE_MEMBERS: Dict[str, tuple] = {
    "Undefined": (),
    "StaticArray": ("innerType", "value"),
    "Bytes": ("size", "value"),
}


def _object(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise UnsupportedTypeError(f"Malformed {what}: expected an object", value=data)
    return data


def deserialize_type(data: Any) -> NestedType:
    if not isinstance(data, dict) or "_type" not in data:
        raise UnsupportedTypeError(f"Malformed type: {data!r}", value=data)
    tag = data["_type"]
    if not isinstance(tag, str):
        raise UnsupportedTypeError(f"Malformed type tag: {tag!r}", value=data)
    if tag not in SUPPORTED_TYPES and tag not in _TYPE_MEMBERS:
        raise UnsupportedTypeError(f"Unsupported type tag: {tag!r}", value=data)
    expect_members(data, ("_type",) + _TYPE_MEMBERS.get(tag, ()), what=f"{tag} type")
    if tag == "Struct":
        return {k: deserialize_type(v) for k, v in _object(data["properties"], "Struct properties").items()}
    if tag == "StaticArray":
        return StaticArrayType(deserialize_type(data["innerType"]), int(data["maxLength"]))
    if tag == "Bytes":
        return Bytes.sized(int(data["size"]))
    return SUPPORTED_TYPES[tag]


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


def serialize_provable(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"_type": "Undefined"}
    if isinstance(value, dict):
        return {"_type": "Struct", "value": {k: serialize_provable(v) for k, v in value.items()}}
    if isinstance(value, StaticArray):
        return {
            "_type": "StaticArray",
            "innerType": serialize_type(value.element_type),
            "value": [serialize_provable(v) for v in value.items],
        }
    if isinstance(value, _INTEGER_TYPES):
        return {"_type": value.TYPE_NAME, "value": str(value.to_int())}
    if isinstance(value, Bool):
        return {"_type": "Bool", "value": value.value}
    if isinstance(value, Bytes):
        return {"_type": "Bytes", "size": value.SIZE, "value": value.to_hex()}
    if isinstance(value, PublicKey):
        return {"_type": "PublicKey", "value": value.to_did()}
    if isinstance(value, Signature):
        return {"_type": "Signature", "value": value.to_base64()}
    if isinstance(value, VerificationKey):
        return {"_type": "VerificationKey", "value": value.to_dict()}
    if isinstance(value, Proof):
        return {
            "_type": "Proof",
            "value": {
                "publicInput": serialize_provable(value.public_input),
                "publicOutput": serialize_provable(value.public_output),
                "maxProofsVerified": value.max_proofs_verified,
                "proof": b64url_encode(value.proof),
            },
        }
    raise UnsupportedTypeError(f"Unsupported value type: {type(value).__name__}", value=value)


def deserialize_provable(data: Any) -> Any:
    if not isinstance(data, dict) or "_type" not in data:
        raise UnsupportedTypeError(f"Malformed value: {data!r}", value=data)
    tag = data["_type"]
    if not isinstance(tag, str):
        raise UnsupportedTypeError(f"Malformed value tag: {tag!r}", value=data)
    expect_members(data, ("_type",) + _VALUE_MEMBERS.get(tag, ("value",)), what=f"{tag} value")
    try:
        if tag == "Undefined":
            return None
        if tag == "Struct":
            return {k: deserialize_provable(v) for k, v in _object(data["value"], "Struct value").items()}
        if tag == "StaticArray":
            inner = deserialize_type(data["innerType"])
            return StaticArray(inner, [deserialize_provable(v) for v in data["value"]])
        if tag in ("Field", "UInt8", "UInt32", "UInt64"):
            return SUPPORTED_TYPES[tag](int(data["value"], 10))
        if tag == "Bool":
            return Bool(data["value"])
        if tag == "Bytes":
            return Bytes.sized(int(data["size"])).from_hex(data["value"])
        if tag == "PublicKey":
            return PublicKey.from_did(data["value"])
        if tag == "Signature":
            return Signature.from_base64(data["value"])
        if tag == "VerificationKey":
            inner = expect_members(data["value"], ("data", "hash"), what="VerificationKey value")
            vk = VerificationKey.from_data(inner["data"])
            if str(vk.hash.to_int()) != inner["hash"]:
                raise UnsupportedTypeError("VerificationKey hash does not match its data", value=data)
            return vk
        if tag == "Proof":
            inner = expect_members(
                data["value"],
                ("publicInput", "publicOutput", "proof"),
                optional=("maxProofsVerified",),
                what="Proof value",
            )
            return Proof(
                public_input=deserialize_provable(inner["publicInput"]),
                public_output=deserialize_provable(inner["publicOutput"]),
                proof=b64url_decode(inner["proof"]),
                max_proofs_verified=int(inner.get("maxProofsVerified", 0)),
            )
    except (KeyError, TypeError, ValueError) as ex:
        raise UnsupportedTypeError(f"Malformed {tag} value: {ex}", value=data) from ex
    raise UnsupportedTypeError(f"Unsupported value tag: {tag!r}", value=data)
