"""Inverse of `zkattest.serialize`.

Every `*_from_json` entry point validates the parsed payload against its JSON
schema first (when `exchange.validate_schemas` is on). Independently of that
switch, every object is checked for its exact set of members, so unknown
content raises `UnsupportedTypeError` instead of being dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from zkattest.credential import Credential, StoredCredential, Unsigned, UnsignedWitness
from zkattest.credential_imported import Imported, ImportedWitness
from zkattest.credential_native import Native, NativeWitness
from zkattest.errors import SpecIntegrityError, UnsupportedTypeError
from zkattest.hashing import sha256_bytes
from zkattest.operation import (
    AddNode,
    AndNode,
    ConstantNode,
    DivNode,
    EqualsNode,
    EqualsOneOfNode,
    HashNode,
    IfThenElseNode,
    IssuerNode,
    LessThanEqNode,
    LessThanNode,
    MulNode,
    Node,
    NotNode,
    OrNode,
    OwnerNode,
    PropertyNode,
    RecordNode,
    RootNode,
    SubNode,
)
from zkattest.presentation import HttpsInputContext, Presentation, PresentationRequest, ZkAppInputContext
from zkattest.program_spec import Claim, Constant, Input, Spec, SpecLogic
from zkattest.serialize_provable import deserialize_provable, deserialize_type, expect_members
from zkattest.validation import validate_or_raise

logger = logging.getLogger(__name__)

_BINARY_NODES = {
    cls.TYPE: cls
    for cls in (EqualsNode, OrNode, LessThanNode, LessThanEqNode, AddNode, SubNode, MulNode, DivNode)
}

_NODE_MEMBERS = {
    "owner": (),
    "root": (),
    "issuer": ("credentialKey",),
    "constant": ("data",),
    "property": ("inner", "key"),
    "record": ("data",),
    "equalsOneOf": ("input", "options"),
    "and": ("inputs",),
    "not": ("inner",),
    "hash": ("inputs",),
    "ifThenElse": ("condition", "thenNode", "elseNode"),
    **{kind: ("left", "right") for kind in _BINARY_NODES},
}

_INPUT_MEMBERS = {
    "credential": ("credentialType", "data"),
    "claim": ("data",),
    "constant": ("data", "value"),
}

_WITNESS_MEMBERS = {
    "native": ("issuer", "issuerSignature"),
    "imported": ("vk", "proof"),
    "unsigned": (),
}


def _tag(data: Any, member: str, known: Dict[str, Any], what: str) -> str:
    kind = data.get(member) if isinstance(data, dict) else None
    if not isinstance(kind, str) or kind not in known:
        raise UnsupportedTypeError(f"Unsupported {what} type: {kind!r}", value=data)
    return kind


def _parse(text: str, schema: str) -> Any:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as ex:
        raise SpecIntegrityError(f"Invalid JSON: {ex}") from ex
    validate_or_raise(data, schema)
    return data


# =============================================================================
# NODES AND INPUTS
# =============================================================================

def deserialize_node(data: Dict[str, Any]) -> Node:
    kind = _tag(data, "type", _NODE_MEMBERS, "node")
    optional = ("prefix",) if kind == "hash" else ()
    expect_members(data, ("type",) + _NODE_MEMBERS[kind], optional=optional, what=f"{kind} node")
    if kind == "owner":
        return OwnerNode()
    if kind == "root":
        return RootNode()
    if kind == "issuer":
        return IssuerNode(data["credentialKey"])
    if kind == "constant":
        return ConstantNode(deserialize_provable(data["data"]))
    if kind == "property":
        return PropertyNode(deserialize_node(data["inner"]), data["key"])
    if kind == "record":
        return RecordNode({k: deserialize_node(v) for k, v in data["data"].items()})
    if kind in _BINARY_NODES:
        return _BINARY_NODES[kind](deserialize_node(data["left"]), deserialize_node(data["right"]))
    if kind == "equalsOneOf":
        options = data["options"]
        if isinstance(options, list):
            return EqualsOneOfNode(deserialize_node(data["input"]), tuple(deserialize_node(o) for o in options))
        return EqualsOneOfNode(deserialize_node(data["input"]), deserialize_node(options))
    if kind == "and":
        return AndNode(tuple(deserialize_node(n) for n in data["inputs"]))
    if kind == "not":
        return NotNode(deserialize_node(data["inner"]))
    if kind == "hash":
        return HashNode(tuple(deserialize_node(n) for n in data["inputs"]), data.get("prefix"))
    if kind == "ifThenElse":
        return IfThenElseNode(
            deserialize_node(data["condition"]),
            deserialize_node(data["thenNode"]),
            deserialize_node(data["elseNode"]),
        )
    raise UnsupportedTypeError(f"Unsupported node type: {kind!r}", value=data)


def deserialize_input(data: Dict[str, Any]) -> Input:
    kind = _tag(data, "type", _INPUT_MEMBERS, "input")
    credential_type = data.get("credentialType")
    required = ("type",) + _INPUT_MEMBERS[kind]
    if kind == "credential" and credential_type == "imported":
        required += ("publicInput",)
    expect_members(data, required, what=f"{kind} input")
    if kind == "credential":
        data_type = deserialize_type(data["data"])
        if credential_type == "native":
            return Native(data_type)
        if credential_type == "imported":
            return Imported(data_type, deserialize_type(data["publicInput"]))
        if credential_type == "unsigned":
            return Unsigned(data_type)
        raise UnsupportedTypeError(f"Unsupported credential type: {credential_type!r}", value=data)
    if kind == "claim":
        return Claim(deserialize_type(data["data"]))
    if kind == "constant":
        return Constant(deserialize_type(data["data"]), deserialize_provable(data["value"]))
    raise UnsupportedTypeError(f"Unsupported input type: {kind!r}", value=data)


def deserialize_inputs(data: Dict[str, Any]) -> Dict[str, Input]:
    return {name: deserialize_input(data[name]) for name in data}


# =============================================================================
# SPECS
# =============================================================================

def spec_from_serializable(data: Dict[str, Any]) -> Spec:
    expect_members(data, ("inputs", "assert", "outputClaim"), what="spec")
    logic = SpecLogic(
        assert_=deserialize_node(data["assert"]),
        output_claim=deserialize_node(data["outputClaim"]),
    )
    return Spec(deserialize_inputs(data["inputs"]), logic=logic)


def validate_spec_hash(serialized: Dict[str, str]) -> bool:
    return sha256_bytes(serialized["spec"].encode("utf-8")) == serialized["hash"]


def deserialize_spec(serialized: Dict[str, str], trusted_hash: Optional[str] = None) -> Spec:
    """Check the spec hash, then rebuild the spec.

    `trusted_hash`, when given, must match as well; it is the hash the caller
    obtained through a trusted channel.
    """
    if not validate_spec_hash(serialized):
        raise SpecIntegrityError("Spec hash does not match its content")
    if trusted_hash is not None and serialized["hash"] != trusted_hash:
        raise SpecIntegrityError("Spec hash does not match the trusted hash")
    try:
        data = json.loads(serialized["spec"])
    except json.JSONDecodeError as ex:
        raise SpecIntegrityError(f"Invalid spec JSON: {ex}") from ex
    validate_or_raise(data, "spec")
    logger.debug("Spec hash verified", extra={"context": {"spec_hash": serialized["hash"]}})
    return spec_from_serializable(data)


# =============================================================================
# REQUESTS
# =============================================================================

def input_context_from_serializable(data: Any) -> Any:
    if data is None:
        return None
    expect_members(data, ("type", "serverNonce", "action"), what="input context")
    server_nonce = deserialize_provable(data["serverNonce"])
    if data["type"] == "zk-app":
        return ZkAppInputContext(action=deserialize_provable(data["action"]), server_nonce=server_nonce)
    if data["type"] == "https":
        return HttpsInputContext(action=data["action"], server_nonce=server_nonce)
    raise UnsupportedTypeError(f"Unsupported context type: {data['type']!r}", value=data)


def request_from_serializable(data: Dict[str, Any]) -> Any:
    expect_members(data, ("type", "spec", "claims", "inputContext"), what="presentation request")
    return PresentationRequest(
        type=data["type"],
        spec=spec_from_serializable(data["spec"]),
        claims={k: deserialize_provable(v) for k, v in data["claims"].items()},
        input_context=input_context_from_serializable(data["inputContext"]),
    )


def request_from_json(text: str) -> Any:
    return request_from_serializable(_parse(text, "presentation-request"))


# =============================================================================
# CREDENTIALS
# =============================================================================

def witness_from_serializable(data: Dict[str, Any]) -> Any:
    kind = _tag(data, "type", _WITNESS_MEMBERS, "witness")
    expect_members(data, ("type",) + _WITNESS_MEMBERS[kind], what=f"{kind} witness")
    if kind == "native":
        return NativeWitness(
            issuer=deserialize_provable(data["issuer"]),
            issuer_signature=deserialize_provable(data["issuerSignature"]),
        )
    if kind == "imported":
        return ImportedWitness(vk=deserialize_provable(data["vk"]), proof=deserialize_provable(data["proof"]))
    if kind == "unsigned":
        return UnsignedWitness()
    raise UnsupportedTypeError(f"Unsupported witness type: {kind!r}", value=data)


def credential_from_serializable(data: Dict[str, Any]) -> Credential:
    expect_members(data, ("owner", "data"), what="credential")
    return Credential(owner=deserialize_provable(data["owner"]), data=deserialize_provable(data["data"]))


def credential_from_json(text: str) -> Credential:
    return credential_from_serializable(_parse(text, "credential"))


def stored_credential_from_serializable(data: Dict[str, Any]) -> StoredCredential:
    expect_members(data, ("version", "witness", "credential"), optional=("metadata",), what="stored credential")
    return StoredCredential(
        version=data["version"],
        witness=witness_from_serializable(data["witness"]),
        metadata=data.get("metadata"),
        credential=credential_from_serializable(data["credential"]),
    )


def stored_credential_from_json(text: str) -> StoredCredential:
    return stored_credential_from_serializable(_parse(text, "stored-credential"))


# =============================================================================
# PRESENTATIONS
# =============================================================================

def presentation_from_serializable(data: Dict[str, Any]) -> Any:
    expect_members(data, ("version", "claims", "outputClaim", "clientNonce", "proof"), what="presentation")
    return Presentation(
        version=data["version"],
        claims={k: deserialize_provable(v) for k, v in data["claims"].items()},
        output_claim=deserialize_provable(data["outputClaim"]),
        client_nonce=deserialize_provable(data["clientNonce"]),
        proof=deserialize_provable(data["proof"]),
    )


def presentation_from_json(text: str) -> Any:
    return presentation_from_serializable(_parse(text, "presentation"))
