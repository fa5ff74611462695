"""JSON encoding of specs, requests, stored credentials and presentations.

Typed values use the tagged form of `zkattest.serialize_provable`. Nodes and
inputs are tagged with `"type"`. All text output is sorted, compact JSON, so
equal objects serialize byte-identically. Only stored credential metadata may
carry floats; everything else goes through the canonical encoder.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from zkattest.credential import CredentialSpec, StoredCredential, UnsignedWitness
from zkattest.credential_imported import Imported, ImportedWitness
from zkattest.credential_native import NativeWitness
from zkattest.errors import UnsupportedTypeError
from zkattest.hashing import canonical_json_bytes, sha256_bytes
from zkattest.operation import (
    AndNode,
    BinaryNumericNode,
    ComputeNode,
    ConstantNode,
    EqualsNode,
    EqualsOneOfNode,
    HashNode,
    IfThenElseNode,
    IssuerNode,
    Node,
    NotNode,
    OrNode,
    OwnerNode,
    PropertyNode,
    RecordNode,
    RootNode,
)
from zkattest.program_spec import Claim, Constant, Input, Spec
from zkattest.serialize_provable import serialize_provable, serialize_type


def to_json_text(obj: Any) -> str:
    return canonical_json_bytes(obj).decode("utf-8")


# =============================================================================
# NODES AND INPUTS
# =============================================================================

def serialize_node(node: Node) -> Dict[str, Any]:
    if isinstance(node, (OwnerNode, RootNode)):
        return {"type": node.TYPE}
    if isinstance(node, IssuerNode):
        return {"type": node.TYPE, "credentialKey": node.credential_key}
    if isinstance(node, ConstantNode):
        return {"type": node.TYPE, "data": serialize_provable(node.data)}
    if isinstance(node, PropertyNode):
        return {"type": node.TYPE, "key": node.key, "inner": serialize_node(node.inner)}
    if isinstance(node, RecordNode):
        return {"type": node.TYPE, "data": {k: serialize_node(v) for k, v in node.data.items()}}
    if isinstance(node, (EqualsNode, OrNode, BinaryNumericNode)):
        return {"type": node.TYPE, "left": serialize_node(node.left), "right": serialize_node(node.right)}
    if isinstance(node, EqualsOneOfNode):
        if isinstance(node.options, tuple):
            options: Any = [serialize_node(o) for o in node.options]
        else:
            options = serialize_node(node.options)
        return {"type": node.TYPE, "input": serialize_node(node.input), "options": options}
    if isinstance(node, AndNode):
        return {"type": node.TYPE, "inputs": [serialize_node(n) for n in node.inputs]}
    if isinstance(node, NotNode):
        return {"type": node.TYPE, "inner": serialize_node(node.inner)}
    if isinstance(node, HashNode):
        return {"type": node.TYPE, "inputs": [serialize_node(n) for n in node.inputs], "prefix": node.prefix}
    if isinstance(node, IfThenElseNode):
        return {
            "type": node.TYPE,
            "condition": serialize_node(node.condition),
            "thenNode": serialize_node(node.then_node),
            "elseNode": serialize_node(node.else_node),
        }
    if isinstance(node, ComputeNode):
        raise UnsupportedTypeError("compute nodes cannot be serialized", value=node)
    raise UnsupportedTypeError(f"Unsupported node: {type(node).__name__}", value=node)


def serialize_input(inp: Input) -> Dict[str, Any]:
    if isinstance(inp, CredentialSpec):
        out = {"type": "credential", "credentialType": inp.credential_type, "data": serialize_type(inp.data)}
        if isinstance(inp, Imported):
            out["publicInput"] = serialize_type(inp.public_input_type)
        return out
    if isinstance(inp, Claim):
        return {"type": "claim", "data": serialize_type(inp.data)}
    if isinstance(inp, Constant):
        return {"type": "constant", "data": serialize_type(inp.data), "value": serialize_provable(inp.value)}
    raise UnsupportedTypeError(f"Unsupported input: {inp!r}", value=inp)


def serialize_inputs(inputs: Dict[str, Input]) -> Dict[str, Any]:
    return {name: serialize_input(inputs[name]) for name in sorted(inputs)}


# =============================================================================
# SPECS
# =============================================================================

def spec_to_serializable(spec: Spec) -> Dict[str, Any]:
    return {
        "inputs": serialize_inputs(spec.inputs),
        "assert": serialize_node(spec.logic.assert_),
        "outputClaim": serialize_node(spec.logic.output_claim),
    }


def serialize_spec(spec: Spec) -> Dict[str, str]:
    """`{"spec": <canonical json>, "hash": sha256(<canonical json>)}`"""
    text = to_json_text(spec_to_serializable(spec))
    return {"spec": text, "hash": sha256_bytes(text.encode("utf-8"))}


# =============================================================================
# REQUESTS
# =============================================================================

def serialize_input_context(ctx: Any) -> Any:
    if ctx is None:
        return None
    out = {"type": ctx.type, "serverNonce": serialize_provable(ctx.server_nonce)}
    out["action"] = ctx.action if ctx.type == "https" else serialize_provable(ctx.action)
    return out


def request_to_serializable(request: Any) -> Dict[str, Any]:
    return {
        "type": request.type,
        "spec": spec_to_serializable(request.spec),
        "claims": {k: serialize_provable(v) for k, v in request.claims.items()},
        "inputContext": serialize_input_context(request.input_context),
    }


def request_to_json(request: Any) -> str:
    return to_json_text(request_to_serializable(request))


# =============================================================================
# CREDENTIALS
# =============================================================================

def witness_to_serializable(witness: Any) -> Dict[str, Any]:
    if isinstance(witness, NativeWitness):
        return {
            "type": witness.type,
            "issuer": serialize_provable(witness.issuer),
            "issuerSignature": serialize_provable(witness.issuer_signature),
        }
    if isinstance(witness, ImportedWitness):
        return {
            "type": witness.type,
            "vk": serialize_provable(witness.vk),
            "proof": serialize_provable(witness.proof),
        }
    if isinstance(witness, UnsignedWitness):
        return {"type": witness.type}
    raise UnsupportedTypeError(f"Unsupported witness: {type(witness).__name__}", value=witness)


def credential_to_serializable(credential: Any) -> Dict[str, Any]:
    return {"owner": serialize_provable(credential.owner), "data": serialize_provable(credential.data)}


def stored_credential_to_serializable(stored: StoredCredential) -> Dict[str, Any]:
    return {
        "version": stored.version,
        "witness": witness_to_serializable(stored.witness),
        "metadata": stored.metadata,
        "credential": credential_to_serializable(stored.credential),
    }


def stored_credential_to_json(stored: StoredCredential) -> str:
    # metadata is free-form JSON, floats included
    return json.dumps(
        stored_credential_to_serializable(stored),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


# =============================================================================
# PRESENTATIONS
# =============================================================================

def presentation_to_serializable(presentation: Any) -> Dict[str, Any]:
    return {
        "version": presentation.version,
        "claims": {k: serialize_provable(v) for k, v in presentation.claims.items()},
        "outputClaim": serialize_provable(presentation.output_claim),
        "clientNonce": serialize_provable(presentation.client_nonce),
        "proof": serialize_provable(presentation.proof),
    }


def presentation_to_json(presentation: Any) -> str:
    return to_json_text(presentation_to_serializable(presentation))
