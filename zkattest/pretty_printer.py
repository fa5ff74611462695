"""Human readable rendering of requests and credentials for wallet confirmation screens."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from zkattest.credential import CredentialSpec, StoredCredential, spec_for_stored
from zkattest.errors import UnsupportedTypeError
from zkattest.operation import (
    AddNode,
    AndNode,
    ComputeNode,
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
from zkattest.program_spec import Claim, Constant
from zkattest.provable import (
    Bool,
    Bytes,
    Field,
    PublicKey,
    Signature,
    StaticArray,
    UInt8,
    UInt32,
    UInt64,
    type_name,
)

_ARITHMETIC_SYMBOLS = {AddNode: "+", SubNode: "-", MulNode: "x", DivNode: "÷"}


def format_value(value: Any) -> str:
    if value is None:
        return "undefined"
    if isinstance(value, (Field, UInt8, UInt32, UInt64)):
        return str(value.to_int())
    if isinstance(value, Bool):
        return "true" if value.value else "false"
    if isinstance(value, Bytes):
        return f"0x{value.to_hex()}"
    if isinstance(value, PublicKey):
        return value.to_did()
    if isinstance(value, Signature):
        return value.to_base64()
    if isinstance(value, StaticArray):
        return f"[{', '.join(format_value(v) for v in value.items)}]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}: {format_value(v)}" for k, v in value.items()) + "}"
    raise UnsupportedTypeError(f"Cannot format value of type {type(value).__name__}", value=value)


def _property_path(node: PropertyNode) -> str:
    parts: List[str] = []
    current: Node = node
    while isinstance(current, PropertyNode):
        parts.insert(0, current.key)
        current = current.inner
    return ".".join(parts)


def format_node(node: Node, level: int = 0) -> str:
    indent = "  " * level

    if isinstance(node, AndNode):
        if not node.inputs:
            return "true"
        lines = [f"{indent}All of these conditions must be true:"]
        lines.extend(f"{indent}- {format_node(n, level + 1)}" for n in node.inputs)
        return "\n".join(lines)
    if isinstance(node, OrNode):
        return (
            f"{indent}Either:\n{indent}- {format_node(node.left, level + 1)}\n"
            f"{indent}Or:\n{indent}- {format_node(node.right, level + 1)}"
        )
    if isinstance(node, IfThenElseNode):
        return (
            f"{indent}If this condition is true:\n{indent}- {format_node(node.condition, level + 1)}\n"
            f"{indent}Then:\n{indent}- {format_node(node.then_node, level + 1)}\n"
            f"{indent}Otherwise:\n{indent}- {format_node(node.else_node, level + 1)}"
        )
    if isinstance(node, EqualsNode):
        return f"{format_node(node.left)} equals {format_node(node.right)}"
    if isinstance(node, EqualsOneOfNode):
        if isinstance(node.options, tuple):
            options = "[" + ", ".join(format_node(o, level) for o in node.options) + "]"
        else:
            options = format_node(node.options, level)
        return f"{options} contains {format_node(node.input, level)}"
    if isinstance(node, LessThanNode):
        return f"{format_node(node.left)} < {format_node(node.right)}"
    if isinstance(node, LessThanEqNode):
        return f"{format_node(node.left)} ≤ {format_node(node.right)}"
    if type(node) in _ARITHMETIC_SYMBOLS:
        return f"({format_node(node.left)} {_ARITHMETIC_SYMBOLS[type(node)]} {format_node(node.right)})"
    if isinstance(node, NotNode):
        return f"not({format_node(node.inner, level)})"
    if isinstance(node, PropertyNode):
        return _property_path(node)
    if isinstance(node, RootNode):
        return ""
    if isinstance(node, OwnerNode):
        return "owner"
    if isinstance(node, IssuerNode):
        return f"issuer({node.credential_key})"
    if isinstance(node, HashNode):
        return f"hash({', '.join(format_node(n, level) for n in node.inputs)})"
    if isinstance(node, RecordNode):
        if not node.data:
            return "{}"
        return f"\n{indent}".join(f"{k}: {format_node(v, level)}" for k, v in node.data.items())
    if isinstance(node, ConstantNode):
        return format_value(node.data)
    if isinstance(node, ComputeNode):
        return f"compute({', '.join(format_node(n, level) for n in node.inputs)})"
    raise UnsupportedTypeError(f"Unknown node type: {type(node).__name__}", value=node)


def _format_inputs(inputs: Dict[str, Any]) -> str:
    sections: List[str] = []

    credentials = [(k, v) for k, v in inputs.items() if isinstance(v, CredentialSpec)]
    if credentials:
        sections.append("Required credentials:")
        for key, spec in credentials:
            fields = list(spec.data) if isinstance(spec.data, dict) else [type_name(spec.data)]
            sections.append(f"- {key} (type: {spec.credential_type}):\n  Contains: {', '.join(fields)}")

    claims = [(k, v) for k, v in inputs.items() if isinstance(v, Claim)]
    if claims:
        sections.append("\nClaims:")
        sections.extend(f"- {key}: {type_name(claim.data)}" for key, claim in claims)

    constants = [(k, v) for k, v in inputs.items() if isinstance(v, Constant)]
    if constants:
        sections.append("\nConstants:")
        sections.extend(
            f"- {key}: {type_name(const.data)} = {format_value(const.value)}" for key, const in constants
        )

    return "\n".join(sections)


def print_presentation_request(request: Any) -> str:
    """Render a `PresentationRequest` for an owner to confirm."""
    parts = [
        f"Type: {request.type}",
        "",
        _format_inputs(request.spec.inputs),
        "",
        f"Requirements:\n{format_node(request.spec.logic.assert_)}",
        "",
        f"Output:\n{format_node(request.spec.logic.output_claim)}",
    ]
    if request.claims:
        parts.append("\nClaimed values:")
        parts.extend(f"- {key}: {format_value(value)}" for key, value in request.claims.items())
    ctx = request.input_context
    if ctx is not None:
        action = ctx.action if isinstance(ctx.action, str) else format_value(ctx.action)
        parts.append(
            f"\nContext:\n- Type: {ctx.type}\n- Action: {action}\n- Server Nonce: {format_value(ctx.server_nonce)}"
        )
    return "\n".join(parts)


def print_verifier_identity(
    request_type: str,
    verifier_identity: Union[PublicKey, str],
    origin: Optional[str] = None,
) -> str:
    lines = []
    if origin is not None:
        lines.append(f"Origin: {origin}")
    identity = verifier_identity.to_did() if isinstance(verifier_identity, PublicKey) else verifier_identity
    lines.append(f"Verifier Identity ({request_type}): {identity}")
    return "\n".join(lines)


def print_credential(stored: StoredCredential) -> str:
    """Render a stored credential: kind, owner, optional description and data."""
    spec = spec_for_stored(stored)
    lines = [
        f"Type: {spec.credential_type}",
        f"Owner: {stored.credential.owner.to_did()}",
    ]
    if isinstance(stored.metadata, dict) and stored.metadata.get("description"):
        lines.append(f"Description: {stored.metadata['description']}")
    data = stored.credential.data
    if isinstance(data, dict):
        lines.append("Data:")
        lines.extend(f"- {key}: {format_value(value)}" for key, value in data.items())
    else:
        lines.append(f"Data: {format_value(data)}")
    return "\n".join(lines)
