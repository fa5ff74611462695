"""
Context binding.

A presentation is bound to one field element, the context, derived from the
compiled program, both nonces, the verifier identity, the action and the
claims:

    nonce   = H(PREFIX_NONCE, server_nonce, client_nonce)
    context = H(PREFIX_CONTEXT:<type>, vk_hash, nonce, identity, action, claims_hash)

For `zk-app` requests the identity is a `PublicKey` and the action a `Field`,
used as they are. For `https` requests both are free-form strings and are
hashed with SHA3-256 first, keeping them out of the field hash. Requests of
type `no-context` bind to `Field(0)`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Union

from zkattest.errors import ContextError
from zkattest.hashing import PREFIX_CONTEXT, PREFIX_NONCE, hash_fields, sha3_bytes
from zkattest.provable import Bytes, Field, PublicKey

CONTEXT_TYPES = ("zk-app", "https")


@dataclass(frozen=True)
class ContextInput:
    type: str
    vk_hash: Field
    client_nonce: Field
    server_nonce: Field
    verifier_identity: Union[PublicKey, str]
    action: Union[Field, str]
    claims: Field


@dataclass(frozen=True)
class ContextOutput:
    type: str
    vk_hash: Field
    nonce: Field
    verifier_identity: Union[PublicKey, Bytes]
    action: Union[Field, Bytes]
    claims: Field


def compute_nonce(server_nonce: Field, client_nonce: Field) -> Field:
    return hash_fields([server_nonce, client_nonce], prefix=PREFIX_NONCE)


def compute_context(ctx: ContextInput) -> ContextOutput:
    if ctx.type == "zk-app":
        if not isinstance(ctx.verifier_identity, PublicKey) or not isinstance(ctx.action, Field):
            raise ContextError("zk-app context needs a PublicKey identity and a Field action")
        identity: Union[PublicKey, Bytes] = ctx.verifier_identity
        action: Union[Field, Bytes] = ctx.action
    elif ctx.type == "https":
        if not isinstance(ctx.verifier_identity, str) or not isinstance(ctx.action, str):
            raise ContextError("https context needs string identity and action")
        identity = sha3_bytes(ctx.verifier_identity)
        action = sha3_bytes(ctx.action)
    else:
        raise ContextError(f"Unknown context type: {ctx.type!r}")

    return ContextOutput(
        type=ctx.type,
        vk_hash=ctx.vk_hash,
        nonce=compute_nonce(ctx.server_nonce, ctx.client_nonce),
        verifier_identity=identity,
        action=action,
        claims=ctx.claims,
    )


def generate_context(ctx: ContextOutput) -> Field:
    fields: List[Field] = [ctx.vk_hash, ctx.nonce]
    fields.extend(ctx.verifier_identity.to_fields())
    fields.extend(ctx.action.to_fields())
    fields.append(ctx.claims)
    return hash_fields(fields, prefix=f"{PREFIX_CONTEXT}:{ctx.type}")
