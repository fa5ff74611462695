"""
zkattest Proving Backend

Compiles a program into a verification key and produces proofs that the
program ran to completion on a given public input, yielding a given public
output.

The backend in this module is a development backend. It executes the program
logic in Python and attests to the result with an Ed25519 signature under a
proving key that is derived deterministically from the program digest. The
verification key publishes the matching public key. This binds every proof to
one program, one public input and one public output, which is what the
attestation protocol relies on; it is NOT zero-knowledge and NOT sound against
a prover who holds the program. A SNARK backend replaces this module behind the
same `compile` / `run` / `verify_proof` contract.

Constraint failures inside a program raise `ConstraintUnsatisfiedError`, which
callers must pass through unmodified.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from zkattest.config import get_config
from zkattest.errors import ConstraintUnsatisfiedError, ProverError
from zkattest.hashing import PREFIX_PROOF, canonical_json_bytes, sha256_bytes
from zkattest.keys import b64url_encode, did_key_from_public_bytes, public_bytes_from_did_key, raw_public_bytes
from zkattest.provable import FIELD_MODULUS, Bool, Field, NestedType, check_type

logger = logging.getLogger(__name__)

__all__ = [
    "ConstraintUnsatisfiedError",
    "Proof",
    "ProverError",
    "VerificationKey",
    "ZkProgram",
    "assert_true",
    "verify_proof",
]


def assert_true(condition: Bool, message: str = "Assertion failed") -> None:
    """Constraint: `condition` must hold."""
    if not isinstance(condition, Bool):
        raise ProverError(f"Constraint must be a Bool, got {type(condition).__name__}")
    condition.assert_true(message)


# =============================================================================
# KEYS
# =============================================================================

@dataclass(frozen=True)
class VerificationKey:
    """
    Verification key for a compiled program.

    `data` is the canonical JSON description of the program (name, digest,
    public proving-key identity); `hash` commits to it inside the field.
    """
    data: str
    hash: Field

    @classmethod
    def from_data(cls, data: str) -> "VerificationKey":
        digest = hashlib.sha256(data.encode("utf-8")).digest()
        return cls(data=data, hash=Field(int.from_bytes(digest, "big") % FIELD_MODULUS))

    def _public_key(self) -> Ed25519PublicKey:
        return Ed25519PublicKey.from_public_bytes(public_bytes_from_did_key(json.loads(self.data)["key"]))

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "hash": str(self.hash.to_int())}


# =============================================================================
# PROOF
# =============================================================================

@dataclass(frozen=True)
class Proof:
    """
    A proof that a program accepted `public_input` and produced `public_output`.

    An empty `proof` is a placeholder emitted while proofs are disabled.
    """
    public_input: Any
    public_output: Any
    proof: bytes
    max_proofs_verified: int = 0

    def statement(self, vk_hash: Field) -> bytes:
        from zkattest.serialize_provable import serialize_provable

        content = {
            "prefix": PREFIX_PROOF,
            "vk": str(vk_hash.to_int()),
            "publicInput": serialize_provable(self.public_input),
            "publicOutput": serialize_provable(self.public_output),
        }
        return canonical_json_bytes(content)

    @property
    def digest(self) -> str:
        """Content-addressed identifier for the proof."""
        from zkattest.serialize_provable import serialize_provable

        content = {
            "publicInput": serialize_provable(self.public_input),
            "publicOutput": serialize_provable(self.public_output),
            "proof": b64url_encode(self.proof),
        }
        return sha256_bytes(canonical_json_bytes(content))


def verify_proof(proof: Proof, vk: VerificationKey) -> bool:
    """Verify a proof against a verification key."""
    if not proof.proof:
        ok = not get_config().prover.proofs_enabled.get()
        if not ok:
            logger.warning("Rejected placeholder proof while proofs are enabled")
        return ok
    try:
        vk._public_key().verify(proof.proof, proof.statement(vk.hash))
    except (InvalidSignature, ValueError, KeyError):
        return False
    return True


# =============================================================================
# PROGRAM
# =============================================================================

class ZkProgram:
    """
    A provable program with a typed public input and public output.

    `method(public_input, *private_inputs)` runs the program logic and returns
    the public output. It states constraints with `assert_true`.
    """

    def __init__(
        self,
        name: str,
        public_input_type: NestedType,
        public_output_type: NestedType,
        method: Callable[..., Any],
        digest: Optional[str] = None,
    ):
        self.name = name
        self.public_input_type = public_input_type
        self.public_output_type = public_output_type
        self.method = method
        self._digest = digest
        self._vk: Optional[VerificationKey] = None

    @property
    def digest(self) -> str:
        """Content-addressed identifier for the program."""
        if self._digest is None:
            from zkattest.serialize_provable import serialize_type

            content = {
                "name": self.name,
                "method": f"{getattr(self.method, '__module__', '')}.{getattr(self.method, '__qualname__', '')}",
                "publicInput": serialize_type(self.public_input_type),
                "publicOutput": serialize_type(self.public_output_type),
            }
            self._digest = sha256_bytes(canonical_json_bytes(content))
        return self._digest

    def _proving_key(self) -> Ed25519PrivateKey:
        seed = hashlib.sha256(f"{PREFIX_PROOF}:proving-key:{self.digest}".encode("utf-8")).digest()
        return Ed25519PrivateKey.from_private_bytes(seed)

    def compile(self) -> VerificationKey:
        """Compile the program. Memoized; repeated calls return the cached key."""
        if self._vk is None:
            key = did_key_from_public_bytes(raw_public_bytes(self._proving_key().public_key()))
            data = json.dumps(
                {"program": self.name, "digest": self.digest, "key": key},
                sort_keys=True,
                separators=(",", ":"),
            )
            self._vk = VerificationKey.from_data(data)
            logger.info("Compiled program %s", self.name, extra={"context": {"vk_hash": str(self._vk.hash)}})
        return self._vk

    def run(self, public_input: Any, *private_inputs: Any) -> Proof:
        """Execute the program and prove the execution."""
        vk = self.compile()
        check_type(public_input, self.public_input_type, key="publicInput")
        public_output = self.method(public_input, *private_inputs)
        check_type(public_output, self.public_output_type, key="publicOutput")

        proof = Proof(public_input=public_input, public_output=public_output, proof=b"")
        if get_config().prover.proofs_enabled.get():
            signature = self._proving_key().sign(proof.statement(vk.hash))
            proof = Proof(public_input=public_input, public_output=public_output, proof=signature)
        logger.debug("Proved program %s", self.name, extra={"context": {"proof_digest": proof.digest}})
        return proof

    def verify(self, proof: Proof) -> bool:
        return verify_proof(proof, self.compile())
