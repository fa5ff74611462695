"""
Imported credentials.

An imported credential is produced by a separate program whose public output
is the credential itself, `{"owner": PublicKey, "data": ...}`. The witness is
the nested proof together with the program's verification key.

Acceptance rule: the nested proof must verify against the verification key,
and `hash_credential(proof.public_output)` must equal the hash of the stored
credential. The issuer is the program (its vk hash) together with the nested
public input.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Optional

from zkattest.credential import Credential, CredentialSpec, StoredCredential, hash_credential
from zkattest.errors import CredentialVerificationError, SpecConstructionError
from zkattest.hashing import PREFIX_ISSUER_IMPORTED, hash_fields, hash_packed
from zkattest.prover import Proof, VerificationKey, ZkProgram, verify_proof
from zkattest.provable import Field, NestedType, PublicKey, Undefined, type_key, type_name, type_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportedWitness:
    vk: VerificationKey
    proof: Proof

    type: ClassVar[str] = "imported"


class Imported(CredentialSpec):
    credential_type: ClassVar[str] = "imported"

    def __init__(self, data: NestedType, public_input_type: NestedType = Undefined):
        super().__init__(data)
        self.public_input_type = public_input_type

    def verify(self, witness: ImportedWitness, cred_hash: Field) -> None:
        if not verify_proof(witness.proof, witness.vk):
            raise CredentialVerificationError("Invalid proof")
        if hash_credential(witness.proof.public_output) != cred_hash:
            raise CredentialVerificationError("Invalid proof output")

    def issuer(self, witness: ImportedWitness) -> Field:
        return hash_fields(
            [witness.vk.hash, hash_packed(witness.proof.public_input)],
            prefix=PREFIX_ISSUER_IMPORTED,
        )

    def matches_spec(self, witness: Any) -> bool:
        if not super().matches_spec(witness):
            return False
        return type_of(witness.proof.public_input) == self.public_input_type

    def __eq__(self, other: object) -> bool:
        return super().__eq__(other) and type_key(self.public_input_type) == type_key(other.public_input_type)  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((super().__hash__(), type_key(self.public_input_type)))

    def __repr__(self) -> str:
        return f"Imported({type_name(self.data)}, input={type_name(self.public_input_type)})"

    @staticmethod
    def from_program(program: ZkProgram) -> "ImportedProgram":
        return ImportedProgram(program)

    @staticmethod
    def from_method(
        name: str,
        data: NestedType,
        method: Callable[[Any, Any, PublicKey], Any],
        public_input: NestedType = Undefined,
    ) -> "ImportedProgram":
        """Wrap `method(public_input, private_input, owner) -> data` into a program.

        The resulting program outputs `{"owner": owner, "data": data}`; its
        `create` takes `(public_input, private_input, owner)`.
        """
        @functools.wraps(method)
        def wrapped(pub: Any, priv: Any, owner: PublicKey) -> Any:
            return {"owner": owner, "data": method(pub, priv, owner)}

        program = ZkProgram(name, public_input, {"owner": PublicKey, "data": data}, wrapped)
        return ImportedProgram(program)


class ImportedProgram:
    """A program whose proofs are importable as credentials."""

    def __init__(self, program: ZkProgram):
        output = program.public_output_type
        if not (isinstance(output, dict) and set(output) == {"owner", "data"} and output["owner"] is PublicKey):
            raise SpecConstructionError(
                f"Program {program.name!r} must output {{owner: PublicKey, data}}, got {type_name(output)}"
            )
        self.program = program
        self.spec = Imported(output["data"], program.public_input_type)
        self._vk: Optional[VerificationKey] = None

    def compile(self) -> VerificationKey:
        if self._vk is None:
            self._vk = self.program.compile()
        return self._vk

    def create(self, *inputs: Any) -> StoredCredential:
        """Run the program and store its proof as a credential."""
        vk = self.compile()
        proof = self.program.run(*inputs)
        return self.from_proof(proof, vk)

    def from_proof(self, proof: Proof, vk: VerificationKey, metadata: Any = None) -> StoredCredential:
        output = proof.public_output
        logger.info(
            "Imported credential from program %s",
            self.program.name,
            extra={"context": {"vk_hash": str(vk.hash)}},
        )
        return StoredCredential(
            witness=ImportedWitness(vk=vk, proof=proof),
            metadata=metadata,
            credential=Credential(owner=output["owner"], data=output["data"]),
        )
