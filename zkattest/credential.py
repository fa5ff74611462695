"""
zkattest Credential Model

A credential is owner-bound structured data plus a witness proving that some
authority vouches for it. The authority is abstracted by `CredentialSpec`,
which has one subclass per credential kind:

    Native     issuer signature over the credential hash
    Imported   nested proof whose public output is the credential
    Unsigned   no authority; used in tests and provenance-free policies

Every kind implements the same contract: `verify` (in-program),
`verify_outside_circuit` (plain), `issuer` and `matches_spec`. The two verify
methods accept exactly the same witnesses.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

from zkattest.errors import CredentialVerificationError, OwnerMismatchError, OwnerSignatureError
from zkattest.hashing import PREFIX_CREDENTIAL, canonical_hash, hash_fields
from zkattest.provable import (
    Field,
    NestedType,
    PrivateKey,
    PublicKey,
    Signature,
    check_type,
    type_of,
    type_key,
    type_name,
)

logger = logging.getLogger(__name__)

CREDENTIAL_VERSION = "v0"


# =============================================================================
# CREDENTIALS
# =============================================================================

@dataclass(frozen=True)
class Credential:
    """The disclosed content: structured `data` bound to an `owner`."""
    owner: PublicKey
    data: Any

    def to_value(self) -> Dict[str, Any]:
        return {"owner": self.owner, "data": self.data}

    # -- issuance and storage --------------------------------------------------

    @staticmethod
    def sign(
        issuer_key: PrivateKey,
        credential: "Credential",
        metadata: Any = None,
    ) -> "StoredCredential":
        """Issue a native (signature-backed) credential."""
        from zkattest.credential_native import create_native

        return create_native(issuer_key, credential, metadata)

    @staticmethod
    def unsigned(data: Any, owner: Optional[PublicKey] = None) -> "StoredCredential":
        """Dummy credential with no issuer signature."""
        return StoredCredential(
            witness=UnsignedWitness(),
            metadata=None,
            credential=Credential(owner=owner or unsafe_missing_owner(), data=data),
        )

    @staticmethod
    def validate(stored: "StoredCredential", spec: Optional["CredentialSpec"] = None) -> None:
        """Verify a stored credential outside of any program.

        Without `spec`, the spec is inferred from the witness kind and the
        credential's data.
        """
        spec = spec or spec_for_stored(stored)
        if not spec.matches_spec(stored.witness):
            raise CredentialVerificationError(
                f"Witness of kind {stored.witness.type!r} does not match {spec.credential_type!r} spec"
            )
        check_type(stored.credential.data, spec.data, key="data")
        spec.verify_outside_circuit(stored.witness, hash_credential(stored.credential))

    @staticmethod
    def to_json(stored: "StoredCredential") -> str:
        from zkattest.serialize import stored_credential_to_json

        return stored_credential_to_json(stored)

    @staticmethod
    def from_json(text: str) -> "StoredCredential":
        from zkattest.deserialize import stored_credential_from_json

        return stored_credential_from_json(text)


@dataclass(frozen=True)
class UnsignedWitness:
    type: ClassVar[str] = "unsigned"


@dataclass(frozen=True)
class StoredCredential:
    """Persisted form of a credential. Immutable once created."""
    witness: Any
    metadata: Any
    credential: Credential
    version: str = CREDENTIAL_VERSION
    key: Optional[str] = field(default=None, compare=False)

    def with_key(self, key: str) -> "StoredCredential":
        """Tag the credential for a specific spec input when presenting."""
        return StoredCredential(
            witness=self.witness,
            metadata=self.metadata,
            credential=self.credential,
            version=self.version,
            key=key,
        )


def unsafe_missing_owner() -> PublicKey:
    """Placeholder owner for unsigned credentials. Its private key is public."""
    return missing_owner_key().public_key()


def missing_owner_key() -> PrivateKey:
    return PrivateKey.from_bytes(hashlib.sha256(b"zkattest:v0:missing-owner").digest())


def hash_credential(credential: Any) -> Field:
    """H_credential(H(owner fields), canonical_hash(data)).

    Accepts a `Credential` or a `{"owner", "data"}` record (the public output
    of an importing program).
    """
    if isinstance(credential, Credential):
        owner, data = credential.owner, credential.data
    else:
        owner, data = credential["owner"], credential["data"]
    return hash_fields([hash_fields(owner.to_fields()), canonical_hash(data)], prefix=PREFIX_CREDENTIAL)


# =============================================================================
# CREDENTIAL SPECS
# =============================================================================

class CredentialSpec(ABC):
    """Type-level description of a credential kind with data of type `data`."""

    credential_type: ClassVar[str] = ""

    def __init__(self, data: NestedType):
        self.data = data

    @abstractmethod
    def verify(self, witness: Any, cred_hash: Field) -> None:
        """In-program check. Raises `CredentialVerificationError`."""

    def verify_outside_circuit(self, witness: Any, cred_hash: Field) -> None:
        self.verify(witness, cred_hash)

    @abstractmethod
    def issuer(self, witness: Any) -> Field:
        """Field committing to whoever vouches for the credential."""

    def matches_spec(self, witness: Any) -> bool:
        return getattr(witness, "type", None) == self.credential_type

    def credential_value_type(self) -> "CredentialValueType":
        return CredentialValueType(self.data)

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and type_key(self.data) == type_key(other.data)  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), type_key(self.data)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({type_name(self.data)})"


class Unsigned(CredentialSpec):
    credential_type: ClassVar[str] = "unsigned"

    def verify(self, witness: Any, cred_hash: Field) -> None:
        return None

    def issuer(self, witness: Any) -> Field:
        return Field(0)


def spec_for_stored(stored: StoredCredential) -> CredentialSpec:
    """Infer the credential spec that a stored credential was created under."""
    from zkattest.credential_imported import Imported
    from zkattest.credential_native import Native

    data_type = type_of(stored.credential.data)
    kind = getattr(stored.witness, "type", None)
    if kind == "native":
        return Native(data_type)
    if kind == "imported":
        return Imported(data_type, type_of(stored.witness.proof.public_input))
    if kind == "unsigned":
        return Unsigned(data_type)
    raise CredentialVerificationError(f"Unknown witness kind: {kind!r}")


# =============================================================================
# PROGRAM-SIDE VALUES
# =============================================================================

@dataclass(frozen=True, eq=True)
class CredentialValueType:
    """Type of a credential input inside a program environment."""
    data: Any

    def property_type(self, key: str) -> Any:
        return {"owner": PublicKey, "data": self.data}.get(key)

    def __hash__(self) -> int:
        return hash(("credential", type_key(self.data)))


@dataclass(frozen=True)
class CredentialValue:
    """A verified credential input: the credential, its issuer and its witness."""
    credential: Credential
    issuer: Field
    witness: Any

    def nested_type(self) -> CredentialValueType:
        return CredentialValueType(type_of(self.credential.data))

    def property(self, key: str) -> Any:
        return self.credential.to_value().get(key)


@dataclass(frozen=True)
class CredentialInput:
    """One credential entering a program, paired with the spec it is checked under."""
    spec: CredentialSpec
    credential: Credential
    witness: Any


def _message(context: Field, hashes: Sequence[Field], issuers: Sequence[Field]) -> List[Field]:
    fields = [context]
    for h, i in zip(hashes, issuers):
        fields.extend([h, i])
    return fields


def sign_credentials(
    owner_key: PrivateKey,
    context: Field,
    credentials: Sequence[CredentialInput],
) -> Signature:
    """Owner signature over [context, hash_1, issuer_1, hash_2, issuer_2, ...]."""
    hashes = [hash_credential(c.credential) for c in credentials]
    issuers = [c.spec.issuer(c.witness) for c in credentials]
    return Signature.create(owner_key, _message(context, hashes, issuers))


def verify_credentials(
    context: Field,
    owner_signature: Signature,
    credentials: Dict[str, CredentialInput],
) -> Tuple[PublicKey, Dict[str, CredentialValue]]:
    """In-program credential checks.

    Verifies each credential under its own spec, checks that all of them share
    one owner and verifies the owner signature. Returns the owner and the
    credential values the policy sees.
    """
    hashes: List[Field] = []
    issuers: List[Field] = []
    for name, c in credentials.items():
        if not c.spec.matches_spec(c.witness):
            raise CredentialVerificationError(
                f"Witness of kind {getattr(c.witness, 'type', None)!r} does not match {c.spec!r}", key=name
            )
        check_type(c.credential.data, c.spec.data, key=name)
        cred_hash = hash_credential(c.credential)
        try:
            c.spec.verify(c.witness, cred_hash)
        except CredentialVerificationError as ex:
            raise CredentialVerificationError(ex.message, key=name) from ex
        hashes.append(cred_hash)
        issuers.append(c.spec.issuer(c.witness))

    owner: Optional[PublicKey] = None
    for name, c in credentials.items():
        if owner is None:
            owner = c.credential.owner
        elif c.credential.owner != owner:
            raise OwnerMismatchError("Credentials have different owners", key=name)

    if owner is not None:
        ok = owner_signature.verify(owner, _message(context, hashes, issuers))
        if not ok:
            raise OwnerSignatureError("Invalid owner signature")
    else:
        owner = PublicKey.empty()

    values = {
        name: CredentialValue(credential=c.credential, issuer=issuer, witness=c.witness)
        for (name, c), issuer in zip(credentials.items(), issuers)
    }
    logger.debug("Verified %d credential(s)", len(values), extra={"context": {"inputs": list(values)}})
    return owner, values
