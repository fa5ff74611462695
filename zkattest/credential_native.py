"""Native credentials: an issuer's Ed25519 signature over the credential hash."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar

from zkattest.credential import Credential, CredentialSpec, StoredCredential, hash_credential
from zkattest.errors import CredentialVerificationError
from zkattest.hashing import PREFIX_ISSUER_NATIVE, hash_fields
from zkattest.provable import Field, PrivateKey, PublicKey, Signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NativeWitness:
    issuer: PublicKey
    issuer_signature: Signature

    type: ClassVar[str] = "native"


class Native(CredentialSpec):
    credential_type: ClassVar[str] = "native"

    def verify(self, witness: NativeWitness, cred_hash: Field) -> None:
        if not witness.issuer_signature.verify(witness.issuer, [cred_hash]):
            raise CredentialVerificationError("Invalid signature")

    def issuer(self, witness: NativeWitness) -> Field:
        return native_issuer(witness.issuer)


def native_issuer(issuer: PublicKey) -> Field:
    """Issuer field of every credential signed by `issuer`.

    Policies compare `Operation.issuer(...)` against this to pin an issuer.
    """
    return hash_fields(issuer.to_fields(), prefix=PREFIX_ISSUER_NATIVE)


def create_native(issuer_key: PrivateKey, credential: Any, metadata: Any = None) -> StoredCredential:
    """Sign `credential` (a `Credential`, a `{"owner", "data"}` record or its JSON)."""
    if isinstance(credential, str):
        from zkattest.deserialize import credential_from_json

        credential = credential_from_json(credential)
    elif isinstance(credential, dict):
        credential = Credential(owner=credential["owner"], data=credential["data"])

    signature = Signature.create(issuer_key, [hash_credential(credential)])
    issuer = issuer_key.public_key()
    logger.info("Issued native credential", extra={"context": {"issuer": issuer.to_did()}})
    return StoredCredential(
        witness=NativeWitness(issuer=issuer, issuer_signature=signature),
        metadata=metadata,
        credential=credential,
    )
