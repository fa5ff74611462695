"""Error taxonomy for zkattest.

Every error raised by the attestation protocol derives from `AttestationError`.
None of them are recoverable inside the library: they abort the operation in
progress and carry enough context (input name, credential key) for the caller
to act on.

Errors raised by the proving backend (`ProverError`,
`ConstraintUnsatisfiedError`) are not `AttestationError`s; the exchange layer
passes them through unmodified.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional


class AttestationError(Exception):
    """Base exception for attestation protocol failures."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.message = message
        self.key = key
        super().__init__(f"{key}: {message}" if key else message)


class SpecConstructionError(AttestationError):
    """Spec authoring failed (reserved input name, malformed `issuer()` target)."""
    pass


class NodeEvaluationError(AttestationError):
    """A node could not be evaluated (missing key, operand type mismatch)."""
    pass


class CredentialVerificationError(AttestationError):
    """Credential witness did not verify (bad signature, bad nested proof, hash mismatch)."""
    pass


class OwnerMismatchError(AttestationError):
    """Supplied credentials disagree on their owner."""
    pass


class OwnerSignatureError(AttestationError):
    """Aggregated owner signature is invalid for the reconstructed message."""
    pass


class CredentialSelectionError(AttestationError):
    """Required credential inputs could not be filled from the supplied pool."""

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = list(missing)
        super().__init__(f"Missing credentials: {', '.join(self.missing)}")


class SpecIntegrityError(AttestationError):
    """Serialized payload failed its integrity check."""
    pass


class SchemaValidationError(SpecIntegrityError):
    """JSON payload does not conform to its schema."""

    def __init__(self, schema: str, errors: List[str]):
        self.schema = schema
        self.errors = errors
        super().__init__(f"{schema} validation failed: {'; '.join(errors)}")


class UnsupportedTypeError(AttestationError):
    """A value or type has no serialization or evaluation rule."""

    def __init__(self, message: str, value: Any = None, key: Optional[str] = None):
        self.value = value
        super().__init__(message, key=key)


class ContextError(AttestationError):
    """Wallet context is missing or does not match the request type."""
    pass


class PresentationVerificationError(AttestationError):
    """Presentation does not verify against the request and live context."""
    pass


class ProverError(Exception):
    """Failure inside the proving backend."""
    pass


class ConstraintUnsatisfiedError(ProverError):
    """A program constraint evaluated to false while proving."""
    pass
