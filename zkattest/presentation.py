"""
zkattest Presentation Exchange

A verifier authors a `Spec`, wraps it with concrete claims and a context rule
into a `PresentationRequest`, and sends it to the owner's wallet. The wallet
answers with a `Presentation`: a proof that the spec's assertion held for
credentials the owner holds, bound to a fresh client nonce.

    SpecDefined -> Compiled -> Requested -> Created -> Verified

Request kinds:

    no-context   context = Field(0); the presentation can be replayed anywhere
    zk-app       bound to a verifier PublicKey and a Field action
    https        bound to a verifier origin and an action string

Any failure aborts the whole operation; nothing is partially disclosed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import cached_property
from typing import Any, Dict, List, Optional, Sequence, Union

from zkattest.config import get_config
from zkattest.context import ContextInput, compute_context, generate_context
from zkattest.credential import CredentialInput, CredentialSpec, StoredCredential, sign_credentials
from zkattest.errors import ContextError, CredentialSelectionError, PresentationVerificationError
from zkattest.hashing import canonical_hash
from zkattest.observability import timed_operation
from zkattest.program import Program
from zkattest.program_spec import Spec
from zkattest.prover import Proof, VerificationKey, verify_proof
from zkattest.provable import Field, PrivateKey, PublicKey, check_type

logger = logging.getLogger(__name__)

PRESENTATION_VERSION = "v0"
REQUEST_TYPES = ("no-context", "zk-app", "https")


# =============================================================================
# CONTEXTS
# =============================================================================

@dataclass(frozen=True)
class ZkAppInputContext:
    """Verifier-chosen part of a zk-app context."""
    action: Field
    server_nonce: Field = field(default_factory=Field.random)

    type = "zk-app"


@dataclass(frozen=True)
class HttpsInputContext:
    """Verifier-chosen part of an https context."""
    action: str
    server_nonce: Field = field(default_factory=Field.random)

    type = "https"


@dataclass(frozen=True)
class ZkAppWalletContext:
    """Verifier identity as seen by the wallet: the verifier's zk-app address."""
    verifier_identity: PublicKey


@dataclass(frozen=True)
class HttpsWalletContext:
    """Verifier identity as seen by the wallet: the origin, e.g. `https://example.com`."""
    verifier_identity: str


InputContext = Union[ZkAppInputContext, HttpsInputContext]
WalletContext = Union[ZkAppWalletContext, HttpsWalletContext]


# =============================================================================
# REQUESTS
# =============================================================================

@dataclass(frozen=True, eq=False)
class PresentationRequest:
    """A spec plus concrete claim values plus a context-derivation rule."""
    type: str
    spec: Spec
    claims: Dict[str, Any]
    input_context: Optional[InputContext] = None

    def __post_init__(self):
        if self.type not in REQUEST_TYPES:
            raise ContextError(f"Unknown request type: {self.type!r}")
        if self.type == "no-context":
            if self.input_context is not None:
                raise ContextError("no-context requests carry no input context")
        elif getattr(self.input_context, "type", None) != self.type:
            raise ContextError(f"{self.type} request needs a matching input context")
        check_type(self.claims, self.spec.claims_type(), key="claims")

    @classmethod
    def no_context(cls, spec: Spec, claims: Dict[str, Any]) -> "PresentationRequest":
        return cls(type="no-context", spec=spec, claims=claims)

    @classmethod
    def zk_app(cls, spec: Spec, claims: Dict[str, Any], context: ZkAppInputContext) -> "PresentationRequest":
        return cls(type="zk-app", spec=spec, claims=claims, input_context=context)

    @classmethod
    def https(cls, spec: Spec, claims: Dict[str, Any], context: HttpsInputContext) -> "PresentationRequest":
        return cls(type="https", spec=spec, claims=claims, input_context=context)

    @cached_property
    def program(self) -> Program:
        return Program(self.spec)

    def derive_context(
        self,
        wallet_context: Optional[WalletContext],
        client_nonce: Field,
        vk_hash: Field,
        claims_hash: Field,
    ) -> Field:
        if self.type == "no-context":
            return Field(0)
        expected = ZkAppWalletContext if self.type == "zk-app" else HttpsWalletContext
        if not isinstance(wallet_context, expected):
            raise ContextError(f"{self.type} request needs a {expected.__name__}")
        return generate_context(compute_context(ContextInput(
            type=self.type,
            vk_hash=vk_hash,
            client_nonce=client_nonce,
            server_nonce=self.input_context.server_nonce,
            verifier_identity=wallet_context.verifier_identity,
            action=self.input_context.action,
            claims=claims_hash,
        )))

    def to_json(self) -> str:
        from zkattest.serialize import request_to_json

        return request_to_json(self)

    @staticmethod
    def from_json(text: str) -> "PresentationRequest":
        from zkattest.deserialize import request_from_json

        return request_from_json(text)


# =============================================================================
# CREDENTIAL PICKING
# =============================================================================

def pick_credentials(
    required: Sequence[str],
    pool: Sequence[StoredCredential],
    specs: Optional[Dict[str, CredentialSpec]] = None,
) -> Dict[str, StoredCredential]:
    """
    Assign stored credentials to required input names.

    Credentials tagged with a `key` are matched to that name first. Remaining
    names are then filled in order from the untagged rest of the pool. When
    `specs` is given, a credential is only eligible for a name whose spec
    accepts its witness.

    Raises CredentialSelectionError listing every name left unfilled.
    """
    remaining: List[StoredCredential] = list(pool)
    picked: Dict[str, StoredCredential] = {}

    def fits(name: str, stored: StoredCredential) -> bool:
        return specs is None or specs[name].matches_spec(stored.witness)

    def take(name: str, wanted_key: Optional[str]) -> None:
        for i, stored in enumerate(remaining):
            if stored.key == wanted_key and fits(name, stored):
                picked[name] = remaining.pop(i)
                return

    for name in required:
        take(name, name)
    for name in required:
        if name not in picked:
            take(name, None)

    missing = [name for name in required if name not in picked]
    if missing:
        raise CredentialSelectionError(missing)
    return {name: picked[name] for name in required}


# =============================================================================
# REPLAY PROTECTION
# =============================================================================

class NonceRegistry:
    """
    Registry of client nonces a verifier has accepted.

    Entries expire after `max_age_hours`, after which the registry forgets
    them; verifiers should not accept presentations older than that.
    """

    def __init__(self, max_age_hours: Optional[int] = None):
        if max_age_hours is None:
            max_age_hours = get_config().exchange.nonce_ttl_hours.get()
        self._nonces: Dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._max_age = timedelta(hours=max_age_hours)

    def check_and_register(self, nonce: str) -> bool:
        """
        Check if nonce is fresh and register it.

        Returns False if the nonce was already used.
        """
        with self._lock:
            self._cleanup()
            if nonce in self._nonces:
                return False
            self._nonces[nonce] = datetime.now(timezone.utc)
            return True

    def is_fresh(self, nonce: str) -> bool:
        with self._lock:
            return nonce not in self._nonces

    def _cleanup(self) -> None:
        cutoff = datetime.now(timezone.utc) - self._max_age
        expired = [n for n, t in self._nonces.items() if t < cutoff]
        for nonce in expired:
            del self._nonces[nonce]

    def size(self) -> int:
        with self._lock:
            return len(self._nonces)


# =============================================================================
# PRESENTATIONS
# =============================================================================

@dataclass(frozen=True)
class Presentation:
    """The owner's response to a request."""
    claims: Dict[str, Any]
    output_claim: Any
    client_nonce: Field
    proof: Proof
    version: str = PRESENTATION_VERSION

    @staticmethod
    def compile(request: PresentationRequest) -> VerificationKey:
        """Compile the request's program. Memoized per request."""
        return request.program.compile()

    @staticmethod
    @timed_operation(logger, "presentation.create")
    def create(
        owner_key: PrivateKey,
        request: PresentationRequest,
        credentials: Sequence[StoredCredential],
        context: Optional[WalletContext] = None,
    ) -> "Presentation":
        vk = Presentation.compile(request)
        client_nonce = Field.random()
        ctx = request.derive_context(context, client_nonce, vk.hash, canonical_hash(request.claims))

        specs = dict(request.spec.credential_inputs())
        selected = pick_credentials(list(specs), credentials, specs)
        inputs = {
            name: CredentialInput(spec=specs[name], credential=stored.credential, witness=stored.witness)
            for name, stored in selected.items()
        }

        owner_signature = sign_credentials(owner_key, ctx, list(inputs.values()))
        proof = request.program.run(ctx, request.claims, owner_signature, inputs)

        logger.info(
            "Created presentation",
            extra={"context": {"request_type": request.type, "credentials": list(inputs), "vk_hash": str(vk.hash)}},
        )
        return Presentation(
            claims=request.claims,
            output_claim=proof.public_output,
            client_nonce=client_nonce,
            proof=proof,
        )

    @staticmethod
    @timed_operation(logger, "presentation.verify")
    def verify(
        request: PresentationRequest,
        presentation: "Presentation",
        context: Optional[WalletContext] = None,
        nonce_registry: Optional[NonceRegistry] = None,
    ) -> Any:
        """
        Verify a presentation against the request it answers.

        `context` is the verifier's own view of its identity. Returns the
        disclosed output claim.
        """
        if presentation.version != PRESENTATION_VERSION:
            raise PresentationVerificationError(f"Unsupported presentation version: {presentation.version!r}")

        claims_hash = canonical_hash(presentation.claims)
        if claims_hash != canonical_hash(request.claims):
            raise PresentationVerificationError("Presentation claims differ from the requested claims")

        vk = Presentation.compile(request)
        ctx = request.derive_context(context, presentation.client_nonce, vk.hash, claims_hash)

        proof = presentation.proof
        expected_input = {"context": ctx, "claims": presentation.claims}
        if canonical_hash(proof.public_input) != canonical_hash(expected_input):
            raise PresentationVerificationError("Proof is bound to a different context or claims")
        if canonical_hash(proof.public_output) != canonical_hash(presentation.output_claim):
            raise PresentationVerificationError("Proof output differs from the presented output claim")
        if not verify_proof(proof, vk):
            raise PresentationVerificationError("Invalid proof")

        if nonce_registry is not None and not nonce_registry.check_and_register(str(presentation.client_nonce)):
            logger.warning(
                "Rejected reused client nonce",
                extra={"context": {"client_nonce": str(presentation.client_nonce)}},
            )
            raise PresentationVerificationError("Client nonce was already used")

        logger.info("Verified presentation", extra={"context": {"request_type": request.type}})
        return presentation.output_claim

    def to_json(self) -> str:
        from zkattest.serialize import presentation_to_json

        return presentation_to_json(self)

    @staticmethod
    def from_json(text: str) -> "Presentation":
        from zkattest.deserialize import presentation_from_json

        return presentation_from_json(text)
