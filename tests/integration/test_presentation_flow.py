"""
Integration Test: Presentation Exchange

End-to-end flows from credential issuance through request, presentation
creation and verification, including the binding of presentations to their
context, claims and nonces.
"""

import json
from dataclasses import replace

import pytest

from zkattest.config import get_config_manager
from zkattest.credential import Credential
from zkattest.credential_imported import Imported
from zkattest.credential_native import Native
from zkattest.errors import (
    ConstraintUnsatisfiedError,
    ContextError,
    CredentialSelectionError,
    CredentialVerificationError,
    OwnerMismatchError,
    OwnerSignatureError,
    PresentationVerificationError,
    UnsupportedTypeError,
)
from zkattest.hashing import hash_with_prefix
from zkattest.operation import Operation as O
from zkattest.presentation import (
    HttpsInputContext,
    HttpsWalletContext,
    NonceRegistry,
    Presentation,
    PresentationRequest,
    ZkAppInputContext,
    ZkAppWalletContext,
)
from zkattest.program_spec import Claim, Constant, Spec
from zkattest.provable import Bytes, Field, PrivateKey, PublicKey, UInt32

Name = Bytes.sized(16)


def _age_spec() -> Spec:
    return Spec(
        {
            "signedData": Native({"age": UInt32, "name": Name}),
            "targetAge": Claim(UInt32),
            "targetName": Constant(Name, Name.from_string("Alice")),
        },
        lambda h: {
            "assert": [
                O.equals(O.property(h["signedData"], "age"), h["targetAge"]),
                O.equals(O.property(h["signedData"], "name"), h["targetName"]),
            ],
            "output_claim": O.property(h["signedData"], "age"),
        },
    )


def _passport(issuer_key, owner_key, age: int = 18, name: str = "Alice"):
    data = {"age": UInt32(age), "name": Name.from_string(name)}
    return Credential.sign(issuer_key, Credential(owner=owner_key.public_key(), data=data))


def _https_request(action: str = "POST /verify") -> PresentationRequest:
    return PresentationRequest.https(_age_spec(), {"targetAge": UInt32(18)}, HttpsInputContext(action=action))


class TestNoContextFlow:
    """Requests without context binding."""

    def test_matching_credential_is_disclosed(self, issuer_key, owner_key):
        """A matching credential yields a presentation whose output is the age."""
        request = PresentationRequest.no_context(_age_spec(), {"targetAge": UInt32(18)})
        presentation = Presentation.create(owner_key, request, [_passport(issuer_key, owner_key)])

        assert presentation.output_claim == UInt32(18)
        assert presentation.proof.public_input["context"] == Field(0)
        assert Presentation.verify(request, presentation) == UInt32(18)

    def test_failing_assertion_aborts_creation(self, issuer_key, owner_key):
        """An age that differs from the claimed target fails inside the program."""
        request = PresentationRequest.no_context(_age_spec(), {"targetAge": UInt32(18)})
        with pytest.raises(ConstraintUnsatisfiedError):
            Presentation.create(owner_key, request, [_passport(issuer_key, owner_key, age=20)])

    def test_wrong_name_aborts_creation(self, issuer_key, owner_key):
        request = PresentationRequest.no_context(_age_spec(), {"targetAge": UInt32(18)})
        with pytest.raises(ConstraintUnsatisfiedError):
            Presentation.create(owner_key, request, [_passport(issuer_key, owner_key, name="Bob")])

    def test_credential_of_another_owner_is_rejected(self, issuer_key, owner_key):
        """The owner signature must come from the credential's owner."""
        request = PresentationRequest.no_context(_age_spec(), {"targetAge": UInt32(18)})
        stranger = PrivateKey.generate()
        with pytest.raises(OwnerSignatureError):
            Presentation.create(stranger, request, [_passport(issuer_key, owner_key)])

    def test_tampered_credential_fails_at_creation(self, issuer_key, owner_key):
        stored = _passport(issuer_key, owner_key, age=20)
        forged = replace(
            stored,
            credential=Credential(owner=stored.credential.owner, data={"age": UInt32(18), "name": Name.from_string("Alice")}),
        )
        request = PresentationRequest.no_context(_age_spec(), {"targetAge": UInt32(18)})
        with pytest.raises(CredentialVerificationError, match="Invalid signature"):
            Presentation.create(owner_key, request, [forged])

    def test_hash_output_with_long_prefix(self, issuer_key, owner_key):
        """Prefixes longer than a hash block are accepted and bound into the output."""
        prefix = "x" * 65
        spec = Spec({"c": Native({"v": UInt32})}, lambda h: {"output_claim": O.hash(O.property(h["c"], "v"), prefix=prefix)})
        stored = Credential.sign(issuer_key, Credential(owner=owner_key.public_key(), data={"v": UInt32(5)}))
        request = PresentationRequest.no_context(spec, {})
        presentation = Presentation.create(owner_key, request, [stored])

        assert Presentation.verify(request, presentation) == hash_with_prefix(prefix, [UInt32(5)])

    def test_missing_credential_is_reported(self, owner_key):
        request = PresentationRequest.no_context(_age_spec(), {"targetAge": UInt32(18)})
        with pytest.raises(CredentialSelectionError) as exc:
            Presentation.create(owner_key, request, [])
        assert exc.value.missing == ["signedData"]


class TestHttpsFlow:
    """Requests bound to a web origin and action."""

    def test_same_origin_verifies(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        assert presentation.proof.public_input["context"] != Field(0)
        result = Presentation.verify(request, presentation, HttpsWalletContext("https://a.com"))
        assert result == UInt32(18)

    def test_other_origin_is_rejected(self, issuer_key, owner_key):
        """A presentation made for a.com does not verify at b.com."""
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        with pytest.raises(PresentationVerificationError, match="different context"):
            Presentation.verify(request, presentation, HttpsWalletContext("https://b.com"))

    def test_other_action_is_rejected(self, issuer_key, owner_key):
        request = _https_request("POST /verify")
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        other = PresentationRequest.https(
            request.spec,
            request.claims,
            HttpsInputContext(action="POST /transfer", server_nonce=request.input_context.server_nonce),
        )
        with pytest.raises(PresentationVerificationError, match="different context"):
            Presentation.verify(other, presentation, HttpsWalletContext("https://a.com"))

    def test_other_server_nonce_is_rejected(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        fresh = replace(request, input_context=HttpsInputContext(action=request.input_context.action))
        with pytest.raises(PresentationVerificationError, match="different context"):
            Presentation.verify(fresh, presentation, HttpsWalletContext("https://a.com"))

    def test_swapped_client_nonce_is_rejected(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        tampered = replace(presentation, client_nonce=Field.random())
        with pytest.raises(PresentationVerificationError, match="different context"):
            Presentation.verify(request, tampered, HttpsWalletContext("https://a.com"))

    def test_changed_claims_are_rejected(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        tampered = replace(presentation, claims={"targetAge": UInt32(21)})
        with pytest.raises(PresentationVerificationError, match="claims differ"):
            Presentation.verify(request, tampered, HttpsWalletContext("https://a.com"))

        other_request = replace(request, claims={"targetAge": UInt32(21)})
        with pytest.raises(PresentationVerificationError, match="different context"):
            Presentation.verify(other_request, tampered, HttpsWalletContext("https://a.com"))

    def test_changed_output_claim_is_rejected(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        tampered = replace(presentation, output_claim=UInt32(99))
        with pytest.raises(PresentationVerificationError, match="output differs"):
            Presentation.verify(request, tampered, HttpsWalletContext("https://a.com"))

    def test_forged_proof_output_is_rejected(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        forged = replace(presentation.proof, public_output=UInt32(99))
        tampered = replace(presentation, proof=forged, output_claim=UInt32(99))
        with pytest.raises(PresentationVerificationError, match="Invalid proof"):
            Presentation.verify(request, tampered, HttpsWalletContext("https://a.com"))

    def test_wallet_context_is_required(self, issuer_key, owner_key):
        with pytest.raises(ContextError):
            Presentation.create(owner_key, _https_request(), [_passport(issuer_key, owner_key)])


class TestZkAppFlow:
    """Requests bound to a verifier public key and a field action."""

    def test_zk_app_roundtrip(self, issuer_key, owner_key):
        verifier = PrivateKey.generate().public_key()
        request = PresentationRequest.zk_app(
            _age_spec(), {"targetAge": UInt32(18)}, ZkAppInputContext(action=Field(7))
        )
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], ZkAppWalletContext(verifier)
        )
        assert Presentation.verify(request, presentation, ZkAppWalletContext(verifier)) == UInt32(18)

        impostor = PrivateKey.generate().public_key()
        with pytest.raises(PresentationVerificationError):
            Presentation.verify(request, presentation, ZkAppWalletContext(impostor))

    def test_request_type_must_match_context(self):
        with pytest.raises(ContextError):
            PresentationRequest(type="zk-app", spec=_age_spec(), claims={"targetAge": UInt32(18)},
                                input_context=HttpsInputContext(action="x"))
        with pytest.raises(ContextError):
            PresentationRequest(type="no-context", spec=_age_spec(), claims={"targetAge": UInt32(18)},
                                input_context=ZkAppInputContext(action=Field(1)))


class TestMultipleCredentials:
    """Specs over more than one credential."""

    def _spec(self) -> Spec:
        return Spec(
            {
                "passport": Native({"age": UInt32, "name": Name}),
                "membership": Native({"level": UInt32}),
                "minLevel": Claim(UInt32),
            },
            lambda h: {
                "assert": O.less_than_eq(h["minLevel"], O.property(h["membership"], "level")),
                "output_claim": O.record(
                    owner=O.owner,
                    name=O.property(h["passport"], "name"),
                    level=O.property(h["membership"], "level"),
                ),
            },
        )

    def _membership(self, issuer_key, owner_key, level: int = 3):
        return Credential.sign(issuer_key, Credential(owner=owner_key.public_key(), data={"level": UInt32(level)}))

    def test_keyed_credentials_are_matched_by_name(self, issuer_key, owner_key):
        request = PresentationRequest.no_context(self._spec(), {"minLevel": UInt32(2)})
        pool = [
            self._membership(issuer_key, owner_key).with_key("membership"),
            _passport(issuer_key, owner_key).with_key("passport"),
        ]
        presentation = Presentation.create(owner_key, request, pool)
        output = Presentation.verify(request, presentation)
        assert output["owner"] == owner_key.public_key()
        assert output["level"] == UInt32(3)
        assert output["name"].to_string() == "Alice"

    def test_untagged_credentials_are_matched_by_kind(self, issuer_key, owner_key):
        """Without keys, native credentials fill native inputs in pool order."""
        spec = Spec(
            {"a": Native({"level": UInt32}), "b": Native({"level": UInt32})},
            lambda h: {"output_claim": O.add(O.property(h["a"], "level"), O.property(h["b"], "level"))},
        )
        request = PresentationRequest.no_context(spec, {})
        pool = [self._membership(issuer_key, owner_key, 1), self._membership(issuer_key, owner_key, 2)]
        presentation = Presentation.create(owner_key, request, pool)
        assert Presentation.verify(request, presentation) == UInt32(3)

    def test_credentials_of_two_owners_are_rejected(self, issuer_key, owner_key):
        request = PresentationRequest.no_context(self._spec(), {"minLevel": UInt32(2)})
        pool = [
            _passport(issuer_key, owner_key).with_key("passport"),
            self._membership(issuer_key, PrivateKey.generate()).with_key("membership"),
        ]
        with pytest.raises(OwnerMismatchError):
            Presentation.create(owner_key, request, pool)


class TestImportedCredentialFlow:
    """Imported credentials inside a presentation, with the issuer pinned."""

    def test_imported_credential_with_pinned_issuer(self, owner_key):
        def method(birth_year: UInt32, secret: Field, owner: PublicKey):
            return {"age": UInt32(2026).sub(birth_year)}

        program = Imported.from_method("age-oracle", {"age": UInt32}, method, public_input=UInt32)
        stored = program.create(UInt32(2000), Field(3), owner_key.public_key())
        issuer = program.spec.issuer(stored.witness)

        spec = Spec(
            {"cred": program.spec, "trusted": Constant(Field, issuer), "minAge": Claim(UInt32)},
            lambda h: {
                "assert": [
                    O.equals(O.issuer(h["cred"]), h["trusted"]),
                    O.less_than_eq(h["minAge"], O.property(h["cred"], "age")),
                ],
                "output_claim": O.hash(O.owner, prefix="nullifier"),
            },
        )
        request = PresentationRequest.no_context(spec, {"minAge": UInt32(18)})
        presentation = Presentation.create(owner_key, request, [stored])
        assert isinstance(Presentation.verify(request, presentation), Field)

        other = program.create(UInt32(1990), Field(3), owner_key.public_key())
        with pytest.raises(ConstraintUnsatisfiedError):
            Presentation.create(owner_key, request, [other])


class TestReplayProtection:
    """Verifier-side nonce registry."""

    def test_reused_client_nonce_is_rejected(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        registry = NonceRegistry(max_age_hours=1)
        Presentation.verify(request, presentation, HttpsWalletContext("https://a.com"), nonce_registry=registry)
        assert registry.size() == 1
        with pytest.raises(PresentationVerificationError, match="already used"):
            Presentation.verify(request, presentation, HttpsWalletContext("https://a.com"), nonce_registry=registry)

    def test_rejected_presentation_does_not_consume_nonce(self, issuer_key, owner_key):
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        registry = NonceRegistry(max_age_hours=1)
        with pytest.raises(PresentationVerificationError):
            Presentation.verify(request, presentation, HttpsWalletContext("https://b.com"), nonce_registry=registry)
        assert registry.size() == 0
        Presentation.verify(request, presentation, HttpsWalletContext("https://a.com"), nonce_registry=registry)


class TestDisabledProofs:
    """Development mode with proof generation switched off."""

    def test_placeholder_proofs_verify_only_while_disabled(self, issuer_key, owner_key):
        get_config_manager().set("prover.proofs_enabled", False)
        request = PresentationRequest.no_context(_age_spec(), {"targetAge": UInt32(18)})
        presentation = Presentation.create(owner_key, request, [_passport(issuer_key, owner_key)])
        assert presentation.proof.proof == b""
        assert Presentation.verify(request, presentation) == UInt32(18)

        get_config_manager().set("prover.proofs_enabled", True)
        with pytest.raises(PresentationVerificationError, match="Invalid proof"):
            Presentation.verify(request, presentation)


class TestSerializedExchange:
    """Requests and presentations crossing the wire as JSON."""

    def test_request_and_presentation_survive_json(self, issuer_key, owner_key):
        request = _https_request()
        wire_request = PresentationRequest.from_json(request.to_json())
        assert wire_request.to_json() == request.to_json()

        presentation = Presentation.create(
            owner_key, wire_request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        wire_presentation = Presentation.from_json(presentation.to_json())
        assert wire_presentation == presentation
        assert Presentation.verify(request, wire_presentation, HttpsWalletContext("https://a.com")) == UInt32(18)

    @pytest.mark.parametrize("validate_schemas", [True, False])
    def test_smuggled_proof_member_is_rejected(self, issuer_key, owner_key, validate_schemas):
        """Extra members inside a typed value are never dropped on load."""
        request = _https_request()
        presentation = Presentation.create(
            owner_key, request, [_passport(issuer_key, owner_key)], HttpsWalletContext("https://a.com")
        )
        obj = json.loads(presentation.to_json())
        obj["proof"]["value"]["smuggled"] = "x"
        get_config_manager().set("exchange.validate_schemas", validate_schemas)
        with pytest.raises(UnsupportedTypeError, match="smuggled"):
            Presentation.from_json(json.dumps(obj))
