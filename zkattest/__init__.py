"""
zkattest: private attestations over owner-bound credentials

An issuer binds structured data to an owner's public key (a credential). The
owner later proves selected facts about one or more credentials to a
verifier, without revealing the rest, by answering a presentation request
with a proof.

Layout
------

    CREDENTIALS
      credential.py           Credential, StoredCredential, CredentialSpec, Unsigned
      credential_native.py    issuer-signed credentials
      credential_imported.py  credentials backed by a nested proof

    POLICY
      operation.py            expression nodes, Operation constructors, evaluators
      program_spec.py         Spec, Claim, Constant
      program.py              the presentation program a Spec compiles to

    EXCHANGE
      context.py              binding presentations to verifier, action and nonces
      presentation.py         PresentationRequest, Presentation, credential picking
      serialize.py            JSON encoding (deserialize.py decodes)
      validation.py           wire schema validation
      pretty_printer.py       human readable requests and credentials

    FOUNDATIONS
      provable.py             typed values and nested types
      hashing.py              field hash, canonical hash, domain prefixes
      prover.py               proving backend
      config.py, observability.py, errors.py

Typical flow
------------

    spec = Spec({"passport": Native({"age": UInt32})},
                lambda h: {"assert": Operation.less_than_eq(UInt32(18), Operation.property(h["passport"], "age"))})
    request = PresentationRequest.https(spec, {}, HttpsInputContext(action="POST /login"))
    presentation = Presentation.create(owner_key, request, [stored], HttpsWalletContext("https://example.com"))
    Presentation.verify(request, presentation, HttpsWalletContext("https://example.com"))
"""

__version__ = "0.1.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import zkattest modules on first access."""

    if name in ("Field", "Bool", "UInt8", "UInt32", "UInt64", "Bytes", "Bytes32", "PublicKey",
                "PrivateKey", "Signature", "Undefined", "StaticArray", "StaticArrayType"):
        from zkattest import provable
        return getattr(provable, name)

    if name in ("Credential", "StoredCredential", "CredentialSpec", "Unsigned"):
        from zkattest import credential
        return getattr(credential, name)

    if name == "Native":
        from zkattest.credential_native import Native
        return Native

    if name in ("Imported", "ImportedProgram"):
        from zkattest import credential_imported
        return getattr(credential_imported, name)

    if name in ("Operation", "Node", "eval_node", "eval_node_type"):
        from zkattest import operation
        return getattr(operation, name)

    if name in ("Spec", "Claim", "Constant"):
        from zkattest import program_spec
        return getattr(program_spec, name)

    if name in ("PresentationRequest", "Presentation", "ZkAppInputContext", "HttpsInputContext",
                "ZkAppWalletContext", "HttpsWalletContext", "NonceRegistry", "pick_credentials"):
        from zkattest import presentation
        return getattr(presentation, name)

    if name in ("serialize_spec", "deserialize_spec"):
        from zkattest import deserialize, serialize
        return getattr(serialize if name == "serialize_spec" else deserialize, name)

    if name in ("ZkProgram", "VerificationKey", "Proof"):
        from zkattest import prover
        return getattr(prover, name)

    raise AttributeError(f"module 'zkattest' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Values
    "Field",
    "Bool",
    "UInt8",
    "UInt32",
    "UInt64",
    "Bytes",
    "Bytes32",
    "PublicKey",
    "PrivateKey",
    "Signature",
    "Undefined",
    "StaticArray",
    "StaticArrayType",
    # Credentials
    "Credential",
    "StoredCredential",
    "CredentialSpec",
    "Unsigned",
    "Native",
    "Imported",
    "ImportedProgram",
    # Policy
    "Operation",
    "Node",
    "eval_node",
    "eval_node_type",
    "Spec",
    "Claim",
    "Constant",
    # Exchange
    "PresentationRequest",
    "Presentation",
    "ZkAppInputContext",
    "HttpsInputContext",
    "ZkAppWalletContext",
    "HttpsWalletContext",
    "NonceRegistry",
    "pick_credentials",
    "serialize_spec",
    "deserialize_spec",
    # Backend
    "ZkProgram",
    "VerificationKey",
    "Proof",
]
