"""zkattest.keys

Ed25519 key material and textual encodings shared by owners, issuers and the
proving backend.

Profile / invariants:
- Public keys are rendered as `did:key` identifiers (Ed25519 multicodec 0xed01,
  multibase base58btc)
- Signatures are raw 64-byte Ed25519 signatures, encoded as base64url without
  padding
- Private keys can be loaded from and exported to OKP JWKs
"""

from __future__ import annotations

import base64
import json
import pathlib
from typing import Any, Dict, Tuple, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey


# Base58 implementation (no external deps)
B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}

_ED25519_MULTICODEC = bytes([0xED, 0x01])


def b58decode(s: str) -> bytes:
    s_bytes = s.encode("ascii") if isinstance(s, str) else s
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    pad = "=" * ((4 - len(s) % 4) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


# ---------------------------------------------------------------------------
# did:key (Ed25519)
# ---------------------------------------------------------------------------


def did_key_from_public_bytes(pub: bytes) -> str:
    if len(pub) != 32:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(pub)}")
    return "did:key:z" + b58encode(_ED25519_MULTICODEC + pub)


def public_bytes_from_did_key(did: str) -> bytes:
    """Parse a `did:key` (Ed25519) and return the raw 32-byte public key."""

    if not isinstance(did, str) or not did.startswith("did:key:z"):
        raise ValueError("Only did:key:z... supported")
    decoded = b58decode(did[len("did:key:z"):])
    if not decoded.startswith(_ED25519_MULTICODEC):
        raise ValueError("did:key multicodec prefix not recognized for Ed25519")
    raw = decoded[2:]
    if len(raw) != 32:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(raw)}")
    return raw


def raw_public_bytes(key: Ed25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def raw_private_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


# ---------------------------------------------------------------------------
# JWK import/export
# ---------------------------------------------------------------------------


def load_ed25519_private_key_from_jwk(jwk: Dict[str, Any]) -> Tuple[Ed25519PrivateKey, str]:
    """Load an Ed25519 private key from an OKP JWK.

    Returns:
        (private_key, did:key) derived from the public key bytes in the JWK
        (the `x` member).
    """

    if jwk.get("kty") != "OKP" or jwk.get("crv") != "Ed25519":
        raise ValueError("Only OKP/Ed25519 JWK is supported")

    d = jwk.get("d")
    x = jwk.get("x")
    if not d or not x:
        raise ValueError("JWK must include both 'd' (private) and 'x' (public)")

    priv = Ed25519PrivateKey.from_private_bytes(b64url_decode(d))
    pub_bytes = b64url_decode(x)
    if raw_public_bytes(priv.public_key()) != pub_bytes:
        raise ValueError("JWK 'x' does not match the private key")
    return priv, did_key_from_public_bytes(pub_bytes)


def load_private_key_file(path: Union[str, pathlib.Path]) -> Tuple[Ed25519PrivateKey, str]:
    """Load an Ed25519 keypair from a JSON file holding a private OKP JWK.

    Accepted file shapes:

    1) A private OKP JWK (Ed25519):

      {"kty":"OKP","crv":"Ed25519","x":"...","d":"..."}

    2) A wrapper object:

      {"private_jwk": <jwk>}
    """

    key_obj = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if not isinstance(key_obj, dict):
        raise ValueError("key file must be a JSON object")
    jwk = key_obj.get("private_jwk", key_obj)
    if not isinstance(jwk, dict):
        raise ValueError("key file wrapper must contain a JWK object under 'private_jwk'")
    return load_ed25519_private_key_from_jwk(jwk)


def jwk_from_private_key(priv: Ed25519PrivateKey) -> Dict[str, Any]:
    return {
        "kty": "OKP",
        "crv": "Ed25519",
        "x": b64url_encode(raw_public_bytes(priv.public_key())),
        "d": b64url_encode(raw_private_bytes(priv)),
    }
