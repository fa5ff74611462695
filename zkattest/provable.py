"""
Typed values that can flow through a presentation program.

Every value that a policy can touch is an instance of one of the classes in
this module, and its class doubles as its type descriptor. Records are plain
dicts of values; their type is the dict of the member types ("nested type").
`None` is the single value of type `Undefined`.

Numeric width classes, narrowest to widest:

    UInt8 < UInt32 < UInt64 < Field

Unsigned integers are range checked. Their arithmetic never wraps: overflow,
underflow and division by zero are constraint failures. `Field` arithmetic is
modular over the BN254 scalar field.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from zkattest.errors import ConstraintUnsatisfiedError, NodeEvaluationError, UnsupportedTypeError
from zkattest.keys import (
    b64url_decode,
    b64url_encode,
    did_key_from_public_bytes,
    jwk_from_private_key,
    load_ed25519_private_key_from_jwk,
    load_private_key_file,
    public_bytes_from_did_key,
    raw_private_bytes,
    raw_public_bytes,
)

# BN254 scalar field order (also known as Fr)
FIELD_MODULUS = 0x30644E72E131A029B85045B68181585D2833E84879B9709143E1F593F0000001

NestedType = Union[type, "StaticArrayType", Dict[str, Any]]


class Provable:
    """Base class for values with a fixed field encoding."""

    TYPE_NAME: ClassVar[str] = ""

    def to_fields(self) -> List["Field"]:
        raise NotImplementedError

    @classmethod
    def empty(cls) -> "Provable":
        raise NotImplementedError


# =============================================================================
# FIELD
# =============================================================================

@dataclass(frozen=True)
class Field(Provable):
    """
    Element of the scalar field for the proof system.

    Values are reduced modulo FIELD_MODULUS on construction, so every instance
    is a canonical field element.
    """
    value: int

    TYPE_NAME: ClassVar[str] = "Field"

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"Field value must be an int, got {type(self.value).__name__}")
        object.__setattr__(self, "value", self.value % FIELD_MODULUS)

    @classmethod
    def empty(cls) -> "Field":
        return cls(0)

    @classmethod
    def random(cls) -> "Field":
        return cls(int.from_bytes(secrets.token_bytes(32), "big") % FIELD_MODULUS)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Field":
        return cls(int.from_bytes(data, "big"))

    def to_int(self) -> int:
        return self.value

    def to_bytes(self) -> bytes:
        return self.value.to_bytes(32, "big")

    def to_fields(self) -> List["Field"]:
        return [self]

    def to_field(self) -> "Field":
        return self

    def add(self, other: "Field") -> "Field":
        return Field(self.value + other.value)

    def sub(self, other: "Field") -> "Field":
        return Field(self.value - other.value)

    def mul(self, other: "Field") -> "Field":
        return Field(self.value * other.value)

    def inverse(self) -> "Field":
        """Compute modular multiplicative inverse using Fermat's little theorem."""
        if self.value == 0:
            raise ConstraintUnsatisfiedError("Cannot invert zero field element")
        return Field(pow(self.value, FIELD_MODULUS - 2, FIELD_MODULUS))

    def div(self, other: "Field") -> "Field":
        return self.mul(other.inverse())

    def less_than(self, other: "Field") -> "Bool":
        return Bool(self.value < other.value)

    def less_than_or_equal(self, other: "Field") -> "Bool":
        return Bool(self.value <= other.value)

    __add__ = add
    __sub__ = sub
    __mul__ = mul
    __truediv__ = div

    def __neg__(self) -> "Field":
        return Field(-self.value)

    def __str__(self) -> str:
        return str(self.value)


# =============================================================================
# BOOL
# =============================================================================

@dataclass(frozen=True)
class Bool(Provable):
    value: bool

    TYPE_NAME: ClassVar[str] = "Bool"

    def __post_init__(self):
        if not isinstance(self.value, bool):
            raise TypeError(f"Bool value must be a bool, got {type(self.value).__name__}")

    @classmethod
    def empty(cls) -> "Bool":
        return cls(False)

    def to_fields(self) -> List[Field]:
        return [Field(int(self.value))]

    def and_(self, other: "Bool") -> "Bool":
        return Bool(self.value and other.value)

    def or_(self, other: "Bool") -> "Bool":
        return Bool(self.value or other.value)

    def not_(self) -> "Bool":
        return Bool(not self.value)

    def assert_true(self, message: str = "Assertion failed") -> None:
        if not self.value:
            raise ConstraintUnsatisfiedError(message)

    def __bool__(self) -> bool:
        return self.value


# =============================================================================
# UNSIGNED INTEGERS
# =============================================================================

@dataclass(frozen=True)
class _UInt(Provable):
    value: int

    BITS: ClassVar[int] = 0

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"{self.TYPE_NAME} value must be an int, got {type(self.value).__name__}")
        if not 0 <= self.value < (1 << self.BITS):
            raise ValueError(f"{self.TYPE_NAME} value out of range: {self.value}")

    @classmethod
    def empty(cls):
        return cls(0)

    @classmethod
    def _checked(cls, value: int, op: str):
        if value < 0:
            raise ConstraintUnsatisfiedError(f"{cls.TYPE_NAME}.{op}: underflow")
        if value >= (1 << cls.BITS):
            raise ConstraintUnsatisfiedError(f"{cls.TYPE_NAME}.{op}: overflow")
        return cls(value)

    def to_int(self) -> int:
        return self.value

    def to_fields(self) -> List[Field]:
        return [Field(self.value)]

    def to_field(self) -> Field:
        return Field(self.value)

    def add(self, other):
        return self._checked(self.value + other.value, "add")

    def sub(self, other):
        return self._checked(self.value - other.value, "sub")

    def mul(self, other):
        return self._checked(self.value * other.value, "mul")

    def div(self, other):
        if other.value == 0:
            raise ConstraintUnsatisfiedError(f"{self.TYPE_NAME}.div: division by zero")
        return type(self)(self.value // other.value)

    def less_than(self, other) -> Bool:
        return Bool(self.value < other.value)

    def less_than_or_equal(self, other) -> Bool:
        return Bool(self.value <= other.value)

    def __str__(self) -> str:
        return str(self.value)


class UInt8(_UInt):
    TYPE_NAME: ClassVar[str] = "UInt8"
    BITS: ClassVar[int] = 8


class UInt32(_UInt):
    TYPE_NAME: ClassVar[str] = "UInt32"
    BITS: ClassVar[int] = 32


class UInt64(_UInt):
    TYPE_NAME: ClassVar[str] = "UInt64"
    BITS: ClassVar[int] = 64


NUMERIC_TYPE_ORDER: Tuple[type, ...] = (UInt8, UInt32, UInt64, Field)


def is_numeric_type(t: Any) -> bool:
    return isinstance(t, type) and t in NUMERIC_TYPE_ORDER


def wider_numeric_type(left: Any, right: Any) -> type:
    """Return the wider of two numeric width classes."""
    if not is_numeric_type(left) or not is_numeric_type(right):
        raise NodeEvaluationError(
            f"Numeric operation requires numeric operands, got {type_name(left)} and {type_name(right)}"
        )
    return NUMERIC_TYPE_ORDER[max(NUMERIC_TYPE_ORDER.index(left), NUMERIC_TYPE_ORDER.index(right))]


def convert_numeric(value: Any, target: type) -> Any:
    """Widen a numeric value to `target`; narrowing is rejected."""
    source = type(value)
    if NUMERIC_TYPE_ORDER.index(source) > NUMERIC_TYPE_ORDER.index(target):
        raise NodeEvaluationError(f"Cannot narrow {source.TYPE_NAME} to {target.TYPE_NAME}")
    if source is target:
        return value
    return target(value.to_int())


def promote(left: Any, right: Any) -> Tuple[Any, Any]:
    target = wider_numeric_type(type(left), type(right))
    return convert_numeric(left, target), convert_numeric(right, target)


# =============================================================================
# BYTES
# =============================================================================

@dataclass(frozen=True)
class Bytes(Provable):
    """
    Fixed-length byte string. Concrete lengths are subclasses created by
    `Bytes.sized(n)`, so `Bytes.sized(32)` is the type of 32-byte values.
    """
    data: bytes

    TYPE_NAME: ClassVar[str] = "Bytes"
    SIZE: ClassVar[int] = -1

    _sized: ClassVar[Dict[int, type]] = {}

    def __post_init__(self):
        if self.SIZE < 0:
            raise TypeError("Use Bytes.sized(n) to create a concrete Bytes type")
        if not isinstance(self.data, (bytes, bytearray)):
            raise TypeError("Bytes data must be bytes")
        if len(self.data) != self.SIZE:
            raise ValueError(f"Expected {self.SIZE} bytes, got {len(self.data)}")
        object.__setattr__(self, "data", bytes(self.data))

    @classmethod
    def sized(cls, size: int) -> type:
        if size < 0:
            raise ValueError("Bytes size must be non-negative")
        if size not in Bytes._sized:
            Bytes._sized[size] = type(f"Bytes{size}", (Bytes,), {"SIZE": size})
        return Bytes._sized[size]

    @classmethod
    def empty(cls) -> "Bytes":
        return cls(bytes(cls.SIZE))

    @classmethod
    def from_string(cls, s: str) -> "Bytes":
        raw = s.encode("utf-8")
        if len(raw) > cls.SIZE:
            raise ValueError(f"String does not fit into {cls.SIZE} bytes")
        return cls(raw + bytes(cls.SIZE - len(raw)))

    @classmethod
    def from_hex(cls, s: str) -> "Bytes":
        return cls(bytes.fromhex(s))

    def to_string(self) -> str:
        return self.data.rstrip(b"\x00").decode("utf-8")

    def to_hex(self) -> str:
        return self.data.hex()

    def to_fields(self) -> List[Field]:
        return [Field(b) for b in self.data]


Bytes32 = Bytes.sized(32)


# =============================================================================
# KEYS AND SIGNATURES
# =============================================================================

def fields_to_bytes(fields: Sequence[Field]) -> bytes:
    return b"".join(f.to_bytes() for f in fields)


@dataclass(frozen=True)
class PublicKey(Provable):
    """Ed25519 public key, rendered as `did:key`."""
    raw: bytes

    TYPE_NAME: ClassVar[str] = "PublicKey"

    def __post_init__(self):
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != 32:
            raise ValueError("Ed25519 public key must be 32 bytes")
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def empty(cls) -> "PublicKey":
        return cls(bytes(32))

    @classmethod
    def from_did(cls, did: str) -> "PublicKey":
        return cls(public_bytes_from_did_key(did))

    def to_did(self) -> str:
        return did_key_from_public_bytes(self.raw)

    def to_fields(self) -> List[Field]:
        return [Field.from_bytes(self.raw[:16]), Field.from_bytes(self.raw[16:])]

    def __str__(self) -> str:
        return self.to_did()


@dataclass(frozen=True)
class Signature(Provable):
    """Raw Ed25519 signature over the byte encoding of a list of fields."""
    raw: bytes

    TYPE_NAME: ClassVar[str] = "Signature"

    def __post_init__(self):
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != 64:
            raise ValueError("Ed25519 signature must be 64 bytes")
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def empty(cls) -> "Signature":
        return cls(bytes(64))

    @classmethod
    def create(cls, private_key: "PrivateKey", fields: Sequence[Field]) -> "Signature":
        return cls(private_key.key.sign(fields_to_bytes(fields)))

    @classmethod
    def from_base64(cls, s: str) -> "Signature":
        return cls(b64url_decode(s))

    def to_base64(self) -> str:
        return b64url_encode(self.raw)

    def verify(self, public_key: PublicKey, fields: Sequence[Field]) -> Bool:
        try:
            Ed25519PublicKey.from_public_bytes(public_key.raw).verify(self.raw, fields_to_bytes(fields))
        except (InvalidSignature, ValueError):
            return Bool(False)
        return Bool(True)

    def to_fields(self) -> List[Field]:
        return [Field.from_bytes(self.raw[i:i + 16]) for i in range(0, 64, 16)]


class PrivateKey:
    """Ed25519 private key. Never serialized as part of a presentation."""

    def __init__(self, key: Ed25519PrivateKey):
        self.key = key

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_bytes(cls, raw: bytes) -> "PrivateKey":
        return cls(Ed25519PrivateKey.from_private_bytes(raw))

    def to_bytes(self) -> bytes:
        return raw_private_bytes(self.key)

    @classmethod
    def from_jwk(cls, jwk: Dict[str, Any]) -> "PrivateKey":
        key, _ = load_ed25519_private_key_from_jwk(jwk)
        return cls(key)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PrivateKey":
        """Load a key from a JSON file holding an OKP JWK (or `{"private_jwk": ...}`)."""
        key, _ = load_private_key_file(path)
        return cls(key)

    def to_jwk(self) -> Dict[str, Any]:
        return jwk_from_private_key(self.key)

    def public_key(self) -> PublicKey:
        return PublicKey(raw_public_bytes(self.key.public_key()))

    def __repr__(self) -> str:
        return f"PrivateKey(public={self.public_key().to_did()})"


# =============================================================================
# UNDEFINED AND STATIC ARRAYS
# =============================================================================

class Undefined(Provable):
    """Type of the `None` value (no output claim)."""

    TYPE_NAME: ClassVar[str] = "Undefined"

    @classmethod
    def empty(cls) -> None:
        return None


@dataclass(frozen=True)
class StaticArrayType:
    """Type of fixed-length arrays whose elements share one nested type."""
    inner: Any
    length: int

    def __hash__(self) -> int:
        return hash((type_key(self.inner), self.length))


@dataclass(frozen=True)
class StaticArray:
    """Fixed-length array value; `element_type` is the nested element type."""
    element_type: Any
    items: Tuple[Any, ...]

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        for item in self.items:
            if type_of(item) != self.element_type:
                raise UnsupportedTypeError(
                    f"StaticArray element of type {type_name(type_of(item))} "
                    f"does not match {type_name(self.element_type)}",
                    value=item,
                )

    @property
    def array_type(self) -> StaticArrayType:
        return StaticArrayType(self.element_type, len(self.items))

    def to_fields(self) -> List[Field]:
        out: List[Field] = []
        for item in self.items:
            out.extend(to_fields(item))
        return out

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


# =============================================================================
# NESTED TYPES
# =============================================================================

def type_of(value: Any) -> NestedType:
    """Return the nested type of a value."""
    if value is None:
        return Undefined
    if isinstance(value, dict):
        return {k: type_of(v) for k, v in value.items()}
    if isinstance(value, StaticArray):
        return value.array_type
    if isinstance(value, Provable):
        return type(value)
    nested = getattr(value, "nested_type", None)
    if callable(nested):
        return nested()
    raise UnsupportedTypeError(f"Unsupported value type: {type(value).__name__}", value=value)


def to_fields(value: Any) -> List[Field]:
    """Flatten a (nested) value into fields. Records flatten in sorted key order."""
    if value is None:
        return []
    if isinstance(value, dict):
        out: List[Field] = []
        for k in sorted(value):
            out.extend(to_fields(value[k]))
        return out
    if isinstance(value, (Provable, StaticArray)):
        return value.to_fields()
    raise UnsupportedTypeError(f"Cannot convert {type(value).__name__} to fields", value=value)


def type_name(t: Any) -> str:
    if isinstance(t, dict):
        return "{" + ", ".join(f"{k}: {type_name(v)}" for k, v in t.items()) + "}"
    if isinstance(t, StaticArrayType):
        return f"StaticArray<{type_name(t.inner)}, {t.length}>"
    if isinstance(t, type) and issubclass(t, Bytes):
        return f"Bytes({t.SIZE})"
    if isinstance(t, type):
        return getattr(t, "TYPE_NAME", "") or t.__name__
    return repr(t)


def type_key(t: Any) -> Any:
    """Hashable key for a nested type."""
    if isinstance(t, dict):
        return tuple(sorted((k, type_key(v)) for k, v in t.items()))
    return t


def synthesize(t: NestedType) -> Any:
    """Placeholder value of a nested type."""
    if isinstance(t, dict):
        return {k: synthesize(v) for k, v in t.items()}
    if isinstance(t, StaticArrayType):
        return StaticArray(t.inner, [synthesize(t.inner) for _ in range(t.length)])
    if isinstance(t, type) and issubclass(t, Provable):
        return t.empty()
    raise UnsupportedTypeError(f"Cannot synthesize value of type {type_name(t)}", value=t)


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality; numeric operands of different widths are promoted."""
    lt, rt = type_of(left), type_of(right)
    if is_numeric_type(lt) and is_numeric_type(rt):
        a, b = promote(left, right)
        return a.to_int() == b.to_int()
    if lt != rt:
        raise NodeEvaluationError(f"Cannot compare {type_name(lt)} with {type_name(rt)}")
    if isinstance(left, dict):
        return all(values_equal(left[k], right[k]) for k in left)
    if isinstance(left, StaticArray):
        return all(values_equal(a, b) for a, b in zip(left.items, right.items))
    return left == right


def check_type(value: Any, expected: NestedType, key: Optional[str] = None) -> None:
    actual = type_of(value)
    if actual != expected:
        raise UnsupportedTypeError(
            f"Expected value of type {type_name(expected)}, got {type_name(actual)}",
            value=value,
            key=key,
        )


def is_nested_type(t: Any) -> bool:
    if isinstance(t, dict):
        return all(is_nested_type(v) for v in t.values())
    if isinstance(t, StaticArrayType):
        return is_nested_type(t.inner)
    return isinstance(t, type) and issubclass(t, Provable) and t not in (Provable, _UInt) and (
        not issubclass(t, Bytes) or t.SIZE >= 0
    )
