import pytest

from zkattest.hashing import (
    PREFIX_CONTEXT,
    PREFIX_ISSUER_IMPORTED,
    PREFIX_ISSUER_NATIVE,
    PREFIX_NONCE,
    canonical_hash,
    canonical_json_bytes,
    hash_fields,
    hash_packed,
    hash_with_prefix,
    sha3_bytes,
)
from zkattest.provable import FIELD_MODULUS, Bool, Bytes32, Field, UInt32


def test_canonical_json_is_sorted_and_compact():
    assert canonical_json_bytes({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'


def test_canonical_json_rejects_floats():
    with pytest.raises(ValueError, match="Float not allowed"):
        canonical_json_bytes({"x": {"y": 1.5}})


def test_hash_fields_is_deterministic_and_in_field():
    h = hash_fields([Field(1), Field(2)])
    assert h == hash_fields([Field(1), Field(2)])
    assert 0 <= h.to_int() < FIELD_MODULUS
    assert h != hash_fields([Field(2), Field(1)])


def test_prefixes_domain_separate_hashes():
    fields = [Field(7)]
    hashes = {
        hash_fields(fields),
        hash_fields(fields, prefix=PREFIX_ISSUER_NATIVE),
        hash_fields(fields, prefix=PREFIX_ISSUER_IMPORTED),
        hash_fields(fields, prefix=PREFIX_CONTEXT),
        hash_fields(fields, prefix=PREFIX_NONCE),
    }
    assert len(hashes) == 5


def test_long_prefixes_hash_and_stay_distinct():
    long_a = hash_fields([Field(1)], prefix="x" * 65)
    long_b = hash_fields([Field(1)], prefix="x" * 64 + "y")
    assert long_a != long_b
    assert hash_fields([Field(1)], prefix="x" * 1000) != long_a


def test_empty_prefix_differs_from_no_prefix():
    assert hash_fields([Field(1)], prefix="") != hash_fields([Field(1)])
    assert hash_with_prefix("", [Field(1)]) != hash_with_prefix(None, [Field(1)])


def test_canonical_hash_distinguishes_types_with_equal_fields():
    assert canonical_hash(Field(1)) != canonical_hash(UInt32(1))
    assert canonical_hash(Field(1)) != canonical_hash(Bool(True))


def test_canonical_hash_ignores_record_key_order():
    assert canonical_hash({"a": Field(1), "b": Field(2)}) == canonical_hash({"b": Field(2), "a": Field(1)})


def test_hash_with_prefix_matches_manual_composition():
    values = [Field(1), UInt32(2)]
    expected = hash_fields([canonical_hash(v) for v in values], prefix="custom")
    assert hash_with_prefix("custom", values) == expected


def test_hash_packed_uses_flattened_fields():
    assert hash_packed({"x": Field(3)}) == hash_fields([Field(3)])
    assert hash_packed(None) == hash_fields([])


def test_sha3_bytes_returns_32_bytes():
    h = sha3_bytes("https://example.com")
    assert isinstance(h, Bytes32)
    assert h == sha3_bytes("https://example.com")
    assert h != sha3_bytes("https://example.org")
