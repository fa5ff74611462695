import pytest

from zkattest.credential import Credential
from zkattest.credential_native import Native
from zkattest.errors import UnsupportedTypeError
from zkattest.operation import Operation as O
from zkattest.presentation import HttpsInputContext, PresentationRequest
from zkattest.pretty_printer import (
    format_node,
    format_value,
    print_credential,
    print_presentation_request,
    print_verifier_identity,
)
from zkattest.program_spec import Claim, Constant, Spec
from zkattest.provable import Bool, Bytes, Field, PrivateKey, StaticArray, UInt8, UInt32

Name = Bytes.sized(4)


def _request() -> PresentationRequest:
    spec = Spec(
        {
            "passport": Native({"age": UInt32, "name": Name}),
            "minAge": Claim(UInt32),
            "country": Constant(UInt8, UInt8(49)),
        },
        lambda h: {
            "assert": [
                O.less_than_eq(h["minAge"], O.property(h["passport"], "age")),
                O.or_(O.equals(h["country"], UInt8(49)), O.constant(Bool(False))),
            ],
            "output_claim": O.record(owner=O.owner, age=O.property(h["passport"], "age")),
        },
    )
    return PresentationRequest.https(
        spec, {"minAge": UInt32(18)}, HttpsInputContext(action="POST /enter", server_nonce=Field(99))
    )


def test_format_value():
    assert format_value(None) == "undefined"
    assert format_value(UInt32(7)) == "7"
    assert format_value(Bool(False)) == "false"
    assert format_value(Name.from_string("ab")) == "0x61620000"
    assert format_value(StaticArray(UInt8, [UInt8(1), UInt8(2)])) == "[1, 2]"
    assert format_value({"a": Field(1), "b": Bool(True)}) == "{a: 1, b: true}"
    with pytest.raises(UnsupportedTypeError):
        format_value(1.5)


def test_format_simple_nodes():
    assert format_node(O.equals(Field(1), Field(2))) == "1 equals 2"
    assert format_node(O.less_than(UInt8(1), UInt8(2))) == "1 < 2"
    assert format_node(O.less_than_eq(UInt8(1), UInt8(2))) == "1 ≤ 2"
    assert format_node(O.add(UInt8(1), O.mul(UInt8(2), UInt8(3)))) == "(1 + (2 x 3))"
    assert format_node(O.div(UInt8(4), UInt8(2))) == "(4 ÷ 2)"
    assert format_node(O.not_(O.constant(Bool(True)))) == "not(true)"
    assert format_node(O.equals_one_of(Field(1), [Field(1), Field(2)])) == "[1, 2] contains 1"
    assert format_node(O.hash(O.owner, Field(3))) == "hash(owner, 3)"
    assert format_node(O.and_()) == "true"


def test_format_nested_conditions_indent():
    node = O.and_(O.equals(Field(1), Field(1)), O.or_(Bool(True), Bool(False)))
    assert format_node(node).splitlines() == [
        "All of these conditions must be true:",
        "- 1 equals 1",
        "-   Either:",
        "  - true",
        "  Or:",
        "  - false",
    ]


def test_if_then_else():
    text = format_node(O.if_then_else(Bool(True), Field(1), Field(2)))
    assert text.splitlines() == ["If this condition is true:", "- true", "Then:", "- 1", "Otherwise:", "- 2"]


def test_print_presentation_request():
    text = print_presentation_request(_request())
    assert text.startswith("Type: https")
    assert "Required credentials:\n- passport (type: native):\n  Contains: age, name" in text
    assert "Claims:\n- minAge: UInt32" in text
    assert "Constants:\n- country: UInt8 = 49" in text
    assert "passport.data.age" in text
    assert "Claimed values:\n- minAge: 18" in text
    assert "Context:\n- Type: https\n- Action: POST /enter\n- Server Nonce: 99" in text


def test_print_verifier_identity():
    key = PrivateKey.generate().public_key()
    assert print_verifier_identity("zk-app", key) == f"Verifier Identity (zk-app): {key.to_did()}"
    text = print_verifier_identity("https", "https://a.com", origin="https://a.com")
    assert text.splitlines() == ["Origin: https://a.com", "Verifier Identity (https): https://a.com"]


def test_print_credential(issuer_key, owner_key):
    stored = Credential.sign(
        issuer_key,
        Credential(owner=owner_key.public_key(), data={"age": UInt32(30), "name": Name.from_string("Eve")}),
        metadata={"description": "Passport"},
    )
    lines = print_credential(stored).splitlines()
    assert lines[0] == "Type: native"
    assert lines[1] == f"Owner: {owner_key.public_key().to_did()}"
    assert lines[2] == "Description: Passport"
    assert lines[3:] == ["Data:", "- age: 30", "- name: 0x45766500"]
