import itertools

import pytest

from zkattest.credential import Credential, CredentialValue, UnsignedWitness
from zkattest.errors import (
    ConstraintUnsatisfiedError,
    NodeEvaluationError,
    SpecConstructionError,
    UnsupportedTypeError,
)
from zkattest.hashing import hash_with_prefix
from zkattest.operation import NODE_TYPES, IssuerNode, Operation, RootNode, eval_node, eval_node_type
from zkattest.provable import (
    Bool,
    Bytes,
    Field,
    PrivateKey,
    StaticArray,
    UInt8,
    UInt32,
    UInt64,
    type_of,
)

Name = Bytes.sized(16)
O = Operation


def _env():
    owner = PrivateKey.generate().public_key()
    credential = Credential(owner=owner, data={"age": UInt32(20), "name": Name.from_string("Alice")})
    root = {
        "owner": owner,
        "passport": CredentialValue(credential=credential, issuer=Field(42), witness=UnsignedWitness()),
        "minAge": UInt8(18),
        "allowed": StaticArray(Name, [Name.from_string("Alice"), Name.from_string("Bob")]),
    }
    return root, type_of(root)


def _handles():
    root = RootNode()
    return {
        "passport": O.property(O.property(root, "passport"), "data"),
        "minAge": O.property(root, "minAge"),
        "allowed": O.property(root, "allowed"),
    }


def _sample_nodes():
    h = _handles()
    age = O.property(h["passport"], "age")
    name = O.property(h["passport"], "name")
    return [
        O.owner,
        O.issuer(h["passport"]),
        O.constant(Field(5)),
        RootNode(),
        age,
        O.record(age=age, issuer=O.issuer(h["passport"])),
        O.equals(name, Name.from_string("Alice")),
        O.equals_one_of(name, h["allowed"]),
        O.less_than(h["minAge"], age),
        O.less_than_eq(h["minAge"], age),
        O.add(h["minAge"], age),
        O.sub(age, h["minAge"]),
        O.mul(h["minAge"], UInt64(3)),
        O.div(age, UInt8(3)),
        O.and_(O.equals(age, UInt32(20)), O.not_(O.equals(age, UInt32(21)))),
        O.or_(O.less_than(age, h["minAge"]), O.constant(Bool(True))),
        O.not_(O.constant(Bool(False))),
        O.hash(age, name, prefix="test"),
        O.if_then_else(O.less_than(age, UInt32(21)), age, UInt32(21)),
        O.compute([age], UInt32, lambda a: a.add(UInt32(1))),
    ]


def test_samples_cover_every_node_kind():
    assert {type(n) for n in _sample_nodes()} == set(NODE_TYPES)


@pytest.mark.parametrize("node", _sample_nodes(), ids=lambda n: type(n).__name__)
def test_type_evaluator_predicts_value_evaluator(node):
    root, root_type = _env()
    assert type_of(eval_node(root, node)) == eval_node_type(root_type, node)


def test_property_unwraps_credential_data():
    root, _ = _env()
    assert eval_node(root, O.property(_handles()["passport"], "age")) == UInt32(20)


def test_property_missing_key_fails_in_both_evaluators():
    root, root_type = _env()
    node = O.property(_handles()["passport"], "height")
    with pytest.raises(NodeEvaluationError, match="Key not found"):
        eval_node(root, node)
    with pytest.raises(NodeEvaluationError, match="Key not found"):
        eval_node_type(root_type, node)


def test_issuer_requires_credential_handle():
    assert O.issuer(_handles()["passport"]) == IssuerNode("passport")
    with pytest.raises(SpecConstructionError):
        O.issuer(_handles()["minAge"])
    with pytest.raises(SpecConstructionError):
        O.issuer(O.property(O.property(RootNode(), "passport"), "owner"))


def test_issuer_evaluates_to_precomputed_field():
    root, _ = _env()
    assert eval_node(root, O.issuer(_handles()["passport"])) == Field(42)


def test_equals_one_of_literal_options():
    root, _ = _env()
    name = O.property(_handles()["passport"], "name")
    assert eval_node(root, O.equals_one_of(name, [Name.from_string("Bob"), Name.from_string("Alice")])) == Bool(True)
    assert eval_node(root, O.equals_one_of(name, [Name.from_string("Bob")])) == Bool(False)


def test_equals_one_of_empty_options_is_false():
    root, root_type = _env()
    age = O.property(_handles()["passport"], "age")
    assert eval_node(root, O.equals_one_of(age, [])) == Bool(False)
    empty = O.constant(StaticArray(UInt32, []))
    assert eval_node(root, O.equals_one_of(age, empty)) == Bool(False)
    assert eval_node_type(root_type, O.equals_one_of(age, empty)) is Bool


def test_equals_one_of_rejects_non_array_option_node():
    root, root_type = _env()
    node = O.equals_one_of(O.constant(Field(1)), O.constant(Field(1)))
    with pytest.raises(NodeEvaluationError, match="must be an array"):
        eval_node_type(root_type, node)
    with pytest.raises(NodeEvaluationError, match="must be an array"):
        eval_node(root, node)


@pytest.mark.parametrize(
    "op,left,right,expected",
    [
        (O.add, UInt8(200), UInt32(100), UInt32(300)),
        (O.sub, UInt64(10), UInt8(3), UInt64(7)),
        (O.mul, UInt32(70000), UInt64(70000), UInt64(4900000000)),
        (O.div, UInt32(7), UInt8(2), UInt32(3)),
        (O.add, UInt8(1), Field(2), Field(3)),
    ],
)
def test_arithmetic_promotes_to_wider_width(op, left, right, expected):
    node = op(left, right)
    result = eval_node({}, node)
    assert result == expected
    assert type(result) is eval_node_type({}, node)


def test_less_than_promotes_mixed_widths():
    assert eval_node({}, O.less_than(UInt8(3), UInt64(2 ** 40))) == Bool(True)
    assert eval_node({}, O.less_than_eq(UInt64(5), UInt8(5))) == Bool(True)
    assert eval_node({}, O.less_than(UInt32(6), UInt8(5))) == Bool(False)


def test_numeric_ops_reject_non_numeric_operands():
    with pytest.raises(NodeEvaluationError, match="numeric"):
        eval_node_type({}, O.add(Bool(True), UInt8(1)))


def test_and_reduces_left_to_right_and_requires_bools():
    assert eval_node({}, O.and_()) == Bool(True)
    assert eval_node({}, O.and_(Bool(True), Bool(False))) == Bool(False)
    with pytest.raises(NodeEvaluationError, match="Bool"):
        eval_node_type({}, O.and_(Bool(True), Field(1)))


def test_if_then_else_selects_branch_after_evaluating_both():
    assert eval_node({}, O.if_then_else(Bool(True), Field(1), Field(2))) == Field(1)
    assert eval_node({}, O.if_then_else(Bool(False), Field(1), Field(2))) == Field(2)
    with pytest.raises(ConstraintUnsatisfiedError):
        eval_node({}, O.if_then_else(Bool(True), UInt8(1), O.sub(UInt8(0), UInt8(1))))


def test_if_then_else_branches_must_share_type():
    with pytest.raises(NodeEvaluationError, match="branches differ"):
        eval_node_type({}, O.if_then_else(Bool(True), Field(1), UInt8(1)))


def test_hash_node_matches_hash_with_prefix():
    node = O.hash_with_prefix("p", Field(1), UInt8(2))
    assert eval_node({}, node) == hash_with_prefix("p", [Field(1), UInt8(2)])
    assert eval_node({}, node) != eval_node({}, O.hash(Field(1), UInt8(2)))


def test_hash_prefix_must_be_a_string():
    with pytest.raises(SpecConstructionError, match="prefix"):
        O.hash(Field(1), prefix=7)
    node = O.hash(Field(1), prefix="p" * 100)
    assert type_of(eval_node({}, node)) == eval_node_type({}, node)


def test_compute_checks_declared_output_type():
    node = O.compute([Field(1)], UInt32, lambda f: f)
    assert eval_node_type({}, node) is UInt32
    with pytest.raises(UnsupportedTypeError):
        eval_node({}, node)


def test_record_shapes_output():
    root, root_type = _env()
    node = O.record({"age": O.property(_handles()["passport"], "age")}, fixed=Field(1))
    assert eval_node(root, node) == {"age": UInt32(20), "fixed": Field(1)}
    assert eval_node_type(root_type, node) == {"age": UInt32, "fixed": Field}


@pytest.mark.slow
def test_numeric_grid_type_agreement():
    widths = (UInt8, UInt32, UInt64, Field)
    samples = (0, 1, 7, 255)
    ops = (O.add, O.sub, O.mul, O.div, O.less_than, O.less_than_eq)
    for op, lt, rt, lv, rv in itertools.product(ops, widths, widths, samples, samples):
        node = op(lt(lv), rt(rv))
        try:
            result = eval_node({}, node)
        except ConstraintUnsatisfiedError:
            continue
        assert type_of(result) == eval_node_type({}, node)
