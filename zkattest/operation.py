"""
zkattest Expression Engine

Policies are trees of `Node`s. Every node kind implements two evaluators side
by side:

    evaluate(root)            value the node produces in a concrete environment
    evaluate_type(root_type)  type that `evaluate` produces, without any data

`root` maps each spec input name (and the reserved name "owner") to its
value; credential inputs map to a `CredentialValue`. For every node and every
environment `env` matching `root_type`:

    type_of(evaluate(env)) == evaluate_type(root_type)

Both evaluators raise `NodeEvaluationError` for the same malformed trees
(missing key, operand type mismatch), so a spec that type-checks at compile
time cannot fail structurally at proving time.

Authors build trees through the `Operation` namespace.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from zkattest.credential import CredentialValue, CredentialValueType
from zkattest.errors import NodeEvaluationError, SpecConstructionError
from zkattest.hashing import hash_with_prefix
from zkattest.provable import (
    Bool,
    Field,
    NestedType,
    PublicKey,
    StaticArray,
    StaticArrayType,
    check_type,
    is_numeric_type,
    promote,
    type_key,
    type_name,
    type_of,
    values_equal,
    wider_numeric_type,
)

Env = Dict[str, Any]


class Node(ABC):
    """A typed expression over the inputs of a spec."""

    TYPE: ClassVar[str] = ""

    @abstractmethod
    def evaluate(self, root: Env) -> Any:
        ...

    @abstractmethod
    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        ...


def eval_node(root: Env, node: Node) -> Any:
    return node.evaluate(root)


def eval_node_type(root_type: Dict[str, Any], node: Node) -> NestedType:
    return node.evaluate_type(root_type)


# =============================================================================
# HELPERS
# =============================================================================

def _lookup(container: Any, key: str) -> Any:
    if isinstance(container, CredentialValue):
        if key not in ("owner", "data"):
            raise NodeEvaluationError(f"Key not found: {key!r}", key=key)
        return container.property(key)
    if isinstance(container, dict):
        if key not in container:
            raise NodeEvaluationError(f"Key not found: {key!r}", key=key)
        return container[key]
    raise NodeEvaluationError(f"Cannot read property {key!r} of {type_name(type_of(container))}", key=key)


def _lookup_type(container: Any, key: str) -> NestedType:
    if isinstance(container, CredentialValueType):
        t = container.property_type(key)
        if t is None:
            raise NodeEvaluationError(f"Key not found: {key!r}", key=key)
        return t
    if isinstance(container, dict):
        if key not in container:
            raise NodeEvaluationError(f"Key not found: {key!r}", key=key)
        return container[key]
    raise NodeEvaluationError(f"Cannot read property {key!r} of {type_name(container)}", key=key)


def _same_type(left: NestedType, right: NestedType) -> bool:
    return type_key(left) == type_key(right)


def _check_comparable(left: NestedType, right: NestedType) -> None:
    if is_numeric_type(left) and is_numeric_type(right):
        return
    if not _same_type(left, right):
        raise NodeEvaluationError(f"Cannot compare {type_name(left)} with {type_name(right)}")


def _expect_bool_type(t: NestedType, op: str) -> None:
    if t is not Bool:
        raise NodeEvaluationError(f"{op} requires Bool operands, got {type_name(t)}")


def _expect_bool(value: Any, op: str) -> Bool:
    _expect_bool_type(type_of(value), op)
    return value


# =============================================================================
# NODES
# =============================================================================

@dataclass(frozen=True)
class OwnerNode(Node):
    TYPE: ClassVar[str] = "owner"

    def evaluate(self, root: Env) -> Any:
        return _lookup(root, "owner")

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        return PublicKey


@dataclass(frozen=True)
class IssuerNode(Node):
    credential_key: str

    TYPE: ClassVar[str] = "issuer"

    def evaluate(self, root: Env) -> Any:
        value = _lookup(root, self.credential_key)
        if not isinstance(value, CredentialValue):
            raise NodeEvaluationError("issuer() requires a credential input", key=self.credential_key)
        return value.issuer

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        if not isinstance(_lookup_type(root_type, self.credential_key), CredentialValueType):
            raise NodeEvaluationError("issuer() requires a credential input", key=self.credential_key)
        return Field


@dataclass(frozen=True)
class ConstantNode(Node):
    data: Any

    TYPE: ClassVar[str] = "constant"

    def evaluate(self, root: Env) -> Any:
        return self.data

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        return type_of(self.data)


@dataclass(frozen=True)
class RootNode(Node):
    TYPE: ClassVar[str] = "root"

    def evaluate(self, root: Env) -> Any:
        return root

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        return root_type


@dataclass(frozen=True)
class PropertyNode(Node):
    inner: Node
    key: str

    TYPE: ClassVar[str] = "property"

    def evaluate(self, root: Env) -> Any:
        return _lookup(self.inner.evaluate(root), self.key)

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        return _lookup_type(self.inner.evaluate_type(root_type), self.key)


@dataclass(frozen=True)
class RecordNode(Node):
    data: Dict[str, Node]

    TYPE: ClassVar[str] = "record"

    def evaluate(self, root: Env) -> Any:
        return {k: n.evaluate(root) for k, n in self.data.items()}

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        return {k: n.evaluate_type(root_type) for k, n in self.data.items()}


@dataclass(frozen=True)
class EqualsNode(Node):
    left: Node
    right: Node

    TYPE: ClassVar[str] = "equals"

    def evaluate(self, root: Env) -> Any:
        return Bool(values_equal(self.left.evaluate(root), self.right.evaluate(root)))

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        _check_comparable(self.left.evaluate_type(root_type), self.right.evaluate_type(root_type))
        return Bool


@dataclass(frozen=True)
class EqualsOneOfNode(Node):
    """`input` equals at least one option. No options evaluates to false.

    `options` is either a tuple of nodes or a single node evaluating to a
    `StaticArray`.
    """
    input: Node
    options: Union[Tuple[Node, ...], Node]

    TYPE: ClassVar[str] = "equalsOneOf"

    def _option_values(self, root: Env) -> List[Any]:
        if isinstance(self.options, tuple):
            return [o.evaluate(root) for o in self.options]
        values = self.options.evaluate(root)
        if not isinstance(values, StaticArray):
            raise NodeEvaluationError(f"equalsOneOf options must be an array, got {type_name(type_of(values))}")
        return list(values)

    def evaluate(self, root: Env) -> Any:
        value = self.input.evaluate(root)
        matches = [values_equal(value, option) for option in self._option_values(root)]
        result = Bool(False)
        for m in matches:
            result = result.or_(Bool(m))
        return result

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        input_type = self.input.evaluate_type(root_type)
        if isinstance(self.options, tuple):
            for option in self.options:
                _check_comparable(input_type, option.evaluate_type(root_type))
        else:
            options_type = self.options.evaluate_type(root_type)
            if not isinstance(options_type, StaticArrayType):
                raise NodeEvaluationError(f"equalsOneOf options must be an array, got {type_name(options_type)}")
            if options_type.length:
                _check_comparable(input_type, options_type.inner)
        return Bool


@dataclass(frozen=True)
class BinaryNumericNode(Node):
    left: Node
    right: Node

    def operands(self, root: Env) -> Tuple[Any, Any]:
        return promote(self.left.evaluate(root), self.right.evaluate(root))

    def operand_type(self, root_type: Dict[str, Any]) -> type:
        return wider_numeric_type(self.left.evaluate_type(root_type), self.right.evaluate_type(root_type))


@dataclass(frozen=True)
class LessThanNode(BinaryNumericNode):
    TYPE: ClassVar[str] = "lessThan"

    def evaluate(self, root: Env) -> Any:
        a, b = self.operands(root)
        return a.less_than(b)

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        self.operand_type(root_type)
        return Bool


@dataclass(frozen=True)
class LessThanEqNode(BinaryNumericNode):
    TYPE: ClassVar[str] = "lessThanEq"

    def evaluate(self, root: Env) -> Any:
        a, b = self.operands(root)
        return a.less_than_or_equal(b)

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        self.operand_type(root_type)
        return Bool


@dataclass(frozen=True)
class _ArithmeticNode(BinaryNumericNode):
    OP: ClassVar[str] = ""

    def evaluate(self, root: Env) -> Any:
        a, b = self.operands(root)
        return getattr(a, self.OP)(b)

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        return self.operand_type(root_type)


@dataclass(frozen=True)
class AddNode(_ArithmeticNode):
    TYPE: ClassVar[str] = "add"
    OP: ClassVar[str] = "add"


@dataclass(frozen=True)
class SubNode(_ArithmeticNode):
    TYPE: ClassVar[str] = "sub"
    OP: ClassVar[str] = "sub"


@dataclass(frozen=True)
class MulNode(_ArithmeticNode):
    TYPE: ClassVar[str] = "mul"
    OP: ClassVar[str] = "mul"


@dataclass(frozen=True)
class DivNode(_ArithmeticNode):
    TYPE: ClassVar[str] = "div"
    OP: ClassVar[str] = "div"


@dataclass(frozen=True)
class AndNode(Node):
    inputs: Tuple[Node, ...]

    TYPE: ClassVar[str] = "and"

    def evaluate(self, root: Env) -> Any:
        result = Bool(True)
        for node in self.inputs:
            result = result.and_(_expect_bool(node.evaluate(root), "and"))
        return result

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        for node in self.inputs:
            _expect_bool_type(node.evaluate_type(root_type), "and")
        return Bool


@dataclass(frozen=True)
class OrNode(Node):
    left: Node
    right: Node

    TYPE: ClassVar[str] = "or"

    def evaluate(self, root: Env) -> Any:
        left = _expect_bool(self.left.evaluate(root), "or")
        return left.or_(_expect_bool(self.right.evaluate(root), "or"))

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        _expect_bool_type(self.left.evaluate_type(root_type), "or")
        _expect_bool_type(self.right.evaluate_type(root_type), "or")
        return Bool


@dataclass(frozen=True)
class NotNode(Node):
    inner: Node

    TYPE: ClassVar[str] = "not"

    def evaluate(self, root: Env) -> Any:
        return _expect_bool(self.inner.evaluate(root), "not").not_()

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        _expect_bool_type(self.inner.evaluate_type(root_type), "not")
        return Bool


@dataclass(frozen=True)
class HashNode(Node):
    inputs: Tuple[Node, ...]
    prefix: Optional[str] = None

    TYPE: ClassVar[str] = "hash"

    def __post_init__(self):
        if self.prefix is not None and not isinstance(self.prefix, str):
            raise SpecConstructionError(f"hash prefix must be a string, got {type(self.prefix).__name__}")

    def evaluate(self, root: Env) -> Any:
        return hash_with_prefix(self.prefix, [n.evaluate(root) for n in self.inputs])

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        for n in self.inputs:
            n.evaluate_type(root_type)
        return Field


@dataclass(frozen=True)
class IfThenElseNode(Node):
    """Both branches are always evaluated; they must have the same type."""
    condition: Node
    then_node: Node
    else_node: Node

    TYPE: ClassVar[str] = "ifThenElse"

    def evaluate(self, root: Env) -> Any:
        condition = _expect_bool(self.condition.evaluate(root), "ifThenElse")
        then_value = self.then_node.evaluate(root)
        else_value = self.else_node.evaluate(root)
        if not _same_type(type_of(then_value), type_of(else_value)):
            raise NodeEvaluationError(
                f"ifThenElse branches differ: {type_name(type_of(then_value))} "
                f"vs {type_name(type_of(else_value))}"
            )
        return then_value if condition else else_value

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        _expect_bool_type(self.condition.evaluate_type(root_type), "ifThenElse")
        then_type = self.then_node.evaluate_type(root_type)
        else_type = self.else_node.evaluate_type(root_type)
        if not _same_type(then_type, else_type):
            raise NodeEvaluationError(f"ifThenElse branches differ: {type_name(then_type)} vs {type_name(else_type)}")
        return then_type


@dataclass(frozen=True)
class ComputeNode(Node):
    """Free-form derived value with a declared output type. Not serializable."""
    inputs: Tuple[Node, ...]
    output_type: Any
    computation: Callable[..., Any]

    TYPE: ClassVar[str] = "compute"

    def evaluate(self, root: Env) -> Any:
        result = self.computation(*[n.evaluate(root) for n in self.inputs])
        check_type(result, self.output_type, key="compute")
        return result

    def evaluate_type(self, root_type: Dict[str, Any]) -> NestedType:
        for n in self.inputs:
            n.evaluate_type(root_type)
        return self.output_type


NODE_TYPES: Tuple[type, ...] = (
    OwnerNode,
    IssuerNode,
    ConstantNode,
    RootNode,
    PropertyNode,
    RecordNode,
    EqualsNode,
    EqualsOneOfNode,
    LessThanNode,
    LessThanEqNode,
    AddNode,
    SubNode,
    MulNode,
    DivNode,
    AndNode,
    OrNode,
    NotNode,
    HashNode,
    IfThenElseNode,
    ComputeNode,
)


# =============================================================================
# CONSTRUCTORS
# =============================================================================

def _node(value: Any) -> Node:
    return value if isinstance(value, Node) else ConstantNode(value)


class Operation:
    """Constructors for policy expressions.

    Operands that are not nodes are wrapped as constants, so
    `Operation.equals(age, UInt32(18))` works.
    """

    owner: ClassVar[Node] = OwnerNode()

    @staticmethod
    def constant(value: Any) -> Node:
        return ConstantNode(value)

    @staticmethod
    def issuer(credential: Node) -> Node:
        """Issuer field of a credential input.

        `credential` must be the handle of a credential input, i.e.
        `property(property(root, key), "data")`.
        """
        if (
            isinstance(credential, PropertyNode)
            and credential.key == "data"
            and isinstance(credential.inner, PropertyNode)
            and isinstance(credential.inner.inner, RootNode)
        ):
            return IssuerNode(credential.inner.key)
        raise SpecConstructionError("issuer() expects the handle of a credential input")

    @staticmethod
    def property(node: Node, key: str) -> Node:
        return PropertyNode(node, key)

    @staticmethod
    def record(fields: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Node:
        data = dict(fields or {}, **kwargs)
        return RecordNode({k: _node(v) for k, v in data.items()})

    @staticmethod
    def equals(left: Any, right: Any) -> Node:
        return EqualsNode(_node(left), _node(right))

    @staticmethod
    def equals_one_of(input: Any, options: Union[Sequence[Any], Node]) -> Node:
        if isinstance(options, Node):
            return EqualsOneOfNode(_node(input), options)
        return EqualsOneOfNode(_node(input), tuple(_node(o) for o in options))

    @staticmethod
    def less_than(left: Any, right: Any) -> Node:
        return LessThanNode(_node(left), _node(right))

    @staticmethod
    def less_than_eq(left: Any, right: Any) -> Node:
        return LessThanEqNode(_node(left), _node(right))

    @staticmethod
    def add(left: Any, right: Any) -> Node:
        return AddNode(_node(left), _node(right))

    @staticmethod
    def sub(left: Any, right: Any) -> Node:
        return SubNode(_node(left), _node(right))

    @staticmethod
    def mul(left: Any, right: Any) -> Node:
        return MulNode(_node(left), _node(right))

    @staticmethod
    def div(left: Any, right: Any) -> Node:
        return DivNode(_node(left), _node(right))

    @staticmethod
    def and_(*inputs: Any) -> Node:
        return AndNode(tuple(_node(i) for i in inputs))

    @staticmethod
    def or_(left: Any, right: Any) -> Node:
        return OrNode(_node(left), _node(right))

    @staticmethod
    def not_(inner: Any) -> Node:
        return NotNode(_node(inner))

    @staticmethod
    def hash(*inputs: Any, prefix: Optional[str] = None) -> Node:
        return HashNode(tuple(_node(i) for i in inputs), prefix)

    @staticmethod
    def hash_with_prefix(prefix: Optional[str], *inputs: Any) -> Node:
        return HashNode(tuple(_node(i) for i in inputs), prefix)

    @staticmethod
    def if_then_else(condition: Any, then_node: Any, else_node: Any) -> Node:
        return IfThenElseNode(_node(condition), _node(then_node), _node(else_node))

    @staticmethod
    def compute(inputs: Sequence[Any], output_type: Any, computation: Callable[..., Any]) -> Node:
        return ComputeNode(tuple(_node(i) for i in inputs), output_type, computation)
