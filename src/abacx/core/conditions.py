from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .ports import SubjectLike


class ConditionError(ValueError):
    """Raised when a condition tree is malformed or uses an unknown operator."""


class Op(str, Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    NIN = "nin"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    EXISTS = "exists"
    REGEX = "regex"


LEAF_OPS = frozenset(op.value for op in Op)
LOGICAL_OPS = frozenset({"and", "or", "not"})
_SET_OPS = (Op.IN, Op.NIN)
_ORDER_OPS = (Op.GT, Op.LT, Op.GTE, Op.LTE)


@dataclass(frozen=True)
class Leaf:
    """A single comparison. String operators are coerced to Op and list values
    are stored as tuples, so leaves built in code and decoded from JSON compare
    equal and hash.
    """

    field: str
    op: Op
    value: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "op", _coerce_op(self.op))
        object.__setattr__(self, "value", _freeze(self.value))


@dataclass(frozen=True)
class AllOf:
    children: Tuple["Condition", ...] = ()


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["Condition", ...] = ()


@dataclass(frozen=True)
class Not:
    child: "Condition"


Condition = Union[Leaf, AllOf, AnyOf, Not]


# Builders ---------------------------------------------------------------------


def field(name: str, op: Union[str, Op], value: Any = None) -> Leaf:
    leaf = Leaf(name, op, value)  # type: ignore[arg-type]
    _check_leaf(leaf)
    return leaf


def all_of(*children: Condition) -> AllOf:
    return AllOf(tuple(children))


def any_of(*children: Condition) -> AnyOf:
    return AnyOf(tuple(children))


def not_(child: Condition) -> Not:
    return Not(child)


def eq(name: str, value: Any) -> Leaf:
    return field(name, Op.EQ, value)


# Matching ---------------------------------------------------------------------


def is_vacuous(condition: Optional[Condition]) -> bool:
    """True for conditions that match every subject without reading attributes."""
    if condition is None:
        return True
    if isinstance(condition, AllOf):
        return all(is_vacuous(c) for c in condition.children)
    return False


def matches(condition: Optional[Condition], subject: Union[str, SubjectLike]) -> bool:
    """Evaluate *condition* against *subject*.

    Never raises for data problems: incompatible types and missing attributes
    resolve to False for the affected leaf. A bare subject type (a string)
    has no attributes, so only vacuous conditions match it.
    """
    if is_vacuous(condition):
        return True
    if isinstance(subject, str):
        return False
    return _eval(condition, subject)  # type: ignore[arg-type]


def _eval(node: Condition, subject: SubjectLike) -> bool:
    if isinstance(node, Leaf):
        try:
            actual = subject.get_attr(node.field)
        except Exception:
            return False
        return _eval_leaf(node.op, actual, node.value)
    if isinstance(node, AllOf):
        for child in node.children:
            if not _eval(child, subject):
                return False
        return True
    if isinstance(node, AnyOf):
        for child in node.children:
            if _eval(child, subject):
                return True
        return False
    if isinstance(node, Not):
        return not _eval(node.child, subject)
    return False


def _eval_leaf(op: Op, actual: Any, expected: Any) -> bool:
    if op is Op.EXISTS:
        want = True if expected is None else bool(expected)
        return (actual is not None) == want
    if op is Op.NE:
        if actual is None:
            return expected is not None
        return not _equal(actual, expected)
    if actual is None:
        return False
    if op is Op.EQ:
        return _equal(actual, expected)
    if op in _SET_OPS:
        if not isinstance(expected, (list, tuple)):
            return False
        found = any(_equal(actual, item) for item in expected)
        return found if op is Op.IN else not found
    if op in _ORDER_OPS:
        return _compare(op, actual, expected)
    if op is Op.REGEX:
        if not isinstance(actual, str) or not isinstance(expected, str):
            return False
        try:
            return re.search(expected, actual) is not None
        except re.error:
            return False
    return False


def _equal(a: Any, b: Any) -> bool:
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    try:
        return bool(a == b)
    except Exception:
        return False


def _is_number(x: Any) -> bool:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return False
    return not (isinstance(x, float) and math.isnan(x))


def _as_datetime(x: Any) -> Optional[datetime]:
    if isinstance(x, datetime):
        return x if x.tzinfo is not None else x.replace(tzinfo=timezone.utc)
    if isinstance(x, date):
        return datetime(x.year, x.month, x.day, tzinfo=timezone.utc)
    if isinstance(x, str):
        s = x.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
        return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
    return None


def _compare(op: Op, actual: Any, expected: Any) -> bool:
    if _is_number(actual) and _is_number(expected):
        left, right = actual, expected
    elif isinstance(actual, (date, datetime)) or isinstance(expected, (date, datetime)):
        left, right = _as_datetime(actual), _as_datetime(expected)
        if left is None or right is None:
            return False
    else:
        return False
    if op is Op.GT:
        return left > right
    if op is Op.LT:
        return left < right
    if op is Op.GTE:
        return left >= right
    return left <= right


# Wire format ------------------------------------------------------------------


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


def _coerce_op(op: Any) -> Op:
    if isinstance(op, Op):
        return op
    try:
        return Op(op)
    except ValueError:
        raise ConditionError(f"unknown condition operator: {op!r}") from None


def _check_leaf(leaf: Leaf) -> None:
    if not isinstance(leaf.field, str) or not leaf.field:
        raise ConditionError("condition leaf requires a non-empty 'field'")
    if leaf.op in _SET_OPS and not isinstance(leaf.value, (list, tuple)):
        raise ConditionError(f"operator {leaf.op.value!r} requires a list value")
    if leaf.op is Op.REGEX:
        if not isinstance(leaf.value, str):
            raise ConditionError("operator 'regex' requires a string pattern")
        try:
            re.compile(leaf.value)
        except re.error as e:
            raise ConditionError(f"invalid regex {leaf.value!r}: {e}") from e


def validate_condition(node: Any) -> None:
    """Re-check a condition tree built in code; raises ConditionError."""
    if isinstance(node, Leaf):
        _check_leaf(node)
    elif isinstance(node, (AllOf, AnyOf)):
        for child in node.children:
            validate_condition(child)
    elif isinstance(node, Not):
        validate_condition(node.child)
    else:
        raise ConditionError(f"not a condition node: {node!r}")


def parse_condition(data: Any) -> Optional[Condition]:
    """Build a condition tree from its wire representation.

    ``None`` and ``{}`` mean "no condition". Nodes carrying an ``op`` key use
    the tree form; any other mapping is read as a CASL/MongoDB style query
    (``{"ownerId": "u1", "age": {"$gte": 18}}``).
    """
    if data is None:
        return None
    if not isinstance(data, Mapping):
        raise ConditionError(f"condition must be an object, got {type(data).__name__}")
    if not data:
        return None
    if "op" in data:
        return _parse_node(data)
    return _parse_mongo(data)


def _parse_node(data: Any) -> Condition:
    if not isinstance(data, Mapping):
        raise ConditionError(f"condition node must be an object, got {type(data).__name__}")
    op = data.get("op")
    if op in ("and", "or"):
        children = data.get("children")
        if not isinstance(children, list):
            raise ConditionError(f"{op!r} node requires a 'children' list")
        parsed = tuple(_parse_node(c) for c in children)
        return AllOf(parsed) if op == "and" else AnyOf(parsed)
    if op == "not":
        if "child" not in data:
            raise ConditionError("'not' node requires a 'child'")
        return Not(_parse_node(data["child"]))
    leaf = Leaf(data.get("field"), op, data.get("value"))  # type: ignore[arg-type]
    _check_leaf(leaf)
    return leaf


_MONGO_OPS = {"$" + op.value: op for op in Op}


def _parse_mongo(data: Mapping[str, Any], prefix: str = "") -> Condition:
    parts: list[Condition] = []
    for key, value in data.items():
        if key in ("$and", "$or"):
            if not isinstance(value, list):
                raise ConditionError(f"{key!r} requires a list")
            children = tuple(_parse_mongo(_mapping(v), prefix) for v in value)
            parts.append(AllOf(children) if key == "$and" else AnyOf(children))
        elif key == "$not":
            parts.append(Not(_parse_mongo(_mapping(value), prefix)))
        elif key.startswith("$"):
            raise ConditionError(f"unknown condition operator: {key!r}")
        else:
            parts.append(_parse_mongo_field(prefix + key, value))
    if len(parts) == 1:
        return parts[0]
    return AllOf(tuple(parts))


def _parse_mongo_field(name: str, value: Any) -> Condition:
    if isinstance(value, Mapping) and value:
        if all(isinstance(k, str) and k.startswith("$") for k in value):
            leaves: list[Condition] = []
            for key, expected in value.items():
                op = _MONGO_OPS.get(key)
                if op is None:
                    raise ConditionError(f"unknown condition operator: {key!r}")
                leaf = Leaf(name, op, expected)
                _check_leaf(leaf)
                leaves.append(leaf)
            return leaves[0] if len(leaves) == 1 else AllOf(tuple(leaves))
        # nested field object: {"address": {"city": "Oslo"}}
        return _parse_mongo(value, prefix=name + ".")
    leaf = Leaf(name, Op.EQ, value)
    _check_leaf(leaf)
    return leaf


def _mapping(value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConditionError(f"condition node must be an object, got {type(value).__name__}")
    return value


def condition_to_dict(node: Condition) -> Dict[str, Any]:
    if isinstance(node, Leaf):
        return {"field": node.field, "op": node.op.value, "value": _thaw(node.value)}
    if isinstance(node, AllOf):
        return {"op": "and", "children": [condition_to_dict(c) for c in node.children]}
    if isinstance(node, AnyOf):
        return {"op": "or", "children": [condition_to_dict(c) for c in node.children]}
    if isinstance(node, Not):
        return {"op": "not", "child": condition_to_dict(node.child)}
    raise ConditionError(f"not a condition node: {node!r}")


__all__ = [
    "AllOf",
    "AnyOf",
    "Condition",
    "ConditionError",
    "LEAF_OPS",
    "LOGICAL_OPS",
    "Leaf",
    "Not",
    "Op",
    "all_of",
    "any_of",
    "condition_to_dict",
    "eq",
    "field",
    "is_vacuous",
    "matches",
    "not_",
    "parse_condition",
    "validate_condition",
]
