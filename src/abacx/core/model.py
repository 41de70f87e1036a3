from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Literal, Mapping, Optional, Tuple, Union

from .ports import SubjectLike

if TYPE_CHECKING:  # pragma: no cover
    from .conditions import Condition

MANAGE = "manage"
ALL = "all"

Effect = Literal["allow", "deny"]
EFFECTS = ("allow", "deny")

_MISSING = object()


def _as_tuple(value: Union[str, Iterable[str], None]) -> Tuple[Any, ...]:
    """Normalize a string or an iterable into a de-duplicated, order-preserving tuple."""
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    out: list[Any] = []
    for item in value:
        if item not in out:
            out.append(item)
    return tuple(out)


def resolve_path(root: Any, path: str) -> Any | None:
    """Walk a dotted attribute path through mappings and objects.

    Returns None when any segment is missing.
    """
    current: Any = root
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        else:
            current = getattr(current, part, _MISSING)
        if current is _MISSING:
            return None
    return current


@dataclass(frozen=True)
class Rule:
    """A single allow/deny statement.

    ``actions``, ``subject_types`` and ``fields`` accept a string or any iterable
    of strings and are stored as tuples. ``inverted`` and ``effect == "deny"``
    are kept in sync: setting either one makes the rule a deny rule.
    """

    actions: Tuple[str, ...]
    subject_types: Tuple[str, ...]
    effect: Effect = "allow"
    condition: Optional["Condition"] = None
    fields: Optional[Tuple[str, ...]] = None
    inverted: bool = False
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", _as_tuple(self.actions))
        object.__setattr__(self, "subject_types", _as_tuple(self.subject_types))
        if self.fields is not None:
            object.__setattr__(self, "fields", _as_tuple(self.fields))
        if self.inverted or self.effect == "deny":
            object.__setattr__(self, "effect", "deny")
            object.__setattr__(self, "inverted", True)

    @property
    def is_allow(self) -> bool:
        return self.effect == "allow"

    @property
    def has_condition(self) -> bool:
        from .conditions import is_vacuous

        return self.condition is not None and not is_vacuous(self.condition)

    @property
    def has_field_restrictions(self) -> bool:
        return bool(self.fields)


@dataclass(frozen=True)
class Subject:
    """A resource instance described by its type and a mapping of attributes."""

    type: str
    attrs: Mapping[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    @property
    def subject_type(self) -> str:
        return self.type

    def get_attr(self, name: str) -> Any | None:
        if name == "id" and "id" not in self.attrs:
            return self.id
        if name in self.attrs:
            return self.attrs[name]
        return resolve_path(self.attrs, name)


class ObjectSubject:
    """Expose an arbitrary object (dataclass, model instance, dict) as a subject.

    The subject type is taken from ``type`` when given, then from the object's
    ``__subject_type__`` attribute, then from its lower-cased class name.
    """

    __slots__ = ("obj", "_type")

    def __init__(self, obj: Any, type: Optional[str] = None) -> None:
        self.obj = obj
        self._type = type or detect_subject_type(obj)

    @property
    def subject_type(self) -> str:
        return self._type

    def get_attr(self, name: str) -> Any | None:
        return resolve_path(self.obj, name)

    def __repr__(self) -> str:
        return f"ObjectSubject({self._type!r}, {self.obj!r})"


def detect_subject_type(obj: Any) -> str:
    declared = getattr(obj, "__subject_type__", None)
    if isinstance(declared, str) and declared:
        return declared
    if isinstance(obj, Mapping):
        declared = obj.get("__type__")
        if isinstance(declared, str) and declared:
            return declared
    return type(obj).__name__.lower()


SubjectInput = Union[str, SubjectLike, Mapping[str, Any], Any]


def as_subject(value: SubjectInput) -> Union[str, SubjectLike]:
    """Coerce user input into something the evaluator understands.

    A plain string stays a string and means a type-only check.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, SubjectLike):
        return value
    if isinstance(value, Mapping) and isinstance(value.get("__type__"), str):
        attrs = {k: v for k, v in value.items() if k != "__type__"}
        return Subject(type=value["__type__"], attrs=attrs)
    return ObjectSubject(value)


def subject_type_of(subject: Union[str, SubjectLike]) -> str:
    if isinstance(subject, str):
        return subject
    return subject.subject_type
