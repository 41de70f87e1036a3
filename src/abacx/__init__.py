"""ABACX: attribute-based permission checks for client applications.

Rules arrive from a backend as JSON, are compiled into an immutable Ability and
installed into a ReactiveAbility that UI code and services query synchronously.
"""

from .core.ability import Ability, Decision
from .core.builder import AbilityBuilder
from .core.compiler import CompiledRuleSet, RuleValidationError
from .core.conditions import ConditionError
from .core.guards import ForbiddenError, authorize, guarded, requires
from .core.model import ALL, MANAGE, ObjectSubject, Rule, Subject
from .core.reactive import PermissionChange, ReactiveAbility
from .codec import DecodeError, decode, decode_json, encode, encode_json
from .events import PermissionRecomputeHandler
from .logging import DecisionLogger
from .storage import FilePermissionSource, HotReloader

try:
    from importlib.metadata import PackageNotFoundError, version
except Exception:  # pragma: no cover
    PackageNotFoundError = Exception  # type: ignore
    version = None  # type: ignore


def _detect_version() -> str:
    if version is None:
        return "0.1.0"
    try:
        return version("abacx")
    except PackageNotFoundError:
        return "0.1.0"


__version__ = _detect_version()

__all__ = [
    "ALL",
    "MANAGE",
    "Ability",
    "AbilityBuilder",
    "CompiledRuleSet",
    "ConditionError",
    "Decision",
    "DecisionLogger",
    "DecodeError",
    "FilePermissionSource",
    "ForbiddenError",
    "HotReloader",
    "ObjectSubject",
    "PermissionChange",
    "PermissionRecomputeHandler",
    "ReactiveAbility",
    "Rule",
    "RuleValidationError",
    "Subject",
    "__version__",
    "authorize",
    "decode",
    "decode_json",
    "encode",
    "encode_json",
    "guarded",
    "requires",
]
