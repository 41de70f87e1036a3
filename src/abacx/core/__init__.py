from .ability import Ability, Decision, can, cannot, evaluate, permitted_fields
from .builder import AbilityBuilder
from .compiler import CompiledRuleSet, RuleValidationError, compile
from .conditions import ConditionError, matches, parse_condition
from .guards import ForbiddenError, authorize, guarded, requires
from .model import ALL, MANAGE, ObjectSubject, Rule, Subject
from .reactive import PermissionChange, ReactiveAbility

__all__ = [
    "ALL",
    "MANAGE",
    "Ability",
    "AbilityBuilder",
    "CompiledRuleSet",
    "ConditionError",
    "Decision",
    "ForbiddenError",
    "ObjectSubject",
    "PermissionChange",
    "ReactiveAbility",
    "Rule",
    "RuleValidationError",
    "Subject",
    "authorize",
    "can",
    "cannot",
    "compile",
    "evaluate",
    "guarded",
    "matches",
    "parse_condition",
    "permitted_fields",
    "requires",
]
