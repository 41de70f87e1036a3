from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Tuple, Union

from .compiler import EMPTY, CompiledRuleSet
from .compiler import compile as compile_rules
from .conditions import matches
from .model import Rule, SubjectInput, as_subject, subject_type_of
from .ports import SubjectLike

REASON_NO_MATCH = "no_matching_rule"
REASON_FIELD = "field_not_permitted"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    rule: Optional[Rule] = None
    rule_index: Optional[int] = None
    reason: Optional[str] = None

    @property
    def effect(self) -> str:
        return "allow" if self.allowed else "deny"


def _applies(rule: Rule, subject: Union[str, SubjectLike], field: Optional[str]) -> bool:
    # a deny scoped to fields says nothing about other fields
    if field is not None and not rule.is_allow and rule.fields and field not in rule.fields:
        return False
    return matches(rule.condition, subject)


def _winner(
    ruleset: CompiledRuleSet,
    action: str,
    subject: Union[str, SubjectLike],
    field: Optional[str] = None,
) -> Optional[int]:
    positions = ruleset.candidates(action, subject_type_of(subject))
    for i in reversed(positions):
        if _applies(ruleset.rules[i], subject, field):
            return i
    return None


def evaluate(
    ruleset: CompiledRuleSet,
    action: str,
    subject: SubjectInput,
    field: Optional[str] = None,
) -> Decision:
    """Decide *action* on *subject*; the last applicable rule in declaration order wins."""
    subj = as_subject(subject)
    i = _winner(ruleset, action, subj, field)
    if i is None:
        return Decision(allowed=False, reason=REASON_NO_MATCH)
    rule = ruleset.rules[i]
    if not rule.is_allow:
        return Decision(allowed=False, rule=rule, rule_index=i, reason=rule.reason)
    if field is not None and rule.fields and field not in rule.fields:
        return Decision(allowed=False, rule=rule, rule_index=i, reason=REASON_FIELD)
    return Decision(allowed=True, rule=rule, rule_index=i)


def can(
    ruleset: CompiledRuleSet, action: str, subject: SubjectInput, field: Optional[str] = None
) -> bool:
    return evaluate(ruleset, action, subject, field).allowed


def cannot(
    ruleset: CompiledRuleSet, action: str, subject: SubjectInput, field: Optional[str] = None
) -> bool:
    return not can(ruleset, action, subject, field)


def relevant_rule(
    ruleset: CompiledRuleSet, action: str, subject: SubjectInput, field: Optional[str] = None
) -> Optional[Rule]:
    subj = as_subject(subject)
    i = _winner(ruleset, action, subj, field)
    return None if i is None else ruleset.rules[i]


def rules_for(ruleset: CompiledRuleSet, action: str, subject_type: str) -> Tuple[Rule, ...]:
    return ruleset.candidate_rules(action, subject_type)


def permitted_fields(
    ruleset: CompiledRuleSet, action: str, subject: SubjectInput
) -> Optional[FrozenSet[str]]:
    """Fields *action* may touch on *subject*.

    None means every field. Matching rules are folded in declaration order, so a
    later rule adjusts what earlier ones granted. A field-scoped deny that follows
    an unrestricted allow is not reflected here (the result stays None); check
    such fields with can(action, subject, field).
    """
    subj = as_subject(subject)
    allowed: Optional[set[str]] = set()
    for i in ruleset.candidates(action, subject_type_of(subj)):
        rule = ruleset.rules[i]
        if not matches(rule.condition, subj):
            continue
        if rule.is_allow:
            if not rule.fields:
                allowed = None
            elif allowed is not None:
                allowed.update(rule.fields)
        elif not rule.fields:
            allowed = set()
        elif allowed is not None:
            allowed.difference_update(rule.fields)
    return None if allowed is None else frozenset(allowed)


class Ability:
    """An immutable rule set together with the evaluator.

    Build once per snapshot of permissions; for an ability that changes over time
    use ReactiveAbility.
    """

    __slots__ = ("_ruleset",)

    def __init__(self, rules: Union[Iterable[Rule], CompiledRuleSet] = ()) -> None:
        if isinstance(rules, CompiledRuleSet):
            self._ruleset = rules
        else:
            self._ruleset = compile_rules(rules)

    @classmethod
    def empty(cls) -> "Ability":
        return cls(EMPTY)

    @property
    def ruleset(self) -> CompiledRuleSet:
        return self._ruleset

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return self._ruleset.rules

    def evaluate(self, action: str, subject: SubjectInput, field: Optional[str] = None) -> Decision:
        return evaluate(self._ruleset, action, subject, field)

    def can(self, action: str, subject: SubjectInput, field: Optional[str] = None) -> bool:
        return can(self._ruleset, action, subject, field)

    def cannot(self, action: str, subject: SubjectInput, field: Optional[str] = None) -> bool:
        return not self.can(action, subject, field)

    def relevant_rule(
        self, action: str, subject: SubjectInput, field: Optional[str] = None
    ) -> Optional[Rule]:
        return relevant_rule(self._ruleset, action, subject, field)

    def rules_for(self, action: str, subject_type: str) -> Tuple[Rule, ...]:
        return rules_for(self._ruleset, action, subject_type)

    def permitted_fields(self, action: str, subject: SubjectInput) -> Optional[FrozenSet[str]]:
        return permitted_fields(self._ruleset, action, subject)

    def __len__(self) -> int:
        return len(self._ruleset)

    def __repr__(self) -> str:
        return f"Ability(rules={len(self._ruleset)})"
