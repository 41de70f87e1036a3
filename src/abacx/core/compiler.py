from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

from .conditions import ConditionError, validate_condition
from .model import ALL, EFFECTS, MANAGE, Rule

IndexKey = Tuple[str, str]


class RuleValidationError(ValueError):
    """Raised by compile() when a rule breaks the compiled-set invariants."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message if index is None else f"rule #{index}: {message}")
        self.index = index


@dataclass(frozen=True)
class CompiledRuleSet:
    """Ordered rules plus an (action, subject_type) -> positions index.

    Positions inside every bucket are increasing, i.e. they follow the order in
    which rules were declared.
    """

    rules: Tuple[Rule, ...] = ()
    index: Dict[IndexKey, Tuple[int, ...]] = field(default_factory=dict)
    _candidates: Dict[IndexKey, Tuple[int, ...]] = field(
        default_factory=dict, repr=False, compare=False
    )

    # the index is a dict
    __hash__ = None  # type: ignore[assignment]

    def __len__(self) -> int:
        return len(self.rules)

    def candidates(self, action: str, subject_type: str) -> Tuple[int, ...]:
        """Positions of every rule that could apply, in declaration order."""
        key = (action, subject_type)
        cached = self._candidates.get(key)
        if cached is not None:
            return cached
        merged: set[int] = set()
        for bucket in {key, (action, ALL), (MANAGE, subject_type), (MANAGE, ALL)}:
            merged.update(self.index.get(bucket, ()))
        out = tuple(sorted(merged))
        # plain dict assignment; concurrent readers at worst compute the same tuple twice
        self._candidates[key] = out
        return out

    def candidate_rules(self, action: str, subject_type: str) -> Tuple[Rule, ...]:
        return tuple(self.rules[i] for i in self.candidates(action, subject_type))


EMPTY = CompiledRuleSet()


def _check(rule: Rule, i: int) -> None:
    if not isinstance(rule, Rule):
        raise RuleValidationError(f"expected Rule, got {type(rule).__name__}", index=i)
    if not rule.actions:
        raise RuleValidationError("rule has no actions", index=i)
    if not rule.subject_types:
        raise RuleValidationError("rule has no subject types", index=i)
    if any(not isinstance(a, str) or not a for a in rule.actions):
        raise RuleValidationError("actions must be non-empty strings", index=i)
    if any(not isinstance(s, str) or not s for s in rule.subject_types):
        raise RuleValidationError("subject types must be non-empty strings", index=i)
    if rule.effect not in EFFECTS:
        raise RuleValidationError(f"unknown effect {rule.effect!r}", index=i)
    if rule.condition is not None:
        try:
            validate_condition(rule.condition)
        except ConditionError as e:
            raise RuleValidationError(str(e), index=i) from e


def compile(rules: Iterable[Rule]) -> CompiledRuleSet:
    """Validate *rules* and build the lookup index in a single pass."""
    ordered = tuple(rules)
    buckets: Dict[IndexKey, list[int]] = {}
    for i, rule in enumerate(ordered):
        _check(rule, i)
        for action in rule.actions:
            for subject_type in rule.subject_types:
                buckets.setdefault((action, subject_type), []).append(i)
    return CompiledRuleSet(rules=ordered, index={k: tuple(v) for k, v in buckets.items()})


__all__ = ["CompiledRuleSet", "EMPTY", "RuleValidationError", "compile"]
