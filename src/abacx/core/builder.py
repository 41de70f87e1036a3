from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, List, Mapping, Optional, Union

from .ability import Ability
from .conditions import Condition, parse_condition
from .model import Rule

Names = Union[str, Iterable[str]]
ConditionInput = Union[Condition, Mapping[str, Any], None]


def _condition(value: ConditionInput) -> Optional[Condition]:
    if value is None or not isinstance(value, Mapping):
        return value  # type: ignore[return-value]
    return parse_condition(value)


class AbilityBuilder:
    """Fluent construction of an ordered rule list.

    Example:
        b = AbilityBuilder()
        b.can("read", "household")
        b.can("update", "household", {"role": "owner"})
        b.cannot("delete", "household", reason="owners only")
        ability = b.build()

    Conditions may be condition nodes or mappings in either wire form.
    """

    def __init__(self) -> None:
        self._rules: List[Rule] = []

    def can(
        self,
        action: Names,
        subject: Names,
        conditions: ConditionInput = None,
        *,
        fields: Optional[Names] = None,
    ) -> "AbilityBuilder":
        self._rules.append(
            Rule(
                actions=action,  # type: ignore[arg-type]
                subject_types=subject,  # type: ignore[arg-type]
                condition=_condition(conditions),
                fields=fields,  # type: ignore[arg-type]
            )
        )
        return self

    def cannot(
        self,
        action: Names,
        subject: Names,
        conditions: ConditionInput = None,
        *,
        fields: Optional[Names] = None,
        reason: Optional[str] = None,
    ) -> "AbilityBuilder":
        self._rules.append(
            Rule(
                actions=action,  # type: ignore[arg-type]
                subject_types=subject,  # type: ignore[arg-type]
                condition=_condition(conditions),
                fields=fields,  # type: ignore[arg-type]
                inverted=True,
                reason=reason,
            )
        )
        return self

    def because(self, reason: str) -> "AbilityBuilder":
        """Attach *reason* to the most recently added rule."""
        if not self._rules:
            raise ValueError("because() called before any rule was added")
        last = self._rules[-1]
        self._rules[-1] = replace(last, reason=reason)
        return self

    @property
    def rules(self) -> List[Rule]:
        return list(self._rules)

    def build(self) -> Ability:
        return Ability(self._rules)
