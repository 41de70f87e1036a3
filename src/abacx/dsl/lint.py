from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..core.conditions import ConditionError, parse_condition
from ..core.model import ALL, MANAGE

Issue = Dict[str, Any]


def _names(rule: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    raw = rule.get(key)
    if isinstance(raw, str):
        return (raw,) if raw else ()
    if not isinstance(raw, list):
        return ()
    out: List[str] = []
    for v in raw:
        if isinstance(v, str) and v and v not in out:
            out.append(v)
    return tuple(out)


def _fields(rule: Mapping[str, Any]) -> Optional[Tuple[str, ...]]:
    raw = rule.get("fields")
    if raw is None:
        return None
    return _names(rule, "fields")


def _unconditional(rule: Mapping[str, Any]) -> bool:
    return not rule.get("conditions")


def _covers(names: Tuple[str, ...], wanted: Tuple[str, ...], wildcard: str) -> bool:
    return wildcard in names or set(wanted) <= set(names)


def _shadowed(earlier: Mapping[str, Any], later: Mapping[str, Any]) -> bool:
    """True when *later* decides every check *earlier* could decide.

    With last-match-wins precedence such an earlier rule never has an effect.
    """
    if not _unconditional(later) or _fields(later):
        return False
    if not _covers(_names(later, "action"), _names(earlier, "action"), MANAGE):
        return False
    return _covers(_names(later, "subject"), _names(earlier, "subject"), ALL)


def _rules_of(document: Any) -> List[Any]:
    if isinstance(document, Mapping):
        document = document.get("permissions", [])
    return document if isinstance(document, list) else []


def analyze_rules(document: Any) -> List[Issue]:
    """Static checks over a wire permission document.

    Issue codes: EMPTY_ACTIONS, EMPTY_SUBJECTS, UNKNOWN_OPERATOR,
    DUPLICATE_RULE, SHADOWED_RULE, BROAD_ALLOW.
    """
    issues: List[Issue] = []
    rules = [r for r in _rules_of(document) if isinstance(r, Mapping)]

    for i, rule in enumerate(rules):
        if not _names(rule, "action"):
            issues.append({"code": "EMPTY_ACTIONS", "index": i})
        if not _names(rule, "subject"):
            issues.append({"code": "EMPTY_SUBJECTS", "index": i})
        try:
            parse_condition(rule.get("conditions"))
        except ConditionError as e:
            issues.append({"code": "UNKNOWN_OPERATOR", "index": i, "message": str(e)})
        if (
            not rule.get("inverted")
            and MANAGE in _names(rule, "action")
            and ALL in _names(rule, "subject")
            and _unconditional(rule)
        ):
            issues.append({"code": "BROAD_ALLOW", "index": i})

    for j, later in enumerate(rules):
        for i in range(j):
            earlier = rules[i]
            if earlier == later:
                issues.append({"code": "DUPLICATE_RULE", "index": j, "duplicate_of": i})
            elif _shadowed(earlier, later):
                issues.append({"code": "SHADOWED_RULE", "index": i, "shadowed_by": j})

    return issues


__all__ = ["analyze_rules"]
