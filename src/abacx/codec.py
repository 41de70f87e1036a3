"""Conversion between wire-format permission rules and Rule objects.

Accepted documents:

* a JSON array of rule objects (the format the backend sends);
* a permission-set envelope ``{"version": "1.0", "permissions": [...]}``;
* CASL packed rows ``[["read", "post", {"authorId": "u1"}], ...]``.

A rule that cannot be decoded is logged and skipped; only a document that is
not a rule list at all raises DecodeError.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .core.conditions import ConditionError, condition_to_dict, parse_condition
from .core.model import Rule

logger = logging.getLogger("abacx.codec")

SUPPORTED_VERSIONS = ("1.0",)
CURRENT_VERSION = "1.0"


class DecodeError(ValueError):
    """The payload as a whole is not a permission document."""


class _SkipRule(ValueError):
    pass


def _names(raw: Any, key: str, *, required: bool) -> Optional[Tuple[str, ...]]:
    if raw is None:
        if required:
            raise _SkipRule(f"missing '{key}'")
        return None
    values: Sequence[Any]
    if isinstance(raw, str):
        values = [raw]
    elif isinstance(raw, list):
        values = raw
    else:
        raise _SkipRule(f"'{key}' must be a string or an array of strings")
    if any(not isinstance(v, str) or not v for v in values):
        raise _SkipRule(f"'{key}' entries must be non-empty strings")
    if required and not values:
        raise _SkipRule(f"'{key}' is empty")
    return tuple(values)


def decode_rule(raw: Any) -> Rule:
    """Decode one wire rule; raises ValueError when the entry is unusable."""
    if not isinstance(raw, Mapping):
        raise _SkipRule(f"rule must be an object, got {type(raw).__name__}")
    actions = _names(raw.get("action"), "action", required=True)
    subjects = _names(raw.get("subject"), "subject", required=True)
    fields = _names(raw.get("fields"), "fields", required=False)
    inverted = raw.get("inverted", False)
    if inverted is None:
        inverted = False
    if not isinstance(inverted, bool):
        raise _SkipRule("'inverted' must be a boolean")
    reason = raw.get("reason")
    if reason is not None and not isinstance(reason, str):
        raise _SkipRule("'reason' must be a string")
    try:
        condition = parse_condition(raw.get("conditions"))
    except ConditionError as e:
        raise _SkipRule(str(e)) from e
    return Rule(
        actions=actions,  # type: ignore[arg-type]
        subject_types=subjects,  # type: ignore[arg-type]
        condition=condition,
        fields=fields,
        inverted=inverted,
        reason=reason,
    )


def _unpack_row(row: Sequence[Any]) -> Dict[str, Any]:
    if len(row) < 2:
        raise _SkipRule("packed rule needs at least [action, subject]")
    out: Dict[str, Any] = {"action": row[0], "subject": row[1]}
    if len(row) > 2:
        out["conditions"] = row[2]
    if len(row) > 3:
        out["inverted"] = bool(row[3])
    if len(row) > 4:
        out["fields"] = row[4]
    if len(row) > 5:
        out["reason"] = row[5]
    return out


def _entries(document: Any) -> List[Any]:
    if isinstance(document, Mapping):
        if "permissions" not in document:
            raise DecodeError("permission set must contain 'permissions'")
        version = str(document.get("version", CURRENT_VERSION))
        if version not in SUPPORTED_VERSIONS:
            raise DecodeError(f"unsupported permission format version: {version}")
        document = document["permissions"]
    if not isinstance(document, list):
        raise DecodeError(f"expected a list of rules, got {type(document).__name__}")
    return document


def decode(document: Any) -> List[Rule]:
    """Decode a parsed wire document into rules, preserving order."""
    rules: List[Rule] = []
    for i, raw in enumerate(_entries(document)):
        try:
            if isinstance(raw, list):
                raw = _unpack_row(raw)
            rules.append(decode_rule(raw))
        except ValueError as e:
            logger.warning("ABACX: skipping permission rule #%d: %s", i, e)
    return rules


def decode_json(text: Union[str, bytes, bytearray]) -> List[Rule]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid permissions JSON: {e}") from e
    return decode(document)


def _one_or_many(values: Sequence[str]) -> Union[str, List[str]]:
    return values[0] if len(values) == 1 else list(values)


def encode_rule(rule: Rule) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "action": _one_or_many(rule.actions),
        "subject": _one_or_many(rule.subject_types),
    }
    if rule.condition is not None:
        out["conditions"] = condition_to_dict(rule.condition)
    if rule.fields is not None:
        out["fields"] = list(rule.fields)
    if rule.inverted:
        out["inverted"] = True
    if rule.reason is not None:
        out["reason"] = rule.reason
    return out


def encode(rules: Iterable[Rule]) -> List[Dict[str, Any]]:
    return [encode_rule(r) for r in rules]


def encode_json(rules: Iterable[Rule], *, indent: Optional[int] = None) -> str:
    return json.dumps(encode(rules), indent=indent, sort_keys=indent is not None)


def encode_permission_set(
    rules: Iterable[Rule],
    *,
    version: str = CURRENT_VERSION,
    metadata: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"version": version, "permissions": encode(rules)}
    if metadata:
        doc["metadata"] = dict(metadata)
    return doc


__all__ = [
    "CURRENT_VERSION",
    "DecodeError",
    "SUPPORTED_VERSIONS",
    "decode",
    "decode_json",
    "decode_rule",
    "encode",
    "encode_json",
    "encode_permission_set",
    "encode_rule",
]
