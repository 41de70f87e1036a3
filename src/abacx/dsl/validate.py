from __future__ import annotations

from typing import Any, Dict

_NAMES: Dict[str, Any] = {
    "oneOf": [
        {"type": "string", "minLength": 1},
        {"type": "array", "minItems": 1, "items": {"type": "string", "minLength": 1}},
    ]
}

_LEAF_OPS = ["eq", "ne", "in", "nin", "gt", "lt", "gte", "lte", "exists", "regex"]

CONDITION_SCHEMA: Dict[str, Any] = {
    "oneOf": [
        {
            "type": "object",
            "required": ["field", "op"],
            "properties": {
                "field": {"type": "string", "minLength": 1},
                "op": {"enum": _LEAF_OPS},
                "value": {},
            },
            "additionalProperties": False,
        },
        {
            "type": "object",
            "required": ["op", "children"],
            "properties": {
                "op": {"enum": ["and", "or"]},
                "children": {"type": "array", "items": {"$ref": "#/$defs/condition"}},
            },
            "additionalProperties": False,
        },
        {
            "type": "object",
            "required": ["op", "child"],
            "properties": {
                "op": {"const": "not"},
                "child": {"$ref": "#/$defs/condition"},
            },
            "additionalProperties": False,
        },
    ]
}

RULE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["action", "subject"],
    "properties": {
        "action": _NAMES,
        "subject": _NAMES,
        "conditions": {
            "oneOf": [
                {"type": "null"},
                {"$ref": "#/$defs/condition"},
                # CASL/MongoDB style query objects are accepted as-is
                {"type": "object", "not": {"required": ["op"]}},
            ]
        },
        "fields": {
            "oneOf": [
                {"type": "null"},
                {"type": "string"},
                {"type": "array", "items": {"type": "string"}},
            ]
        },
        "inverted": {"type": ["boolean", "null"]},
        "reason": {"type": ["string", "null"]},
    },
    "additionalProperties": True,
}

RULES_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$defs": {"condition": CONDITION_SCHEMA, "rule": RULE_SCHEMA},
    "oneOf": [
        {"type": "array", "items": {"$ref": "#/$defs/rule"}},
        {
            "type": "object",
            "required": ["permissions"],
            "properties": {
                "version": {"type": "string"},
                "permissions": {"type": "array", "items": {"$ref": "#/$defs/rule"}},
                "metadata": {"type": "object"},
            },
        },
    ],
}


def validate_rules(document: Any) -> None:
    """Validate a permission document against RULES_SCHEMA.

    Raises jsonschema.ValidationError on the first violation and RuntimeError
    when jsonschema is not installed.
    """
    try:
        import jsonschema  # type: ignore[import-untyped]
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "jsonschema is required for schema validation: pip install jsonschema"
        ) from e
    jsonschema.validate(instance=document, schema=RULES_SCHEMA)


def iter_errors(document: Any) -> list[Dict[str, Any]]:
    """Collect every schema violation as ``{"path", "message"}`` dicts."""
    try:
        import jsonschema  # type: ignore[import-untyped]
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "jsonschema is required for schema validation: pip install jsonschema"
        ) from e
    validator_cls = jsonschema.validators.validator_for(RULES_SCHEMA)
    validator = validator_cls(RULES_SCHEMA)
    out = []
    for err in sorted(validator.iter_errors(document), key=lambda e: list(e.absolute_path)):
        out.append({"path": "/".join(str(p) for p in err.absolute_path), "message": err.message})
    return out
