from __future__ import annotations

import argparse
import json
import sys
from typing import Any, List, Optional, Sequence

from .codec import DecodeError, decode
from .core.ability import Ability
from .core.model import Subject
from .dsl.lint import analyze_rules
from .dsl.validate import iter_errors
from .storage import parse_document

EXIT_OK = 0
EXIT_DENIED = 1
EXIT_USAGE = 2
EXIT_VALIDATION_ERRORS = 3
EXIT_LINT_ERRORS = 4
EXIT_INPUT_ERROR = 5


def _version() -> str:
    from . import __version__

    return __version__


def _read_document(path: Optional[str]) -> Any:
    if path in (None, "-"):
        text = sys.stdin.read()
        stripped = text.lstrip()
        # stdin has no suffix; anything that is not JSON is tried as YAML
        yaml_format = not stripped.startswith(("[", "{"))
    else:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        yaml_format = path.endswith((".yaml", ".yml"))
    return parse_document(text, yaml_format=yaml_format)


def _print(obj: Any, fmt: str) -> None:
    if fmt == "json":
        print(json.dumps(obj, ensure_ascii=False, sort_keys=True))
        return
    if isinstance(obj, str):
        print(obj.rstrip("\n"))
        return
    if isinstance(obj, list):
        if not obj:
            print("OK")
        for item in obj:
            print(_format_issue(item) if isinstance(item, dict) else str(item))
        return
    print(str(obj))


def _format_issue(issue: dict[str, Any]) -> str:
    head = issue.get("code") or issue.get("path") or "-"
    rest = ", ".join(f"{k}={v}" for k, v in issue.items() if k not in ("code", "path"))
    return f"{head}: {rest}" if rest else str(head)


def _load(ns: argparse.Namespace) -> Any:
    try:
        return _read_document(getattr(ns, "rules", None))
    except FileNotFoundError as e:
        print(f"abacx: file not found: {e.filename}", file=sys.stderr)
    except Exception as e:  # JSON, YAML or missing-parser errors
        print(f"abacx: cannot parse input: {e}", file=sys.stderr)
    return None


def cmd_validate(ns: argparse.Namespace) -> int:
    doc = _load(ns)
    if doc is None:
        return EXIT_INPUT_ERROR
    errors = iter_errors(doc)
    _print(errors, ns.format)
    return EXIT_VALIDATION_ERRORS if errors else EXIT_OK


def cmd_lint(ns: argparse.Namespace) -> int:
    doc = _load(ns)
    if doc is None:
        return EXIT_INPUT_ERROR
    issues = analyze_rules(doc)
    _print(issues, ns.format)
    return EXIT_LINT_ERRORS if (issues and ns.strict) else EXIT_OK


def cmd_check(ns: argparse.Namespace) -> int:
    doc = _load(ns)
    if doc is None:
        return EXIT_INPUT_ERROR
    try:
        rules = decode(doc)
        attrs = json.loads(ns.attrs) if ns.attrs else None
    except (DecodeError, json.JSONDecodeError) as e:
        print(f"abacx: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    if attrs is not None and not isinstance(attrs, dict):
        print("abacx: --attrs must be a JSON object", file=sys.stderr)
        return EXIT_USAGE

    subject: Any = ns.subject if attrs is None else Subject(type=ns.subject, attrs=attrs)
    decision = Ability(rules).evaluate(ns.action, subject, ns.field)
    result = {
        "allowed": decision.allowed,
        "rule_index": decision.rule_index,
        "reason": decision.reason,
    }
    if ns.format == "json":
        _print(result, "json")
    else:
        line = "ALLOW" if decision.allowed else "DENY"
        if decision.rule_index is not None:
            line += f" (rule #{decision.rule_index})"
        if decision.reason:
            line += f": {decision.reason}"
        _print(line, "text")
    return EXIT_OK if decision.allowed else EXIT_DENIED


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="abacx", description="ABACX permission rule tools")
    p.add_argument("--version", action="store_true", help="print version and exit")
    sub = p.add_subparsers(dest="command")

    def _common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--rules", help="rules file (JSON or YAML); stdin when omitted or '-'")
        sp.add_argument("--format", choices=("json", "text"), default="text")

    sp = sub.add_parser("validate", help="check a rules document against the JSON schema")
    _common(sp)
    sp.set_defaults(func=cmd_validate)

    sp = sub.add_parser("lint", help="report suspicious rules")
    _common(sp)
    sp.add_argument("--strict", action="store_true", help="non-zero exit when issues are found")
    sp.set_defaults(func=cmd_lint)

    sp = sub.add_parser("check", help="evaluate one permission check")
    _common(sp)
    sp.add_argument("--action", required=True)
    sp.add_argument("--subject", required=True, help="subject type")
    sp.add_argument("--attrs", help="subject attributes as a JSON object")
    sp.add_argument("--field")
    sp.set_defaults(func=cmd_check)
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(list(argv) if argv is not None else None)
    if ns.version:
        print(f"abacx {_version()}")
        return EXIT_OK
    func = getattr(ns, "func", None)
    if func is None:
        parser.print_help()
        return EXIT_USAGE
    rc = func(ns)
    return rc if isinstance(rc, int) else EXIT_OK


def run() -> None:  # pragma: no cover
    sys.exit(main())


__all__: List[str] = ["build_parser", "main", "run"]
