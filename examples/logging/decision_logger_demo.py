#!/usr/bin/env python3
"""
DecisionLogger configuration demo.

Run:
  python examples/logging/decision_logger_demo.py

This script shows:
  1) Plain behavior (no redactions, single-rate sampling)
  2) Opt-in default redactions
  3) Smart sampling (denies always logged)
  4) Attribute size limit applied AFTER redactions

It emits JSON lines to stdout via the 'abacx.audit' logger.
"""

import logging
from typing import List

from abacx import ReactiveAbility, Rule, Subject
from abacx.core.conditions import eq
from abacx.logging.decision_logger import DecisionLogger


def setup_logging() -> None:
    """Configure logging so 'abacx.audit' emits to stdout."""
    root = logging.getLogger()
    if not root.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(h)
    root.setLevel(logging.INFO)


def make_rules() -> List[Rule]:
    """Read households that are not archived; never delete."""
    return [
        Rule(actions="read", subject_types="household", condition=eq("archived", False)),
        Rule(actions="delete", subject_types="household", inverted=True, reason="read only"),
    ]


def member(**extra) -> Subject:
    attrs = {"archived": False, "email": "user@example.com", "token": "t-123"}
    attrs.update(extra)
    return Subject(type="household", id="42", attrs=attrs)


def run(ability: ReactiveAbility, subject: Subject) -> None:
    ability.can("read", subject)
    ability.can("delete", subject)


def main() -> None:
    setup_logging()

    print("\n=== 1) Plain behavior ===")
    run(ReactiveAbility(make_rules(), logger_sink=DecisionLogger(as_json=True)), member())

    print("\n=== 2) Opt-in default redactions ===")
    audit = DecisionLogger(as_json=True, use_default_redactions=True)
    run(ReactiveAbility(make_rules(), logger_sink=audit), member())

    print("\n=== 3) Smart sampling ===")
    # deny always logged; allow sampled at 5%
    audit = DecisionLogger(as_json=True, smart_sampling=True, sample_rate=0.05)
    run(ReactiveAbility(make_rules(), logger_sink=audit), member())

    print("\n=== 4) Attribute size limit (applied AFTER redactions) ===")
    audit = DecisionLogger(as_json=True, use_default_redactions=True, max_attrs_bytes=120)
    run(ReactiveAbility(make_rules(), logger_sink=audit), member(notes="Z" * 500))

    print("\nDone. Check JSON log lines above (logger name: 'abacx.audit').")


if __name__ == "__main__":
    main()
