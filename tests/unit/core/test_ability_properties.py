import pytest

from abacx.core.ability import REASON_FIELD, REASON_NO_MATCH, Ability
from abacx.core.conditions import eq
from abacx.core.model import ALL, MANAGE, Rule, Subject


def household(**attrs):
    return Subject(type="household", attrs=attrs, id="h1")


def allow(action, subject, condition=None, fields=None):
    return Rule(actions=action, subject_types=subject, condition=condition, fields=fields)


def deny(action, subject, condition=None, fields=None, reason=None):
    return Rule(
        actions=action,
        subject_types=subject,
        effect="deny",
        condition=condition,
        fields=fields,
        reason=reason,
    )


RULE_SETS = [
    [],
    [allow("read", "household")],
    [allow("read", "household"), deny("read", "household")],
    [allow(MANAGE, ALL), deny("delete", "household", eq("role", "member"))],
    [allow("update", "household", eq("role", "owner"), fields=["name"])],
]


@pytest.mark.parametrize("rules", RULE_SETS)
@pytest.mark.parametrize("action", ["read", "update", "delete", "launch"])
@pytest.mark.parametrize(
    "subject", ["household", household(role="owner"), household(role="member")]
)
def test_cannot_is_negation_of_can(rules, action, subject):
    ability = Ability(rules)
    assert ability.cannot(action, subject) == (not ability.can(action, subject))


@pytest.mark.parametrize("action", ["read", "manage", "all", ""])
@pytest.mark.parametrize("subject", ["household", "all", household(role="owner")])
def test_empty_rule_set_denies_everything(action, subject):
    ability = Ability([])
    decision = ability.evaluate(action, subject)
    assert decision.allowed is False
    assert decision.reason == REASON_NO_MATCH
    assert decision.rule is None and decision.rule_index is None


def test_single_unconditional_allow():
    ability = Ability([allow("read", "household")])
    assert ability.can("read", household())
    assert not ability.can("write", household())
    assert not ability.can("read", "user")


def test_last_declared_rule_wins():
    a = Ability([allow("read", "household"), deny("read", "household")])
    b = Ability([deny("read", "household"), allow("read", "household")])
    assert a.can("read", household()) is False
    assert b.can("read", household()) is True


def test_conditional_rule():
    ability = Ability([allow("update", "household", eq("role", "owner"))])
    assert ability.can("update", household(role="owner"))
    assert not ability.can("update", household(role="member"))


def test_conditional_rule_never_matches_type_only_check():
    ability = Ability([allow("update", "household", eq("role", "owner"))])
    assert ability.cannot("update", "household")


def test_wildcard_action():
    ability = Ability([allow(MANAGE, "household")])
    assert ability.can("delete", household())
    assert ability.can("anything", household())
    assert not ability.can("read", "user")


def test_wildcard_subject():
    ability = Ability([allow("read", ALL)])
    assert ability.can("read", "user")
    assert ability.can("read", household())
    assert not ability.can("update", "user")


def test_later_specific_deny_overrides_wildcard_allow():
    ability = Ability(
        [allow(MANAGE, ALL), deny("delete", "household", eq("role", "member"), reason="members")]
    )
    assert ability.can("delete", household(role="owner"))
    decision = ability.evaluate("delete", household(role="member"))
    assert decision.allowed is False
    assert decision.reason == "members"
    assert decision.rule_index == 1
    assert decision.effect == "deny"


def test_earlier_specific_deny_loses_to_later_wildcard_allow():
    ability = Ability([deny("delete", "household"), allow(MANAGE, ALL)])
    assert ability.can("delete", household())


def test_failed_condition_falls_through_to_earlier_rule():
    ability = Ability([allow("read", "household"), deny("read", "household", eq("archived", True))])
    assert ability.can("read", household(archived=False))
    assert ability.cannot("read", household(archived=True))


def test_field_restrictions_on_allow_winner():
    ability = Ability([allow("update", "household", fields=["name", "address"])])
    assert ability.can("update", household(), "name")
    assert ability.can("update", household())
    decision = ability.evaluate("update", household(), "owner")
    assert decision.allowed is False
    assert decision.reason == REASON_FIELD


def test_deny_with_fields_only_covers_those_fields():
    ability = Ability([allow("update", "household"), deny("update", "household", fields=["owner"])])
    assert ability.can("update", household(), "name")
    assert ability.cannot("update", household(), "owner")
    # a check without a field is decided by the deny
    assert ability.cannot("update", household())


def test_relevant_rule_and_rules_for():
    r0 = allow("read", "household")
    r1 = deny("read", ALL)
    r2 = allow(MANAGE, "user")
    ability = Ability([r0, r1, r2])
    assert ability.relevant_rule("read", household()) is r1
    assert ability.relevant_rule("update", household()) is None
    assert ability.rules_for("read", "household") == (r0, r1)
    assert ability.rules_for("read", "user") == (r1, r2)


def test_permitted_fields_fold():
    owner = household(role="owner")
    assert Ability([]).permitted_fields("update", owner) == frozenset()
    assert Ability([allow("update", "household")]).permitted_fields("update", owner) is None

    ability = Ability(
        [
            allow("update", "household", fields=["name"]),
            allow("update", "household", eq("role", "owner"), fields=["address", "owner"]),
            deny("update", "household", fields=["owner"]),
        ]
    )
    assert ability.permitted_fields("update", owner) == frozenset({"name", "address"})
    assert ability.permitted_fields("update", household(role="member")) == frozenset({"name"})

    reset = Ability([allow("update", "household", fields=["name"]), deny("update", "household")])
    assert reset.permitted_fields("update", owner) == frozenset()

    # a scoped deny after an unrestricted allow is answered by can(), not by the fold
    secret = Ability([allow("update", "household"), deny("update", "household", fields=["secret"])])
    assert secret.permitted_fields("update", owner) is None
    assert secret.cannot("update", owner, "secret")
    assert secret.can("update", owner, "name")


def test_plain_objects_and_mappings_are_subjects():
    class Household:
        def __init__(self, role):
            self.role = role

    ability = Ability([allow("update", "household", eq("role", "owner"))])
    assert ability.can("update", Household("owner"))
    assert ability.cannot("update", Household("member"))
    assert ability.can("update", {"__type__": "household", "role": "owner"})


def test_ability_facade_basics():
    ability = Ability([allow("read", "household")])
    assert len(ability) == 1
    assert repr(ability) == "Ability(rules=1)"
    assert Ability.empty().rules == ()
    # a compiled set can be shared between facades
    assert Ability(ability.ruleset).ruleset is ability.ruleset
