from dataclasses import dataclass

from abacx.core.model import (
    ObjectSubject,
    Rule,
    Subject,
    as_subject,
    detect_subject_type,
    resolve_path,
    subject_type_of,
)
from abacx.core.conditions import eq


def test_rule_normalizes_names_to_tuples():
    r = Rule(actions="read", subject_types=["household", "household", "user"], fields="name")
    assert r.actions == ("read",)
    assert r.subject_types == ("household", "user")
    assert r.fields == ("name",)
    assert r.is_allow and not r.has_condition and r.has_field_restrictions


def test_inverted_and_deny_stay_in_sync():
    assert Rule(actions="read", subject_types="x", inverted=True).effect == "deny"
    assert Rule(actions="read", subject_types="x", effect="deny").inverted is True
    assert Rule(actions="read", subject_types="x").inverted is False


def test_rule_condition_flags():
    assert Rule(actions="read", subject_types="x", condition=eq("a", 1)).has_condition
    assert not Rule(actions="read", subject_types="x", fields=[]).has_field_restrictions


def test_subject_get_attr():
    s = Subject(type="household", attrs={"role": "owner", "address": {"city": "Oslo"}}, id="h1")
    assert s.subject_type == "household"
    assert s.get_attr("role") == "owner"
    assert s.get_attr("address.city") == "Oslo"
    assert s.get_attr("missing") is None
    assert s.get_attr("id") == "h1"


def test_resolve_path_through_objects_and_mappings():
    @dataclass
    class Address:
        city: str

    root = {"owner": {"address": Address("Oslo")}}
    assert resolve_path(root, "owner.address.city") == "Oslo"
    assert resolve_path(root, "owner.phone") is None
    assert resolve_path({"a": None}, "a.b") is None


def test_detect_subject_type():
    class Household:
        pass

    class Tagged:
        __subject_type__ = "tag"

    assert detect_subject_type(Household()) == "household"
    assert detect_subject_type(Tagged()) == "tag"
    assert detect_subject_type({"__type__": "user"}) == "user"


def test_as_subject_dispatch():
    assert as_subject("household") == "household"
    s = Subject(type="household")
    assert as_subject(s) is s
    m = as_subject({"__type__": "user", "age": 3})
    assert isinstance(m, Subject) and m.attrs == {"age": 3}
    wrapped = as_subject(object())
    assert isinstance(wrapped, ObjectSubject)
    assert subject_type_of(wrapped) == "object"
    assert subject_type_of("user") == "user"


def test_object_subject_explicit_type_and_repr():
    o = ObjectSubject({"role": "owner"}, type="household")
    assert o.subject_type == "household"
    assert o.get_attr("role") == "owner"
    assert repr(o).startswith("ObjectSubject('household'")
