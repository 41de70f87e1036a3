from abacx import ReactiveAbility, Subject


def main() -> None:
    # what the backend sends after sign-in
    payload = """
    [
      {"action": "read", "subject": "household"},
      {"action": ["update", "delete"], "subject": "household",
       "conditions": {"role": "owner"}},
      {"action": "delete", "subject": "household",
       "conditions": {"locked": true}, "inverted": true, "reason": "household is locked"}
    ]
    """
    ability = ReactiveAbility()
    ability.update_from_json(payload)

    home = Subject(type="household", id="42", attrs={"role": "owner", "locked": False})
    print(ability.can("update", home))  # True

    locked = Subject(type="household", id="43", attrs={"role": "owner", "locked": True})
    d = ability.evaluate("delete", locked)
    print(d.allowed, d.reason)  # False, "household is locked"


if __name__ == "__main__":
    main()
