from datetime import datetime, timedelta, timezone

from abacx import Ability, Rule, Subject
from abacx.core.conditions import all_of, field


def main() -> None:
    now = datetime.now(timezone.utc)
    window = all_of(
        field("starts_at", "lte", now.isoformat()),
        field("ends_at", "gt", now.isoformat()),
    )
    ability = Ability([Rule(actions="join", subject_types="event", condition=window)])
    event = Subject(
        type="event",
        attrs={"starts_at": now - timedelta(minutes=5), "ends_at": now + timedelta(hours=1)},
    )
    d = ability.evaluate("join", event)
    print(d.allowed, d.rule_index)  # True, 0


if __name__ == "__main__":
    main()
