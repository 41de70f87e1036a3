import json
import os
import tempfile

from abacx import FilePermissionSource, HotReloader, ReactiveAbility


def _write_json(path: str, data: list) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)
        f.flush()
        os.fsync(f.fileno())


def main() -> None:
    fd, path = tempfile.mkstemp(suffix=".json")
    os.close(fd)

    try:
        allow_read = [{"action": "read", "subject": "household"}]
        deny_read = [{"action": "read", "subject": "household", "inverted": True}]

        ability = ReactiveAbility()
        ability.subscribe(lambda: print("permissions changed"))

        _write_json(path, allow_read)
        mgr = HotReloader(ability, FilePermissionSource(path), poll_interval=None)
        mgr.check_and_reload()
        print("first:", ability.evaluate("read", "household").effect)

        _write_json(path, deny_read)
        mgr.check_and_reload()
        print("after:", ability.evaluate("read", "household").effect)
    finally:
        try:
            os.remove(path)
        except PermissionError:
            pass


if __name__ == "__main__":
    main()
