import json
import logging
import os

import pytest

from abacx.core.model import Rule
from abacx.core.reactive import ReactiveAbility
from abacx.storage import (
    Backoff,
    FilePermissionSource,
    HotReloader,
    atomic_write,
    load_rules,
    parse_document,
    save_rules,
)

RULES = [{"action": "read", "subject": "household"}]


def _write(path, doc):
    atomic_write(str(path), json.dumps(doc))


def test_atomic_write_replaces_and_leaves_no_temp_files(tmp_path):
    path = tmp_path / "perms.json"
    atomic_write(str(path), '{"a": 1}')
    atomic_write(str(path), '{"a": 2}')
    assert json.loads(path.read_text()) == {"a": 2}
    assert [p.name for p in tmp_path.iterdir()] == ["perms.json"]


def test_save_and_load_rules(tmp_path):
    path = tmp_path / "cache.json"
    rules = [
        Rule(actions="read", subject_types="household"),
        Rule(actions="delete", subject_types="household", inverted=True, reason="no"),
    ]
    save_rules(str(path), rules, metadata={"user": "u1"})
    doc = json.loads(path.read_text())
    assert doc["version"] == "1.0" and doc["metadata"] == {"user": "u1"}
    assert load_rules(str(path)) == rules


def test_parse_document_yaml():
    pytest.importorskip("yaml", reason="Optional dep: PyYAML not installed")
    doc = parse_document("- action: read\n  subject: household\n", yaml_format=True)
    assert doc == RULES


def test_etag_changes_with_content(tmp_path):
    path = tmp_path / "perms.json"
    _write(path, RULES)
    src = FilePermissionSource(str(path))
    et1 = src.etag()
    assert et1 == src.etag()
    _write(path, RULES + [{"action": "update", "subject": "household"}])
    assert src.etag() != et1
    assert src.load()[1]["action"] == "update"


def test_etag_with_mtime(tmp_path):
    path = tmp_path / "perms.json"
    _write(path, RULES)
    src = FilePermissionSource(str(path), include_mtime_in_etag=True)
    sha, mtime = src.etag().split(":")
    assert len(sha) == 64 and mtime.isdigit()


def test_missing_file_etag_is_none(tmp_path):
    assert FilePermissionSource(str(tmp_path / "nope.json")).etag() is None


def test_schema_validation_on_load(tmp_path):
    jsonschema = pytest.importorskip("jsonschema", reason="Optional dep: jsonschema not installed")
    path = tmp_path / "perms.json"
    _write(path, [{"action": "read"}])
    src = FilePermissionSource(str(path), validate_schema=True)
    with pytest.raises(jsonschema.ValidationError):
        src.load()


def test_reloader_installs_only_on_change(tmp_path):
    path = tmp_path / "perms.json"
    _write(path, RULES)
    ra = ReactiveAbility()
    rl = HotReloader(ra, FilePermissionSource(str(path)), poll_interval=None)

    assert rl.check_and_reload() is True
    assert ra.can("read", "household")
    assert rl.last_etag is not None and rl.last_reload_at is not None
    assert rl.check_and_reload() is False
    assert rl.check_and_reload(force=True) is True

    _write(path, [{"action": "read", "subject": "household", "inverted": True}])
    assert rl.check_and_reload() is True
    assert ra.cannot("read", "household")


def test_reloader_keeps_rules_on_bad_document(tmp_path, caplog):
    path = tmp_path / "perms.json"
    _write(path, RULES)
    ra = ReactiveAbility()
    rl = HotReloader(ra, FilePermissionSource(str(path)), backoff_min=1.0, jitter_ratio=0.0)
    assert rl.check_and_reload() is True

    path.write_text("{broken")
    with caplog.at_level(logging.ERROR, logger="abacx.storage"):
        assert rl.check_and_reload(force=True) is False
    assert "invalid permission document" in caplog.text
    assert isinstance(rl.last_error, ValueError)
    assert rl.suppressed_until > 0
    assert ra.can("read", "household")
    # suppressed until the backoff window passes
    _write(path, [])
    assert rl.check_and_reload() is False


def test_reloader_missing_file_warns(tmp_path, caplog):
    ra = ReactiveAbility()
    rl = HotReloader(ra, FilePermissionSource(str(tmp_path / "nope.json")))
    with caplog.at_level(logging.WARNING, logger="abacx.storage"):
        assert rl.check_and_reload() is False
    assert "permissions not found" in caplog.text
    assert isinstance(rl.last_error, FileNotFoundError)
    assert not ra.is_ready


def test_reloader_start_stop(tmp_path):
    path = tmp_path / "perms.json"
    _write(path, RULES)
    ra = ReactiveAbility()
    rl = HotReloader(ra, FilePermissionSource(str(path)), poll_interval=0.2)
    rl.start()
    try:
        assert ra.can("read", "household")
        rl.start()  # already running
    finally:
        rl.stop(timeout=2.0)
    assert rl._thread is None
    rl.stop()


def test_yaml_source(tmp_path):
    pytest.importorskip("yaml", reason="Optional dep: PyYAML not installed")
    path = tmp_path / "perms.yaml"
    path.write_text("permissions:\n  - action: read\n    subject: household\n")
    ra = ReactiveAbility()
    assert HotReloader(ra, FilePermissionSource(str(path))).check_and_reload() is True
    assert ra.can("read", "household")
    assert os.path.exists(str(path))


def test_backoff_grows_and_resets():
    b = Backoff(minimum=1.0, maximum=4.0, jitter_ratio=0.0)
    assert [b.next_delay() for _ in range(4)] == [2.0, 4.0, 4.0, 4.0]
    b.reset()
    assert b.current == 1.0
