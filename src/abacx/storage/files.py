from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from typing import Any, Iterable, List, Optional, Tuple

from ..codec import decode, encode_permission_set
from ..core.model import Rule
from ..core.ports import PermissionSource

logger = logging.getLogger("abacx.storage")

YAML_SUFFIXES = (".yaml", ".yml")


def atomic_write(path: str, data: str, *, encoding: str = "utf-8") -> None:
    """Replace *path* with *data* so that readers never see a partial file."""
    fd, tmp = tempfile.mkstemp(prefix=".abacx.tmp.", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise


def is_yaml_path(path: str) -> bool:
    return path.lower().endswith(YAML_SUFFIXES)


def parse_document(text: str, *, yaml_format: bool = False) -> Any:
    """Parse a permission document from JSON, or YAML when *yaml_format* is set."""
    if not yaml_format:
        return json.loads(text)
    try:
        import yaml  # type: ignore[import-untyped]
    except Exception as e:  # pragma: no cover
        raise RuntimeError("PyYAML is required to read YAML permission files") from e
    return yaml.safe_load(text)


def read_document(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return parse_document(f.read(), yaml_format=is_yaml_path(path))


def save_rules(
    path: str, rules: Iterable[Rule], *, metadata: Optional[dict[str, Any]] = None
) -> None:
    """Cache a permission snapshot locally as a versioned permission set."""
    doc = encode_permission_set(rules, metadata=metadata)
    atomic_write(path, json.dumps(doc, indent=2, sort_keys=True))


def load_rules(path: str) -> List[Rule]:
    """Read rules cached by save_rules() (or any JSON/YAML permission document)."""
    return decode(read_document(path))


class FilePermissionSource(PermissionSource):
    """
    Permission document stored in a local JSON or YAML file.

    The ETag is the SHA-256 of the file content, so rewriting identical bytes
    does not trigger a reload. With ``include_mtime_in_etag=True`` the
    modification time (ns) is appended and a plain ``touch`` counts as a change.

    Hashing is skipped while the file's (size, mtime_ns) stays the same.
    """

    def __init__(
        self,
        path: str,
        *,
        validate_schema: bool = False,
        include_mtime_in_etag: bool = False,
        chunk_size: int = 512 * 1024,
    ) -> None:
        self.path = path
        self.validate_schema = validate_schema
        self.include_mtime_in_etag = include_mtime_in_etag
        self.chunk_size = int(chunk_size)
        self._digest: Optional[Tuple[Tuple[int, int], str]] = None

    def _sha256(self) -> str:
        h = hashlib.sha256()
        with open(self.path, "rb") as f:
            while True:
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                h.update(chunk)
        return h.hexdigest()

    def etag(self) -> Optional[str]:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            self._digest = None
            return None
        sig = (st.st_size, st.st_mtime_ns)
        if self._digest is None or self._digest[0] != sig:
            self._digest = (sig, self._sha256())
        sha = self._digest[1]
        return f"{sha}:{sig[1]}" if self.include_mtime_in_etag else sha

    def load(self) -> Any:
        # a write between etag() and load() is picked up by the next check
        document = read_document(self.path)
        if self.validate_schema:
            from ..dsl.validate import validate_rules

            try:
                validate_rules(document)
            except Exception:
                logger.error("ABACX: %s does not match the permission schema", self.path)
                raise
        return document


__all__ = [
    "FilePermissionSource",
    "atomic_write",
    "is_yaml_path",
    "load_rules",
    "parse_document",
    "read_document",
    "save_rules",
]
