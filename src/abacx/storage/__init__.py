"""Local persistence of permission snapshots and file-driven hot reload."""

from .files import (
    FilePermissionSource,
    atomic_write,
    load_rules,
    parse_document,
    read_document,
    save_rules,
)
from .reloader import Backoff, HotReloader

__all__ = [
    "Backoff",
    "FilePermissionSource",
    "HotReloader",
    "atomic_write",
    "load_rules",
    "parse_document",
    "read_document",
    "save_rules",
]
