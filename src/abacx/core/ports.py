from __future__ import annotations

from typing import Any, Awaitable, Dict, Protocol, runtime_checkable


@runtime_checkable
class SubjectLike(Protocol):
    """A resource instance that can be checked against rule conditions.

    ``get_attr`` returns ``None`` when the attribute is absent.
    """

    @property
    def subject_type(self) -> str: ...

    def get_attr(self, name: str) -> Any | None: ...


class DecisionLogSink(Protocol):
    def log(self, payload: Dict[str, Any]) -> None | Awaitable[None]: ...


class MetricsSink(Protocol):
    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None: ...


class MetricsObserve(Protocol):
    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None: ...


class PermissionSource(Protocol):
    """Where a raw permission payload comes from (file, cache, remote snapshot)."""

    def load(self) -> Any: ...

    def etag(self) -> str | None: ...
