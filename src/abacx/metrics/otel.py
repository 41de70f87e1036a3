from __future__ import annotations

from typing import Any, Dict, Optional

from abacx.core.ports import MetricsSink

try:
    from opentelemetry.metrics import get_meter  # type: ignore
except Exception:  # pragma: no cover
    get_meter = None  # type: ignore


class OpenTelemetryMetrics(MetricsSink):
    """OpenTelemetry-based MetricsSink.

    Creates:
      - Counter: abacx_decisions_total (attribute: decision)
      - Histogram: abacx_decision_seconds (unit: s)

    Without a configured MeterProvider the API hands out no-op instruments, so
    the sink is safe to construct anywhere.
    """

    _counter: Optional[Any]
    _hist: Optional[Any]

    def __init__(self, *, meter: Any | None = None) -> None:
        self._counter = None
        self._hist = None

        if meter is None:
            if get_meter is None:  # pragma: no cover
                raise RuntimeError(
                    "OpenTelemetryMetrics requires 'opentelemetry-api'. "
                    "Install with extra: abacx[otel]."
                )
            meter = get_meter("abacx.metrics")

        self._counter = meter.create_counter(
            name="abacx_decisions_total",
            description="Total ABACX permission decisions by outcome.",
        )
        create_hist = getattr(meter, "create_histogram", None)
        if create_hist is not None:
            self._hist = create_hist(
                name="abacx_decision_seconds",
                description="ABACX permission evaluation duration in seconds.",
                unit="s",
            )

    # -- MetricsSink ------------------------------------------------------------

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        if self._counter is None:  # pragma: no cover
            return
        decision = (labels or {}).get("decision", "unknown")
        self._counter.add(1, {"decision": decision})

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        if self._hist is None:
            return
        self._hist.record(float(value), dict(labels or {}))
