from __future__ import annotations

from typing import Any, Dict, Optional

from abacx.core.ports import MetricsSink

try:
    from prometheus_client import Counter, Histogram  # type: ignore
except Exception:  # pragma: no cover
    Counter = Histogram = None  # type: ignore


class PrometheusMetrics(MetricsSink):
    """Prometheus-based MetricsSink.

    Exposes:
      - abacx_decisions_total{decision="allow|deny"}
      - abacx_decision_seconds (Histogram)

    Pass a ``registry`` to keep instruments out of the global default registry
    (useful when several abilities live in one process, and in tests).
    """

    _counter: Optional[Any]
    _hist: Optional[Any]

    def __init__(self, *, registry: Any | None = None) -> None:
        self._counter = None
        self._hist = None

        if Counter is None or Histogram is None:  # pragma: no cover
            raise RuntimeError(
                "PrometheusMetrics requires 'prometheus_client'. "
                "Install with extra: abacx[metrics]."
            )

        kwargs: Dict[str, Any] = {}
        if registry is not None:
            kwargs["registry"] = registry
        self._counter = Counter(
            "abacx_decisions_total",
            "Total ABACX permission decisions by outcome.",
            labelnames=("decision",),
            **kwargs,
        )
        self._hist = Histogram(
            "abacx_decision_seconds",
            "ABACX permission evaluation duration in seconds.",
            **kwargs,
        )

    # -- MetricsSink ------------------------------------------------------------

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        """Increment the decisions counter.

        *name* is ignored; this sink always increments `abacx_decisions_total`.
        """
        if self._counter is None:  # pragma: no cover
            return
        decision = (labels or {}).get("decision", "unknown")
        self._counter.labels(decision=decision).inc()  # type: ignore[call-arg]

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        """Record one evaluation duration (seconds) in `abacx_decision_seconds`."""
        if self._hist is None:  # pragma: no cover
            return
        self._hist.observe(float(value))
