import importlib
import sys
import types

import pytest

from abacx.core.model import Rule
from abacx.core.reactive import ReactiveAbility


def _install_fake_prometheus(monkeypatch):
    class _Lbl:
        def __init__(self, obj, labels):
            self._obj = obj
            self._labels = labels

        def inc(self, *args, **kwargs):
            self._obj.counts.append(self._labels["decision"])

    class Cnt:
        def __init__(self, name, doc, labelnames=None, registry=None):
            self.name = name
            self.labelnames = tuple(labelnames or ())
            self.registry = registry
            self.counts = []

        def labels(self, **kw):
            return _Lbl(self, kw)

    class Hst:
        def __init__(self, name, doc, labelnames=None, registry=None):
            self.name = name
            self.values = []

        def observe(self, v):
            self.values.append(float(v))

    fake = types.ModuleType("prometheus_client")
    fake.Counter = Cnt
    fake.Histogram = Hst
    monkeypatch.setitem(sys.modules, "prometheus_client", fake)
    import abacx.metrics.prometheus as prom

    return importlib.reload(prom)


def _install_fake_otel(monkeypatch):
    class _Counter:
        def __init__(self):
            self.adds = []

        def add(self, v, attributes=None):
            self.adds.append((v, attributes))

    class _Hist:
        def __init__(self):
            self.values = []

        def record(self, v, attributes=None):
            self.values.append(v)

    class _Meter:
        def create_counter(self, name, **kw):
            return _Counter()

        def create_histogram(self, name, **kw):
            return _Hist()

    fake = types.ModuleType("opentelemetry.metrics")
    fake.get_meter = lambda *a, **k: _Meter()
    monkeypatch.setitem(sys.modules, "opentelemetry.metrics", fake)
    import abacx.metrics.otel as otel

    return importlib.reload(otel)


def test_prometheus_sink_with_stub(monkeypatch):
    prom = _install_fake_prometheus(monkeypatch)
    sink = prom.PrometheusMetrics(registry="r")
    assert sink._counter.name == "abacx_decisions_total"
    assert sink._counter.labelnames == ("decision",)
    assert sink._counter.registry == "r"

    ra = ReactiveAbility([Rule(actions="read", subject_types="household")], metrics=sink)
    ra.can("read", "household")
    ra.can("delete", "household")
    assert sink._counter.counts == ["allow", "deny"]
    assert len(sink._hist.values) == 2


def test_prometheus_missing_library(monkeypatch):
    prom = _install_fake_prometheus(monkeypatch)
    monkeypatch.setattr(prom, "Counter", None)
    with pytest.raises(RuntimeError):
        prom.PrometheusMetrics()


def test_otel_sink_with_stub(monkeypatch):
    otel = _install_fake_otel(monkeypatch)
    sink = otel.OpenTelemetryMetrics()
    sink.inc("abacx_decisions_total", {"decision": "deny"})
    sink.inc("abacx_decisions_total")
    sink.observe("abacx_decision_seconds", 0.25)
    assert sink._counter.adds == [(1, {"decision": "deny"}), (1, {"decision": "unknown"})]
    assert sink._hist.values == [0.25]


def test_otel_meter_without_histogram():
    import abacx.metrics.otel as otel

    class Meter:
        def create_counter(self, name, **kw):
            return types.SimpleNamespace(add=lambda *a, **k: None)

    sink = otel.OpenTelemetryMetrics(meter=Meter())
    sink.observe("abacx_decision_seconds", 1.0)
    assert sink._hist is None


def test_prometheus_real_registry():
    prometheus_client = pytest.importorskip(
        "prometheus_client", reason="Optional dep: prometheus_client not installed"
    )
    import abacx.metrics.prometheus as prom

    prom = importlib.reload(prom)
    registry = prometheus_client.CollectorRegistry()
    sink = prom.PrometheusMetrics(registry=registry)
    ra = ReactiveAbility([Rule(actions="read", subject_types="household")], metrics=sink)
    ra.can("read", "household")
    assert registry.get_sample_value("abacx_decisions_total", {"decision": "allow"}) == 1.0
    assert registry.get_sample_value("abacx_decision_seconds_count") == 1.0
