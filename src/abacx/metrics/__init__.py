"""Metrics sinks for ReactiveAbility.

Import the concrete sink you need; each one pulls its own optional dependency:

    from abacx.metrics.prometheus import PrometheusMetrics
    from abacx.metrics.otel import OpenTelemetryMetrics
"""
