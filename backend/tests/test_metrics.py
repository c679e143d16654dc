from __future__ import annotations

import pytest

from app.monitoring.registry import MetricsRegistry


def test_registry_renders_prometheus_text() -> None:
    registry = MetricsRegistry()
    joins = registry.counter("joins_total", "Join attempts.", label_names=("role", "outcome"))
    active = registry.gauge("active", "Active sockets.")
    registry.gauge("idle", "Never touched.")

    joins.labels("viewer", "vip").inc()
    joins.labels("viewer", "vip").inc(2)
    joins.labels("host", 'say "hi"').inc()
    active.labels().inc()
    active.labels().inc()
    active.labels().dec()

    text = registry.render()
    assert "# TYPE joins_total counter" in text
    assert 'joins_total{role="viewer",outcome="vip"} 3' in text
    assert 'joins_total{role="host",outcome="say \\"hi\\""} 1' in text
    assert "active 1" in text
    assert "idle 0" in text
    assert joins.value("viewer", "vip") == 3


def test_labels_must_match_declaration() -> None:
    registry = MetricsRegistry()
    counter = registry.counter("events_total", "Events.", label_names=("event",))

    with pytest.raises(ValueError):
        counter.labels()
    with pytest.raises(ValueError):
        counter.labels("a").inc(-1)
    with pytest.raises(AttributeError):
        counter.labels("a").dec()
    with pytest.raises(ValueError):
        registry.counter("events_total", "Again.")


def test_metrics_endpoint(client) -> None:
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "# TYPE relay_placements_total counter" in response.text
