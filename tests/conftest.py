"""Pytest configuration and fixtures."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from dsar.config import CollectorSettings
from dsar.models.statistic import Sample, ValueKind
from dsar.services.metric_registry import classify
from dsar.services.statistics_store import StatisticsStore

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def at(seconds: float) -> datetime:
    """Timestamp ``seconds`` after the fixed test epoch."""
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
def store():
    """Empty statistics store."""
    return StatisticsStore()


@pytest.fixture
def make_sample():
    """Factory fixture to create Sample instances.

    Usage:
        sample = make_sample("node_load1", 0.5, kind=ValueKind.GAUGE)

    Defaults: counter kind, no labels, timestamp at the test epoch.
    """

    def _make_sample(metric, value, kind=ValueKind.COUNTER, seconds=0.0, **labels):
        return Sample(
            metric=metric,
            labels=labels,
            value=float(value),
            kind=kind,
            timestamp=at(seconds),
        )

    return _make_sample


@pytest.fixture
def feed(store, make_sample):
    """Classify a sample for host ``h1`` and apply it to the store fixture."""

    def _feed(metric, value, kind=ValueKind.COUNTER, seconds=0.0, host="h1", **labels):
        classification = classify(make_sample(metric, value, kind, seconds, **labels), host)
        assert classification is not None, f"{metric} should be registered"
        return store.apply(classification)

    return _feed


@pytest.fixture
def make_settings():
    """Factory fixture for CollectorSettings with test-friendly defaults."""

    def _make_settings(**kwargs):
        defaults = {
            "hosts": ["db1"],
            "ports": ["9100"],
            "endpoints": ["metrics"],
        }
        return CollectorSettings(**{**defaults, **kwargs})

    return _make_settings


@pytest.fixture
def exposition_transport():
    """Build an httpx.MockTransport serving exposition bodies by host.

    Usage:
        transport = exposition_transport({"db1": body, "db2": 500})

    A string value is served as a 200 body, an int as an empty response
    with that status, an exception instance is raised. Hosts not in the
    mapping get a 404.
    """

    def _exposition_transport(responses):
        def handler(request: httpx.Request) -> httpx.Response:
            response = responses.get(request.url.host)
            if response is None:
                return httpx.Response(404)
            if isinstance(response, Exception):
                raise response
            if isinstance(response, int):
                return httpx.Response(response)
            return httpx.Response(200, text=response)

        return httpx.MockTransport(handler)

    return _exposition_transport
