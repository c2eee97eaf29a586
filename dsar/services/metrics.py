"""Prometheus metrics for the dsar collector itself."""

from typing import Any

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

from dsar import __version__

# Application info
app_info = Info("dsar_app", "dsar application information")
app_info.info({"version": __version__, "name": "dsar"})

# Round metrics
rounds_total = Counter("dsar_rounds_total", "Completed scrape rounds")
round_duration = Histogram(
    "dsar_round_duration_seconds",
    "Scrape round duration",
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10],
)
targets_reachable = Gauge("dsar_targets_reachable", "Targets that returned samples in the last round")
samples_recognized = Gauge("dsar_samples_recognized", "Recognized samples in the last round")
samples_ignored = Gauge("dsar_samples_ignored", "Unrecognized samples in the last round")
statistics_keys = Gauge("dsar_statistics_keys", "Keys in the statistics store")

# Scrape metrics
scrape_failures_total = Counter(
    "dsar_scrape_failures_total",
    "Targets that yielded no samples",
    ["reason"],
)

# Rate engine metrics
counter_resets_total = Counter(
    "dsar_counter_resets_total", "Counter values that went backwards"
)


def record_round(stats: dict[str, Any], duration: float) -> None:
    """Update round metrics from a round's statistics dict.

    Args:
        stats: Statistics returned by CollectorService.run_round
        duration: Round duration in seconds
    """
    rounds_total.inc()
    round_duration.observe(duration)
    targets_reachable.set(stats["reachable"])
    samples_recognized.set(stats["recognized"])
    samples_ignored.set(stats["ignored"])
    statistics_keys.set(stats["keys"])


def start_exporter(port: int) -> None:
    """Serve the collector's own metrics on ``port``."""
    start_http_server(port)
