"""Adapter from Prometheus text exposition to dsar samples."""

from datetime import UTC, datetime

from prometheus_client.parser import text_string_to_metric_families

from dsar.exceptions import ExpositionParseError
from dsar.models.statistic import Sample, ValueKind

FAMILY_TYPES = {
    "counter": ValueKind.COUNTER,
    "gauge": ValueKind.GAUGE,
    "untyped": ValueKind.UNTYPED,
    "unknown": ValueKind.UNTYPED,
    "summary": ValueKind.SUMMARY,
    "histogram": ValueKind.HISTOGRAM,
}

# Suffixes of summary and histogram samples that are plain cumulative counters
CUMULATIVE_SUFFIXES = ("_count", "_sum")


def _sample_kind(family_type: str, sample_name: str) -> ValueKind:
    kind = FAMILY_TYPES.get(family_type, ValueKind.UNTYPED)
    if kind in (ValueKind.SUMMARY, ValueKind.HISTOGRAM) and sample_name.endswith(
        CUMULATIVE_SUFFIXES
    ):
        return ValueKind.COUNTER
    return kind


def parse_exposition(text: str, received_at: datetime | None = None) -> list[Sample]:
    """Parse a metrics endpoint body into samples.

    Args:
        text: Prometheus text exposition body
        received_at: Timestamp for samples that carry none (default: now, UTC)

    Returns:
        Samples in exposition order

    Raises:
        ExpositionParseError: The body is not valid text exposition
    """
    if received_at is None:
        received_at = datetime.now(UTC)

    samples: list[Sample] = []
    try:
        for family in text_string_to_metric_families(text):
            for sample in family.samples:
                if sample.timestamp is not None:
                    timestamp = datetime.fromtimestamp(float(sample.timestamp), tz=UTC)
                else:
                    timestamp = received_at
                samples.append(
                    Sample(
                        metric=sample.name,
                        labels=dict(sample.labels),
                        value=float(sample.value),
                        kind=_sample_kind(family.type, sample.name),
                        timestamp=timestamp,
                    )
                )
    except (ValueError, TypeError, IndexError, KeyError) as e:
        raise ExpositionParseError(f"Invalid exposition: {e}") from e

    return samples
