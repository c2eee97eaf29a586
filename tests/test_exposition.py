"""Tests for the exposition adapter (dsar/services/exposition.py)."""

from datetime import UTC, datetime

import pytest

from dsar.exceptions import ExpositionParseError
from dsar.models.statistic import ValueKind
from dsar.services.exposition import parse_exposition

RECEIVED_AT = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

NODE_EXPORTER_BODY = """\
# HELP node_cpu_seconds_total Seconds the CPUs spent in each mode.
# TYPE node_cpu_seconds_total counter
node_cpu_seconds_total{cpu="0",mode="idle"} 1234.5
node_cpu_seconds_total{cpu="0",mode="user"} 56.25
# HELP node_memory_MemFree_bytes Memory information field MemFree_bytes.
# TYPE node_memory_MemFree_bytes gauge
node_memory_MemFree_bytes 1.048576e+06
# HELP node_vmstat_pgfault /proc/vmstat information field pgfault.
# TYPE node_vmstat_pgfault untyped
node_vmstat_pgfault 98765
"""


class TestParseExposition:
    """Test conversion of text exposition into samples."""

    def test_samples_with_labels_and_values(self):
        samples = parse_exposition(NODE_EXPORTER_BODY, RECEIVED_AT)

        assert [sample.metric for sample in samples] == [
            "node_cpu_seconds_total",
            "node_cpu_seconds_total",
            "node_memory_MemFree_bytes",
            "node_vmstat_pgfault",
        ]
        assert samples[1].labels == {"cpu": "0", "mode": "user"}
        assert samples[1].value == 56.25
        assert samples[2].value == 1048576.0

    def test_declared_kinds(self):
        samples = parse_exposition(NODE_EXPORTER_BODY, RECEIVED_AT)

        assert samples[0].kind is ValueKind.COUNTER
        assert samples[2].kind is ValueKind.GAUGE
        assert samples[3].kind is ValueKind.UNTYPED

    def test_receive_time_used_without_exposition_timestamp(self):
        samples = parse_exposition(NODE_EXPORTER_BODY, RECEIVED_AT)

        assert all(sample.timestamp == RECEIVED_AT for sample in samples)

    def test_exposition_timestamp_in_milliseconds(self):
        body = "# TYPE node_load1 gauge\nnode_load1 0.5 1714564800500\n"

        (sample,) = parse_exposition(body, RECEIVED_AT)

        assert sample.timestamp == datetime(2024, 5, 1, 12, 0, 0, 500000, tzinfo=UTC)

    def test_counter_without_total_suffix_gets_one(self):
        """The parser appends _total; the registry resolves it back."""
        body = (
            "# TYPE log_bytes_logged counter\n"
            'log_bytes_logged{metric_type="tablet",table_id="t1"} 100\n'
        )

        (sample,) = parse_exposition(body, RECEIVED_AT)

        assert sample.metric == "log_bytes_logged_total"
        assert sample.kind is ValueKind.COUNTER

    def test_summary_count_and_sum_are_counters(self):
        body = (
            "# TYPE rpc_latency summary\n"
            'rpc_latency{quantile="0.5"} 1.5\n'
            "rpc_latency_sum 10\n"
            "rpc_latency_count 4\n"
        )

        kinds = {sample.metric: sample.kind for sample in parse_exposition(body, RECEIVED_AT)}

        assert kinds == {
            "rpc_latency": ValueKind.SUMMARY,
            "rpc_latency_sum": ValueKind.COUNTER,
            "rpc_latency_count": ValueKind.COUNTER,
        }

    def test_empty_body_has_no_samples(self):
        assert parse_exposition("", RECEIVED_AT) == []

    def test_default_receive_time_is_now(self):
        before = datetime.now(UTC)

        (sample,) = parse_exposition("# TYPE node_load1 gauge\nnode_load1 1\n")

        assert before <= sample.timestamp <= datetime.now(UTC)

    def test_invalid_body_raises(self):
        with pytest.raises(ExpositionParseError):
            parse_exposition("# TYPE node_load1 gauge\nnode_load1 abc\n", RECEIVED_AT)
