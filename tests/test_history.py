"""Tests for derived detail rows (dsar/services/history.py).

Tests:
- CPU, disk, memory, network, softnet and YugabyteDB details
- No details before rates exist
- Zero-guarded ratios
- HistoricalData never overwrites a recorded row
"""

import pytest

from dsar.models.statistic import TOTAL, ValueKind
from dsar.services.aggregator import synthesize_totals
from dsar.services.history import (
    HistoricalData,
    cpu_details,
    disk_details,
    memory_details,
    network_details,
    softnet_details,
    yb_io_details,
    yb_memory_details,
)
from dsar.services.metric_registry import classify

HOST = "db1:9100:metrics"


@pytest.fixture
def run_round(store, make_sample):
    """Apply (metric, value, kind, labels) rows for HOST at one timestamp."""

    def _run_round(seconds, rows):
        classifications = [
            classify(make_sample(metric, value, kind, seconds, **labels), HOST)
            for metric, value, kind, labels in rows
        ]
        for classification in classifications:
            store.apply(classification)
        synthesize_totals(store, classifications)

    return _run_round


def counter(metric, value, **labels):
    return metric, value, ValueKind.COUNTER, labels


def gauge(metric, value, **labels):
    return metric, value, ValueKind.GAUGE, labels


def untyped(metric, value, **labels):
    return metric, value, ValueKind.UNTYPED, labels


def cpu_round(user, system, idle):
    rows = []
    for cpu in ("0", "1"):
        rows.append(counter("node_cpu_seconds_total", user, cpu=cpu, mode="user"))
        rows.append(counter("node_cpu_seconds_total", system, cpu=cpu, mode="system"))
        rows.append(counter("node_cpu_seconds_total", idle, cpu=cpu, mode="idle"))
    return rows


def memory_round(free):
    return [
        gauge("node_memory_MemTotal_bytes", 1000),
        gauge("node_memory_MemFree_bytes", free),
        gauge("node_memory_Committed_AS_bytes", 600),
        gauge("node_memory_SwapTotal_bytes", 200),
    ]


class TestCpuDetails:
    """Test CPU details from total rows."""

    def test_no_details_on_first_round(self, store, run_round):
        run_round(0, cpu_round(10, 5, 100))

        assert cpu_details(store, HOST) is None

    def test_details_sum_over_cpus(self, store, run_round):
        run_round(0, cpu_round(10, 5, 100))
        run_round(2, cpu_round(11, 6, 101))

        details = cpu_details(store, HOST)

        assert details.hostname == HOST
        assert details.user == pytest.approx(1.0)
        assert details.system == pytest.approx(1.0)
        assert details.idle == pytest.approx(1.0)
        assert details.iowait == 0.0
        assert details.total_time == pytest.approx(3.0)


class TestDiskDetails:
    """Test disk details per device."""

    def test_latency_is_time_per_completed_io(self, store, run_round):
        def disk(reads, read_time):
            return [
                counter("node_disk_read_bytes_total", reads * 4096, device="sda"),
                counter("node_disk_reads_completed_total", reads, device="sda"),
                counter("node_disk_read_time_seconds_total", read_time, device="sda"),
                counter("node_disk_writes_completed_total", 0, device="sda"),
            ]

        run_round(0, disk(0, 0.0))
        run_round(1, disk(100, 0.5))

        details = {row.device: row for row in disk_details(store, HOST)}

        assert set(details) == {"sda", TOTAL}
        assert details["sda"].reads_completed_s == pytest.approx(100.0)
        assert details["sda"].reads_bytes_s == pytest.approx(409600.0)
        assert details["sda"].reads_avg_latency_s == pytest.approx(0.005)
        assert details["sda"].writes_avg_latency_s == 0.0
        assert details["sda"].discards_completed_s == 0.0
        assert details[TOTAL].reads_completed_s == pytest.approx(100.0)

    def test_no_details_without_rates(self, store, run_round):
        run_round(0, [counter("node_disk_read_bytes_total", 1, device="sda")])

        assert disk_details(store, HOST) == []


class TestMemoryDetails:
    """Test memory details."""

    def test_used_and_commit_percentages(self, store, run_round):
        run_round(0, memory_round(300))
        run_round(1, memory_round(250))

        details = memory_details(store, HOST)

        assert details.memfree == 250.0
        assert details.memused == 750.0
        assert details.memused_pct == pytest.approx(75.0)
        assert details.commit_pct == pytest.approx(50.0)

    def test_zero_total_memory_gives_zero_percentages(self, store, run_round):
        rows = [gauge("node_memory_MemFree_bytes", 0)]
        run_round(0, rows)
        run_round(1, rows)

        details = memory_details(store, HOST)

        assert details.memused_pct == 0.0
        assert details.commit_pct == 0.0


class TestNetworkDetails:
    """Test network and softnet details."""

    def test_interfaces_and_total(self, store, run_round):
        def network(packets):
            return [
                counter("node_network_receive_packets_total", packets, device="eth0"),
                counter("node_network_receive_packets_total", packets * 2, device="eth1"),
                counter("node_network_receive_packets_total", packets * 9, device="lo"),
            ]

        run_round(0, network(0))
        run_round(1, network(10))

        details = {row.device: row for row in network_details(store, HOST)}

        assert set(details) == {"eth0", "eth1", TOTAL}
        assert details[TOTAL].receive_packets_s == pytest.approx(30.0)

    def test_softnet_from_total_row(self, store, run_round):
        def softnet(processed):
            return [
                counter("node_softnet_processed_total", processed, cpu="0"),
                counter("node_softnet_processed_total", processed, cpu="1"),
                counter("node_softnet_dropped_total", 0, cpu="0"),
            ]

        run_round(0, softnet(0))
        run_round(1, softnet(5))

        details = softnet_details(store, HOST)

        assert details.processed_s == pytest.approx(10.0)
        assert details.dropped_s == 0.0


class TestYugabyteDetails:
    """Test YugabyteDB memory and IO details."""

    def test_memory_details_for_server(self, store, run_round):
        def memory(heap):
            return [
                untyped("generic_heap_size", heap, metric_type="server"),
                untyped("mem_tracker_Read_Buffer_Outbound_RPC_Queueing", 3, metric_type="server"),
                untyped("mem_tracker_Compressed_Read_Buffer_Receive", 4, metric_type="server"),
            ]

        run_round(0, memory(100))
        run_round(1, memory(120))

        details = yb_memory_details(store, HOST)

        assert details.generic_heap == 120.0
        assert details.mem_tracker_independent_allocs == 7.0
        assert details.mem_tracker_tablets == 0.0

    def test_io_sums_tables_at_same_timestamp(self, store, run_round):
        def io(messages, logged):
            return [
                untyped("glog_info_messages", messages, metric_type="server"),
                untyped("log_bytes_logged", logged, metric_type="tablet", table_id="t1"),
                untyped("log_bytes_logged", logged * 3, metric_type="tablet", table_id="t2"),
                untyped("log_sync_latency_count", logged, metric_type="tablet", table_id="t1"),
                untyped("log_sync_latency_sum", logged * 20, metric_type="tablet", table_id="t1"),
            ]

        run_round(0, io(0, 0))
        run_round(1, io(4, 10))

        details = yb_io_details(store, HOST)

        assert details.glog_info_messages == pytest.approx(4.0)
        assert details.glog_warning_messages == 0.0
        assert details.log_bytes_logged == pytest.approx(40.0)
        assert details.log_sync_avg_latency == pytest.approx(20.0)
        assert details.log_append_avg_latency == 0.0

    def test_no_io_details_without_server_glog(self, store, run_round):
        rows = [untyped("log_bytes_logged", 1, metric_type="tablet", table_id="t1")]
        run_round(0, rows)
        run_round(1, rows)

        assert yb_io_details(store, HOST) is None


class TestHistoricalData:
    """Test recording of detail rows across rounds."""

    def test_records_each_timestamp_once(self, store, run_round):
        history = HistoricalData()
        run_round(0, cpu_round(0, 0, 0) + memory_round(300))
        assert history.add(store) == 0

        run_round(1, cpu_round(1, 1, 1) + memory_round(250))
        assert history.add(store) == 2
        assert history.add(store) == 0

        run_round(2, cpu_round(2, 2, 2) + memory_round(200))
        assert history.add(store) == 2

        assert len(history.cpu_details) == 2
        assert len(history.memory_details) == 2
        assert len(history) == 4

    def test_existing_row_is_not_overwritten(self, store, run_round):
        history = HistoricalData()
        run_round(0, memory_round(300))
        run_round(1, memory_round(250))
        history.add(store)
        (key,) = history.memory_details

        # Same timestamp again with a different value
        run_round(1, memory_round(100))
        history.add(store)

        assert history.memory_details[key].memfree == 250.0
