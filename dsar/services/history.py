"""Derived detail rows and the in-memory history of them.

Detail rows are read-only views over the statistics store that group the
rows of one host the way sar reports them. A host yields a detail row for
a category only once one of the category's defining rows has left the
first-sample state, so the first round after startup never produces
meaningless zero rates.
"""

import logging
from datetime import datetime
from typing import TypeVar

from dsar.models.statistic import TOTAL, StatisticKey
from dsar.schemas.details import (
    CpuDetails,
    DiskDetails,
    HostDetails,
    MemoryDetails,
    NetworkDetails,
    SoftnetDetails,
    YbIoDetails,
    YbMemoryDetails,
)
from dsar.services.statistics_store import StatisticsStore
from dsar.utils.arithmetic import safe_divide

logger = logging.getLogger(__name__)

# YugabyteDB labels process-wide metrics with this metric_type
YB_SERVER = "server"

CPU_MODES = ("user", "nice", "system", "iowait", "steal", "irq", "softirq", "idle")

YB_TABLE_IO_METRICS = (
    "log_bytes_logged",
    "log_reader_bytes_read",
    "log_sync_latency_count",
    "log_sync_latency_sum",
    "log_append_latency_count",
    "log_append_latency_sum",
    "log_cache_disk_reads",
    "rocksdb_flush_write_bytes",
    "intentsdb_rocksdb_flush_write_bytes",
    "rocksdb_compact_read_bytes",
    "intentsdb_rocksdb_compact_read_bytes",
    "rocksdb_compact_write_bytes",
    "intentsdb_rocksdb_compact_write_bytes",
    "rocksdb_write_raw_block_micros_count",
    "rocksdb_write_raw_block_micros_sum",
    "rocksdb_sst_read_micros_count",
    "rocksdb_sst_read_micros_sum",
    "intentsdb_rocksdb_block_cache_hit",
    "intentsdb_rocksdb_block_cache_miss",
    "rocksdb_block_cache_hit",
    "rocksdb_block_cache_miss",
)

# Independent allocations are the Read_Buffer trackers not accounted elsewhere
YB_INDEPENDENT_ALLOC_TRACKERS = (
    "mem_tracker_Compressed_Read_Buffer_Receive",
    "mem_tracker_Read_Buffer_Inbound_RPC_Sending",
    "mem_tracker_Read_Buffer_Inbound_RPC_Receive",
    "mem_tracker_Read_Buffer_Inbound_RPC_Reading",
    "mem_tracker_Read_Buffer_Outbound_RPC_Queueing",
    "mem_tracker_Read_Buffer_Outbound_RPC_Receive",
    "mem_tracker_Read_Buffer_Outbound_RPC_Sending",
    "mem_tracker_Read_Buffer_Outbound_RPC_Reading",
)

DetailsT = TypeVar("DetailsT", bound=HostDetails)


def _rate(store: StatisticsStore, host: str, metric: str, d1: str = "", d2: str = "") -> float:
    """Per-second value of a row, 0 when the row does not exist."""
    statistic = store.get(StatisticKey(host, metric, d1, d2))
    return statistic.per_second_value if statistic is not None else 0.0


def _value(store: StatisticsStore, host: str, metric: str, d1: str = "", d2: str = "") -> float:
    """Last value of a row, 0 when the row does not exist."""
    statistic = store.get(StatisticKey(host, metric, d1, d2))
    return statistic.last_value if statistic is not None else 0.0


def _has_rates(
    store: StatisticsStore,
    host: str,
    metric: str,
    discriminator_1: str | None = None,
) -> bool:
    return any(
        not statistic.first_sample
        for _, statistic in store.find(host, metric, discriminator_1)
    )


def cpu_details(store: StatisticsStore, host: str) -> CpuDetails | None:
    if not _has_rates(store, host, "node_cpu_seconds_total"):
        return None
    reference = store.get(StatisticKey(host, "node_cpu_seconds_total", TOTAL, "user"))
    if reference is None:
        return None

    modes = {mode: _rate(store, host, "node_cpu_seconds_total", TOTAL, mode) for mode in CPU_MODES}
    return CpuDetails(
        hostname=host,
        timestamp=reference.last_timestamp,
        guest_user=_rate(store, host, "node_cpu_guest_seconds_total", TOTAL, "user"),
        guest_nice=_rate(store, host, "node_cpu_guest_seconds_total", TOTAL, "nice"),
        schedstat_running=_rate(store, host, "node_schedstat_running_seconds_total", TOTAL),
        schedstat_waiting=_rate(store, host, "node_schedstat_waiting_seconds_total", TOTAL),
        **modes,
    )


def disk_details(store: StatisticsStore, host: str) -> list[DiskDetails]:
    """Disk rows per device, including the ``total`` device."""
    if not _has_rates(store, host, "node_disk_read_bytes_total"):
        return []

    details = []
    for key, reference in store.find(host, "node_disk_read_bytes_total"):
        device = key.discriminator_1

        def rate(metric: str) -> float:
            return _rate(store, host, metric, device)

        reads_completed = rate("node_disk_reads_completed_total")
        writes_completed = rate("node_disk_writes_completed_total")
        discards_completed = rate("node_disk_discards_completed_total")
        details.append(
            DiskDetails(
                hostname=host,
                timestamp=reference.last_timestamp,
                device=device,
                reads_completed_s=reads_completed,
                reads_bytes_s=rate("node_disk_read_bytes_total"),
                reads_merged_s=rate("node_disk_reads_merged_total"),
                reads_avg_latency_s=safe_divide(
                    rate("node_disk_read_time_seconds_total"), reads_completed
                ),
                writes_completed_s=writes_completed,
                writes_bytes_s=rate("node_disk_written_bytes_total"),
                writes_merged_s=rate("node_disk_writes_merged_total"),
                writes_avg_latency_s=safe_divide(
                    rate("node_disk_write_time_seconds_total"), writes_completed
                ),
                discards_completed_s=discards_completed,
                discards_sectors_s=rate("node_disk_discarded_sectors_total"),
                discards_merged_s=rate("node_disk_discards_merged_total"),
                discards_avg_latency_s=safe_divide(
                    rate("node_disk_discard_time_seconds_total"), discards_completed
                ),
                queue_size=rate("node_disk_io_time_weighted_seconds_total"),
                xfs_read_calls_s=rate("node_xfs_read_calls_total"),
                xfs_write_calls_s=rate("node_xfs_write_calls_total"),
            )
        )
    return details


def memory_details(store: StatisticsStore, host: str) -> MemoryDetails | None:
    if not _has_rates(store, host, "node_memory_MemFree_bytes"):
        return None
    reference = store[StatisticKey(host, "node_memory_MemFree_bytes")]

    def value(name: str) -> float:
        return _value(store, host, f"node_memory_{name}_bytes")

    memtotal = value("MemTotal")
    memfree = value("MemFree")
    memused = memtotal - memfree
    committed_as = value("Committed_AS")
    swaptotal = value("SwapTotal")
    return MemoryDetails(
        hostname=host,
        timestamp=reference.last_timestamp,
        memfree=memfree,
        memavailable=value("MemAvailable"),
        memused=memused,
        memused_pct=safe_divide(memused, memtotal) * 100.0,
        buffers=value("Buffers"),
        cached=value("Cached"),
        committed_as=committed_as,
        commit_pct=safe_divide(committed_as, memtotal + swaptotal) * 100.0,
        active=value("Active"),
        inactive=value("Inactive"),
        dirty=value("Dirty"),
        anonpages=value("AnonPages"),
        slab=value("Slab"),
        kernelstack=value("KernelStack"),
        pagetables=value("PageTables"),
        vmalloctotal=value("VmallocTotal"),
        swaptotal=swaptotal,
        swapfree=value("SwapFree"),
        swapcached=value("SwapCached"),
    )


def network_details(store: StatisticsStore, host: str) -> list[NetworkDetails]:
    """Network rows per interface, including the ``total`` interface."""
    if not _has_rates(store, host, "node_network_receive_packets_total"):
        return []

    details = []
    for key, reference in store.find(host, "node_network_receive_packets_total"):
        device = key.discriminator_1

        def rate(name: str) -> float:
            return _rate(store, host, f"node_network_{name}_total", device)

        details.append(
            NetworkDetails(
                hostname=host,
                timestamp=reference.last_timestamp,
                device=device,
                receive_packets_s=rate("receive_packets"),
                transmit_packets_s=rate("transmit_packets"),
                receive_bytes_s=rate("receive_bytes"),
                transmit_bytes_s=rate("transmit_bytes"),
                receive_compressed_s=rate("receive_compressed"),
                transmit_compressed_s=rate("transmit_compressed"),
                receive_multicast_s=rate("receive_multicast"),
                receive_errors_s=rate("receive_errs"),
                transmit_errors_s=rate("transmit_errs"),
                transmit_collisions_s=rate("transmit_colls"),
                receive_drops_s=rate("receive_drop"),
                transmit_drops_s=rate("transmit_drop"),
                transmit_carrier_s=rate("transmit_carrier"),
                receive_fifo_s=rate("receive_fifo"),
                transmit_fifo_s=rate("transmit_fifo"),
            )
        )
    return details


def softnet_details(store: StatisticsStore, host: str) -> SoftnetDetails | None:
    if not _has_rates(store, host, "node_softnet_processed_total"):
        return None
    reference = store.get(StatisticKey(host, "node_softnet_processed_total", TOTAL))
    if reference is None:
        return None
    return SoftnetDetails(
        hostname=host,
        timestamp=reference.last_timestamp,
        processed_s=reference.per_second_value,
        dropped_s=_rate(store, host, "node_softnet_dropped_total", TOTAL),
        squeezed_s=_rate(store, host, "node_softnet_times_squeezed_total", TOTAL),
    )


def yb_memory_details(store: StatisticsStore, host: str) -> YbMemoryDetails | None:
    if not _has_rates(store, host, "generic_heap_size", YB_SERVER):
        return None
    reference = store[StatisticKey(host, "generic_heap_size", YB_SERVER)]

    def value(metric: str) -> float:
        return _value(store, host, metric, YB_SERVER)

    return YbMemoryDetails(
        hostname=host,
        timestamp=reference.last_timestamp,
        generic_heap=reference.last_value,
        generic_allocated=value("generic_current_allocated_bytes"),
        tcmalloc_pageheap_free=value("tcmalloc_pageheap_free_bytes"),
        tcmalloc_max_total_thread_cache=value("tcmalloc_max_total_thread_cache_bytes"),
        tcmalloc_current_total_thread_cache=value("tcmalloc_current_total_thread_cache_bytes"),
        tcmalloc_pageheap_unmapped=value("tcmalloc_pageheap_unmapped_bytes"),
        mem_tracker=value("mem_tracker"),
        mem_tracker_call=value("mem_tracker_Call"),
        mem_tracker_read_buffer=value("mem_tracker_Read_Buffer"),
        mem_tracker_compressed_read_buffer=value("mem_tracker_Compressed_Read_Buffer"),
        mem_tracker_tablets=value("mem_tracker_Tablets"),
        mem_tracker_log_cache=value("mem_tracker_log_cache"),
        mem_tracker_blockbasedtable=value("mem_tracker_BlockBasedTable"),
        mem_tracker_independent_allocs=sum(
            value(metric) for metric in YB_INDEPENDENT_ALLOC_TRACKERS
        ),
    )


def _table_rate(store: StatisticsStore, host: str, metric: str, timestamp: datetime) -> float:
    """Sum a table-level rate over all tables updated at ``timestamp``."""
    return sum(
        statistic.per_second_value
        for _, statistic in store.find(host, metric)
        if statistic.last_timestamp == timestamp
    )


def yb_io_details(store: StatisticsStore, host: str) -> YbIoDetails | None:
    if not _has_rates(store, host, "glog_info_messages", YB_SERVER):
        return None
    reference = store[StatisticKey(host, "glog_info_messages", YB_SERVER)]
    timestamp = reference.last_timestamp

    tables = {metric: _table_rate(store, host, metric, timestamp) for metric in YB_TABLE_IO_METRICS}
    return YbIoDetails(
        hostname=host,
        timestamp=timestamp,
        glog_info_messages=reference.per_second_value,
        glog_warning_messages=_rate(store, host, "glog_warning_message", YB_SERVER),
        glog_error_messages=_rate(store, host, "glog_error_messages", YB_SERVER),
        log_sync_avg_latency=safe_divide(
            tables["log_sync_latency_sum"], tables["log_sync_latency_count"]
        ),
        log_append_avg_latency=safe_divide(
            tables["log_append_latency_sum"], tables["log_append_latency_count"]
        ),
        **tables,
    )


class HistoricalData:
    """Detail rows of every round, keyed by host and timestamp.

    Rows are recorded once: a key that already exists is never overwritten,
    so re-deriving details from an unchanged store is a no-op.
    """

    def __init__(self) -> None:
        self.cpu_details: dict[tuple[str, datetime], CpuDetails] = {}
        self.disk_details: dict[tuple[str, datetime, str], DiskDetails] = {}
        self.memory_details: dict[tuple[str, datetime], MemoryDetails] = {}
        self.network_details: dict[tuple[str, datetime, str], NetworkDetails] = {}
        self.softnet_details: dict[tuple[str, datetime], SoftnetDetails] = {}
        self.yb_memory_details: dict[tuple[str, datetime], YbMemoryDetails] = {}
        self.yb_io_details: dict[tuple[str, datetime], YbIoDetails] = {}

    def __len__(self) -> int:
        return (
            len(self.cpu_details)
            + len(self.disk_details)
            + len(self.memory_details)
            + len(self.network_details)
            + len(self.softnet_details)
            + len(self.yb_memory_details)
            + len(self.yb_io_details)
        )

    @staticmethod
    def _record(table: dict, details: DetailsT | None, *extra: str) -> int:
        if details is None:
            return 0
        key = (details.hostname, details.timestamp, *extra)
        if key in table:
            return 0
        table[key] = details
        return 1

    def add(self, store: StatisticsStore) -> int:
        """Record the current detail rows of every host in the store.

        Args:
            store: Statistics store after a completed round

        Returns:
            Number of newly recorded rows
        """
        added = 0
        for host in store.hosts():
            added += self._record(self.cpu_details, cpu_details(store, host))
            for disk in disk_details(store, host):
                added += self._record(self.disk_details, disk, disk.device)
            added += self._record(self.memory_details, memory_details(store, host))
            for interface in network_details(store, host):
                added += self._record(self.network_details, interface, interface.device)
            added += self._record(self.softnet_details, softnet_details(store, host))
            added += self._record(self.yb_memory_details, yb_memory_details(store, host))
            added += self._record(self.yb_io_details, yb_io_details(store, host))

        logger.debug(f"Recorded {added} detail rows, {len(self)} in history")
        return added
