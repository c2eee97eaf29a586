"""Metric registry: the closed table of recognized metric names.

Every recognized metric name maps to a :class:`MetricRule` that records
which value kinds the exposition may declare for it, how its statistics
key is built from the sample labels, whether it is updated as a counter
(delta and per-second rate) or as a gauge (last value only), and whether
per-instance rows are summed into a synthesized ``total`` row.

The table is built once at import time. Classification does nothing but
select the rule and apply it.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from dsar.exceptions import MissingLabelError, ValueKindMismatchError
from dsar.models.statistic import Sample, StatisticKey, ValueKind


class UpdateStrategy(Enum):
    """How a statistics entry is updated on reappearance of its key."""

    COUNTER = "counter"
    GAUGE = "gauge"


# A discriminator rule turns the sample labels into the two discriminators
# of the key, and tells whether the instance is excluded from the store.
Discriminator = Callable[[Sample], tuple[str, str, bool]]


@dataclass(frozen=True)
class MetricRule:
    """Registry entry for one metric name.

    Attributes:
        family: Name of the metric family (node_cpu, yb_io, ...)
        expected_kinds: Value kinds the exposition may declare
        strategy: Counter or gauge update rule
        discriminator: Builds the key discriminators from sample labels
        aggregated: Whether a ``total`` row is synthesized over discriminator_1
    """

    family: str
    expected_kinds: frozenset[ValueKind]
    strategy: UpdateStrategy
    discriminator: Discriminator
    aggregated: bool = False


@dataclass(frozen=True)
class Classification:
    """Result of classifying one sample for one scrape target."""

    key: StatisticKey
    rule: MetricRule
    sample: Sample
    excluded: bool = False


def _label(sample: Sample, name: str) -> str:
    try:
        return sample.labels[name]
    except KeyError:
        raise MissingLabelError(sample.metric, name) from None


def no_discriminator(sample: Sample) -> tuple[str, str, bool]:
    return "", "", False


def by_label(name: str) -> Discriminator:
    def discriminator(sample: Sample) -> tuple[str, str, bool]:
        return _label(sample, name), "", False

    return discriminator


def by_labels(first: str, second: str) -> Discriminator:
    def discriminator(sample: Sample) -> tuple[str, str, bool]:
        return _label(sample, first), _label(sample, second), False

    return discriminator


def by_device(excluded_prefix: str) -> Discriminator:
    """Key on ``device``, excluding devices whose name has the given prefix."""

    def discriminator(sample: Sample) -> tuple[str, str, bool]:
        device = _label(sample, "device")
        return device, "", device.startswith(excluded_prefix)

    return discriminator


def by_interface(excluded_name: str) -> Discriminator:
    """Key on ``device``, excluding one interface by exact name."""

    def discriminator(sample: Sample) -> tuple[str, str, bool]:
        device = _label(sample, "device")
        return device, "", device == excluded_name

    return discriminator


COUNTER_ONLY = frozenset({ValueKind.COUNTER})
GAUGE_ONLY = frozenset({ValueKind.GAUGE})
UNTYPED_ONLY = frozenset({ValueKind.UNTYPED})
# Older YugabyteDB releases expose these untyped, newer ones as counters
UNTYPED_OR_COUNTER = frozenset({ValueKind.UNTYPED, ValueKind.COUNTER})

# Device mapper devices duplicate the statistics of their backing disks
PSEUDO_DISK_PREFIX = "dm-"
LOOPBACK_INTERFACE = "lo"


METRIC_REGISTRY: dict[str, MetricRule] = {}


def _register(
    family: str,
    names: Iterable[str],
    expected_kinds: frozenset[ValueKind],
    strategy: UpdateStrategy,
    discriminator: Discriminator = no_discriminator,
    aggregated: bool = False,
) -> None:
    rule = MetricRule(family, expected_kinds, strategy, discriminator, aggregated)
    for name in names:
        if name in METRIC_REGISTRY:
            raise ValueError(f"Metric {name} registered twice")
        METRIC_REGISTRY[name] = rule


# node_exporter: cpu
_register(
    "node_cpu",
    [
        "node_schedstat_running_seconds_total",
        "node_schedstat_waiting_seconds_total",
    ],
    COUNTER_ONLY,
    UpdateStrategy.COUNTER,
    by_label("cpu"),
    aggregated=True,
)
_register(
    "node_cpu",
    [
        "node_cpu_seconds_total",
        "node_cpu_guest_seconds_total",
    ],
    COUNTER_ONLY,
    UpdateStrategy.COUNTER,
    by_labels("cpu", "mode"),
    aggregated=True,
)

# node_exporter: disk
_register(
    "node_disk",
    [
        "node_disk_read_bytes_total",
        "node_disk_read_time_seconds_total",
        "node_disk_reads_completed_total",
        "node_disk_reads_merged_total",
        "node_disk_written_bytes_total",
        "node_disk_write_time_seconds_total",
        "node_disk_writes_completed_total",
        "node_disk_writes_merged_total",
        "node_disk_discarded_sectors_total",
        "node_disk_discard_time_seconds_total",
        "node_disk_discards_completed_total",
        "node_disk_discards_merged_total",
        "node_disk_io_time_seconds_total",
        "node_disk_io_time_weighted_seconds_total",
        "node_xfs_read_calls_total",
        "node_xfs_write_calls_total",
    ],
    COUNTER_ONLY,
    UpdateStrategy.COUNTER,
    by_device(PSEUDO_DISK_PREFIX),
    aggregated=True,
)

# node_exporter: network
_register(
    "node_network",
    [
        "node_network_receive_packets_total",
        "node_network_transmit_packets_total",
        "node_network_receive_bytes_total",
        "node_network_transmit_bytes_total",
        "node_network_receive_compressed_total",
        "node_network_transmit_compressed_total",
        "node_network_receive_multicast_total",
        "node_network_receive_errs_total",
        "node_network_transmit_errs_total",
        "node_network_transmit_colls_total",
        "node_network_receive_drop_total",
        "node_network_transmit_drop_total",
        "node_network_transmit_carrier_total",
        "node_network_receive_fifo_total",
        "node_network_transmit_fifo_total",
    ],
    COUNTER_ONLY,
    UpdateStrategy.COUNTER,
    by_interface(LOOPBACK_INTERFACE),
    aggregated=True,
)
_register(
    "node_network",
    [
        "node_sockstat_sockets_used",
        "node_sockstat_TCP_inuse",
        "node_sockstat_UDP_inuse",
        "node_sockstat_RAW_inuse",
        "node_sockstat_FRAG_inuse",
        "node_sockstat_TCP_tw",
        "node_sockstat_TCP6_inuse",
        "node_sockstat_UDP6_inuse",
        "node_sockstat_RAW6_inuse",
        "node_sockstat_FRAG6_inuse",
    ],
    GAUGE_ONLY,
    UpdateStrategy.GAUGE,
)
_register(
    "node_network",
    [
        "node_softnet_dropped_total",
        "node_softnet_processed_total",
        "node_softnet_times_squeezed_total",
    ],
    COUNTER_ONLY,
    UpdateStrategy.COUNTER,
    by_label("cpu"),
    aggregated=True,
)

# node_exporter: memory
_register(
    "node_memory",
    [
        "node_memory_Active_anon_bytes",
        "node_memory_Active_bytes",
        "node_memory_Active_file_bytes",
        "node_memory_AnonHugePages_bytes",
        "node_memory_AnonPages_bytes",
        "node_memory_Bounce_bytes",
        "node_memory_Buffers_bytes",
        "node_memory_Cached_bytes",
        "node_memory_CommitLimit_bytes",
        "node_memory_Committed_AS_bytes",
        "node_memory_DirectMap2M_bytes",
        "node_memory_DirectMap4k_bytes",
        "node_memory_Dirty_bytes",
        "node_memory_FileHugePages_bytes",
        "node_memory_FilePmdMapped_bytes",
        "node_memory_HardwareCorrupted_bytes",
        "node_memory_HugePages_Free",
        "node_memory_HugePages_Rsvd",
        "node_memory_HugePages_Surp",
        "node_memory_HugePages_Total",
        "node_memory_Hugepagesize_bytes",
        "node_memory_Hugetlb_bytes",
        "node_memory_Inactive_anon_bytes",
        "node_memory_Inactive_bytes",
        "node_memory_Inactive_file_bytes",
        "node_memory_KReclaimable_bytes",
        "node_memory_KernelStack_bytes",
        "node_memory_Mapped_bytes",
        "node_memory_MemAvailable_bytes",
        "node_memory_MemFree_bytes",
        "node_memory_MemTotal_bytes",
        "node_memory_Mlocked_bytes",
        "node_memory_NFS_Unstable_bytes",
        "node_memory_PageTables_bytes",
        "node_memory_Percpu_bytes",
        "node_memory_SReclaimable_bytes",
        "node_memory_SUnreclaim_bytes",
        "node_memory_ShmemHugePages_bytes",
        "node_memory_ShmemPmdMapped_bytes",
        "node_memory_Shmem_bytes",
        "node_memory_Slab_bytes",
        "node_memory_SwapCached_bytes",
        "node_memory_SwapFree_bytes",
        "node_memory_SwapTotal_bytes",
        "node_memory_Unevictable_bytes",
        "node_memory_VmallocChunk_bytes",
        "node_memory_VmallocTotal_bytes",
        "node_memory_VmallocUsed_bytes",
        "node_memory_WritebackTmp_bytes",
        "node_memory_Writeback_bytes",
    ],
    GAUGE_ONLY,
    UpdateStrategy.GAUGE,
)

# node_exporter: vmstat (exposed untyped, behaves as counters)
_register(
    "node_vmstat",
    [
        "node_vmstat_oom_kill",
        "node_vmstat_pgfault",
        "node_vmstat_pgmajfault",
        "node_vmstat_pgpgin",
        "node_vmstat_pgpgout",
        "node_vmstat_pswpin",
        "node_vmstat_pswpout",
    ],
    UNTYPED_ONLY,
    UpdateStrategy.COUNTER,
)

# node_exporter: misc
_register(
    "node_misc",
    [
        "node_intr_total",
        "node_context_switches_total",
    ],
    COUNTER_ONLY,
    UpdateStrategy.COUNTER,
)
_register(
    "node_misc",
    [
        "node_procs_running",
        "node_procs_blocked",
        "node_load1",
        "node_load5",
        "node_load15",
    ],
    GAUGE_ONLY,
    UpdateStrategy.GAUGE,
)

# YugabyteDB: cpu
_register(
    "yb_cpu",
    [
        "cpu_stime",
        "cpu_utime",
        "voluntary_context_switches",
        "involuntary_context_switches",
    ],
    UNTYPED_ONLY,
    UpdateStrategy.COUNTER,
    by_label("metric_type"),
)

# YugabyteDB: network
_register(
    "yb_network",
    [
        "tcp_bytes_received",
        "tcp_bytes_sent",
    ],
    UNTYPED_OR_COUNTER,
    UpdateStrategy.COUNTER,
    by_label("metric_type"),
)

# YugabyteDB: memory (untyped, but point-in-time values)
_register(
    "yb_memory",
    [
        "generic_heap_size",
        "generic_current_allocated_bytes",
        "tcmalloc_pageheap_free_bytes",
        "tcmalloc_max_total_thread_cache_bytes",
        "tcmalloc_current_total_thread_cache_bytes",
        "tcmalloc_pageheap_unmapped_bytes",
        "mem_tracker",
        "mem_tracker_Call",
        "mem_tracker_Call_Outbound_RPC",
        "mem_tracker_Call_Inbound_RPC",
        "mem_tracker_Call_Redis",
        "mem_tracker_Call_CQL",
        "mem_tracker_Read_Buffer",
        "mem_tracker_Read_Buffer_Inbound_RPC",
        "mem_tracker_Read_Buffer_Inbound_RPC_Sending",
        "mem_tracker_Read_Buffer_Inbound_RPC_Receive",
        "mem_tracker_Read_Buffer_Inbound_RPC_Reading",
        "mem_tracker_Read_Buffer_Outbound_RPC",
        "mem_tracker_Read_Buffer_Outbound_RPC_Queueing",
        "mem_tracker_Read_Buffer_Outbound_RPC_Receive",
        "mem_tracker_Read_Buffer_Outbound_RPC_Sending",
        "mem_tracker_Read_Buffer_Outbound_RPC_Reading",
        "mem_tracker_Read_Buffer_Redis",
        "mem_tracker_Read_Buffer_Redis_Allocated",
        "mem_tracker_Read_Buffer_Redis_Used",
        "mem_tracker_Read_Buffer_Redis_Mandatory",
        "mem_tracker_Read_Buffer_CQL",
        "mem_tracker_Compressed_Read_Buffer",
        "mem_tracker_Compressed_Read_Buffer_Receive",
        "mem_tracker_BlockBasedTable",
        "mem_tracker_BlockBasedTable_IntentsDB",
        "mem_tracker_BlockBasedTable_RegularDB",
        "mem_tracker_log_cache",
        "mem_tracker_Tablets",
        "mem_tracker_Tablets_transactions",
    ],
    UNTYPED_ONLY,
    UpdateStrategy.GAUGE,
    by_label("metric_type"),
)

# YugabyteDB: io
# Info messages are buffered and written when convenient, so they are not
# equivalent to an IO. Warning and error messages are written immediately.
_register(
    "yb_io",
    [
        "glog_info_messages",
        "glog_warning_message",
        "glog_error_messages",
    ],
    UNTYPED_OR_COUNTER,
    UpdateStrategy.COUNTER,
    by_label("metric_type"),
)
_register(
    "yb_io",
    [
        "intentsdb_rocksdb_block_cache_hit",
        "intentsdb_rocksdb_block_cache_miss",
        "rocksdb_block_cache_hit",
        "rocksdb_block_cache_miss",
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
    ],
    UNTYPED_OR_COUNTER,
    UpdateStrategy.COUNTER,
    by_labels("metric_type", "table_id"),
)


def resolve_metric_name(sample: Sample) -> str | None:
    """Find the registered name for a sample, if any.

    The text parser appends ``_total`` to counter samples whose name lacks
    it, so a counter named ``X_total`` that is not registered resolves to
    ``X`` when that is.
    """
    if sample.metric in METRIC_REGISTRY:
        return sample.metric
    if sample.kind is ValueKind.COUNTER and sample.metric.endswith("_total"):
        stripped = sample.metric[: -len("_total")]
        if stripped in METRIC_REGISTRY:
            return stripped
    return None


def classify(sample: Sample, host: str) -> Classification | None:
    """Classify a sample scraped from a target.

    Args:
        sample: Parsed exposition sample
        host: Scrape target identifier the sample came from

    Returns:
        The classification, or None when the metric name is not registered

    Raises:
        ValueKindMismatchError: The declared value kind is not the registered one
        MissingLabelError: A label required for the key is absent
    """
    metric = resolve_metric_name(sample)
    if metric is None:
        return None

    rule = METRIC_REGISTRY[metric]
    if sample.kind not in rule.expected_kinds:
        raise ValueKindMismatchError(
            metric,
            [kind.value for kind in rule.expected_kinds],
            sample.kind.value,
        )

    discriminator_1, discriminator_2, excluded = rule.discriminator(sample)
    return Classification(
        key=StatisticKey(host, metric, discriminator_1, discriminator_2),
        rule=rule,
        sample=sample,
        excluded=excluded,
    )


def is_aggregated(metric: str) -> bool:
    rule = METRIC_REGISTRY.get(metric)
    return rule is not None and rule.aggregated
