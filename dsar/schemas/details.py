"""Pydantic schemas for derived per-host detail rows."""

from datetime import datetime

from pydantic import BaseModel, Field


class HostDetails(BaseModel):
    """Common identity of a detail row."""

    hostname: str
    timestamp: datetime

    model_config = {"frozen": True}


class CpuDetails(HostDetails):
    """CPU time per second over all CPUs of a host (sar -u)."""

    user: float = 0.0
    nice: float = 0.0
    system: float = 0.0
    iowait: float = 0.0
    steal: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    guest_user: float = 0.0
    guest_nice: float = 0.0
    idle: float = 0.0
    schedstat_running: float = 0.0
    schedstat_waiting: float = 0.0

    @property
    def total_time(self) -> float:
        return (
            self.user
            + self.nice
            + self.system
            + self.iowait
            + self.steal
            + self.irq
            + self.softirq
            + self.guest_user
            + self.guest_nice
            + self.idle
        )


class DiskDetails(HostDetails):
    """Per-device disk activity (sar -d), ``total`` over all devices."""

    device: str
    reads_completed_s: float = 0.0
    reads_bytes_s: float = 0.0
    reads_merged_s: float = 0.0
    reads_avg_latency_s: float = 0.0
    writes_completed_s: float = 0.0
    writes_bytes_s: float = 0.0
    writes_merged_s: float = 0.0
    writes_avg_latency_s: float = 0.0
    # Not exposed by older kernels and node_exporter releases
    discards_completed_s: float = 0.0
    discards_sectors_s: float = 0.0
    discards_merged_s: float = 0.0
    discards_avg_latency_s: float = 0.0
    queue_size: float = 0.0
    # xfs is per partition, disks are per disk; both share the total row
    xfs_read_calls_s: float = 0.0
    xfs_write_calls_s: float = 0.0


class MemoryDetails(HostDetails):
    """Memory usage in bytes (sar -r)."""

    memfree: float = 0.0
    memavailable: float = 0.0
    memused: float = 0.0
    memused_pct: float = Field(0.0, description="Used memory as a percentage of total memory")
    buffers: float = 0.0
    cached: float = 0.0
    committed_as: float = 0.0
    commit_pct: float = Field(
        0.0, description="Committed memory as a percentage of memory plus swap"
    )
    active: float = 0.0
    inactive: float = 0.0
    dirty: float = 0.0
    anonpages: float = 0.0
    slab: float = 0.0
    kernelstack: float = 0.0
    pagetables: float = 0.0
    vmalloctotal: float = 0.0
    swaptotal: float = 0.0
    swapfree: float = 0.0
    swapcached: float = 0.0


class NetworkDetails(HostDetails):
    """Per-interface network activity (sar -n DEV,EDEV), ``total`` over all interfaces."""

    device: str
    receive_packets_s: float = 0.0
    transmit_packets_s: float = 0.0
    receive_bytes_s: float = 0.0
    transmit_bytes_s: float = 0.0
    receive_compressed_s: float = 0.0
    transmit_compressed_s: float = 0.0
    receive_multicast_s: float = 0.0
    receive_errors_s: float = 0.0
    transmit_errors_s: float = 0.0
    transmit_collisions_s: float = 0.0
    receive_drops_s: float = 0.0
    transmit_drops_s: float = 0.0
    transmit_carrier_s: float = 0.0
    receive_fifo_s: float = 0.0
    transmit_fifo_s: float = 0.0


class SoftnetDetails(HostDetails):
    """Softnet processing over all CPUs (sar -n SOFT)."""

    processed_s: float = 0.0
    dropped_s: float = 0.0
    squeezed_s: float = 0.0


class YbMemoryDetails(HostDetails):
    """YugabyteDB server process memory in bytes."""

    generic_heap: float = 0.0
    generic_allocated: float = 0.0
    tcmalloc_pageheap_free: float = 0.0
    tcmalloc_max_total_thread_cache: float = 0.0
    tcmalloc_current_total_thread_cache: float = 0.0
    tcmalloc_pageheap_unmapped: float = 0.0
    mem_tracker: float = 0.0
    mem_tracker_call: float = 0.0
    mem_tracker_read_buffer: float = 0.0
    mem_tracker_compressed_read_buffer: float = 0.0
    mem_tracker_tablets: float = 0.0
    mem_tracker_log_cache: float = 0.0
    mem_tracker_blockbasedtable: float = 0.0
    mem_tracker_independent_allocs: float = 0.0


class YbIoDetails(HostDetails):
    """YugabyteDB server IO per second, table-level metrics summed over tables."""

    glog_info_messages: float = 0.0
    glog_warning_messages: float = 0.0
    glog_error_messages: float = 0.0
    log_bytes_logged: float = 0.0
    log_reader_bytes_read: float = 0.0
    log_sync_latency_count: float = 0.0
    log_sync_latency_sum: float = 0.0
    log_sync_avg_latency: float = 0.0
    log_append_latency_count: float = 0.0
    log_append_latency_sum: float = 0.0
    log_append_avg_latency: float = 0.0
    log_cache_disk_reads: float = 0.0
    rocksdb_flush_write_bytes: float = 0.0
    intentsdb_rocksdb_flush_write_bytes: float = 0.0
    rocksdb_compact_read_bytes: float = 0.0
    intentsdb_rocksdb_compact_read_bytes: float = 0.0
    rocksdb_compact_write_bytes: float = 0.0
    intentsdb_rocksdb_compact_write_bytes: float = 0.0
    rocksdb_write_raw_block_micros_count: float = 0.0
    rocksdb_write_raw_block_micros_sum: float = 0.0
    rocksdb_sst_read_micros_count: float = 0.0
    rocksdb_sst_read_micros_sum: float = 0.0
    intentsdb_rocksdb_block_cache_hit: float = 0.0
    intentsdb_rocksdb_block_cache_miss: float = 0.0
    rocksdb_block_cache_hit: float = 0.0
    rocksdb_block_cache_miss: float = 0.0
