"""Pydantic schemas."""

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

__all__ = [
    "CpuDetails",
    "DiskDetails",
    "HostDetails",
    "MemoryDetails",
    "NetworkDetails",
    "SoftnetDetails",
    "YbIoDetails",
    "YbMemoryDetails",
]
