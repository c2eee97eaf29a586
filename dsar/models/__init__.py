"""Data types shared across dsar services."""

from dsar.models.statistic import TOTAL, Sample, Statistic, StatisticKey, ValueKind

__all__ = [
    "TOTAL",
    "Sample",
    "Statistic",
    "StatisticKey",
    "ValueKind",
]
