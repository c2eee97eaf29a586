"""Core data types: scraped samples, statistics keys and statistics."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple

TOTAL = "total"


class ValueKind(Enum):
    """Value kind declared by the exposition for a sample."""

    COUNTER = "counter"
    GAUGE = "gauge"
    UNTYPED = "untyped"
    SUMMARY = "summary"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class Sample:
    """One parsed exposition sample.

    Attributes:
        metric: Sample name as exposed (e.g. ``node_cpu_seconds_total``)
        labels: Label set of the sample
        value: Numeric sample value
        kind: Declared value kind of the metric family
        timestamp: Sample timestamp (exposition timestamp or receive time)
    """

    metric: str
    labels: dict[str, str]
    value: float
    kind: ValueKind
    timestamp: datetime


class StatisticKey(NamedTuple):
    """Composite key of a statistics entry.

    ``host`` is the scrape target identifier. The two discriminators are
    family specific (cpu id and mode, device, metric_type, table_id) and
    are empty strings when not applicable.
    """

    host: str
    metric: str
    discriminator_1: str = ""
    discriminator_2: str = ""

    @property
    def is_total(self) -> bool:
        return self.discriminator_1 == TOTAL


@dataclass
class Statistic:
    """Running state of one statistics key."""

    last_value: float
    last_timestamp: datetime
    delta_value: float = 0.0
    per_second_value: float = 0.0
    first_sample: bool = True
    resets: int = field(default=0, compare=False)
