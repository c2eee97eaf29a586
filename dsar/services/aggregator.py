"""Aggregation synthesizer for per-host ``total`` rows.

For every aggregated metric family (cpu, schedstat, disk, network
interface, softnet) the per-instance rows of one host, metric and second
discriminator are summed into a row whose first discriminator is
``total``. Totals are derived, not scraped: they are recomputed in full
from the rows updated in the current round and overwrite the previous
total row.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from dsar.models.statistic import TOTAL, StatisticKey
from dsar.services.metric_registry import Classification
from dsar.services.statistics_store import StatisticsStore

logger = logging.getLogger(__name__)


@dataclass
class _TotalGroup:
    """Contributors of one total row within a round."""

    timestamp: datetime
    contributors: set[StatisticKey] = field(default_factory=set)


def synthesize_totals(
    store: StatisticsStore,
    classifications: Iterable[Classification],
) -> list[StatisticKey]:
    """Recompute total rows for every aggregated group seen in a round.

    A group seen only through excluded instances (for example a host whose
    sole interface is ``lo``) still gets a total row, with a rate of 0.

    Args:
        store: Statistics store already updated with the round's samples
        classifications: Every classification of the round

    Returns:
        Keys of the total rows written
    """
    groups: dict[StatisticKey, _TotalGroup] = {}

    for classification in classifications:
        if not classification.rule.aggregated:
            continue
        key = classification.key
        if key.is_total:
            continue
        total_key = StatisticKey(key.host, key.metric, TOTAL, key.discriminator_2)
        group = groups.get(total_key)
        if group is None:
            group = groups[total_key] = _TotalGroup(timestamp=classification.sample.timestamp)
        if not classification.excluded:
            group.contributors.add(key)

    written = []
    for total_key, group in groups.items():
        contributors = [store[key] for key in group.contributors if key in store]
        per_second_value = sum(statistic.per_second_value for statistic in contributors)
        first_sample = all(statistic.first_sample for statistic in contributors)
        last_timestamp = max(
            (statistic.last_timestamp for statistic in contributors),
            default=group.timestamp,
        )
        store.set_total(total_key, per_second_value, last_timestamp, first_sample)
        written.append(total_key)
        logger.debug(
            f"{total_key}: {len(contributors)} instances, per_second_value: {per_second_value}"
        )

    return written
