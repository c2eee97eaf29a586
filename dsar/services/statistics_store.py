"""Statistics store and rate engine.

The store owns the keyed statistics map for one collector run. It is
mutated only by the single post-scrape processing step of a round, so it
carries no locking. Entries are created on first sight of a key and never
removed.
"""

import logging
import math
from collections.abc import Iterator
from datetime import datetime

from dsar.models.statistic import Statistic, StatisticKey
from dsar.services.metric_registry import Classification, UpdateStrategy
from dsar.services.metrics import counter_resets_total
from dsar.utils.arithmetic import safe_divide

logger = logging.getLogger(__name__)


class StatisticsStore:
    """In-memory map of statistics keys to running statistics."""

    def __init__(self) -> None:
        self._statistics: dict[StatisticKey, Statistic] = {}

    def __len__(self) -> int:
        return len(self._statistics)

    def __contains__(self, key: object) -> bool:
        return key in self._statistics

    def __getitem__(self, key: StatisticKey) -> Statistic:
        return self._statistics[key]

    def get(self, key: StatisticKey) -> Statistic | None:
        return self._statistics.get(key)

    def items(self) -> Iterator[tuple[StatisticKey, Statistic]]:
        """Iterate entries ordered by key, for deterministic reporting."""
        for key in sorted(self._statistics):
            yield key, self._statistics[key]

    def hosts(self) -> list[str]:
        return sorted({key.host for key in self._statistics})

    def find(
        self,
        host: str,
        metric: str,
        discriminator_1: str | None = None,
        discriminator_2: str | None = None,
    ) -> list[tuple[StatisticKey, Statistic]]:
        """Return entries of one host and metric, optionally narrowed by discriminators."""
        matches = [
            (key, statistic)
            for key, statistic in self._statistics.items()
            if key.host == host
            and key.metric == metric
            and (discriminator_1 is None or key.discriminator_1 == discriminator_1)
            and (discriminator_2 is None or key.discriminator_2 == discriminator_2)
        ]
        return sorted(matches, key=lambda item: item[0])

    def apply(self, classification: Classification) -> Statistic | None:
        """Fold one classified sample into the store.

        Args:
            classification: Classified sample with its key and registry rule

        Returns:
            The updated statistic, or None when the instance is excluded
        """
        if classification.excluded:
            return None

        key = classification.key
        sample = classification.sample
        statistic = self._statistics.get(key)

        if statistic is None:
            statistic = Statistic(last_value=sample.value, last_timestamp=sample.timestamp)
            self._statistics[key] = statistic
            logger.debug(f"{key}: first sample, last_value: {sample.value}")
            return statistic

        if classification.rule.strategy is UpdateStrategy.COUNTER:
            self._update_counter(key, statistic, sample.value, sample.timestamp)
        else:
            statistic.last_value = sample.value
            statistic.last_timestamp = sample.timestamp
            logger.debug(f"{key}: last_value: {statistic.last_value}")

        statistic.first_sample = False
        return statistic

    @staticmethod
    def _update_counter(
        key: StatisticKey,
        statistic: Statistic,
        value: float,
        timestamp: datetime,
    ) -> None:
        if value < statistic.last_value:
            # Counter went backwards: the exporter restarted. Re-baseline.
            statistic.resets += 1
            counter_resets_total.inc()
            statistic.delta_value = 0.0
            statistic.per_second_value = 0.0
            logger.info(
                f"{key}: counter reset from {statistic.last_value} to {value}, "
                f"rate suppressed for this round"
            )
        else:
            elapsed = (timestamp - statistic.last_timestamp).total_seconds()
            delta = value - statistic.last_value
            statistic.delta_value = delta if math.isfinite(delta) else 0.0
            statistic.per_second_value = safe_divide(delta, elapsed)

        statistic.last_value = value
        statistic.last_timestamp = timestamp
        logger.debug(
            f"{key}: last_value: {statistic.last_value}, last_timestamp: {statistic.last_timestamp}, "
            f"delta_value: {statistic.delta_value}, per_second_value: {statistic.per_second_value}"
        )

    def set_total(
        self,
        key: StatisticKey,
        per_second_value: float,
        last_timestamp: datetime,
        first_sample: bool,
    ) -> Statistic:
        """Replace a synthesized total row in full."""
        statistic = Statistic(
            last_value=0.0,
            last_timestamp=last_timestamp,
            per_second_value=per_second_value,
            first_sample=first_sample,
        )
        self._statistics[key] = statistic
        return statistic
