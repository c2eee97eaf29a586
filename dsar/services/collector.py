"""Collector service: runs scrape rounds and folds them into the store."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dsar.config import CollectorSettings
from dsar.exceptions import ClassificationError
from dsar.models.statistic import Sample
from dsar.services.aggregator import synthesize_totals
from dsar.services.history import HistoricalData
from dsar.services.metric_registry import Classification, classify
from dsar.services.metrics import record_round
from dsar.services.scrape_dispatcher import ScrapeDispatcher, build_targets
from dsar.services.statistics_store import StatisticsStore

logger = logging.getLogger(__name__)


class CollectorService:
    """Periodically scrape every target and maintain running statistics.

    One round is: scrape all targets, classify every sample, apply the
    classified samples to the store, recompute the total rows and,
    optionally, record the derived detail rows. Rounds never overlap.

    A classification error is fatal: it aborts the round before the store
    is touched, stops the scheduler and is re-raised from :meth:`wait`.
    """

    def __init__(
        self,
        settings: CollectorSettings,
        dispatcher: Optional[ScrapeDispatcher] = None,
    ) -> None:
        self.settings = settings
        self.dispatcher = dispatcher or ScrapeDispatcher(
            parallel=settings.parallel,
            connect_timeout=settings.connect_timeout_seconds,
            round_timeout=settings.round_timeout_seconds,
        )
        self.targets = build_targets(settings.hosts, settings.ports, settings.endpoints)
        self.store = StatisticsStore()
        self.history: Optional[HistoricalData] = (
            HistoricalData() if settings.keep_history else None
        )
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.rounds = 0
        self._stopped = asyncio.Event()
        self._error: Optional[ClassificationError] = None

    @staticmethod
    def classify_round(
        results: dict[str, list[Sample]],
    ) -> tuple[list[Classification], int]:
        """Classify every sample of a round.

        Args:
            results: Samples per scrape target identifier

        Returns:
            Tuple of (classifications, number of unrecognized samples)

        Raises:
            ClassificationError: A sample does not match its registered shape
        """
        classifications = []
        ignored = 0
        for identifier, samples in results.items():
            for sample in samples:
                try:
                    classification = classify(sample, identifier)
                except ClassificationError as e:
                    logger.critical(f"Schema mismatch scraping {identifier}: {e}")
                    raise
                if classification is None:
                    ignored += 1
                    continue
                classifications.append(classification)
        return classifications, ignored

    def process_scrape(self, results: dict[str, list[Sample]]) -> dict[str, Any]:
        """Fold one round of scrape results into the store.

        The whole round is classified before the first store update, so a
        fatal classification error leaves the store as it was.

        Args:
            results: Samples per scrape target identifier

        Returns:
            Round statistics

        Raises:
            ClassificationError: A sample does not match its registered shape
        """
        classifications, ignored = self.classify_round(results)

        excluded = 0
        for classification in classifications:
            if self.store.apply(classification) is None:
                excluded += 1

        synthesize_totals(self.store, classifications)

        if self.history is not None:
            self.history.add(self.store)

        return {
            "samples": sum(len(samples) for samples in results.values()),
            "recognized": len(classifications),
            "excluded": excluded,
            "ignored": ignored,
            "keys": len(self.store),
        }

    async def run_round(self) -> dict[str, Any]:
        """Scrape every target once and process the results.

        Returns:
            Round statistics: targets, reachable, samples, recognized,
            excluded, ignored, keys

        Raises:
            ClassificationError: A sample does not match its registered shape
        """
        start_time = datetime.now()

        results = await self.dispatcher.scrape(self.targets)
        stats = {
            "targets": len(self.targets),
            "reachable": sum(1 for samples in results.values() if samples),
        }
        stats.update(self.process_scrape(results))
        self.rounds += 1

        duration = (datetime.now() - start_time).total_seconds()
        record_round(stats, duration)
        logger.info(
            f"Round {self.rounds} completed in {duration:.2f}s: "
            f"{stats['reachable']}/{stats['targets']} targets reachable, "
            f"{stats['recognized']} samples recognized, "
            f"{stats['ignored']} ignored, {stats['keys']} keys"
        )
        return stats

    async def _run_scheduled_round(self) -> None:
        """Scheduler job wrapper; a fatal error stops the collector."""
        try:
            await self.run_round()
        except ClassificationError as e:
            # Shutting the scheduler down from inside its own job would
            # cancel this job; wait() does it instead.
            self._error = e
            self._stopped.set()

    async def start(self) -> None:
        """Schedule rounds every ``interval_seconds``, the first one immediately."""
        self._stopped.clear()
        self._error = None
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_scheduled_round,
            IntervalTrigger(seconds=self.settings.interval_seconds),
            id="scrape_round",
            name="Scrape Round",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping rounds
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        logger.info(
            f"Collector started: {len(self.targets)} targets every "
            f"{self.settings.interval_seconds}s, parallel {self.dispatcher.parallel}"
        )

    async def stop(self) -> None:
        """Stop scheduling rounds."""
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # Give event loop a chance to process shutdown
            await asyncio.sleep(0)
            logger.info(f"Collector stopped after {self.rounds} rounds")
        self._stopped.set()

    async def wait(self) -> None:
        """Block until the collector is stopped.

        Raises:
            ClassificationError: The round that stopped the collector failed
        """
        await self._stopped.wait()
        if self._error is not None:
            await self.stop()
            raise self._error

    async def run(self) -> None:
        """Start the collector and run until stopped or a fatal error."""
        await self.start()
        try:
            await self.wait()
        finally:
            await self.stop()
