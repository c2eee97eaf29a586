"""Scrape dispatcher: bounded-parallel fetch of metrics endpoints."""

import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from dsar.exceptions import ExpositionParseError
from dsar.models.statistic import Sample
from dsar.services.exposition import parse_exposition
from dsar.services.metrics import scrape_failures_total

logger = logging.getLogger(__name__)

# node_exporter serves /metrics, YugabyteDB processes /prometheus-metrics
ENDPOINTS = ("metrics", "prometheus-metrics")


@dataclass(frozen=True)
class ScrapeTarget:
    """One (host, port, endpoint) combination to fetch."""

    host: str
    port: str
    endpoint: str

    @property
    def identifier(self) -> str:
        return f"{self.host}:{self.port}:{self.endpoint}"

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/{self.endpoint}"


def build_targets(
    hosts: Iterable[str],
    ports: Iterable[str],
    endpoints: Iterable[str] = ENDPOINTS,
) -> list[ScrapeTarget]:
    """Cross hosts, ports and endpoints into scrape targets."""
    ports = list(ports)
    endpoints = list(endpoints)
    return [
        ScrapeTarget(host, str(port), endpoint)
        for host in hosts
        for port in ports
        for endpoint in endpoints
    ]


class ScrapeDispatcher:
    """Fetch all targets of a round with a fixed concurrency limit.

    Every fetch failure (connection error, timeout, non-success status,
    unparsable body) is logged and yields an empty sample list for that
    target. :meth:`scrape` returns only once every target has answered,
    failed, or been cut off by the optional round deadline.

    Example:
        dispatcher = ScrapeDispatcher(parallel=3)
        results = await dispatcher.scrape(build_targets(["db1"], ["9100"]))
    """

    def __init__(
        self,
        parallel: int = 3,
        connect_timeout: float = 0.2,
        round_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize dispatcher.

        Args:
            parallel: Maximum number of concurrent fetches
            connect_timeout: Connect timeout per fetch (seconds)
            round_timeout: Deadline for the whole round (seconds), None for no deadline
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        if parallel < 1:
            raise ValueError("parallel must be at least 1")
        self.parallel = parallel
        # Only connecting is bounded; a slow but reachable target is bounded
        # by the round deadline, if one is configured.
        self.timeout = httpx.Timeout(None, connect=connect_timeout)
        self.round_timeout = round_timeout
        self._transport = transport

    async def fetch(self, client: httpx.AsyncClient, target: ScrapeTarget) -> list[Sample]:
        """Fetch and parse one target, returning [] on any failure."""
        try:
            response = await client.get(target.url)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout scraping {target.url}: {type(e).__name__}")
            scrape_failures_total.labels(reason="timeout").inc()
            return []
        except httpx.HTTPError as e:
            logger.warning(f"Failed to scrape {target.url}: {type(e).__name__}: {e}")
            scrape_failures_total.labels(reason="connection").inc()
            return []

        received_at = datetime.now(UTC)

        if not response.is_success:
            logger.warning(f"Non success response: {target.url} = {response.status_code}")
            scrape_failures_total.labels(reason="status").inc()
            return []
        logger.debug(f"Success response: {target.url} = {response.status_code}")

        try:
            return parse_exposition(response.text, received_at)
        except ExpositionParseError as e:
            logger.warning(f"Unparsable response from {target.url}: {e}")
            scrape_failures_total.labels(reason="parse").inc()
            return []

    async def scrape(self, targets: list[ScrapeTarget]) -> dict[str, list[Sample]]:
        """Fetch every target and gather the results.

        Args:
            targets: Targets of this round

        Returns:
            Mapping of target identifier to its samples (empty for failed targets)
        """
        results: dict[str, list[Sample]] = {target.identifier: [] for target in targets}
        if not targets:
            return results

        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.parallel)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            verify=False,
            transport=self._transport,
        ) as client:

            async def scrape_target(target: ScrapeTarget) -> None:
                async with semaphore:
                    results[target.identifier] = await self.fetch(client, target)

            tasks = {
                asyncio.create_task(scrape_target(target)): target for target in targets
            }
            done, pending = await asyncio.wait(tasks, timeout=self.round_timeout)

            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                scrape_failures_total.labels(reason="deadline").inc(len(pending))
                late = ", ".join(sorted(tasks[task].identifier for task in pending))
                logger.warning(
                    f"Round deadline of {self.round_timeout}s reached, no samples from: {late}"
                )

            for task in done:
                error = task.exception()
                if error is not None:
                    logger.error(
                        f"Unexpected error scraping {tasks[task].url}: {error}",
                        exc_info=error,
                    )

        reachable = sum(1 for samples in results.values() if samples)
        logger.debug(
            f"Scraped {reachable}/{len(targets)} targets in "
            f"{time.monotonic() - start_time:.3f}s"
        )
        return results
