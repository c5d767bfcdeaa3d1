"""Collection cycle and relay workflow."""

import asyncio
import time
import logging
from typing import List, Optional, Sequence

import httpx

from .collectors.base import safe_scrape
from .collectors.http_scraper import SourceScraper
from .config.models import RelaySystemConfig, SourceConfig
from .services.backoff import PushBackoff
from .services.pushgateway_client import PushgatewayClient
from .services.registry import MetricRegistry
from .utils.logger import setup_logger
from .utils.metrics import CycleReport, ScrapeResult, TickResult


class CollectionCycle:
    """
    Scrapes every configured source once and applies the outcomes.

    Sources are scraped concurrently through a bounded pool and joined before
    any instrument is touched, so the registry only ever sees complete cycles.
    One source failing never stops the others.
    """

    def __init__(
        self,
        sources: Sequence[SourceConfig],
        registry: MetricRegistry,
        scraper: SourceScraper,
        max_concurrency: int = 8,
        logger: Optional[logging.Logger] = None
    ):
        self.sources = list(sources)
        self.registry = registry
        self.scraper = scraper
        self.max_concurrency = max_concurrency
        self.logger = (logger or logging.getLogger(__name__)).getChild(self.__class__.__name__)

    async def run(self) -> CycleReport:
        """
        Execute one collection cycle.

        Returns:
            CycleReport: Per-source outcomes, for logging only
        """
        start_time = time.monotonic()

        if not self.sources:
            self.logger.info("No sources configured")
            return CycleReport()

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(source: SourceConfig) -> ScrapeResult:
            async with semaphore:
                return await self._scrape_source(source)

        self.logger.info(f"Scraping {len(self.sources)} source(s)")
        outcomes: List[ScrapeResult] = await asyncio.gather(
            *(bounded(source) for source in self.sources)
        )

        # Single writer after the join
        for source, outcome in zip(self.sources, outcomes):
            self.registry.apply(source, outcome)

        report = CycleReport(
            outcomes=list(outcomes),
            duration_ms=(time.monotonic() - start_time) * 1000
        )
        self.logger.info(
            f"Collection cycle finished: {report.succeeded} succeeded, {report.failed} failed",
            extra={"failed_sources": report.failed_sources, "duration_ms": round(report.duration_ms, 1)}
        )
        return report

    @safe_scrape
    async def _scrape_source(self, source: SourceConfig) -> ScrapeResult:
        result = await self.scraper.scrape(
            source.address,
            None,
            source.scrape_fields,
            port=source.port,
            source_name=source.name
        )
        self.logger.info(
            f"Metrics collected from {source.name}",
            extra={"source": source.name, "values": result.values}
        )
        return result


async def run_cycle(
    sources: Sequence[SourceConfig],
    registry: MetricRegistry,
    scraper: SourceScraper,
    max_concurrency: int = 8,
    logger: Optional[logging.Logger] = None
) -> CycleReport:
    """Run a single collection cycle over ``sources``."""
    cycle = CollectionCycle(sources, registry, scraper, max_concurrency, logger)
    return await cycle.run()


class RelayWorkflow:
    """
    One relay tick: collect from every source, then push the aggregate.

    The push happens after every scrape outcome has been applied and runs
    regardless of how many sources failed.
    """

    def __init__(
        self,
        config: RelaySystemConfig,
        logger: logging.Logger = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize relay workflow.

        Args:
            config: System configuration
            logger: Optional logger instance
            client: Optional shared HTTP client (created and owned when None)

        Raises:
            InstrumentRegistrationError: If instruments cannot be registered
        """
        self.config = config
        self.logger = logger or setup_logger("workflow")

        self.registry = MetricRegistry(config.sources, config.namespace, self.logger)

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            limits=httpx.Limits(max_connections=config.scrape.max_concurrency + 1)
        )

        self.scraper = SourceScraper(self.client, config.scrape, self.logger)
        self.cycle = CollectionCycle(
            config.sources,
            self.registry,
            self.scraper,
            config.scrape.max_concurrency,
            self.logger
        )
        self.gateway = PushgatewayClient(self.client, config.gateway, self.logger)
        self.backoff = PushBackoff(config.schedule.push_backoff, self.logger)

    async def run(self) -> TickResult:
        """
        Execute one collection cycle followed by one relay push.

        Returns:
            TickResult: Cycle report and push outcome
        """
        report = await self.cycle.run()

        if not self.backoff.ready():
            self.logger.info("Gateway push skipped while backing off")
            return TickResult(report=report, push_skipped=True)

        snapshot = self.registry.snapshot(
            self.config.gateway.job,
            self.config.gateway.grouping_labels
        )
        pushed = await self.gateway.send(snapshot)

        if pushed:
            self.backoff.record_success()
        else:
            self.backoff.record_failure()

        return TickResult(report=report, pushed=pushed)

    async def aclose(self) -> None:
        """Close the HTTP client if this workflow created it."""
        if self._owns_client:
            await self.client.aclose()
