"""Crawl session: the main loop over the frontier."""

import logging
import time
from typing import Iterable, List, Optional
from urllib.parse import quote_plus

from autocrawl.attempt import PageAttemptController
from autocrawl.config import AttemptTimeouts, CrawlSessionConfig
from autocrawl.constants import PENDING_URLS_LIMIT, SEARCH_URL_TEMPLATES
from autocrawl.database import AbstractDatabase
from autocrawl.evasion import EvasionLayer
from autocrawl.extractor import DataExtractor
from autocrawl.frontier import Frontier
from autocrawl.ledger import InvalidUrlLedger
from autocrawl.models import AttemptStatus, CrawlSummary
from autocrawl.relevance import RelevanceDetector

logger = logging.getLogger(__name__)


class CrawlSession:
    """
    Drives one crawl run.

    Pops tasks from the frontier, hands them to the page attempt
    controller, feeds discovered links back into the frontier and paces
    requests between attempts. The run ends when the frontier is empty,
    the page budget is spent, or request_stop() is called; the attempt in
    flight is always allowed to finish.

    Usage:
        async with BrowserSession(browser_config) as browser:
            session = CrawlSession(db, browser, CrawlSessionConfig(max_pages=50))
            summary = await session.run(seed_urls, resume=True)
    """

    def __init__(
        self,
        db: AbstractDatabase,
        driver,
        config: Optional[CrawlSessionConfig] = None,
        evasion: Optional[EvasionLayer] = None,
        relevance: Optional[RelevanceDetector] = None,
        extractor: Optional[DataExtractor] = None,
        timeouts: Optional[AttemptTimeouts] = None,
    ):
        self.config = config or CrawlSessionConfig()
        self.timeouts = timeouts or AttemptTimeouts()
        self.evasion = evasion or EvasionLayer()
        self._db = db

        self.ledger = InvalidUrlLedger(db)
        self.frontier = Frontier(
            db,
            self.ledger,
            max_depth=self.config.max_depth,
            max_pages=self.config.max_pages,
        )
        self.controller = PageAttemptController(
            db,
            self.ledger,
            driver,
            evasion=self.evasion,
            relevance=relevance,
            extractor=extractor,
            timeouts=self.timeouts,
        )
        self._stop_requested = False

    # --- Control ---

    def request_stop(self) -> None:
        """Finish the current attempt, then end the run."""
        if not self._stop_requested:
            logger.warning("⚠️  Stop requested, finishing current page")
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def _has_work(self) -> bool:
        return (
            not self._stop_requested
            and self.frontier.has_capacity()
            and len(self.frontier) > 0
        )

    # --- Entry points ---

    async def run(self, seed_urls: Iterable[str] = (), resume: bool = False) -> CrawlSummary:
        """Seed the frontier and crawl until done.

        Args:
            seed_urls: Start URLs, enqueued at depth 0
            resume: First re-enqueue visited URLs that yielded no records

        Returns:
            CrawlSummary for the run
        """
        if resume:
            pending = self._db.get_pending_urls(PENDING_URLS_LIMIT)
            added = self.frontier.seed_pending(pending)
            logger.info(f"♻️  Resuming {added} pending URL(s) from previous runs")

        seeded = self.frontier.seed(seed_urls)
        logger.info(f"📋 Starting crawl with {len(self.frontier)} queued URL(s) ({seeded} seed(s))")

        summary = await self._crawl_loop()
        logger.info(
            f"✅ Crawl finished: {summary.succeeded} ok, {summary.skipped} skipped, "
            f"{summary.failed} failed, {summary.pages_visited}/{self.config.max_pages} pages"
        )
        return summary

    async def search_and_crawl(self, terms: Iterable[str], resume: bool = False) -> CrawlSummary:
        """Crawl the search-result pages of the configured sites for each term."""
        return await self.run(self.build_search_urls(terms), resume=resume)

    @staticmethod
    def build_search_urls(terms: Iterable[str]) -> List[str]:
        urls = []
        for term in terms:
            term = term.strip()
            if not term:
                continue
            query = quote_plus(term)
            slug = "-".join(quote_plus(word) for word in term.lower().split())
            urls.extend(template.format(slug=slug, query=query) for template in SEARCH_URL_TEMPLATES)
        return urls

    # --- Loop ---

    async def _crawl_loop(self) -> CrawlSummary:
        summary = CrawlSummary()
        started = time.monotonic()

        while self._has_work():
            task = self.frontier.pop()
            if task is None:
                break

            self.frontier.consume_budget()
            logger.debug(f"[{self.frontier.pages_visited}/{self.frontier.max_pages}] {task.url}")
            result = await self.controller.attempt(task, self.config)
            summary.attempted += 1

            if result.status == AttemptStatus.FAILED:
                self.frontier.refund_budget()
                summary.failed += 1
            elif result.status == AttemptStatus.SKIPPED:
                summary.skipped += 1
            else:
                summary.succeeded += 1
                summary.vehicles_saved += result.vehicles_saved
                summary.parts_saved += result.parts_saved
                summary.discovered += self.frontier.extend(result.new_tasks)

            if self._has_work():
                await self._pace(result.status)

        summary.pages_visited = self.frontier.pages_visited
        summary.stopped = self._stop_requested
        summary.elapsed_seconds = time.monotonic() - started
        return summary

    async def _pace(self, status: AttemptStatus) -> None:
        if status == AttemptStatus.FAILED:
            delay = await self.evasion.random_delay(*self.timeouts.failed_delay_ms)
        else:
            base = self.config.base_delay_ms
            delay = await self.evasion.random_delay(base, base * 2)
        logger.debug(f"Paced {delay:.1f}s after {status.value}")
