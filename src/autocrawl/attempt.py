"""
Page attempt controller.

Runs the full life cycle of one URL: skip checks, page acquisition with
backoff, evasion setup, navigation with fallback, blocking recovery,
content settling, relevance scoring, the visited commit, record
extraction and link expansion. Every failure before the commit is
classified and recorded in the invalid-URL ledger; the page handle is
released on every exit path.
"""
import logging
from typing import List, Optional

from autocrawl.browser import (
    harvest_content,
    harvest_links,
    scroll_page,
    wait_for_dynamic_content,
)
from autocrawl.config import AttemptTimeouts, CrawlSessionConfig
from autocrawl.constants import (
    EXPANSION_SCORE_THRESHOLD,
    EXTRACTION_SCORE_THRESHOLD,
    FALLBACK_WAIT_UNTIL,
    MAX_PAGE_ACQUIRE_ATTEMPTS,
    MAX_RETRY_COUNT,
    PRIMARY_WAIT_UNTIL,
)
from autocrawl.database import AbstractDatabase
from autocrawl.errors import (
    CrawlerError,
    ErrorKind,
    NavigationTimeoutError,
    PageAcquisitionError,
    PageBlockedError,
    PageNotFoundError,
    classify_error,
    describe_error,
)
from autocrawl.evasion import EvasionLayer
from autocrawl.extractor import DataExtractor
from autocrawl.ledger import InvalidUrlLedger
from autocrawl.models import AttemptResult, AttemptStatus, CrawlTask, RelevanceAssessment
from autocrawl.relevance import RelevanceDetector

logger = logging.getLogger(__name__)

# Acquisition faults worth retrying with backoff
RETRYABLE_ACQUIRE_KINDS = (ErrorKind.PROTOCOL_ERROR, ErrorKind.TIMEOUT)


def error_kind_for(error: BaseException) -> ErrorKind:
    """Classify an exception raised during an attempt."""
    if isinstance(error, PageAcquisitionError):
        return error.kind
    if isinstance(error, NavigationTimeoutError):
        return ErrorKind.NAVIGATION_TIMEOUT
    if isinstance(error, PageBlockedError):
        return ErrorKind.BLOCKED
    if isinstance(error, PageNotFoundError):
        return ErrorKind.NOT_FOUND
    return classify_error(describe_error(error))


class PageAttemptController:
    """Fetches, scores and mines a single URL.

    Args:
        db: Crawl store for visited state and extracted records
        ledger: Invalid-URL ledger
        driver: Page driver exposing new_page(), close_page(page) and
            user_agent_for(page)
        evasion: Anti-bot layer
        relevance: Relevance gate
        extractor: Record extractor
        timeouts: Timeouts and delay windows
    """

    def __init__(
        self,
        db: AbstractDatabase,
        ledger: InvalidUrlLedger,
        driver,
        evasion: Optional[EvasionLayer] = None,
        relevance: Optional[RelevanceDetector] = None,
        extractor: Optional[DataExtractor] = None,
        timeouts: Optional[AttemptTimeouts] = None,
    ):
        self._db = db
        self._ledger = ledger
        self._driver = driver
        self._evasion = evasion or EvasionLayer()
        self._relevance = relevance or RelevanceDetector()
        self._extractor = extractor or DataExtractor()
        self._timeouts = timeouts or AttemptTimeouts()

    async def attempt(self, task: CrawlTask, session_config: CrawlSessionConfig) -> AttemptResult:
        """Process one task.

        Args:
            task: URL and depth to process
            session_config: Depth limit and the referer of the previous attempt;
                last_url is updated for every attempt that is not skipped

        Returns:
            AttemptResult with status, new tasks for the frontier and any error
        """
        url = task.url

        if not task.reprocess and self._db.is_url_visited(url):
            logger.debug(f"⏭️  Already visited: {url}")
            return AttemptResult.skipped(url, "already visited")

        invalid = None if task.reprocess else self._ledger.is_invalid(url)
        if invalid is not None and invalid.retry_count >= MAX_RETRY_COUNT:
            logger.debug(f"⏭️  Retries exhausted: {url}")
            return AttemptResult.skipped(url, "retries exhausted")
        if invalid is not None:
            logger.info(
                f"🔄 Retrying {url} (previous {invalid.error_type}, retry_count={invalid.retry_count})"
            )

        logger.info(f"🔍 [depth {task.depth}] {url}")
        referer = session_config.last_url
        page = None
        try:
            try:
                page = await self._acquire_page(url)
                await self._configure_page(page, referer)
                await self._navigate(page, url)

                outcome = await self._evasion.handle_blocking(page, url)
                if outcome.still_blocked:
                    raise PageBlockedError(
                        f"page still blocked after reload ({', '.join(outcome.indicators)})"
                    )

                await self._evasion.simulate_human_behavior(page)
                await wait_for_dynamic_content(
                    page,
                    settle_pause=self._timeouts.settle_pause_seconds,
                    max_wait=self._timeouts.max_settle_seconds,
                    stability_interval=self._timeouts.stability_interval_seconds,
                )

                content = await harvest_content(page)
                relevance = self._relevance.score(content["text"], url, content["title"])
                url_id = self._db.mark_url_visited(url, relevance.score, relevance.content_type.value)
            except Exception as e:
                return self._fail(url, e, record=not task.reprocess)

            logger.info(
                f"  📊 Relevance {relevance.score} ({relevance.content_type.value}): {url}"
            )
            result = AttemptResult(status=AttemptStatus.SUCCESS, url=url, relevance=relevance)

            if relevance.score > EXTRACTION_SCORE_THRESHOLD:
                self._extract(content["html"], url, url_id, relevance, result)

            if task.depth < session_config.max_depth and relevance.score > EXPANSION_SCORE_THRESHOLD:
                result.new_tasks = await self._expand(page, content["html"], task)

            return result
        finally:
            session_config.last_url = url
            if page is not None:
                await self._driver.close_page(page)

    # --- Steps ---

    async def _acquire_page(self, url: str):
        """Get a page from the driver, backing off after protocol-like faults.

        Raises:
            PageAcquisitionError: With kind protocol_error once retries are
                exhausted, or the classified kind of a non-retryable fault
        """
        message = ""
        for attempt_number in range(1, MAX_PAGE_ACQUIRE_ATTEMPTS + 1):
            try:
                return await self._driver.new_page()
            except Exception as e:
                kind = error_kind_for(e)
                message = str(e) if isinstance(e, PageAcquisitionError) else describe_error(e)

            if kind not in RETRYABLE_ACQUIRE_KINDS:
                raise PageAcquisitionError(message, kind=kind)

            if attempt_number < MAX_PAGE_ACQUIRE_ATTEMPTS:
                backoff = self._timeouts.acquire_backoff_ms[
                    min(attempt_number - 1, len(self._timeouts.acquire_backoff_ms) - 1)
                ]
                logger.warning(
                    f"  ⚠️  Page acquisition failed ({attempt_number}/{MAX_PAGE_ACQUIRE_ATTEMPTS}) "
                    f"for {url}: {message}"
                )
                await self._evasion.random_delay(*backoff)

        raise PageAcquisitionError(
            f"protocol error: no page after {MAX_PAGE_ACQUIRE_ATTEMPTS} attempts ({message})",
            kind=ErrorKind.PROTOCOL_ERROR,
        )

    async def _configure_page(self, page, referer: Optional[str]) -> None:
        try:
            await self._evasion.configure(page, referer, user_agent=self._driver.user_agent_for(page))
        except Exception as e:
            logger.debug(f"Evasion setup failed, using minimal defaults: {e}")
            await self._evasion.apply_minimal_defaults(page)

    async def _navigate(self, page, url: str):
        """Navigate with network-idle, then fall back to the load event.

        Raises:
            NavigationTimeoutError: If both navigations fail
            PageNotFoundError: If the server answers 404
        """
        try:
            response = await page.goto(
                url,
                wait_until=PRIMARY_WAIT_UNTIL,
                timeout=self._timeouts.primary_navigation_ms,
            )
        except Exception as e:
            logger.warning(f"  ⚠️  {PRIMARY_WAIT_UNTIL} navigation failed, retrying with '{FALLBACK_WAIT_UNTIL}': {e}")
            try:
                response = await page.goto(
                    url,
                    wait_until=FALLBACK_WAIT_UNTIL,
                    timeout=self._timeouts.fallback_navigation_ms,
                )
            except Exception as fallback_error:
                raise NavigationTimeoutError(url, describe_error(fallback_error)) from fallback_error

        if response is not None and getattr(response, "status", None) == 404:
            raise PageNotFoundError(f"404 not found: {url}")
        return response

    def _extract(
        self,
        html: str,
        url: str,
        url_id: int,
        relevance: RelevanceAssessment,
        result: AttemptResult,
    ) -> None:
        """Extract and persist records; failures are logged, never raised.

        Vehicles and parts are extracted independently, and a record that
        cannot be saved does not stop the others.
        """
        if relevance.wants_vehicles:
            result.vehicles_saved += self._save_records(
                "vehicle", self._extractor.extract_vehicles, self._db.save_vehicle, html, url, url_id
            )
        if relevance.wants_parts:
            result.parts_saved += self._save_records(
                "part", self._extractor.extract_parts, self._db.save_part, html, url, url_id
            )

        if result.vehicles_saved or result.parts_saved:
            logger.info(
                f"  ✅ Saved {result.vehicles_saved} vehicle(s), {result.parts_saved} part(s) from {url}"
            )

    def _save_records(self, label: str, extract, save, html: str, url: str, url_id: int) -> int:
        try:
            records = extract(html, url)
        except Exception as e:
            logger.error(f"  ❌ {label.capitalize()} extraction failed for {url}: {describe_error(e)}")
            return 0

        saved = 0
        for record in records:
            record.url_id = url_id
            try:
                save(record)
                saved += 1
            except Exception as e:
                logger.error(f"  ❌ Could not save {label} from {url}: {describe_error(e)}")
        return saved

    async def _expand(self, page, html: str, task: CrawlTask) -> List[CrawlTask]:
        """Harvest, filter and wrap outbound links as tasks one level deeper."""
        try:
            await scroll_page(page)
            try:
                links = await harvest_links(page)
            except Exception as e:
                logger.debug(f"Live link harvest failed, parsing HTML instead: {e}")
                links = self._extractor.extract_links(html, task.url)

            candidates = self._relevance.filter_promising_links(links, task.url)
            promising = [link for link in candidates if self._relevance.is_promising_url(link)]
        except Exception as e:
            logger.error(f"  ❌ Link expansion failed for {task.url}: {describe_error(e)}")
            return []

        logger.info(f"  🔗 {len(promising)} promising link(s) from {task.url}")
        return [CrawlTask(url=link, depth=task.depth + 1) for link in promising]

    def _fail(self, url: str, error: Exception, record: bool = True) -> AttemptResult:
        """Log a failure and, unless the URL was already visited, record it in the ledger."""
        kind = error_kind_for(error)
        message = str(error) if isinstance(error, CrawlerError) else describe_error(error)
        logger.error(f"  ❌ {kind.value}: {url} ({message})")
        if not record:
            return AttemptResult.failed(url, kind, message)
        try:
            self._ledger.mark_invalid_once(url, kind, message[:500])
        except Exception as e:
            logger.error(f"  ❌ Could not record failure for {url}: {describe_error(e)}")
        return AttemptResult.failed(url, kind, message)
