"""
Playwright page driver for the crawl orchestrator.

BrowserSession owns the browser lifecycle and hands out isolated pages
(one browser context per page). It is designed to be used as an async
context manager:

    async with BrowserSession(config) as browser:
        page = await browser.new_page()
        ...
        await browser.close_page(page)

The module also holds the page-level helpers used during an attempt:
settling client-rendered content, scrolling to trigger lazy loading and
harvesting anchors.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from playwright.async_api import async_playwright

from autocrawl.browser_config import BrowserConfig, get_random_viewport
from autocrawl.constants import (
    BODY_WAIT_TIMEOUT_MS,
    DOM_STABILITY_CHECKS,
    DOM_STABILITY_INTERVAL_SECONDS,
    MAX_SETTLE_SECONDS,
    PAGE_CREATE_TIMEOUT_SECONDS,
    SETTLE_PAUSE_SECONDS,
    SPA_ROOT_SELECTORS,
    SPA_SELECTOR_TIMEOUT_MS,
)
from autocrawl.evasion import BODY_TEXT_SCRIPT
from autocrawl.errors import (
    DriverStartupError,
    ErrorKind,
    PageAcquisitionError,
    classify_error,
    describe_error,
)

logger = logging.getLogger(__name__)


READY_STATE_SCRIPT = "() => document.readyState === 'complete'"

DOM_HEIGHT_SCRIPT = "() => document.body ? document.body.scrollHeight : 0"

SCROLL_PAGE_SCRIPT = """
    async () => {
        // Scroll down in steps to trigger lazy loading
        const scrollHeight = document.body ? document.body.scrollHeight : 0;
        const viewportHeight = window.innerHeight || 800;

        for (let y = 0; y < scrollHeight; y += viewportHeight) {
            window.scrollTo(0, y);
            await new Promise(r => setTimeout(r, 100));
        }

        window.scrollTo(0, 0);
    }
"""

LINKS_SCRIPT = """
    () => Array.from(document.querySelectorAll('a[href]')).map(a => ({
        href: a.href,
        text: (a.innerText || '').trim()
    }))
"""


class BrowserSession:
    """
    Playwright-backed page driver.

    Each page lives in its own browser context so cookies and storage never
    leak between attempts. Pages still open when the session exits are
    closed together with their contexts.
    """

    def __init__(self, config: Optional[BrowserConfig] = None, page_create_timeout: float = PAGE_CREATE_TIMEOUT_SECONDS):
        """
        Initialize the browser session.

        Args:
            config: BrowserConfig instance with driver settings
            page_create_timeout: Seconds allowed for creating a context and page
        """
        self._config = config or BrowserConfig()
        self._page_create_timeout = page_create_timeout
        self._playwright = None
        self._browser = None
        self._open_pages: Dict[int, object] = {}
        self._user_agents: Dict[int, str] = {}

        logger.debug(f"BrowserSession initialized with config: {self._config}")

    def user_agent_for(self, page) -> Optional[str]:
        """User agent the page's context was created with."""
        return self._user_agents.get(id(page))

    @property
    def open_page_count(self) -> int:
        return len(self._open_pages)

    async def __aenter__(self) -> "BrowserSession":
        """Enter async context manager, launching browser."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager, closing pages and browser."""
        await self.close()

    async def start(self) -> None:
        """Launch the browser.

        Raises:
            DriverStartupError: If Playwright or the browser fails to start
        """
        logger.info(f"Launching {self._config.browser_type} browser (headless={self._config.headless})")
        try:
            self._playwright = await async_playwright().start()
            browser_launcher = getattr(self._playwright, self._config.browser_type)

            launch_options = {"headless": self._config.headless}
            if self._config.launch_args:
                launch_options["args"] = self._config.launch_args

            self._browser = await browser_launcher.launch(**launch_options)
        except Exception as e:
            await self.close()
            raise DriverStartupError(f"Could not launch browser: {describe_error(e)}") from e

        logger.info("Browser launched successfully")

    async def close(self) -> None:
        """Close every open page, then the browser and Playwright."""
        for page in list(self._open_pages.values()):
            await self.close_page(page)

        if self._browser:
            logger.info("Closing browser")
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug(f"Browser close failed: {e}")
            self._browser = None

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug(f"Playwright stop failed: {e}")
            self._playwright = None

    async def new_page(self):
        """Create an isolated context and page.

        Returns:
            A Playwright Page

        Raises:
            PageAcquisitionError: If the browser is gone or page creation fails or times out
        """
        if not self._browser:
            raise PageAcquisitionError("Browser is not running (target closed)", kind=ErrorKind.PROTOCOL_ERROR)

        try:
            page = await asyncio.wait_for(self._create_page(), timeout=self._page_create_timeout)
        except asyncio.TimeoutError as e:
            raise PageAcquisitionError(
                f"Page creation timed out after {self._page_create_timeout}s",
                kind=ErrorKind.TIMEOUT,
            ) from e
        except Exception as e:
            message = describe_error(e)
            raise PageAcquisitionError(message, kind=classify_error(message)) from e

        self._open_pages[id(page)] = page
        return page

    async def _create_page(self):
        user_agent = self._config.get_user_agent()
        context = await self._browser.new_context(
            viewport=get_random_viewport(),
            user_agent=user_agent,
            locale=self._config.locale,
            timezone_id=self._config.timezone_id,
            ignore_https_errors=self._config.ignore_https_errors,
            java_script_enabled=True,
        )
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        page.set_default_timeout(self._config.default_timeout)
        page.set_default_navigation_timeout(self._config.navigation_timeout)
        self._user_agents[id(page)] = user_agent
        return page

    async def close_page(self, page) -> None:
        """Close a page and its context. Never raises."""
        self._open_pages.pop(id(page), None)
        self._user_agents.pop(id(page), None)
        try:
            await page.close()
        except Exception as e:
            logger.debug(f"Page close failed: {e}")
        try:
            await page.context.close()
        except Exception as e:
            logger.debug(f"Context close failed: {e}")


async def wait_for_dynamic_content(
    page,
    settle_pause: float = SETTLE_PAUSE_SECONDS,
    max_wait: float = MAX_SETTLE_SECONDS,
    stability_interval: float = DOM_STABILITY_INTERVAL_SECONDS,
) -> bool:
    """
    Wait for client-rendered content to settle.

    Best effort: each strategy's failure is ignored and the whole wait is
    capped at max_wait seconds.

    Returns:
        True if all strategies ran within the cap
    """
    try:
        await asyncio.wait_for(_settle(page, settle_pause, stability_interval), timeout=max_wait)
        return True
    except asyncio.TimeoutError:
        logger.debug(f"Content settle capped at {max_wait}s")
        return False


async def _settle(page, settle_pause: float, stability_interval: float) -> None:
    # Strategy 1: body present
    try:
        await page.wait_for_selector('body', timeout=BODY_WAIT_TIMEOUT_MS)
    except Exception:
        pass

    # Strategy 2: first SPA root that shows up
    for selector in SPA_ROOT_SELECTORS:
        try:
            await page.wait_for_selector(selector, timeout=SPA_SELECTOR_TIMEOUT_MS)
            logger.debug(f"Found SPA content: {selector}")
            break
        except Exception:
            continue

    # Strategy 3: document fully loaded
    try:
        await page.wait_for_function(READY_STATE_SCRIPT, timeout=BODY_WAIT_TIMEOUT_MS)
    except Exception:
        pass

    await asyncio.sleep(settle_pause)

    # Strategy 4: page height unchanged across consecutive checks
    try:
        stable_checks = 0
        last_height = await page.evaluate(DOM_HEIGHT_SCRIPT)
        while stable_checks < DOM_STABILITY_CHECKS:
            await asyncio.sleep(stability_interval)
            height = await page.evaluate(DOM_HEIGHT_SCRIPT)
            stable_checks = stable_checks + 1 if height == last_height else 0
            last_height = height
    except Exception:
        pass


async def scroll_page(page) -> None:
    """Scroll through the page to trigger lazy loading. Never raises."""
    try:
        await page.evaluate(SCROLL_PAGE_SCRIPT)
    except Exception as e:
        logger.debug(f"Scroll failed: {e}")


async def harvest_links(page) -> List[Dict[str, str]]:
    """Collect anchors as {'href', 'text'} dicts with absolute hrefs."""
    links = await page.evaluate(LINKS_SCRIPT)
    return [link for link in (links or []) if isinstance(link, dict)]


async def harvest_content(page) -> Dict[str, str]:
    """Read the rendered HTML, visible text, title and final URL of a page."""
    html = await page.content()
    text = await page.evaluate(BODY_TEXT_SCRIPT)
    title = await page.title()
    return {
        "html": html or "",
        "text": text or "",
        "title": title or "",
        "url": page.url,
    }
