"""
Bot-detection evasion and blocking detection.

The EvasionLayer prepares each page to look like a regular visitor
(rotated user agent, browser-like headers, realistic viewport, stealth
init script), simulates light human activity, and detects and tries to
recover from block pages such as CAPTCHA walls or rate-limit notices.
"""
import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from autocrawl.browser_config import get_random_user_agent, get_random_viewport
from autocrawl.constants import (
    BLOCKED_COOLDOWN_MS,
    BLOCKED_RELOAD_TIMEOUT_MS,
    POST_RELOAD_COOLDOWN_MS,
)

logger = logging.getLogger(__name__)


# Case-folded phrases that mark a block page
BLOCK_INDICATORS = [
    'captcha',
    'cloudflare',
    'access denied',
    'blocked',
    'robot',
    'verify you are human',
    'verifica que eres humano',
    'too many requests',
    'demasiadas solicitudes',
]

CAPTCHA_FRAME_SELECTOR = (
    'iframe[src*="recaptcha"], iframe[src*="captcha"], '
    'iframe[src*="hcaptcha"], iframe[src*="challenges.cloudflare"]'
)

COMMON_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8',
    'Accept-Language': 'es-MX,es;q=0.9,en-US;q=0.8,en;q=0.7',
    'DNT': '1',
    'Upgrade-Insecure-Requests': '1',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'none',
    'Sec-Fetch-User': '?1',
    'Cache-Control': 'max-age=0',
}

MINIMAL_HEADERS = {
    'Accept-Language': 'es-MX,es;q=0.9',
}

BODY_TEXT_SCRIPT = "() => document.body ? document.body.innerText : ''"

SCROLL_BY_SCRIPT = "(amount) => window.scrollBy({top: amount, left: 0, behavior: 'smooth'})"

STEALTH_SCRIPT_TEMPLATE = """
    // Mask webdriver property
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined
    });

    // Report the rotated user agent from navigator as well as headers
    Object.defineProperty(navigator, 'userAgent', {
        get: () => %(user_agent)s
    });

    // Add chrome runtime object
    window.chrome = {
        runtime: {}
    };

    // Mask permissions query
    try {
        const originalQuery = window.navigator.permissions.query;
        window.navigator.permissions.query = (parameters) => (
            parameters.name === 'notifications' ?
                Promise.resolve({ state: Notification.permission }) :
                originalQuery(parameters)
        );
    } catch (e) {}

    // Add plugins
    Object.defineProperty(navigator, 'plugins', {
        get: () => [1, 2, 3, 4, 5]
    });

    // Mask languages
    Object.defineProperty(navigator, 'languages', {
        get: () => ['es-MX', 'es', 'en-US', 'en']
    });

    // Mask WebGL vendor
    try {
        const getParameter = WebGLRenderingContext.prototype.getParameter;
        WebGLRenderingContext.prototype.getParameter = function(parameter) {
            // UNMASKED_VENDOR_WEBGL
            if (parameter === 37445) {
                return 'Intel Inc.';
            }
            // UNMASKED_RENDERER_WEBGL
            if (parameter === 37446) {
                return 'Intel Iris OpenGL Engine';
            }
            return getParameter.call(this, parameter);
        };
    } catch (e) {}
"""


@dataclass
class BlockingOutcome:
    """
    Result of blocking detection and the recovery cycle.
    """
    detected: bool = False
    still_blocked: bool = False
    indicators: List[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()

    @property
    def recovered(self) -> bool:
        return self.detected and not self.still_blocked

    def to_dict(self) -> dict:
        """Convert to dictionary for logging or JSON serialization."""
        return {
            "detected": self.detected,
            "still_blocked": self.still_blocked,
            "recovered": self.recovered,
            "indicators": self.indicators,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class EvasionLayer:
    """
    Anti-bot measures applied around each page attempt.

    Args:
        delay_scale: Multiplier applied to every random delay. 0 disables waiting.
        blocked_cooldown_ms: Wait before reloading a blocked page
        post_reload_cooldown_ms: Wait after reloading a blocked page
        reload_timeout_ms: Timeout for the recovery reload
    """

    def __init__(
        self,
        delay_scale: float = 1.0,
        blocked_cooldown_ms: Tuple[int, int] = BLOCKED_COOLDOWN_MS,
        post_reload_cooldown_ms: Tuple[int, int] = POST_RELOAD_COOLDOWN_MS,
        reload_timeout_ms: int = BLOCKED_RELOAD_TIMEOUT_MS,
    ):
        self.delay_scale = delay_scale
        self.blocked_cooldown_ms = blocked_cooldown_ms
        self.post_reload_cooldown_ms = post_reload_cooldown_ms
        self.reload_timeout_ms = reload_timeout_ms

    # --- Timing ---

    async def random_delay(self, min_ms: int = 1000, max_ms: int = 3000) -> float:
        """Sleep for a random duration in [min_ms, max_ms].

        Returns:
            Seconds slept
        """
        delay = random.uniform(min_ms, max_ms) / 1000.0 * self.delay_scale
        await asyncio.sleep(delay)
        return delay

    # --- Page setup ---

    @staticmethod
    def build_headers(user_agent: str, referer: Optional[str] = None) -> Dict[str, str]:
        headers = dict(COMMON_HEADERS)
        headers['User-Agent'] = user_agent
        if referer:
            headers['Referer'] = referer
            headers['Sec-Fetch-Site'] = 'same-origin'
        return headers

    async def configure(self, page, referer: Optional[str] = None, user_agent: Optional[str] = None) -> str:
        """Apply user agent, headers, viewport and stealth script to a page.

        Args:
            page: Playwright page
            referer: URL of the previous request, sent as Referer
            user_agent: User agent the page's context already uses; a random one
                is picked when None

        Returns:
            The user agent applied
        """
        user_agent = user_agent or get_random_user_agent()
        await page.set_viewport_size(get_random_viewport())
        await page.set_extra_http_headers(self.build_headers(user_agent, referer))
        await page.add_init_script(STEALTH_SCRIPT_TEMPLATE % {"user_agent": json.dumps(user_agent)})
        logger.debug(f"Evasion configured (referer={referer})")
        return user_agent

    async def apply_minimal_defaults(self, page) -> None:
        """Fallback setup when configure() fails; errors are ignored."""
        try:
            await page.set_extra_http_headers(dict(MINIMAL_HEADERS))
        except Exception as e:
            logger.debug(f"Minimal header setup failed: {e}")

    # --- Human behavior ---

    async def simulate_human_behavior(self, page) -> None:
        """Move the mouse, scroll a little and occasionally click the body."""
        try:
            viewport = page.viewport_size or {"width": 1366, "height": 768}
            x = random.uniform(100, max(101, viewport["width"] - 100))
            y = random.uniform(100, max(101, viewport["height"] - 100))
            await page.mouse.move(x, y, steps=random.randint(5, 15))
            await self.random_delay(200, 500)

            await page.evaluate(SCROLL_BY_SCRIPT, random.uniform(100, 400))
            await self.random_delay(300, 600)

            if random.random() > 0.7:
                body = await page.query_selector('body')
                box = await body.bounding_box() if body else None
                if box:
                    await page.mouse.click(
                        box["x"] + random.random() * box["width"],
                        box["y"] + random.random() * min(box["height"], viewport["height"]),
                        delay=random.uniform(50, 150),
                    )
        except Exception as e:
            logger.debug(f"Human behavior simulation skipped: {e}")

    # --- Blocking ---

    async def find_block_indicators(self, page) -> List[str]:
        """Return the block indicators present on the page.

        Detection errors are treated as "not blocked".
        """
        try:
            text = (await page.evaluate(BODY_TEXT_SCRIPT) or '').lower()
            title = (await page.title() or '').lower()
            url = (page.url or '').lower()

            found = [
                indicator for indicator in BLOCK_INDICATORS
                if indicator in text or indicator in title or indicator in url
            ]

            frames = await page.query_selector_all(CAPTCHA_FRAME_SELECTOR)
            if frames:
                found.append('captcha_iframe')
            return found
        except Exception as e:
            logger.debug(f"Blocking detection failed, assuming not blocked: {e}")
            return []

    async def detect_blocking(self, page) -> bool:
        return bool(await self.find_block_indicators(page))

    async def recover_from_blocking(self, page, url: str) -> bool:
        """Run one recovery cycle: cooldown, reload, cooldown, re-check.

        Returns:
            True if the page is still blocked afterwards
        """
        logger.warning(f"  ⚠️  Possible block detected on {url}, cooling down and reloading")
        await self.random_delay(*self.blocked_cooldown_ms)
        try:
            await page.reload(wait_until="networkidle", timeout=self.reload_timeout_ms)
            await self.random_delay(*self.post_reload_cooldown_ms)
        except Exception as e:
            logger.warning(f"  ❌ Reload after block failed for {url}: {e}")
        return await self.detect_blocking(page)

    async def handle_blocking(self, page, url: str) -> BlockingOutcome:
        """Detect a block page and make at most one recovery attempt."""
        indicators = await self.find_block_indicators(page)
        if not indicators:
            return BlockingOutcome(detected=False)

        still_blocked = await self.recover_from_blocking(page, url)
        outcome = BlockingOutcome(detected=True, still_blocked=still_blocked, indicators=indicators)
        if outcome.recovered:
            logger.info(f"  ✅ Block cleared after reload: {url}")
        return outcome
