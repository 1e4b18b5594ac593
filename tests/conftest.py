"""Shared fixtures: an in-memory store and a scripted fake page driver."""

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from autocrawl.browser import DOM_HEIGHT_SCRIPT, LINKS_SCRIPT
from autocrawl.browser_config import USER_AGENTS
from autocrawl.config import AttemptTimeouts, CrawlSessionConfig
from autocrawl.database import LocalSqliteDatabase
from autocrawl.evasion import BODY_TEXT_SCRIPT, EvasionLayer
from autocrawl.ledger import InvalidUrlLedger


VEHICLE_TEXT = (
    "Venta de autos: Toyota Corolla 2020 seminuevo. "
    "Honda Civic 2019 usado."
)

VEHICLE_HTML = (
    "<html><head><title>Autos seminuevos</title></head><body>"
    "<h1>Toyota Corolla 2020</h1>"
    "<p>Seminuevo en excelente estado</p>"
    "<h2>Honda Civic 2019 usado</h2>"
    "</body></html>"
)


@dataclass
class FakeResponse:
    """What the fake browser serves for one URL."""

    text: str = ""
    html: str = "<html><body></body></html>"
    title: str = ""
    links: List[str] = field(default_factory=list)
    goto_errors: List[Exception] = field(default_factory=list)
    status: int = 200
    text_after_reload: Optional[str] = None
    captcha_frames: int = 0
    content_error: Optional[Exception] = None
    links_error: Optional[Exception] = None


class FakePage:
    """Minimal stand-in for a Playwright page, driven by a dict of FakeResponses."""

    def __init__(self, site: Dict[str, FakeResponse]):
        self.site = site
        self.url = "about:blank"
        self.response = FakeResponse()
        self.goto_calls = []
        self.reload_calls = 0
        self.closed = False
        self.headers = {}
        self.init_scripts = []
        self.viewport_size = {"width": 1366, "height": 768}
        self.mouse = MagicMock()
        self.mouse.move = AsyncMock()
        self.mouse.click = AsyncMock()
        self.context = MagicMock()
        self.context.close = AsyncMock()

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        response = self.site.setdefault(url, FakeResponse())
        if response.goto_errors:
            raise response.goto_errors.pop(0)
        self.url = url
        self.response = response
        return SimpleNamespace(status=response.status)

    async def reload(self, wait_until=None, timeout=None):
        self.reload_calls += 1
        if self.response.text_after_reload is not None:
            self.response.text = self.response.text_after_reload
            self.response.captcha_frames = 0

    async def evaluate(self, script, arg=None):
        if script == BODY_TEXT_SCRIPT:
            return self.response.text
        if script == LINKS_SCRIPT:
            if self.response.links_error is not None:
                raise self.response.links_error
            return [{"href": href, "text": ""} for href in self.response.links]
        if script == DOM_HEIGHT_SCRIPT:
            return 1000
        return None

    async def content(self):
        if self.response.content_error is not None:
            raise self.response.content_error
        return self.response.html

    async def title(self):
        return self.response.title

    async def wait_for_selector(self, selector, timeout=None):
        return MagicMock()

    async def wait_for_function(self, script, timeout=None):
        return True

    async def query_selector(self, selector):
        return None

    async def query_selector_all(self, selector):
        return [MagicMock() for _ in range(self.response.captcha_frames)]

    async def set_extra_http_headers(self, headers):
        self.headers = dict(headers)

    async def set_viewport_size(self, viewport_size):
        self.viewport_size = viewport_size

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def close(self):
        self.closed = True


class FakeDriver:
    """Page driver handing out FakePages; new_page raises queued errors first."""

    def __init__(self, site: Optional[Dict[str, FakeResponse]] = None, errors: Optional[List[Exception]] = None):
        self.site = site if site is not None else {}
        self.errors = list(errors or [])
        self.new_page_calls = 0
        self.created: List[FakePage] = []
        self.closed: List[FakePage] = []
        self.user_agent = USER_AGENTS[-1]

    async def new_page(self):
        self.new_page_calls += 1
        if self.errors:
            raise self.errors.pop(0)
        page = FakePage(self.site)
        self.created.append(page)
        return page

    async def close_page(self, page):
        self.closed.append(page)
        await page.close()

    def user_agent_for(self, page) -> Optional[str]:
        return self.user_agent

    @property
    def open_pages(self) -> List[FakePage]:
        return [page for page in self.created if page not in self.closed]


@pytest.fixture
def db():
    """In-memory crawl store."""
    database = LocalSqliteDatabase(db_url="sqlite:///:memory:")
    yield database
    database.close()


@pytest.fixture
def ledger(db):
    return InvalidUrlLedger(db)


@pytest.fixture
def evasion():
    """Evasion layer that never actually sleeps."""
    return EvasionLayer(delay_scale=0)


@pytest.fixture
def timeouts():
    return AttemptTimeouts.instant()


@pytest.fixture
def session_config():
    return CrawlSessionConfig(max_depth=3, max_pages=100, base_delay_ms=0)


@pytest.fixture
def site():
    """URL to FakeResponse map served by the fake driver."""
    return {}


@pytest.fixture
def driver(site):
    return FakeDriver(site)
