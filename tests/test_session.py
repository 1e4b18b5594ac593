"""
Tests for the crawl session loop: budget, pacing, resume and stop.
"""
import pytest
from unittest.mock import AsyncMock, patch

from autocrawl.config import AttemptTimeouts, CrawlSessionConfig
from autocrawl.evasion import EvasionLayer
from autocrawl.session import CrawlSession
from conftest import VEHICLE_HTML, VEHICLE_TEXT, FakeResponse

pytest_plugins = ('pytest_asyncio',)

SEED = "https://a.test/autos"


def listing(links=None) -> FakeResponse:
    return FakeResponse(
        text=VEHICLE_TEXT,
        html=VEHICLE_HTML,
        title="Autos seminuevos",
        links=list(links or []),
    )


def broken() -> FakeResponse:
    return FakeResponse(goto_errors=[
        RuntimeError("Timeout 60000ms exceeded."),
        RuntimeError("Timeout 90000ms exceeded."),
    ])


@pytest.fixture
def make_session(db, driver, evasion, timeouts):
    def _make(**config):
        config.setdefault("base_delay_ms", 0)
        return CrawlSession(
            db,
            driver,
            CrawlSessionConfig(**config),
            evasion=evasion,
            timeouts=timeouts,
        )
    return _make


class TestCrawlLoop:
    """Frontier consumption and the page budget."""

    @pytest.mark.asyncio
    async def test_page_budget_caps_successes(self, make_session, site):
        children = [f"{SEED}/{i}" for i in range(1, 6)]
        site[SEED] = listing(children)
        for child in children:
            site[child] = listing()

        session = make_session(max_pages=3)
        summary = await session.run([SEED])

        assert summary.succeeded == 3
        assert summary.attempted == 3
        assert summary.pages_visited == 3
        assert summary.discovered == 5
        assert len(session.frontier) == 3

    @pytest.mark.asyncio
    async def test_failures_do_not_consume_budget(self, make_session, site, db):
        bad, good1, good2 = f"{SEED}/caido", f"{SEED}/1", f"{SEED}/2"
        site[bad] = broken()
        site[good1] = listing()
        site[good2] = listing()

        summary = await make_session(max_pages=2).run([bad, good1, good2])

        assert summary.failed == 1
        assert summary.succeeded == 2
        assert summary.pages_visited == 2
        assert db.is_url_invalid(bad).error_type == "navigation_timeout"

    @pytest.mark.asyncio
    async def test_max_depth_zero_stays_on_seeds(self, make_session, site):
        site[SEED] = listing([f"{SEED}/1"])
        summary = await make_session(max_depth=0).run([SEED])

        assert summary.attempted == 1
        assert summary.discovered == 0

    @pytest.mark.asyncio
    async def test_links_followed_one_level_deeper(self, make_session, site, db):
        site[SEED] = listing([f"{SEED}/1"])
        site[f"{SEED}/1"] = listing([f"{SEED}/2"])
        site[f"{SEED}/2"] = listing()

        summary = await make_session(max_depth=1).run([SEED])

        assert summary.succeeded == 2
        assert db.is_url_visited(f"{SEED}/1")
        assert not db.is_url_visited(f"{SEED}/2")

    @pytest.mark.asyncio
    async def test_exhausted_seed_never_attempted(self, make_session, db, driver):
        for _ in range(4):
            db.mark_url_invalid(SEED, "blocked", "captcha")

        summary = await make_session().run([SEED])

        assert summary.attempted == 0
        assert driver.new_page_calls == 0

    @pytest.mark.asyncio
    async def test_summary_counts_records(self, make_session, site):
        site[SEED] = listing()
        summary = await make_session().run([SEED])

        data = summary.to_dict()
        assert data["vehicles_saved"] == summary.vehicles_saved >= 1
        assert data["stopped"] is False


class TestPacing:
    """Delays between attempts."""

    @pytest.mark.asyncio
    async def test_delay_windows(self, db, driver, site):
        evasion = EvasionLayer()
        evasion.random_delay = AsyncMock(return_value=0.0)
        timeouts = AttemptTimeouts.instant()
        timeouts.failed_delay_ms = (5000, 10000)
        session = CrawlSession(
            db, driver, CrawlSessionConfig(base_delay_ms=1000), evasion=evasion, timeouts=timeouts
        )
        good1, bad, good2 = f"{SEED}/1", f"{SEED}/caido", f"{SEED}/2"
        site[good1] = listing()
        site[bad] = broken()
        site[good2] = listing()

        await session.run([good1, bad, good2])

        pacing = [
            c.args for c in evasion.random_delay.await_args_list
            if c.args in ((1000, 2000), (5000, 10000))
        ]
        # No pause after the final attempt
        assert pacing == [(1000, 2000), (5000, 10000)]


class TestResume:
    """Re-processing visited URLs that yielded nothing."""

    @pytest.mark.asyncio
    async def test_resume_reprocesses_pending(self, make_session, db, site):
        pending = f"{SEED}/viejo"
        db.mark_url_visited(pending, 1.0, "unknown")
        site[pending] = listing()

        summary = await make_session().run([], resume=True)

        assert summary.succeeded == 1
        assert db.get_visited(pending).content_type == "vehicle"
        assert db.get_pending_urls() == []

    @pytest.mark.asyncio
    async def test_without_resume_pending_is_ignored(self, make_session, db):
        db.mark_url_visited(f"{SEED}/viejo", 1.0, "unknown")
        summary = await make_session().run([])
        assert summary.attempted == 0

    @pytest.mark.asyncio
    async def test_pending_seed_enqueued_once(self, make_session, db, site):
        db.mark_url_visited(SEED, 1.0, "unknown")
        site[SEED] = listing()

        summary = await make_session(max_depth=1).run([SEED], resume=True)

        assert summary.attempted == 1


class TestStop:
    """Graceful stop requests."""

    @pytest.mark.asyncio
    async def test_stop_before_run(self, make_session, site, driver):
        site[SEED] = listing()
        session = make_session()
        session.request_stop()

        summary = await session.run([SEED])

        assert summary.attempted == 0
        assert summary.stopped is True
        assert driver.new_page_calls == 0

    @pytest.mark.asyncio
    async def test_stop_finishes_current_attempt(self, make_session, site, db):
        site[SEED] = listing([f"{SEED}/1", f"{SEED}/2"])
        session = make_session()
        original_attempt = session.controller.attempt

        async def attempt_then_stop(task, config):
            result = await original_attempt(task, config)
            session.request_stop()
            return result

        session.controller.attempt = attempt_then_stop
        summary = await session.run([SEED])

        assert summary.attempted == 1
        assert summary.stopped is True
        assert db.is_url_visited(SEED)
        assert session.stop_requested


class TestSearch:
    """Search-and-crawl entry point."""

    def test_build_search_urls(self):
        urls = CrawlSession.build_search_urls(["Toyota Corolla 2020", "   "])
        assert urls == [
            "https://listado.mercadolibre.com.mx/toyota-corolla-2020",
            "https://www.autocosmos.com.mx/buscar?q=Toyota+Corolla+2020",
        ]

    @pytest.mark.asyncio
    async def test_search_and_crawl_seeds_result_pages(self, make_session):
        session = make_session()
        with patch.object(session, "run", new=AsyncMock()) as run:
            await session.search_and_crawl(["balatas"], resume=True)

        run.assert_awaited_once_with(
            [
                "https://listado.mercadolibre.com.mx/balatas",
                "https://www.autocosmos.com.mx/buscar?q=balatas",
            ],
            resume=True,
        )
