"""Command-line interface for the vehicle and spare-part crawler."""

import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from autocrawl.browser import BrowserSession
from autocrawl.browser_config import BrowserConfig
from autocrawl.config import AttemptTimeouts, CrawlSessionConfig, settings
from autocrawl.constants import DEFAULT_SEED_URLS
from autocrawl.database import AbstractDatabase, get_db_client
from autocrawl.errors import DriverStartupError
from autocrawl.logging_config import setup_logging
from autocrawl.models import CrawlSummary
from autocrawl.session import CrawlSession

logger = logging.getLogger(__name__)


def _install_stop_handlers(session: CrawlSession) -> None:
    """Route SIGINT/SIGTERM to a graceful stop of the session."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, session.request_stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform's event loop
            logger.debug(f"Cannot install handler for {sig.name}")


async def _run_crawl(
    db: AbstractDatabase,
    session_config: CrawlSessionConfig,
    browser_config: BrowserConfig,
    seed_urls: Optional[List[str]] = None,
    search_terms: Optional[List[str]] = None,
    resume: bool = False,
) -> CrawlSummary:
    """Launch the browser and run one crawl session.

    Args:
        db: Crawl store
        session_config: Depth, page budget and pacing
        browser_config: Browser driver settings
        seed_urls: Start URLs (ignored when search_terms is given)
        search_terms: Terms to search on the configured sites
        resume: Re-enqueue pending URLs from previous runs first

    Returns:
        CrawlSummary for the run
    """
    timeouts = AttemptTimeouts()
    async with BrowserSession(browser_config, page_create_timeout=timeouts.page_create_seconds) as browser:
        session = CrawlSession(db, browser, session_config, timeouts=timeouts)
        _install_stop_handlers(session)
        if search_terms:
            return await session.search_and_crawl(search_terms, resume=resume)
        return await session.run(seed_urls or [], resume=resume)


def _session_config_from_args(args) -> CrawlSessionConfig:
    env_config = CrawlSessionConfig.from_env()
    return CrawlSessionConfig(
        max_depth=env_config.max_depth if args.max_depth is None else args.max_depth,
        max_pages=env_config.max_pages if args.max_pages is None else args.max_pages,
        base_delay_ms=env_config.base_delay_ms if args.delay_ms is None else args.delay_ms,
    )


def print_stats(stats: dict, db_url: str) -> None:
    """Print store statistics in a formatted way."""
    print(f"\n{'=' * 50}")
    print("📊 FINAL STATISTICS")
    print(f"{'=' * 50}")
    print(f"✅ Visited URLs: {stats.get('urls', 0)}")
    print(f"🚗 Vehicles extracted: {stats.get('vehicles', 0)}")
    print(f"🔧 Parts extracted: {stats.get('parts', 0)}")
    print(f"🚫 Invalid URLs: {stats.get('invalid_urls', 0)}")
    print(f"\n💾 Database: {db_url}")


def print_summary(summary: CrawlSummary) -> None:
    """Print the session summary."""
    print(f"\n{'=' * 50}")
    print("🏁 RUN SUMMARY")
    print(f"{'=' * 50}")
    print(f"  • Attempted: {summary.attempted}")
    print(f"  • Succeeded: {summary.succeeded}")
    print(f"  • Skipped: {summary.skipped}")
    print(f"  • Failed: {summary.failed}")
    print(f"  • New links queued: {summary.discovered}")
    print(f"  • Elapsed: {summary.elapsed_seconds:.1f}s")
    if summary.stopped:
        print("  ⚠️  Stopped on request")


def crawl_command(args):
    """Crawl from seed URLs or search terms and report statistics."""
    db_url = args.db or settings.DATABASE_URL
    db = get_db_client(db_url=db_url)
    try:
        session_config = _session_config_from_args(args)
        browser_config = BrowserConfig(headless=not args.headed and settings.HEADLESS)

        search_terms = getattr(args, "terms", None)
        seed_urls = getattr(args, "seeds", None) or ([] if search_terms else list(DEFAULT_SEED_URLS))

        try:
            summary = asyncio.run(_run_crawl(
                db,
                session_config,
                browser_config,
                seed_urls=seed_urls,
                search_terms=search_terms,
                resume=args.resume,
            ))
        except DriverStartupError as e:
            logger.error(f"❌ Fatal: {e}")
            print(f"\n❌ Could not start the browser: {e}")
            sys.exit(1)

        print_summary(summary)
        print_stats(db.get_stats(), db_url)
    finally:
        db.close()


def stats_command(args):
    """Print statistics of the crawl store."""
    db_url = args.db or settings.DATABASE_URL
    db = get_db_client(db_url=db_url)
    try:
        stats = db.get_stats()
    finally:
        db.close()

    if args.output == "json":
        print(json.dumps(stats, indent=2))
    else:
        print_stats(stats, db_url)


def _add_crawl_options(subparser) -> None:
    subparser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Maximum pages to visit (default: AUTOCRAWL_MAX_PAGES or 100)",
    )
    subparser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Maximum link depth from the seeds (default: AUTOCRAWL_MAX_DEPTH or 3)",
    )
    subparser.add_argument(
        "--delay-ms",
        type=int,
        default=None,
        help="Base delay between requests in ms (default: AUTOCRAWL_BASE_DELAY_MS or 2000)",
    )
    subparser.add_argument(
        "--resume",
        action="store_true",
        help="Re-process visited URLs that produced no records in earlier runs",
    )
    subparser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    subparser.add_argument(
        "--db",
        help="Database URL (default: DATABASE_URL or sqlite:///vehicles.db)",
    )


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Autonomous crawler for vehicle and spare-part listings"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper() if settings.LOG_LEVEL else "INFO",
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=settings.LOG_FILE,
        help="Write logs to file in addition to console",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    crawl_parser = subparsers.add_parser(
        "crawl", help="Crawl from seed URLs."
    )
    crawl_parser.add_argument(
        "seeds", nargs="*", help="Seed URLs (default: built-in automotive sites)"
    )
    _add_crawl_options(crawl_parser)
    crawl_parser.set_defaults(func=crawl_command)

    search_parser = subparsers.add_parser(
        "search", help="Search the supported sites and crawl the results."
    )
    search_parser.add_argument(
        "terms", nargs="+", help="Search terms, e.g. 'toyota corolla 2020'"
    )
    _add_crawl_options(search_parser)
    search_parser.set_defaults(func=crawl_command)

    stats_parser = subparsers.add_parser(
        "stats", help="Show counts of visited URLs and extracted records."
    )
    stats_parser.add_argument(
        "--db",
        help="Database URL (default: DATABASE_URL or sqlite:///vehicles.db)",
    )
    stats_parser.add_argument(
        "--output",
        "-o",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    stats_parser.set_defaults(func=stats_command)

    args = parser.parse_args(argv)

    setup_logging(
        level=args.log_level,
        log_file=getattr(args, 'log_file', None),
    )

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
