# src/autocrawl/constants.py
"""Centralized constants for the crawl orchestrator.

This module contains magic numbers used across the crawler. For values a
user can override per run, see config.py and CrawlSessionConfig.
"""

# =============================================================================
# Retry / Ledger Constants
# =============================================================================

# A URL whose invalid record reaches this count is never attempted again
MAX_RETRY_COUNT = 3

# Attempts made to obtain a page handle from the driver
MAX_PAGE_ACQUIRE_ATTEMPTS = 3

# Backoff windows (milliseconds) after the 1st and 2nd failed acquisition
PAGE_ACQUIRE_BACKOFF_MS = [(3000, 6000), (10000, 20000)]

# Seconds allowed for the driver to hand back a new page
PAGE_CREATE_TIMEOUT_SECONDS = 30.0


# =============================================================================
# Navigation Constants
# =============================================================================

# First navigation attempt waits for network idle
PRIMARY_NAVIGATION_TIMEOUT_MS = 60000
PRIMARY_WAIT_UNTIL = "networkidle"

# Fallback navigation waits only for the load event
FALLBACK_NAVIGATION_TIMEOUT_MS = 90000
FALLBACK_WAIT_UNTIL = "load"

# Marker used in the message of NavigationTimeoutError
NAVIGATION_EXHAUSTED_MARKER = "navigation retries exhausted"


# =============================================================================
# Blocking Recovery Constants
# =============================================================================

BLOCKED_COOLDOWN_MS = (5000, 10000)
BLOCKED_RELOAD_TIMEOUT_MS = 30000
POST_RELOAD_COOLDOWN_MS = (3000, 6000)


# =============================================================================
# Dynamic Content Settle Constants
# =============================================================================

BODY_WAIT_TIMEOUT_MS = 10000
SPA_SELECTOR_TIMEOUT_MS = 3000
SETTLE_PAUSE_SECONDS = 2.0
DOM_STABILITY_INTERVAL_SECONDS = 0.5
DOM_STABILITY_CHECKS = 2
MAX_SETTLE_SECONDS = 20.0

# Common root containers of client-rendered apps
SPA_ROOT_SELECTORS = [
    "#app",
    "#root",
    "[data-reactroot]",
    ".main-content",
    "main",
]


# =============================================================================
# Relevance Gate Thresholds
# =============================================================================

# Pages scoring above this get data extraction
EXTRACTION_SCORE_THRESHOLD = 3

# Pages scoring above this get link expansion
EXPANSION_SCORE_THRESHOLD = 2

# Maximum links kept from one page after filtering
MAX_PROMISING_LINKS = 50


# =============================================================================
# Pacing Constants
# =============================================================================

DEFAULT_BASE_DELAY_MS = 2000
FAILED_ATTEMPT_DELAY_MS = (5000, 10000)


# =============================================================================
# Session Defaults
# =============================================================================

DEFAULT_MAX_DEPTH = 3
DEFAULT_MAX_PAGES = 100
PENDING_URLS_LIMIT = 50

DEFAULT_SEED_URLS = [
    "https://www.autocosmos.com.mx",
    "https://www.seminuevos.com",
    "https://autos.mercadolibre.com.mx",
]

# Search result URL templates used by search-and-crawl
SEARCH_URL_TEMPLATES = [
    "https://listado.mercadolibre.com.mx/{slug}",
    "https://www.autocosmos.com.mx/buscar?q={query}",
]
