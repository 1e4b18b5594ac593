"""Resilient crawler for vehicle and spare-part listings."""

__version__ = "0.1.0"

from autocrawl.attempt import PageAttemptController
from autocrawl.browser import BrowserSession
from autocrawl.browser_config import BrowserConfig
from autocrawl.config import AttemptTimeouts, CrawlSessionConfig, settings
from autocrawl.database import AbstractDatabase, LocalSqliteDatabase, get_db_client
from autocrawl.errors import (
    CrawlerError,
    DriverStartupError,
    ErrorKind,
    NavigationTimeoutError,
    PageAcquisitionError,
    PageBlockedError,
    PageNotFoundError,
    classify_error,
)
from autocrawl.evasion import BlockingOutcome, EvasionLayer
from autocrawl.extractor import DataExtractor
from autocrawl.frontier import Frontier
from autocrawl.ledger import InvalidUrlLedger
from autocrawl.models import (
    AttemptResult,
    AttemptStatus,
    ContentType,
    CrawlSummary,
    CrawlTask,
    InvalidRecord,
    PartRecord,
    RelevanceAssessment,
    VehicleRecord,
    VisitedRecord,
)
from autocrawl.relevance import RelevanceDetector
from autocrawl.session import CrawlSession

__all__ = [
    "PageAttemptController",
    "BrowserSession",
    "BrowserConfig",
    "AttemptTimeouts",
    "CrawlSessionConfig",
    "settings",
    "AbstractDatabase",
    "LocalSqliteDatabase",
    "get_db_client",
    "CrawlerError",
    "DriverStartupError",
    "ErrorKind",
    "NavigationTimeoutError",
    "PageAcquisitionError",
    "PageBlockedError",
    "PageNotFoundError",
    "classify_error",
    "BlockingOutcome",
    "EvasionLayer",
    "DataExtractor",
    "Frontier",
    "InvalidUrlLedger",
    "AttemptResult",
    "AttemptStatus",
    "ContentType",
    "CrawlSummary",
    "CrawlTask",
    "InvalidRecord",
    "PartRecord",
    "RelevanceAssessment",
    "VehicleRecord",
    "VisitedRecord",
    "RelevanceDetector",
    "CrawlSession",
]
