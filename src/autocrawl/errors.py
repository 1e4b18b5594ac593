# src/autocrawl/errors.py
"""Exception hierarchy and failure classification for crawl attempts."""

from enum import Enum

from autocrawl.constants import NAVIGATION_EXHAUSTED_MARKER


class ErrorKind(str, Enum):
    """Fixed taxonomy of failures recorded against a URL."""
    PROTOCOL_ERROR = "protocol_error"
    TIMEOUT = "timeout"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    NETWORK_ERROR = "network_error"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    UNKNOWN_ERROR = "unknown_error"


class CrawlerError(Exception):
    """Base class for crawler errors."""


class DriverStartupError(CrawlerError):
    """The browser could not be launched. Fatal for the whole run."""


class PageAcquisitionError(CrawlerError):
    """A page handle could not be obtained from the driver."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.PROTOCOL_ERROR):
        super().__init__(message)
        self.kind = kind


class NavigationTimeoutError(CrawlerError):
    """Both the primary and the fallback navigation failed."""

    def __init__(self, url: str, last_error: str = ""):
        message = f"{NAVIGATION_EXHAUSTED_MARKER} for {url}"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)
        self.url = url


class PageBlockedError(CrawlerError):
    """The page still shows a block page after recovery."""


class PageNotFoundError(CrawlerError):
    """The server answered 404 for the page."""


# Ordered (kind, substrings) rules, first match wins
_CLASSIFICATION_RULES = [
    (ErrorKind.NAVIGATION_TIMEOUT, (NAVIGATION_EXHAUSTED_MARKER, "navigation_timeout")),
    (ErrorKind.PROTOCOL_ERROR, ("protocolerror", "protocol error", "target closed", "session closed", "has been closed")),
    (ErrorKind.NETWORK_ERROR, ("net::err", "navigation failed")),
    (ErrorKind.BLOCKED, ("blocked", "captcha")),
    (ErrorKind.NOT_FOUND, ("404", "not found")),
    (ErrorKind.TIMEOUT, ("timeout", "timed out")),
]


def classify_error(message: str) -> ErrorKind:
    """Map a raw failure message to an ErrorKind.

    Matching is case-insensitive and the first rule that matches wins,
    so a navigation-exhaustion message mentioning "timeout" is still
    reported as navigation_timeout.

    Args:
        message: Failure message, usually produced by describe_error()

    Returns:
        The ErrorKind for the message
    """
    lowered = (message or "").lower()
    for kind, needles in _CLASSIFICATION_RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return ErrorKind.UNKNOWN_ERROR


def describe_error(error: BaseException) -> str:
    """Render an exception as a classifiable message including its type name."""
    text = str(error).strip()
    name = type(error).__name__
    return f"{name}: {text}" if text else name
