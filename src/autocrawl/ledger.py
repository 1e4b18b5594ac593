"""Invalid-URL ledger: records failures and decides whether a URL may be retried."""

import logging
from typing import Optional, Set

from autocrawl.constants import MAX_RETRY_COUNT
from autocrawl.database import AbstractDatabase
from autocrawl.errors import ErrorKind
from autocrawl.models import InvalidRecord

logger = logging.getLogger(__name__)


class InvalidUrlLedger:
    """Persistent failure record for URLs, backed by the crawl store.

    A first failure creates a record with retry_count 0. Each later failure
    bumps the count. Once retry_count reaches MAX_RETRY_COUNT the URL is
    exhausted and is never attempted again.
    """

    def __init__(self, db: AbstractDatabase, max_retry_count: int = MAX_RETRY_COUNT):
        self._db = db
        self.max_retry_count = max_retry_count
        self._marked_this_run: Set[str] = set()

    def is_invalid(self, url: str) -> Optional[InvalidRecord]:
        return self._db.is_url_invalid(url)

    def is_exhausted(self, url: str) -> bool:
        record = self._db.is_url_invalid(url)
        return record is not None and record.retry_count >= self.max_retry_count

    def mark_invalid(self, url: str, kind: ErrorKind, message: str) -> InvalidRecord:
        """Record a failure for the URL and return the updated record."""
        record = self._db.mark_url_invalid(url, kind.value, message)
        self._marked_this_run.add(url)
        if record.retry_count >= self.max_retry_count:
            logger.warning(f"  🚫 Giving up on {url} after {record.retry_count} retries ({kind.value})")
        else:
            logger.info(f"  🚫 Marked invalid ({kind.value}, retry_count={record.retry_count}): {url}")
        return record

    def mark_invalid_once(self, url: str, kind: ErrorKind, message: str) -> bool:
        """Record a failure unless one was already recorded for this URL in this run.

        Returns:
            True if a failure was written
        """
        if url in self._marked_this_run:
            logger.debug(f"Failure already recorded this run, not marking again: {url}")
            return False
        self.mark_invalid(url, kind, message)
        return True

    def reset_run(self) -> None:
        """Forget which URLs were marked in the current run."""
        self._marked_this_run.clear()
