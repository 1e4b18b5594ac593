"""In-memory crawl frontier with page budget accounting."""

import logging
from collections import deque
from typing import Deque, Iterable, List, Optional, Set

from autocrawl.database import AbstractDatabase
from autocrawl.ledger import InvalidUrlLedger
from autocrawl.models import CrawlTask

logger = logging.getLogger(__name__)


class Frontier:
    """
    FIFO queue of pending CrawlTasks, deduplicated for the current run.

    A URL is enqueued at most once per run. URLs already visited in a
    previous run and URLs whose retries are exhausted are refused at push
    time, so the queue only ever holds work worth attempting.

    The frontier also owns the page budget: a page counts against the
    budget when it is handed out for an attempt and is refunded if that
    attempt fails.
    """

    def __init__(
        self,
        db: AbstractDatabase,
        ledger: InvalidUrlLedger,
        max_depth: int,
        max_pages: int,
    ):
        self._db = db
        self._ledger = ledger
        self.max_depth = max_depth
        self.max_pages = max_pages

        self._queue: Deque[CrawlTask] = deque()
        self._seen: Set[str] = set()
        self.pages_visited = 0
        self.discarded = 0

    def __len__(self) -> int:
        return len(self._queue)

    def pending(self) -> List[CrawlTask]:
        """Snapshot of the queued tasks in pop order."""
        return list(self._queue)

    def has_seen(self, url: str) -> bool:
        return url in self._seen

    def push(self, task: CrawlTask) -> bool:
        """Enqueue a task unless its URL is seen, visited or exhausted.

        Reprocessed tasks skip both the visited and the exhausted check.

        Returns:
            True if the task was enqueued
        """
        url = task.url
        if url in self._seen:
            return False
        if not task.reprocess and self._db.is_url_visited(url):
            logger.debug(f"Already visited, not queueing: {url}")
            return False
        # Resumed URLs were visited, so their ledger entry does not apply
        if not task.reprocess and self._ledger.is_exhausted(url):
            logger.debug(f"Retries exhausted, not queueing: {url}")
            return False

        self._seen.add(url)
        self._queue.append(task)
        return True

    def extend(self, tasks: Iterable[CrawlTask]) -> int:
        """Push several tasks and return how many were enqueued."""
        return sum(1 for task in tasks if self.push(task))

    def seed(self, urls: Iterable[str]) -> int:
        """Enqueue seed URLs at depth 0."""
        return self.extend(CrawlTask(url=url, depth=0) for url in urls)

    def seed_pending(self, urls: Iterable[str]) -> int:
        """Enqueue resumed URLs at depth 1, bypassing the visited check."""
        return self.extend(CrawlTask(url=url, depth=1, reprocess=True) for url in urls)

    def pop(self) -> Optional[CrawlTask]:
        """Dequeue the next task within the depth limit.

        Tasks deeper than max_depth are dropped silently and do not count
        against the budget.
        """
        while self._queue:
            task = self._queue.popleft()
            if task.depth > self.max_depth:
                self.discarded += 1
                logger.debug(f"Discarding {task.url} (depth {task.depth} > {self.max_depth})")
                continue
            return task
        return None

    # --- Budget ---

    def has_capacity(self) -> bool:
        return self.pages_visited < self.max_pages

    def consume_budget(self) -> None:
        self.pages_visited += 1

    def refund_budget(self) -> None:
        if self.pages_visited > 0:
            self.pages_visited -= 1
