"""Data models for the crawl orchestrator."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from autocrawl.errors import ErrorKind


class ContentType(str, Enum):
    """What kind of automotive content a page holds."""
    VEHICLE = "vehicle"
    PART = "part"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class AttemptStatus(str, Enum):
    """Outcome of one page attempt."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CrawlTask:
    """A URL waiting in the frontier."""

    url: str
    depth: int = 0
    reprocess: bool = False  # resumed URL, bypasses the visited check

    def __post_init__(self):
        if self.depth < 0:
            raise ValueError(f"depth must be >= 0, got {self.depth}")


@dataclass
class RelevanceAssessment:
    """Relevance score of a fetched page."""

    score: float
    content_type: ContentType = ContentType.UNKNOWN
    vehicle_score: int = 0
    parts_score: float = 0.0

    @property
    def wants_vehicles(self) -> bool:
        return self.content_type in (ContentType.VEHICLE, ContentType.MIXED)

    @property
    def wants_parts(self) -> bool:
        return self.content_type in (ContentType.PART, ContentType.MIXED)


@dataclass
class VisitedRecord:
    """A URL that was fetched, harvested and scored."""

    id: int
    url: str
    relevance_score: Optional[float] = None
    content_type: Optional[str] = None
    visited_at: Optional[datetime] = None


@dataclass
class InvalidRecord:
    """A URL that failed, with its retry count."""

    id: int
    url: str
    error_type: str
    error_message: Optional[str] = None
    retry_count: int = 0
    failed_at: Optional[datetime] = None


@dataclass
class VehicleRecord:
    """Vehicle extracted from a page."""

    year: Optional[int] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    condition: Optional[str] = None
    description: Optional[str] = None
    url_id: Optional[int] = None

    def is_valid(self) -> bool:
        return bool(self.brand or self.model or self.year)

    def dedupe_key(self) -> tuple:
        return (self.brand, self.model, self.year)


@dataclass
class PartRecord:
    """Spare part extracted from a page."""

    part_name: str
    part_number: Optional[str] = None
    brand: Optional[str] = None
    compatible_vehicle: Optional[str] = None
    description: Optional[str] = None
    url_id: Optional[int] = None

    def is_valid(self) -> bool:
        return bool(self.part_name)

    def dedupe_key(self) -> tuple:
        return (self.part_name, self.part_number, self.brand)


@dataclass
class AttemptResult:
    """What a page attempt produced."""

    status: AttemptStatus
    url: str
    new_tasks: List[CrawlTask] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    relevance: Optional[RelevanceAssessment] = None
    vehicles_saved: int = 0
    parts_saved: int = 0

    @classmethod
    def skipped(cls, url: str, reason: str) -> "AttemptResult":
        return cls(status=AttemptStatus.SKIPPED, url=url, error_message=reason)

    @classmethod
    def failed(cls, url: str, kind: ErrorKind, message: str) -> "AttemptResult":
        return cls(status=AttemptStatus.FAILED, url=url, error_kind=kind, error_message=message)


@dataclass
class CrawlSummary:
    """Counters reported at the end of a crawl session."""

    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    discovered: int = 0
    vehicles_saved: int = 0
    parts_saved: int = 0
    pages_visited: int = 0
    stopped: bool = False
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "discovered": self.discovered,
            "vehicles_saved": self.vehicles_saved,
            "parts_saved": self.parts_saved,
            "pages_visited": self.pages_visited,
            "stopped": self.stopped,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }
