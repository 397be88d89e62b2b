"""
Schema definitions for the link discovery pipeline.

This defines the data structures for:
- Candidate links pulled out of a page (url + anchor text)
- Scored links (keywords, content type, relevance score)
- Stored link records as they live in the sharded store
- Per-job scrape results and paginated query pages
"""

from dataclasses import dataclass, field, asdict
from typing import Literal, Optional


LinkType = Literal["document", "contact", "general"]
LINK_TYPES = ("document", "contact", "general")


@dataclass
class CandidateLink:
    """A URL discovered on a page, not yet scored."""
    url: str
    anchor_text: str = ""


@dataclass(frozen=True)
class ScoredLink:
    """A candidate link after keyword detection, classification and scoring."""
    url: str
    anchor_text: str
    keywords: tuple[str, ...]
    type: LinkType
    score: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["keywords"] = list(self.keywords)
        return data


@dataclass
class StoredLinkRecord:
    """Persisted form of a scored link."""
    id: str
    url: str
    anchor_text: str
    score: float
    keywords: list[str]
    parent_url: str
    type: LinkType
    crawled_at: str
    shard: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ExtractionResult:
    """Deduplicated candidates plus counters for hrefs that were dropped."""
    candidates: list[CandidateLink] = field(default_factory=list)
    invalid_url_count: int = 0
    skipped_count: int = 0


@dataclass
class UpsertReport:
    """Outcome counts for a batch written to the store."""
    inserted: int = 0
    updated: int = 0
    moved: int = 0
    failed: int = 0
    failed_urls: list[str] = field(default_factory=list)

    @property
    def persisted(self) -> int:
        return self.inserted + self.updated + self.moved


@dataclass
class ScrapeResult:
    """Outputs of one scrape job."""
    url: str
    links: list[ScoredLink] = field(default_factory=list)
    invalid_url_count: int = 0
    fetch_method: Optional[str] = None
    final_url: Optional[str] = None
    state: str = "idle"
    persistence: Optional[UpsertReport] = None
    timings_ms: dict[str, float] = field(default_factory=dict)

    @property
    def total_score(self) -> float:
        return sum(link.score for link in self.links)


@dataclass
class LinkPage:
    """One page of query results from the store."""
    results: list[StoredLinkRecord]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total // self.page_size)
