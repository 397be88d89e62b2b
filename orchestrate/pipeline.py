"""
Scrape job orchestration: fetch → extract → score → persist.

One job walks IDLE → FETCHING → EXTRACTING → SCORING → PERSISTING → DONE,
or drops to FAILED from any of those. Phases run strictly in sequence;
jobs only meet each other in the shared browser pool and the store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Iterable

from harvest import Fetcher
from links.extractor import extract_links
from links.scoring import ScoringEngine
from schema import ExtractionResult, ScrapeResult
from storage import LinkRepository

from .config import Settings


logger = logging.getLogger(__name__)


class JobState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    SCORING = "scoring"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.DONE, JobState.FAILED})

# Allowed forward transitions; FAILED is reachable from any non-terminal state
TRANSITIONS = {
    JobState.IDLE: JobState.FETCHING,
    JobState.FETCHING: JobState.EXTRACTING,
    JobState.EXTRACTING: JobState.SCORING,
    JobState.SCORING: JobState.PERSISTING,
    JobState.PERSISTING: JobState.DONE,
}


class ScrapeJob:
    """State and phase timings for one pipeline run."""

    def __init__(self, url: str):
        self.url = url
        self.state = JobState.IDLE
        self.result = ScrapeResult(url=url, state=self.state.value)
        self._phase_started: float | None = None

    def _close_phase(self) -> None:
        if self._phase_started is not None and self.state not in TERMINAL_STATES:
            elapsed = (time.perf_counter() - self._phase_started) * 1000
            self.result.timings_ms[self.state.value] = round(elapsed, 2)
        self._phase_started = None

    def advance(self, new_state: JobState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"job for {self.url} already {self.state.value}")
        if new_state is not JobState.FAILED and TRANSITIONS.get(self.state) is not new_state:
            raise RuntimeError(f"illegal transition {self.state.value} -> {new_state.value}")
        self._close_phase()
        logger.debug("%s: %s -> %s", self.url, self.state.value, new_state.value)
        self.state = new_state
        self.result.state = new_state.value
        if new_state not in TERMINAL_STATES:
            self._phase_started = time.perf_counter()


class LinkPipeline:
    """Runs scrape jobs against a shared fetcher and repository."""

    def __init__(
        self,
        fetcher: Fetcher,
        repository: LinkRepository | None,
        engine: ScoringEngine | None = None,
        extractor: Callable[[str, str], ExtractionResult] = extract_links,
    ):
        self.fetcher = fetcher
        self.repository = repository
        self.engine = engine or ScoringEngine()
        self.extractor = extractor

    @classmethod
    def from_settings(cls, settings: Settings, persist: bool = True) -> "LinkPipeline":
        """Build the full stack (fetcher, browser pool, store) from settings."""
        repository = None
        if persist:
            repository = LinkRepository.open(
                settings.database.path,
                pool_size=settings.database.pool_size,
                timeout=settings.database.timeout,
                page_size=settings.search.page_size,
            )
        return cls(
            fetcher=Fetcher(settings.fetch),
            repository=repository,
            engine=ScoringEngine(settings.scoring),
        )

    async def scrape(self, url: str, persist: bool = True) -> ScrapeResult:
        """
        Run one job end to end.

        Returns the ranked links and invalid-url count even when some rows
        failed to persist. Fetch errors and whole-batch store failures
        mark the job FAILED and propagate.
        """
        job = ScrapeJob(url)
        started = time.perf_counter()
        try:
            job.advance(JobState.FETCHING)
            fetched = await self.fetcher.fetch(url)
            job.result.fetch_method = fetched.fetch_method
            job.result.final_url = fetched.final_url

            job.advance(JobState.EXTRACTING)
            extraction = self.extractor(fetched.html, fetched.final_url or url)
            job.result.invalid_url_count = extraction.invalid_url_count

            job.advance(JobState.SCORING)
            job.result.links = self.engine.rank(extraction.candidates)

            job.advance(JobState.PERSISTING)
            if persist and self.repository is not None and job.result.links:
                items = [(link, url) for link in job.result.links]
                job.result.persistence = await asyncio.to_thread(self.repository.bulk_upsert, items)

            job.advance(JobState.DONE)
        except BaseException as exc:
            failed_in = job.state
            if job.state not in TERMINAL_STATES:
                job.advance(JobState.FAILED)
            logger.error("Scrape of %s failed while %s: %s", url, failed_in.value, exc)
            raise
        finally:
            job.result.timings_ms["total"] = round((time.perf_counter() - started) * 1000, 2)

        report = job.result.persistence
        logger.info(
            "Scraped %s via %s: %d links, %d invalid, %d persisted, %d failed (%.0f ms)",
            url,
            job.result.fetch_method,
            len(job.result.links),
            job.result.invalid_url_count,
            report.persisted if report else 0,
            report.failed if report else 0,
            job.result.timings_ms["total"],
        )
        return job.result

    async def scrape_many(self, urls: Iterable[str], persist: bool = True) -> list:
        """Run jobs concurrently; failed jobs come back as exception objects."""
        return await asyncio.gather(
            *(self.scrape(u, persist=persist) for u in urls),
            return_exceptions=True,
        )

    async def close(self) -> None:
        try:
            await self.fetcher.close()
        finally:
            if self.repository is not None:
                self.repository.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


async def scrape_once(url: str, settings: Settings, persist: bool = True) -> ScrapeResult:
    """Build a pipeline, run one job, release every resource."""
    async with LinkPipeline.from_settings(settings, persist=persist) as pipeline:
        return await pipeline.scrape(url, persist=persist)
