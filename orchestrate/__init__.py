"""
Orchestration for the link pipeline: settings, job state machine, output.
"""

from .config import (
    DatabaseConfig,
    RateLimitConfig,
    SearchConfig,
    Settings,
    load_run_config,
    load_settings,
    PROJECT_ROOT,
)
from .pipeline import (
    JobState,
    LinkPipeline,
    ScrapeJob,
    scrape_once,
)
from .presenter import (
    envelope,
    format_ranked_links,
    page_to_dict,
    record_to_dict,
    scrape_summary,
)

__all__ = [
    "DatabaseConfig",
    "RateLimitConfig",
    "SearchConfig",
    "Settings",
    "load_run_config",
    "load_settings",
    "PROJECT_ROOT",
    "JobState",
    "LinkPipeline",
    "ScrapeJob",
    "scrape_once",
    "envelope",
    "format_ranked_links",
    "page_to_dict",
    "record_to_dict",
    "scrape_summary",
]
