"""
Page acquisition for link discovery.

Primary interface:
    from harvest import Fetcher

    async with Fetcher(FetchConfig()) as fetcher:
        result = await fetcher.fetch("https://example.gov/")

    # Returns FetchResult with:
    # - url, final_url, html
    # - fetch_method ('requests' or 'playwright'), status_code
    # - attempts, render_signals (why the browser path was taken)
"""

from .browser_pool import BrowserPool
from .config import FetchConfig, FetchResult
from .fetcher import (
    DNSResolutionError,
    FatalFetchError,
    FetchError,
    Fetcher,
    InsufficientContentError,
    InvalidTargetError,
    validate_target_url,
)
from .render_detect import detect_render_need, needs_render


__all__ = [
    'BrowserPool',
    'DNSResolutionError',
    'FatalFetchError',
    'FetchConfig',
    'FetchError',
    'FetchResult',
    'Fetcher',
    'InsufficientContentError',
    'InvalidTargetError',
    'detect_render_need',
    'needs_render',
    'validate_target_url',
]
