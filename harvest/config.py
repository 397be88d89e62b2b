"""
Configuration and thresholds for the harvest (page acquisition) layer.
"""

import os
from dataclasses import dataclass, field
from typing import Literal


# Browser versions rotated per render attempt to vary the fingerprint
BROWSER_VERSIONS = [
    "120.0.0.0",
    "119.0.6045.199",
    "118.0.5993.117",
    "117.0.5938.149",
]

USER_AGENT_TEMPLATES = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/{version} Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/{version} Safari/537.36",
]

# Default request headers
DEFAULT_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept-Encoding': 'gzip, deflate',
    'DNT': '1',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
}

# Resource types aborted in the browser path
BLOCKED_RESOURCE_TYPES = frozenset({'image', 'stylesheet', 'font', 'media'})

CHROMIUM_ARGS = [
    '--disable-dev-shm-usage',
    '--no-zygote',
    '--no-sandbox',
]

PRODUCTION_MAX_CONCURRENT = 100
DEVELOPMENT_MAX_CONCURRENT = 10


def default_max_concurrent(env: dict | None = None) -> int:
    """Browser pool size scales with the deployment environment."""
    env = os.environ if env is None else env
    if env.get('LINKSCOUT_ENV', '').lower() == 'production':
        return PRODUCTION_MAX_CONCURRENT
    return DEVELOPMENT_MAX_CONCURRENT


@dataclass
class FetchConfig:
    """Configuration for fetch operations."""

    # HTTP layer
    connect_timeout: float = 5.0
    timeout: float = 15.0  # read timeout for the direct request
    js_always: bool = False  # skip the direct request, always render

    # Render-need heuristic
    min_content_length: int = 500  # characters of HTML below which we render

    # Browser layer
    navigation_timeout_ms: int = 30000
    wait_until: Literal['load', 'domcontentloaded', 'networkidle', 'commit'] = 'domcontentloaded'
    headless: bool = True
    block_resources: bool = True
    launch_args: list[str] = field(default_factory=lambda: list(CHROMIUM_ARGS))
    max_concurrent: int = field(default_factory=default_max_concurrent)

    # Retry policy for the browser path
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0

    # User agent
    user_agent: str | None = None  # if None, rotates per attempt
    rotate_user_agent: bool = True


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    final_url: str
    html: str
    fetch_method: Literal['requests', 'playwright'] = 'requests'
    status_code: int | None = None
    attempts: int = 1
    render_signals: list[str] = field(default_factory=list)
