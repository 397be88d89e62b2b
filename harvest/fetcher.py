"""
Fetch layer with fallback chain:
requests → (render-need check) → pooled playwright browser, with retries
"""

from __future__ import annotations

import asyncio
import logging
import socket
from urllib.parse import urlsplit

import requests
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .access_policy import RetryPolicy, compute_backoff_delay, should_retry, user_agent_for_attempt
from .browser_pool import BrowserPool
from .config import DEFAULT_HEADERS, FetchConfig, FetchResult
from .render_detect import detect_render_need, is_content_sufficient


logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A fetch attempt failed; may be retried."""
    retryable = True

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class InsufficientContentError(FetchError):
    """Page came back without usable content."""


class FatalFetchError(FetchError):
    """Failure that no amount of retrying will fix."""
    retryable = False


class DNSResolutionError(FatalFetchError):
    """Target host does not resolve."""


class InvalidTargetError(FatalFetchError):
    """Target URL is malformed or not http(s)."""


DNS_ERROR_MARKERS = (
    'err_name_not_resolved',
    'getaddrinfo',
    'name or service not known',
    'nodename nor servname',
    'temporary failure in name resolution',
    'no address associated with hostname',
    'failed to resolve',
    'enotfound',
)


def validate_target_url(url: str) -> str:
    """Return the stripped URL or raise InvalidTargetError."""
    if not isinstance(url, str) or not url.strip():
        raise InvalidTargetError("URL is required", url=url)
    url = url.strip()
    try:
        parts = urlsplit(url)
        parts.port
    except ValueError as exc:
        raise InvalidTargetError(f"Malformed URL: {exc}", url=url) from exc
    if parts.scheme.lower() not in ('http', 'https') or not parts.hostname:
        raise InvalidTargetError(f"Not an http(s) URL: {url}", url=url)
    return url


def _looks_like_dns_failure(exc: BaseException) -> bool:
    seen = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return True
        text = str(current).lower()
        if any(marker in text for marker in DNS_ERROR_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_exception(exc: BaseException, url: str | None = None) -> FetchError:
    """Map a transport/browser exception onto the fetch error taxonomy."""
    if isinstance(exc, FetchError):
        return exc
    if _looks_like_dns_failure(exc):
        return DNSResolutionError(f"DNS resolution failed: {exc}", url=url)
    if isinstance(exc, (requests.Timeout, PlaywrightTimeoutError, asyncio.TimeoutError)):
        return FetchError(f"Timed out: {exc}", url=url)
    return FetchError(f"{type(exc).__name__}: {exc}", url=url)


def fetch_requests(url: str, config: FetchConfig) -> tuple[str, str, int]:
    """
    Fetch URL using requests library.

    Args:
        url: URL to fetch
        config: Fetch configuration

    Returns:
        Tuple of (html, final_url, status_code)

    Raises:
        FetchError on transport failure or non-2xx status
    """
    headers = DEFAULT_HEADERS.copy()
    headers['User-Agent'] = user_agent_for_attempt(config, 0)

    try:
        resp = requests.get(
            url,
            headers=headers,
            timeout=(config.connect_timeout, config.timeout),
            allow_redirects=True,
        )
    except requests.RequestException as exc:
        raise classify_exception(exc, url) from exc

    if not 200 <= resp.status_code < 300:
        raise FetchError(f"HTTP {resp.status_code}", url=url, status_code=resp.status_code)

    return resp.text, resp.url or url, resp.status_code


class Fetcher:
    """
    Acquires page HTML: one direct request, then a browser render when the
    direct body is missing or looks client-rendered.
    """

    def __init__(self, config: FetchConfig | None = None, pool: BrowserPool | None = None):
        self.config = config or FetchConfig()
        self.policy = RetryPolicy.from_config(self.config)
        self._owns_pool = pool is None
        self.pool = pool or BrowserPool(
            max_concurrent=self.config.max_concurrent,
            headless=self.config.headless,
            launch_args=self.config.launch_args,
        )

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch HTML with fallback chain.

        Raises:
            FatalFetchError: malformed target or DNS failure, no retry
            FetchError: every attempt failed
        """
        url = validate_target_url(url)
        signals: list[str] = []

        if not self.config.js_always:
            try:
                html, final_url, status = await asyncio.to_thread(fetch_requests, url, self.config)
            except FatalFetchError:
                raise
            except FetchError as exc:
                logger.info("Direct fetch failed for %s (%s); rendering", url, exc)
                signals.append('request_failed')
            else:
                check = detect_render_need(html, self.config.min_content_length)
                if not check.render_required:
                    return FetchResult(
                        url=url,
                        final_url=final_url,
                        html=html,
                        fetch_method='requests',
                        status_code=status,
                    )
                logger.info("Render needed for %s: %s", url, ", ".join(check.signals))
                signals.extend(check.signals)

        return await self.fetch_rendered(url, signals=signals)

    async def fetch_rendered(self, url: str, signals: list[str] | None = None) -> FetchResult:
        """Render URL in a pooled browser, retrying transient failures with backoff."""
        last_error: FetchError | None = None

        for attempt in range(self.policy.max_attempts):
            try:
                html, final_url, status = await self._render_once(url, attempt)
                if not is_content_sufficient(html, self.config.min_content_length):
                    raise InsufficientContentError(
                        f"Rendered content too thin ({len(html or '')} chars)", url=url
                    )
                return FetchResult(
                    url=url,
                    final_url=final_url,
                    html=html,
                    fetch_method='playwright',
                    status_code=status,
                    attempts=attempt + 1,
                    render_signals=list(signals or []),
                )
            except FetchError as exc:
                last_error = exc
                if not should_retry(exc, attempt, self.policy):
                    break
                delay = compute_backoff_delay(attempt, self.policy)
                logger.warning(
                    "Render attempt %d/%d for %s failed (%s); retrying in %.1fs",
                    attempt + 1, self.policy.max_attempts, url, exc, delay,
                )
                await asyncio.sleep(delay)

        if last_error is None:
            raise FetchError(f"No render attempts allowed for {url}", url=url)
        if isinstance(last_error, FatalFetchError):
            raise last_error
        raise type(last_error)(
            f"All {self.policy.max_attempts} render attempts failed for {url}: {last_error}",
            url=url,
            status_code=last_error.status_code,
        ) from last_error

    async def _render_once(self, url: str, attempt: int) -> tuple[str, str, int | None]:
        user_agent = user_agent_for_attempt(self.config, attempt)
        try:
            async with self.pool.page(
                user_agent=user_agent,
                block_resources=self.config.block_resources,
            ) as page:
                response = await page.goto(
                    url,
                    wait_until=self.config.wait_until,
                    timeout=self.config.navigation_timeout_ms,
                )
                status = response.status if response is not None else None
                if status is not None and not 200 <= status < 300:
                    raise FetchError(f"HTTP {status}", url=url, status_code=status)
                html = await page.content()
                return html, page.url or url, status
        except FetchError:
            raise
        except (PlaywrightError, OSError, asyncio.TimeoutError) as exc:
            raise classify_exception(exc, url) from exc

    async def close(self) -> None:
        if self._owns_pool:
            await self.pool.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
