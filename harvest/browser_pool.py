"""
Bounded pool of reusable Playwright browsers.

A counting semaphore caps how many browsers are in use at once; callers at
capacity wait on it. Idle browsers are kept for reuse and health-checked
on acquire, and the idle list is guarded by a lock so a disconnect and a
relaunch never race.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from playwright.async_api import async_playwright

from .config import BLOCKED_RESOURCE_TYPES, CHROMIUM_ARGS


logger = logging.getLogger(__name__)


async def _block_non_essential(route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserPool:
    """Fixed-capacity pool of browser handles."""

    def __init__(
        self,
        max_concurrent: int = 10,
        headless: bool = True,
        launch_args: list[str] | None = None,
        launcher: Callable[[], Awaitable[object]] | None = None,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.headless = headless
        self.launch_args = list(launch_args if launch_args is not None else CHROMIUM_ARGS)
        self._launcher = launcher
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._idle: list = []
        self._in_use = 0
        self._playwright = None
        self._closed = False

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def idle(self) -> int:
        return len(self._idle)

    @property
    def closed(self) -> bool:
        return self._closed

    async def _launch(self):
        if self._launcher is not None:
            return await self._launcher()
        async with self._start_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
        logger.debug("Launching chromium (headless=%s)", self.headless)
        return await self._playwright.chromium.launch(
            headless=self.headless,
            args=self.launch_args,
        )

    @staticmethod
    def _is_healthy(browser) -> bool:
        try:
            return bool(browser.is_connected())
        except Exception:
            return False

    @staticmethod
    async def _discard(browser) -> None:
        try:
            await browser.close()
        except Exception as exc:
            logger.debug("Ignoring error closing browser: %s", exc)

    async def acquire(self):
        """Wait for a free slot and return a connected browser."""
        if self._closed:
            raise RuntimeError("BrowserPool is closed")
        await self._semaphore.acquire()
        try:
            stale = []
            async with self._lock:
                if self._closed:
                    raise RuntimeError("BrowserPool is closed")
                # the slot is counted before any await so release() sees it
                self._in_use += 1
                reused = None
                while self._idle:
                    browser = self._idle.pop()
                    if self._is_healthy(browser):
                        reused = browser
                        break
                    stale.append(browser)
        except BaseException:
            self._semaphore.release()
            raise

        try:
            for browser in stale:
                logger.info("Dropping disconnected browser from pool")
                await self._discard(browser)
            if reused is not None:
                return reused
            # launched outside the lock so other callers can release meanwhile
            browser = await self._launch()
            if self._closed:
                await self._discard(browser)
                raise RuntimeError("BrowserPool is closed")
            return browser
        except BaseException:
            async with self._lock:
                self._in_use -= 1
                if reused is not None and not self._closed:
                    self._idle.append(reused)
            self._semaphore.release()
            raise

    async def release(self, browser, healthy: bool = True) -> None:
        """Return a browser to the pool and free its slot."""
        try:
            async with self._lock:
                self._in_use -= 1
                keep = healthy and not self._closed and self._is_healthy(browser)
                if keep:
                    self._idle.append(browser)
            if not keep:
                await self._discard(browser)
        finally:
            self._semaphore.release()

    @asynccontextmanager
    async def page(self, user_agent: str | None = None, block_resources: bool = True):
        """
        Yield a fresh page on a pooled browser.

        The page and its context are always closed and the browser always
        released, whatever happens inside the block.
        """
        browser = await self.acquire()
        context = None
        healthy = True
        try:
            context_args = {}
            if user_agent:
                context_args['user_agent'] = user_agent
            context = await browser.new_context(**context_args)
            page = await context.new_page()
            if block_resources:
                await page.route("**/*", _block_non_essential)
            yield page
        except BaseException:
            healthy = self._is_healthy(browser)
            raise
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as exc:
                    healthy = False
                    logger.debug("Error closing browser context: %s", exc)
            await self.release(browser, healthy=healthy)

    async def close(self) -> None:
        """Close idle browsers and stop Playwright. In-use browsers close on release."""
        async with self._lock:
            self._closed = True
            idle, self._idle = self._idle, []
        for browser in idle:
            await self._discard(browser)
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            await playwright.stop()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
