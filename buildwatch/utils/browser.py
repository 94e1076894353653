"""Playwright runtime: the HTTP request context and the offline sandbox browser."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import (
    APIRequestContext,
    Browser,
    BrowserContext,
    Playwright,
    Route,
    async_playwright,
)

from buildwatch.models.config import WatcherConfig

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)


async def _block_request(route: Route) -> None:
    await route.abort()


async def create_request_context(
    playwright: Playwright,
    user_agent: Optional[str] = None,
    timeout_ms: int = 30000,
) -> APIRequestContext:
    """Create the request context used for API, asset, and webhook calls."""
    return await playwright.request.new_context(
        user_agent=user_agent or DEFAULT_USER_AGENT,
        extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
        timeout=timeout_ms,
    )


async def launch_sandbox_browser(playwright: Playwright, headless: bool = True) -> Browser:
    """Launch Chromium for evaluating untrusted script assets."""
    return await playwright.chromium.launch(
        headless=headless,
        args=[
            "--disable-extensions",
            "--disable-background-networking",
        ],
    )


async def create_sandbox_context(browser: Browser, timeout_ms: int = 15000) -> BrowserContext:
    """Create an offline context: no network, no service workers, no downloads.

    Pages opened in it only ever run the script text handed to them.
    """
    context = await browser.new_context(
        offline=True,
        java_script_enabled=True,
        service_workers="block",
        accept_downloads=False,
    )
    await context.route("**/*", _block_request)
    context.set_default_timeout(timeout_ms)
    return context


class BrowserRuntime:
    """Owns the Playwright driver for the lifetime of a watch or compare session.

    Usage::

        async with BrowserRuntime(config) as runtime:
            client = BuildsClient(runtime.request, config)
            sandbox = ScriptSandbox(runtime.sandbox_context, config.sandbox_timeout_ms)
    """

    def __init__(self, config: WatcherConfig, headless: bool = True):
        self.config = config
        self.headless = headless
        self._playwright: Playwright | None = None
        self.request: APIRequestContext | None = None
        self.browser: Browser | None = None
        self.sandbox_context: BrowserContext | None = None

    async def __aenter__(self) -> "BrowserRuntime":
        self._playwright = await async_playwright().start()
        try:
            self.request = await create_request_context(
                self._playwright,
                user_agent=self.config.user_agent,
                timeout_ms=self.config.request_timeout_ms,
            )
            self.browser = await launch_sandbox_browser(self._playwright, self.headless)
            self.sandbox_context = await create_sandbox_context(
                self.browser, self.config.sandbox_timeout_ms,
            )
        except BaseException:
            await self.close()
            raise
        logger.debug("Browser runtime started")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self.sandbox_context is not None:
            await self.sandbox_context.close()
            self.sandbox_context = None
        if self.browser is not None:
            await self.browser.close()
            self.browser = None
        if self.request is not None:
            await self.request.dispose()
            self.request = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.debug("Browser runtime stopped")
