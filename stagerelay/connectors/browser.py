"""Single headless-browser session used by the scraper connector.

One session owns exactly one Playwright driver, one Chromium process and one
page. ``close()`` is called from cleanup paths that must always complete, so
it logs failures instead of raising them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..errors import BrowserSessionError, NavigationError

DEFAULT_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--no-zygote",
)


class BrowserSession:
    """Launch, drive and tear down one Chromium page."""

    def __init__(
        self,
        *,
        headless: bool = True,
        executable_path: str | None = None,
        args: Sequence[str] | None = None,
        default_timeout_ms: float = 30_000,
        logger: logging.Logger | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.headless = headless
        self.executable_path = executable_path
        self.args = list(args) if args is not None else list(DEFAULT_LAUNCH_ARGS)
        self.default_timeout_ms = default_timeout_ms
        self.logger = logger or logging.getLogger(__name__)
        self._playwright_factory = playwright_factory
        self._playwright: Any = None
        self._browser: Any = None
        self._page: Any = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def launch(self) -> None:
        """Start a fresh browser with a single page, closing any previous one."""

        if self._playwright or self._browser or self._page:
            self.logger.debug("Existing browser session detected; closing before relaunch")
            await self.close()

        self.logger.info("Launching headless browser")
        try:
            self._playwright = await self._playwright_factory().start()
            launch_kwargs: dict[str, Any] = {"headless": self.headless, "args": self.args}
            if self.executable_path:
                launch_kwargs["executable_path"] = self.executable_path
            self._browser = await self._playwright.chromium.launch(**launch_kwargs)
            self._page = await self._browser.new_page()
        except Exception as exc:
            self.logger.error("Failed to launch browser or open page: %s", exc)
            await self.close()
            raise
        self.logger.info("Browser launched and page opened")

    async def close(self) -> None:
        """Close page, browser and driver; never raises."""

        page, self._page = self._page, None
        browser, self._browser = self._browser, None
        driver, self._playwright = self._playwright, None

        if page is not None:
            try:
                await page.close()
            except Exception as exc:
                self.logger.warning("Failed to close page gracefully: %s", exc)
        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:
                self.logger.warning("Failed to close browser gracefully: %s", exc)
        if driver is not None:
            try:
                await driver.stop()
            except Exception as exc:
                self.logger.warning("Failed to stop Playwright driver: %s", exc)
        if page is not None or browser is not None:
            self.logger.info("Browser session closed")

    # ------------------------------------------------------------------
    # Page operations
    # ------------------------------------------------------------------

    async def navigate(self, url: str, timeout_ms: float | None = None) -> None:
        """Load ``url`` and wait for ``domcontentloaded``.

        Raises:
            NavigationError: when no page is open or loading fails or times out.
        """

        if self._page is None:
            raise NavigationError(url, "page is not initialized")

        timeout = timeout_ms if timeout_ms is not None else self.default_timeout_ms
        self.logger.debug("Navigating to %s (timeout %sms)", url, timeout)
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        except PlaywrightError as exc:
            reason = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
            raise NavigationError(url, reason) from exc
        self.logger.info("Successfully navigated to %s", url)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run ``expression`` in the page and return its JSON-serialisable result."""

        if self._page is None:
            raise BrowserSessionError("Cannot evaluate: page is not initialized")
        return await self._page.evaluate(expression, arg)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        if self._page is None:
            self.logger.warning("Cannot attach %s listener: page is not initialized", event)
            return
        self._page.on(event, handler)

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
        if self._page is None:
            return
        try:
            self._page.remove_listener(event, handler)
        except Exception as exc:
            self.logger.debug("Listener %s already detached: %s", event, exc)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    def is_page_open(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    def open_pages_count(self) -> int:
        if self._browser is None:
            return 0
        return sum(len(context.pages) for context in self._browser.contexts)


__all__ = ["BrowserSession", "DEFAULT_LAUNCH_ARGS"]
