"""
sel.py - Async Playwright helpers for rendering pages headlessly.

* Async context-manager support:
    async with PlaywrightClient() as pw:
        data = await pw.screenshot("https://example.com")
* `extra_launch_kwargs` / `extra_context_kwargs` expose every Playwright
  knob without changing the public API.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Dict, Optional, Type

try:
    from playwright.async_api import (
        async_playwright,
        Browser,
        BrowserContext,
        BrowserType,
        Error as PlaywrightError,
        Page,
        TimeoutError as PlaywrightTimeout,
    )
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Package 'playwright' is required.  Install with:  pip install playwright"
    ) from e

logger = logging.getLogger(__name__)

JPEG_TYPES = {"jpeg", "jpg"}


class PlaywrightClient:
    """
    Thin wrapper around Playwright owning one browser and one context.

    Examples
    --------
    async with PlaywrightClient(viewport=(1280, 800)) as pw:
        png = await pw.screenshot("https://example.com")
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        browser_type: str = "chromium",
        timeout: float = 30_000,
        viewport: Optional[tuple[int, int]] = None,
        user_agent: Optional[str] = None,
        extra_launch_kwargs: Optional[Dict[str, Any]] = None,
        extra_context_kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.headless = headless
        self.browser_type = browser_type.lower()
        self.timeout = timeout
        self.viewport = viewport
        self.user_agent = user_agent
        self._launch_kwargs = extra_launch_kwargs or {}
        self._context_kwargs = extra_context_kwargs or {}

        # Internal Playwright handles
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    # --------------------------------------------------------------------- #
    # Async context-manager sugar
    async def __aenter__(self) -> "PlaywrightClient":  # noqa: D401
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    # --------------------------------------------------------------------- #
    # Lifecycle helpers
    async def start(self) -> None:
        """Launch browser & default context if not already started."""
        if self._browser:
            return

        self._playwright = await async_playwright().start()
        browser_launcher: BrowserType

        if self.browser_type == "chromium":
            browser_launcher = self._playwright.chromium
        elif self.browser_type == "firefox":
            browser_launcher = self._playwright.firefox
        elif self.browser_type == "webkit":
            browser_launcher = self._playwright.webkit
        else:
            await self.stop()
            raise ValueError(f"Unsupported browser type: {self.browser_type}")

        try:
            self._browser = await browser_launcher.launch(
                headless=self.headless, **self._launch_kwargs
            )

            context_kwargs: Dict[str, Any] = {
                "ignore_https_errors": True,
                **self._context_kwargs,
            }
            if self.viewport:
                width, height = self.viewport
                context_kwargs.setdefault("viewport", {"width": width, "height": height})
            if self.user_agent:
                context_kwargs.setdefault("user_agent", self.user_agent)

            self._context = await self._browser.new_context(**context_kwargs)
        except BaseException:
            await self.stop()
            raise

        logger.debug("Playwright started: %s (headless=%s)", self.browser_type, self.headless)

    async def stop(self) -> None:
        """Gracefully close context, browser & Playwright."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        logger.debug("Playwright stopped")

    # --------------------------------------------------------------------- #
    # High-level page helpers
    async def new_page(self) -> Page:
        """Return a fresh Page with sane defaults."""
        if not self._context:
            await self.start()
        page = await self._context.new_page()
        page.set_default_timeout(self.timeout)
        return page

    async def screenshot(
        self,
        url: str,
        *,
        full_page: bool = True,
        image_type: str = "png",
        quality: Optional[int] = None,
        settle_timeout: float = 5_000,
    ) -> bytes:
        """
        Navigate to *url*, let it settle, return a screenshot as bytes.

        ``quality`` is only honoured for JPEG captures (PNG is lossless and
        Playwright rejects a quality for it).
        """
        page = await self.new_page()
        try:
            await page.goto(url, wait_until="load")
            try:
                await page.wait_for_load_state("networkidle", timeout=settle_timeout)
            except PlaywrightTimeout:
                # long-polling pages never go idle; render what loaded
                logger.debug("Page %s did not reach network idle", url)

            kind = "jpeg" if image_type.lower() in JPEG_TYPES else "png"
            options: Dict[str, Any] = {"full_page": full_page, "type": kind}
            if kind == "jpeg" and quality is not None:
                options["quality"] = quality
            return await page.screenshot(**options)
        finally:
            await page.close()


__all__ = ["PlaywrightClient", "PlaywrightError", "PlaywrightTimeout"]
