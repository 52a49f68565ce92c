"""pocket.capture – the two leaf collaborators that produce image bytes.

* :class:`RemoteImageFetcher` downloads a direct image URL.
* :class:`ScreenshotRenderer` renders a page in a throw-away headless
  browser and captures it full-page.

Both raise subclasses of :class:`~core.errors.ImageAcquisitionError` so
callers can tell transport, status, render and write failures apart.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from core.config import Settings
from core.errors import ImageWriteError, RenderError
from core.infra.http import HttpClient
from core.infra.sel import PlaywrightClient, PlaywrightError
from core.infra.storage import atomic_write_bytes

logger = logging.getLogger(__name__)

__all__ = ["RemoteImageFetcher", "ScreenshotRenderer"]


class RemoteImageFetcher:
    """Download an image URL straight into the cache. No retries."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def fetch(self, src: str, target: Path) -> None:
        logger.info("Saving image (%s) for %s", target, src)
        size = await self._http.download(src, target)
        logger.debug("Wrote %d bytes to %s", size, target)


class ScreenshotRenderer:
    """Full-page screenshots, one fresh browser per call.

    ``max_concurrent`` caps how many browsers run at once across all
    callers sharing this renderer.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        quality: int = 95,
        viewport: Optional[tuple[int, int]] = (1280, 800),
        max_concurrent: int = 2,
        client_factory: Optional[Callable[..., PlaywrightClient]] = None,
    ) -> None:
        self._timeout = timeout
        self._quality = quality
        self._viewport = viewport
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._client_factory = client_factory or PlaywrightClient

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScreenshotRenderer":
        return cls(
            timeout=settings.render_timeout,
            quality=settings.screenshot_quality,
            viewport=(settings.viewport_width, settings.viewport_height),
            max_concurrent=settings.max_browsers,
        )

    async def _capture(self, url: str, image_type: str) -> bytes:
        async with self._client_factory(
            timeout=self._timeout * 1000, viewport=self._viewport
        ) as pw:
            return await pw.screenshot(url, image_type=image_type, quality=self._quality)

    async def render(self, url: str, target: Path) -> None:
        logger.info("Saving screenshot (%s) for %s", target, url)
        if not url:
            raise RenderError("No URL to render", target=str(target))

        image_type = Path(target).suffix.lstrip(".") or "png"
        async with self._semaphore:
            try:
                data = await asyncio.wait_for(self._capture(url, image_type), timeout=self._timeout)
            except asyncio.TimeoutError as e:
                raise RenderError(
                    f"Screenshot of {url} timed out after {self._timeout:.0f}s", target=str(target)
                ) from e
            except PlaywrightError as e:
                raise RenderError(f"Could not take screenshot for {url}: {e}", target=str(target)) from e

        try:
            atomic_write_bytes(Path(target), data)
        except OSError as e:
            raise ImageWriteError(f"Could not write screenshot {target}: {e}", target=str(target)) from e
