"""
Static publishing server built on *aiohttp.web*.

Serves the snapshot directory at ``/`` and the image cache at ``/images/``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from aiohttp import web

logger = logging.getLogger(__name__)

IMAGES_PREFIX = "/images"


def create_app(cache_dir: Path, image_dir: Path) -> web.Application:
    """Build the application; both directories are created if missing."""
    cache_dir = Path(cache_dir)
    image_dir = Path(image_dir)
    cache_dir.mkdir(parents=True, exist_ok=True)
    image_dir.mkdir(parents=True, exist_ok=True)

    app = web.Application()
    # the more specific prefix must be registered first
    app.router.add_static(IMAGES_PREFIX, image_dir, show_index=True)
    app.router.add_static("/", cache_dir, show_index=True)
    return app


class StaticServer:
    """Run :func:`create_app` until :meth:`stop` is called or the task is cancelled."""

    def __init__(self, cache_dir: Path, image_dir: Path, *, host: str = "localhost", port: int = 4000) -> None:
        self.cache_dir = Path(cache_dir)
        self.image_dir = Path(image_dir)
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        app = create_app(self.cache_dir, self.image_dir)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        logger.info("Starting server at http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        self._stopped.set()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Server stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            await self.stop()
