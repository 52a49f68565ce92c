"""pocket.images – picks and runs one image strategy per saved item.

The fallback chain is an ordered list of :class:`~core.interfaces.ImageStrategy`
objects. :class:`ImageResolver` runs the first one whose ``applies()``
predicate matches; if that strategy fails the item simply stays without an
image until the next run, because nothing was written to the cache.

Default order:

1. :class:`VideoThumbnailStrategy` – an attached image hosted on a known
   video-thumbnail domain is downloaded as-is.
2. :class:`SelfImageStrategy` – the saved URL *is* an image; download it.
3. :class:`ScreenshotStrategy` – render the page and capture it.
"""
from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from core.errors import ImageAcquisitionError
from core.interfaces import ImageCache, ImageStrategy
from core.models import ContentType, RawItem

from plugins.pocket.capture import RemoteImageFetcher, ScreenshotRenderer

logger = logging.getLogger(__name__)

VIDEO_THUMBNAIL_HOSTS = ("i.ytimg.com", "img.youtube.com")


# --------------------------------------------------------------------------- #
class FileImageCache(ImageCache):
    """File existence is the whole cache: ``<image_dir>/<item_id><ext>``."""

    def __init__(
        self,
        image_dir: Path,
        *,
        public_base_url: str = "http://localhost:4000",
        public_prefix: str = "images",
        extension: str = ".png",
    ) -> None:
        self.image_dir = Path(image_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.public_prefix = public_prefix.strip("/")
        self.extension = extension

    def filename(self, item_id: int) -> str:
        return f"{item_id}{self.extension}"

    def path_for(self, item_id: int) -> Path:
        return self.image_dir / self.filename(item_id)

    def exists(self, item_id: int) -> bool:
        return self.path_for(item_id).is_file()

    def public_url(self, item_id: int) -> str:
        return f"{self.public_base_url}/{self.public_prefix}/{self.filename(item_id)}"


# --------------------------------------------------------------------------- #
class _GuardedStrategy(ImageStrategy):
    """Collapses every acquisition failure to ``False`` with a log line."""

    async def attempt(self, item: RawItem, target: Path) -> bool:
        try:
            await self._run(item, target)
        except ImageAcquisitionError as e:
            logger.warning("%s failed for item %s: %s", self.name, item.item_id, e)
            return False
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            logger.exception("%s crashed for item %s", self.name, item.item_id)
            return False
        return True

    @abstractmethod
    async def _run(self, item: RawItem, target: Path) -> None:
        """Write an image to *target* or raise ImageAcquisitionError."""


class VideoThumbnailStrategy(_GuardedStrategy):
    name = "video-thumbnail"

    def __init__(self, fetcher: RemoteImageFetcher, hosts: Iterable[str] = VIDEO_THUMBNAIL_HOSTS) -> None:
        self._fetcher = fetcher
        self._hosts = tuple(hosts)

    def match(self, item: RawItem) -> Optional[str]:
        """First attached image source served from a thumbnail host."""
        for src in item.image_sources():
            if any(host in src for host in self._hosts):
                return src
        return None

    def applies(self, item: RawItem) -> bool:
        return self.match(item) is not None

    async def _run(self, item: RawItem, target: Path) -> None:
        src = self.match(item)
        if src is None:
            raise ImageAcquisitionError("No thumbnail source matched", target=str(target))
        await self._fetcher.fetch(src, target)


class SelfImageStrategy(_GuardedStrategy):
    name = "self-image"

    def __init__(self, fetcher: RemoteImageFetcher) -> None:
        self._fetcher = fetcher

    def applies(self, item: RawItem) -> bool:
        return bool(item.url) and item.content_type is ContentType.IMAGE

    async def _run(self, item: RawItem, target: Path) -> None:
        await self._fetcher.fetch(item.url, target)


class ScreenshotStrategy(_GuardedStrategy):
    name = "screenshot"

    def __init__(self, renderer: ScreenshotRenderer) -> None:
        self._renderer = renderer

    def applies(self, item: RawItem) -> bool:
        # nothing to render without a URL
        return bool(item.url)

    async def _run(self, item: RawItem, target: Path) -> None:
        await self._renderer.render(item.url, target)


# --------------------------------------------------------------------------- #
class ImageResolver:
    """Runs exactly one strategy per item: the first that applies."""

    def __init__(self, strategies: Sequence[ImageStrategy]) -> None:
        self.strategies: List[ImageStrategy] = list(strategies)

    def select(self, item: RawItem) -> Optional[ImageStrategy]:
        for strategy in self.strategies:
            if strategy.applies(item):
                return strategy
        return None

    async def resolve(self, item: RawItem, target: Path) -> bool:
        strategy = self.select(item)
        if strategy is None:
            logger.debug("No image strategy applies to item %s", item.item_id)
            return False
        logger.debug("Item %s -> %s", item.item_id, strategy.name)
        return await strategy.attempt(item, target)


def default_strategies(
    fetcher: RemoteImageFetcher,
    renderer: ScreenshotRenderer,
    *,
    thumbnail_hosts: Iterable[str] = VIDEO_THUMBNAIL_HOSTS,
) -> List[ImageStrategy]:
    return [
        VideoThumbnailStrategy(fetcher, thumbnail_hosts),
        SelfImageStrategy(fetcher),
        ScreenshotStrategy(renderer),
    ]


class KeyedLocks:
    """One ``asyncio.Lock`` per key, created on first use."""

    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}

    def __call__(self, key: int) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock
