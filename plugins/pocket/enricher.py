"""pocket.enricher – turns raw saved items into the published, sorted list.

Per item: pick title and URL (resolved first, given as fallback), classify
the content type, make sure an image exists in the cache (acquiring one if
image generation is on), then emit an immutable
:class:`~core.models.EnrichedItem`. Items are processed concurrently on a
bounded pool and sorted by ``sort_id`` once all of them are done.

Image failures never escape this module; the item is emitted with an empty
``image`` and picked up again on the next run.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, List, Optional

from pydantic import ValidationError

from core.config import RunConfig, Settings
from core.errors import ConfigError
from core.infra.http import HttpClient
from core.interfaces import ImageCache, Transform
from core.models import EnrichedItem, RawItem, Snapshot

from plugins.pocket.capture import RemoteImageFetcher, ScreenshotRenderer
from plugins.pocket.images import FileImageCache, ImageResolver, KeyedLocks, default_strategies

logger = logging.getLogger(__name__)

__all__ = ["PocketEnricher", "enrich_item", "enrich_items"]


def normalize(item: RawItem) -> RawItem:
    """Return *item* with ``resolved_url`` filled from ``given_url`` if blank.

    Downstream decisions (strategy choice, screenshots, self-image download)
    then all see the same URL.
    """
    if item.resolved_url or not item.given_url:
        return item
    return item.model_copy(update={"resolved_url": item.given_url})


async def enrich_item(
    item: RawItem,
    resolver: ImageResolver,
    cache: ImageCache,
    config: RunConfig,
    locks: Optional[KeyedLocks] = None,
) -> EnrichedItem:
    item = normalize(item)
    title, url = item.title, item.url
    if config.output_logs:
        logger.info("Processing %s (%s)", title, url)

    locks = locks or KeyedLocks()
    async with locks(item.item_id):
        image_saved = cache.exists(item.item_id)
        if not image_saved and config.generate_images:
            image_saved = await resolver.resolve(item, cache.path_for(item.item_id))
            # a strategy that reports success must have left a file behind
            image_saved = image_saved and cache.exists(item.item_id)

    return EnrichedItem(
        item_id=item.item_id,
        title=title,
        url=url,
        excerpt=item.excerpt,
        type=item.content_type,
        sort_id=item.sort_id,
        image=cache.public_url(item.item_id) if image_saved else "",
    )


def _unique(items: Iterable[RawItem]) -> List[RawItem]:
    seen = set()
    out: List[RawItem] = []
    for item in items:
        if item.item_id in seen:
            logger.warning("Duplicate item %s in batch, keeping the first", item.item_id)
            continue
        seen.add(item.item_id)
        out.append(item)
    return out


async def enrich_items(
    items: Iterable[RawItem],
    resolver: ImageResolver,
    cache: ImageCache,
    config: RunConfig,
) -> List[EnrichedItem]:
    """Enrich a whole batch on at most ``config.max_workers`` concurrent tasks."""
    batch = _unique(items)
    semaphore = asyncio.Semaphore(config.max_workers)
    locks = KeyedLocks()

    async def worker(raw: RawItem) -> EnrichedItem:
        async with semaphore:
            return await enrich_item(raw, resolver, cache, config, locks)

    enriched = await asyncio.gather(*(worker(raw) for raw in batch))
    # sorted() is stable, so equal ranks keep retrieval order
    return sorted(enriched, key=lambda e: e.sort_id)


# --------------------------------------------------------------------------- #
class PocketEnricher(Transform):
    """Transform stage 2 / 3 – collects every RawItem, yields one :class:`Snapshot`."""

    name = "PocketEnricher"

    def __init__(
        self,
        *,
        settings: Settings,
        generate_images: Optional[bool] = None,
        max_workers: Optional[int] = None,
        resolver: Optional[ImageResolver] = None,
        cache: Optional[ImageCache] = None,
        http: Optional[HttpClient] = None,
    ) -> None:
        overrides = {
            k: v
            for k, v in (("generate_images", generate_images), ("max_workers", max_workers))
            if v is not None
        }
        try:
            self.config = RunConfig.model_validate({**settings.run_config().model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigError(f"Invalid PocketEnricher options: {e}") from e
        self.cache = cache or FileImageCache(
            settings.image_dir,
            public_base_url=settings.public_base_url,
            extension=settings.image_extension,
        )
        # images are fetched once; a failure waits for the next run
        self._http = http or HttpClient(timeout=settings.http_timeout, max_retries=1)
        self.resolver = resolver or ImageResolver(
            default_strategies(
                RemoteImageFetcher(self._http),
                ScreenshotRenderer.from_settings(settings),
            )
        )

    async def __aenter__(self) -> "PocketEnricher":
        return self

    async def __aexit__(self, *_) -> None:
        await self._http.close()

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[Snapshot]:
        raw: List[RawItem] = [item async for item in items if isinstance(item, RawItem)]
        logger.info(
            "Enriching %d item(s) (images=%s, workers=%d)",
            len(raw),
            "on" if self.config.generate_images else "off",
            self.config.max_workers,
        )
        enriched = await enrich_items(raw, self.resolver, self.cache, self.config)
        with_image = sum(1 for e in enriched if e.image)
        logger.info("Enriched %d item(s), %d with an image", len(enriched), with_image)
        yield Snapshot(items=enriched)
