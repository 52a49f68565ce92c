"""
Core interfaces for pocket-shelf.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, AsyncIterator

from .models import RawItem


class Transform(ABC):
    """Universal transform interface for pipeline stages.

    Every stage of a pipeline (fetch, enrich, publish) implements this
    interface, which is what lets stages be chained from configuration.
    """

    @abstractmethod
    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[Any]:
        """Transform an async iterator of items to another async iterator."""
        ...


class Fetcher(Transform):
    """Abstract base class for source fetchers.

    Fetchers ignore their input stream and yield :class:`RawItem` objects.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this fetcher."""

    @abstractmethod
    async def fetch(self) -> AsyncIterator[RawItem]:
        """Fetch raw items."""

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[RawItem]:
        async for _ in items:
            # the seed only triggers a single fetch
            async for raw_item in self.fetch():
                yield raw_item
            break


class Sink(Transform):
    """Abstract base class for sinks.

    Sinks consume items and yield them unchanged.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this sink."""

    @abstractmethod
    async def handle(self, item: Any) -> None:
        """Handle an item."""

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[Any]:
        async for item in items:
            await self.handle(item)
            yield item


class ImageCache(ABC):
    """Answers "does this item already have an image?" and where it lives.

    The default implementation treats file existence as the only source of
    truth; a metadata-backed cache can replace it without touching the
    enrichment pipeline.
    """

    @abstractmethod
    def path_for(self, item_id: int) -> Path:
        """Deterministic on-disk location for an item's image."""

    @abstractmethod
    def exists(self, item_id: int) -> bool:
        """True when an image for *item_id* is already available."""

    @abstractmethod
    def public_url(self, item_id: int) -> str:
        """Public reference under which the cached image is served."""


class ImageStrategy(ABC):
    """One step of the image fallback chain."""

    name: str = "strategy"

    @abstractmethod
    def applies(self, item: RawItem) -> bool:
        """Whether this strategy should handle *item*."""

    @abstractmethod
    async def attempt(self, item: RawItem, target: Path) -> bool:
        """Try to write an image for *item* to *target*; never raises."""
