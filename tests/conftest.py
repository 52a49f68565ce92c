"""Shared fixtures: isolated settings, raw-item factory and fake image collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from core.config import RunConfig, Settings
from core.models import RawItem
from plugins.pocket.images import FileImageCache, ImageResolver, default_strategies


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        access_token="token-123",
        consumer_key="key-456",
        image_dir=tmp_path / "images",
        cache_dir=tmp_path / "cache",
        generate_screenshots=True,
        source_max_retries=1,
        http_timeout=5.0,
    )


@pytest.fixture
def cache(settings: Settings) -> FileImageCache:
    return FileImageCache(settings.image_dir, public_base_url="http://localhost:4000")


@pytest.fixture
def run_config() -> RunConfig:
    return RunConfig(generate_images=True, output_logs=False, max_workers=4)


def make_item(item_id: int = 1, **overrides: Any) -> RawItem:
    """A RawItem shaped like a ``detailType=complete`` entry."""
    data: Dict[str, Any] = {
        "item_id": str(item_id),
        "resolved_id": str(item_id),
        "given_url": f"https://example.com/given/{item_id}",
        "resolved_url": f"https://example.com/resolved/{item_id}",
        "given_title": f"Given {item_id}",
        "resolved_title": f"Resolved {item_id}",
        "excerpt": f"Excerpt {item_id}",
        "has_image": "0",
        "has_video": "0",
        "sort_id": item_id,
    }
    data.update(overrides)
    return RawItem.model_validate(data)


@pytest.fixture
def item_factory():
    return make_item


class FakeImageFetcher:
    """Stands in for RemoteImageFetcher; records calls, writes a tiny file."""

    def __init__(self, fail_for: Optional[set] = None) -> None:
        self.calls: List[tuple] = []
        self.fail_for = fail_for or set()

    async def fetch(self, src: str, target: Path) -> None:
        from core.errors import ImageStatusError

        self.calls.append((src, Path(target)))
        if not src or src in self.fail_for:
            raise ImageStatusError(f"404 for {src}", target=str(target), status=404)
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        Path(target).write_bytes(b"\x89PNG fetched")


class FakeRenderer:
    """Stands in for ScreenshotRenderer."""

    def __init__(self, fail_for: Optional[set] = None) -> None:
        self.calls: List[tuple] = []
        self.fail_for = fail_for or set()

    async def render(self, url: str, target: Path) -> None:
        from core.errors import RenderError

        self.calls.append((url, Path(target)))
        if not url or url in self.fail_for:
            raise RenderError(f"navigation failed for {url}", target=str(target))
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        Path(target).write_bytes(b"\x89PNG rendered")


@pytest.fixture
def fake_fetcher() -> FakeImageFetcher:
    return FakeImageFetcher()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def resolver(fake_fetcher: FakeImageFetcher, fake_renderer: FakeRenderer) -> ImageResolver:
    return ImageResolver(default_strategies(fake_fetcher, fake_renderer))
