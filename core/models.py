"""
Core data models for pocket-shelf.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediaFlag(IntEnum):
    """Upstream tri-state for ``has_image`` / ``has_video``."""

    NONE = 0
    ATTACHED = 1
    IS_CONTENT = 2

    @classmethod
    def coerce(cls, value: Any) -> "MediaFlag":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.NONE


class ContentType(str, Enum):
    ARTICLE = "article"
    IMAGE = "image"
    VIDEO = "video"


class ImageDescriptor(BaseModel):
    """An image the source found attached to a saved item."""

    model_config = ConfigDict(extra="ignore")

    src: str
    image_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    caption: str = ""
    credit: str = ""

    @field_validator("image_id", "caption", "credit", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Any:
        if v is None:
            return v
        return str(v)

    @field_validator("width", "height", mode="before")
    @classmethod
    def _blank_dimension(cls, v: Any) -> Any:
        # upstream sends "0" or "" when unknown
        if v in ("", None):
            return None
        return v


class RawItem(BaseModel):
    """One saved entry exactly as the source returned it."""

    model_config = ConfigDict(extra="ignore")

    item_id: int
    resolved_id: int = 0
    given_url: str = ""
    resolved_url: str = ""
    given_title: str = ""
    resolved_title: str = ""
    excerpt: str = ""
    favorite: int = 0
    status: int = 0
    is_article: int = 0
    has_image: MediaFlag = MediaFlag.NONE
    has_video: MediaFlag = MediaFlag.NONE
    word_count: int = 0
    top_image_url: str = ""
    images: Dict[str, ImageDescriptor] = Field(default_factory=dict)
    sort_id: int = 0

    @field_validator("has_image", "has_video", mode="before")
    @classmethod
    def _coerce_flag(cls, v: Any) -> MediaFlag:
        return MediaFlag.coerce(v)

    @field_validator("resolved_id", "favorite", "status", "is_article", "word_count", mode="before")
    @classmethod
    def _coerce_int(cls, v: Any) -> int:
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0

    @field_validator(
        "given_url", "resolved_url", "given_title", "resolved_title", "excerpt", "top_image_url",
        mode="before",
    )
    @classmethod
    def _none_to_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("images", mode="before")
    @classmethod
    def _empty_images(cls, v: Any) -> Any:
        # PHP-style empty collections arrive as []
        if not v:
            return {}
        if isinstance(v, list):
            return {str(i): img for i, img in enumerate(v)}
        return v

    # ------------------------------------------------------------------ #
    @property
    def title(self) -> str:
        return self.resolved_title or self.given_title

    @property
    def url(self) -> str:
        return self.resolved_url or self.given_url

    @property
    def content_type(self) -> ContentType:
        # image wins when both flags claim the item
        if self.has_image == MediaFlag.IS_CONTENT:
            return ContentType.IMAGE
        if self.has_video == MediaFlag.IS_CONTENT:
            return ContentType.VIDEO
        return ContentType.ARTICLE

    def image_sources(self) -> List[str]:
        """Attached image sources in upstream order."""
        return [img.src for img in self.images.values() if img.src]


class RetrieveResult(BaseModel):
    """Envelope of a retrieve call: the item mapping plus batch metadata."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    items: Dict[str, RawItem] = Field(default_factory=dict, alias="list")
    status: int = 0
    complete: Optional[int] = None
    since: Optional[int] = None
    error: Optional[str] = None

    @field_validator("items", mode="before")
    @classmethod
    def _empty_list(cls, v: Any) -> Any:
        if not v:
            return {}
        return v


class EnrichedItem(BaseModel):
    """The published representation of one saved item."""

    model_config = ConfigDict(frozen=True)

    item_id: int
    title: str
    url: str
    excerpt: str
    type: ContentType
    sort_id: int
    image: str = ""

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class Snapshot(BaseModel):
    """Ordered list of enriched items produced by one generation run."""

    items: List[EnrichedItem] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def to_json(self) -> List[Dict[str, Any]]:
        return [item.to_json() for item in self.items]
