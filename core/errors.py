"""
Exception hierarchy for pocket-shelf.

Fatal errors (configuration, source retrieval, snapshot writes) propagate
up to the CLI. Image acquisition errors are raised by the leaf
collaborators and absorbed by the image strategies.
"""

from __future__ import annotations

from typing import Optional


class PocketShelfError(Exception):
    """Base error for all pocket-shelf subsystems."""


class ConfigError(PocketShelfError):
    """Missing or invalid configuration value."""


class SourceError(PocketShelfError):
    """The saved-item source could not be retrieved or decoded."""

    def __init__(self, message: str, *, url: str = "", status: Optional[int] = None):
        self.url = url
        self.status = status
        super().__init__(message)


class ImageAcquisitionError(PocketShelfError):
    """Base for every failure while obtaining an item image."""

    def __init__(self, message: str, *, target: str = ""):
        self.target = target
        super().__init__(message)


class ImageTransportError(ImageAcquisitionError):
    """Network-level failure while downloading an image."""


class ImageStatusError(ImageAcquisitionError):
    """The image host answered with a non-success status."""

    def __init__(self, message: str, *, target: str = "", status: int = 0):
        self.status = status
        super().__init__(message, target=target)


class ImageWriteError(ImageAcquisitionError):
    """Image bytes could not be persisted to the cache directory."""


class RenderError(ImageAcquisitionError):
    """The headless browser failed to navigate or capture a page."""


class SnapshotWriteError(PocketShelfError):
    """The published snapshot file could not be written."""
