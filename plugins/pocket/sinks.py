"""pocket.sinks – writes the enriched list to the published JSON snapshot."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from core.config import Settings
from core.errors import SnapshotWriteError
from core.infra.storage import atomic_write_bytes
from core.interfaces import Sink
from core.models import Snapshot

logger = logging.getLogger(__name__)

__all__ = ["SnapshotSink"]


class SnapshotSink(Sink):
    """Transform stage 3 / 3 – replaces the snapshot file with the new list."""

    name = "SnapshotSink"

    def __init__(self, *, settings: Settings, path: Optional[str] = None) -> None:
        self.path = Path(path) if path else settings.snapshot_path

    async def handle(self, item: Any) -> None:
        if not isinstance(item, Snapshot):
            logger.debug("SnapshotSink ignoring %s", type(item).__name__)
            return

        data = json.dumps(item.to_json(), indent=2, ensure_ascii=False)
        try:
            atomic_write_bytes(self.path, data.encode("utf-8"))
        except OSError as e:
            raise SnapshotWriteError(f"Failed writing snapshot {self.path}: {e}") from e
        logger.info("Wrote %d item(s) to %s", len(item.items), self.path)
