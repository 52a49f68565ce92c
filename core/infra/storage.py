"""
Atomic file writes shared by the image cache and the snapshot sink.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Tuple


def open_temp_beside(target: Path) -> Tuple[BinaryIO, str]:
    """Open a temporary file in *target*'s directory for writing."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".part", dir=target.parent)
    return os.fdopen(fd, "wb"), tmp_name


def discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def atomic_write_bytes(target: Path, data: bytes) -> None:
    """Write *data* so that *target* is either untouched or complete.

    Raises ``OSError`` on failure; the temporary file is cleaned up.
    """
    target = Path(target)
    fh, tmp_name = open_temp_beside(target)
    try:
        with fh:
            fh.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        discard(tmp_name)
        raise
