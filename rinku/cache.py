"""File-based cache store keyed by paths from :mod:`rinku.keys`."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from .errors import CacheMiss, CacheWriteError

logger = logging.getLogger("rinku")


class CacheStore:
    """Read-through/write-through store over whole files.

    A disabled store never serves entries and never persists them. Writes
    land in a temporary file beside the target and are renamed into place,
    so concurrent writers of the same key leave a complete file behind
    (last writer wins).
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def exists(self, path: Path) -> bool:
        return self.enabled and Path(path).is_file()

    def read(self, path: Path) -> bytes:
        if not self.enabled:
            raise CacheMiss(str(path))
        try:
            return Path(path).read_bytes()
        except FileNotFoundError as exc:
            raise CacheMiss(str(path)) from exc
        except OSError as exc:
            logger.debug("Unreadable cache entry %s: %s", path, exc)
            raise CacheMiss(str(path)) from exc

    def write(self, path: Path, data: bytes) -> None:
        if not self.enabled:
            return
        write_file(path, data)

    def persist(self, path: Path, data: bytes) -> None:
        """Write an artifact the response will point at, even when disabled.

        A disabled store still never reads the entry back.
        """
        write_file(path, data)


def write_file(path: Path, data: bytes) -> None:
    """Atomically create or replace ``path`` with ``data``."""
    target = Path(path)
    try:
        fd, temp_path = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.stem[:16]}-", suffix=".tmp"
        )
    except OSError as exc:
        raise CacheWriteError(f"Failed to write {target}: {exc}") from exc
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_path, target)
    except OSError as exc:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise CacheWriteError(f"Failed to write {target}: {exc}") from exc
    logger.debug("Wrote %d bytes to %s", len(data), target)
