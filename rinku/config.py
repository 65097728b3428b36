"""Configuration objects and constants for a single invocation."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

DEFAULT_WIDTH = 300.0
DEFAULT_HEIGHT = 150.0
DEFAULT_TIMEOUT = 30.0
CACHE_DIRNAME = "link-previews"
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def user_cache_dir() -> Path:
    """Return the platform user cache directory, honouring overrides."""
    override = os.getenv("RINKU_CACHE_DIR")
    if override:
        return Path(override).expanduser()
    xdg = os.getenv("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg).expanduser()
    if sys.platform == "darwin":
        return Path("~/Library/Caches").expanduser()
    return Path("~/.cache").expanduser()


def default_cache_dir() -> Path:
    return user_cache_dir() / CACHE_DIRNAME


@dataclass
class PreviewConfig:
    """Validated settings threaded through every resolver call."""

    url: str
    cache_enabled: bool = True
    preview: bool = False
    width: float = DEFAULT_WIDTH
    height: float = DEFAULT_HEIGHT
    timeout: float = DEFAULT_TIMEOUT
    verbose: bool = False
    cache_dir: Optional[Path] = None

    @property
    def size(self) -> Tuple[float, float]:
        return (self.width, self.height)

    def resolved_cache_dir(self) -> Path:
        return self.cache_dir if self.cache_dir is not None else default_cache_dir()
