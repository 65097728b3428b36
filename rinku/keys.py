"""Cache key derivation: (purpose, url, dimensions) -> cache file path."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional, Tuple

from .config import default_cache_dir
from .errors import DirectoryCreationError, EncodingError

METADATA_PURPOSE = "metadata-"
IMAGE_PURPOSE = "image-"
RENDER_PURPOSE = "render-"

METADATA_EXTENSION = "json"
IMAGE_EXTENSION = "png"

Dimensions = Tuple[float, float]


def ensure_cache_dir(cache_dir: Optional[Path] = None) -> Path:
    """Create the cache directory (with parents) and return it."""
    target = Path(cache_dir) if cache_dir is not None else default_cache_dir()
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryCreationError(
            f"Failed to create cache directory {target}: {exc}"
        ) from exc
    return target


def format_dimension(value: float) -> str:
    """Exact text for a dimension; integral values drop the fraction."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def composite_key(purpose: str, url: str, dimensions: Optional[Dimensions] = None) -> str:
    composite = purpose + url
    if dimensions is not None:
        width, height = dimensions
        composite += f"-{format_dimension(width)}x{format_dimension(height)}"
    return composite


def digest(composite: str) -> str:
    try:
        data = composite.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError(f"Failed to encode cache key: {exc}") from exc
    return hashlib.sha256(data).hexdigest()


def derive_key(
    purpose: str,
    url: str,
    dimensions: Optional[Dimensions] = None,
    extension: str = IMAGE_EXTENSION,
    cache_dir: Optional[Path] = None,
) -> Path:
    """Return ``<cache-dir>/<purpose><sha256>.<extension>`` for the tuple.

    The purpose is hashed together with the URL and also kept as the
    filename prefix, so entries for different purposes never share a path.
    """
    hex_digest = digest(composite_key(purpose, url, dimensions))
    directory = ensure_cache_dir(cache_dir)
    return directory / f"{purpose}{hex_digest}.{extension}"
