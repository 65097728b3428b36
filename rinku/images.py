"""Representative image download, PNG conversion and caching."""

from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Protocol

import requests
from filetype import guess
from PIL import Image, UnidentifiedImageError

from .cache import CacheStore
from .config import DEFAULT_TIMEOUT, USER_AGENT
from .errors import CacheWriteError
from .keys import IMAGE_PURPOSE, derive_key
from .models import LinkMetadata

logger = logging.getLogger("rinku")

MAX_IMAGE_BYTES = 10 * 1024 * 1024
ALLOWED_IMAGE_TYPES = {"png", "jpg", "gif", "webp", "bmp", "tif", "tiff", "ico"}
ICON_CONTENT_TYPES = {"image/x-icon", "image/vnd.microsoft.icon"}


class ImageError(Exception):
    """The representative image could not be materialized or encoded."""


class ImageMaterializer(Protocol):
    async def materialize(self, handle: str) -> bytes:
        ...


def detect_image_format(data: bytes) -> Optional[str]:
    """Return the sniffed image extension (``jpeg`` reported as ``jpg``)."""
    kind = guess(data)
    if kind is None or not kind.mime.startswith("image/"):
        return None
    return "jpg" if kind.extension == "jpeg" else kind.extension


def sniff_image_type(content_type: Optional[str], data: bytes) -> Optional[str]:
    """Sniff ``data``; trust the header only for favicons the sniffer misses."""
    detected = detect_image_format(data)
    if detected:
        return detected
    mime = (content_type or "").split(";")[0].strip().lower()
    return "ico" if mime in ICON_CONTENT_TYPES else None


def to_png(data: bytes) -> bytes:
    """Re-encode raw image bytes as PNG."""
    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
            if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                image = image.convert("RGBA")
            buffer = BytesIO()
            image.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageError(f"Failed to encode image as PNG: {exc}") from exc
    return buffer.getvalue()


class HttpImageMaterializer:
    """Download an image URL and return its raw bytes."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    async def materialize(self, handle: str) -> bytes:
        return await asyncio.to_thread(self._download, handle)

    def _download(self, handle: str) -> bytes:
        try:
            resp = self.session.get(handle, timeout=(self.timeout, self.timeout))
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ImageError(f"Failed to fetch image {handle}: {exc}") from exc

        content_type = resp.headers.get("Content-Type", "")
        data = resp.content
        if not data:
            raise ImageError(f"Empty response for image {handle}")
        if len(data) > MAX_IMAGE_BYTES:
            raise ImageError(
                f"Image {handle} is larger than {MAX_IMAGE_BYTES} bytes"
            )
        extension = sniff_image_type(content_type, data)
        if not extension or extension not in ALLOWED_IMAGE_TYPES:
            raise ImageError(
                f"Unsupported image type for {handle} (Content-Type={content_type})"
            )
        return data


class ImageResolver:
    """Resolve the cached PNG path for a page's representative image.

    Every failure on this path is soft: it is logged and reported as no
    image, so a broken image never hides the title and URL.
    """

    def __init__(
        self,
        materializer: ImageMaterializer,
        store: CacheStore,
        cache_dir: Optional[Path] = None,
    ) -> None:
        self.materializer = materializer
        self.store = store
        self.cache_dir = cache_dir

    def cache_path(self, url: str) -> Path:
        return derive_key(IMAGE_PURPOSE, url, cache_dir=self.cache_dir)

    async def resolve(self, metadata: LinkMetadata, url: str) -> Optional[Path]:
        if not metadata.image_url:
            return None

        path = self.cache_path(url)
        if self.store.exists(path):
            logger.debug("Image cache hit for %s", url)
            return path

        try:
            raw = await self.materializer.materialize(metadata.image_url)
            self.store.persist(path, to_png(raw))
        except (ImageError, CacheWriteError) as exc:
            logger.warning("Continuing without image for %s: %s", url, exc)
            return None
        except Exception:  # noqa: BLE001 - image failures are never fatal
            logger.warning("Continuing without image for %s", url, exc_info=True)
            return None
        return path
