"""Preview card rendering with Playwright and the render cache."""

from __future__ import annotations

import base64
import html
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Protocol, Tuple
from urllib.parse import urlparse

from PIL import Image, UnidentifiedImageError
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .cache import CacheStore
from .config import DEFAULT_TIMEOUT
from .errors import RenderCaptureError, RenderEncodeError, RinkuError
from .images import ImageMaterializer, detect_image_format
from .keys import RENDER_PURPOSE, derive_key
from .metadata import MetadataResolver
from .models import LinkMetadata

logger = logging.getLogger("rinku")

Size = Tuple[float, float]

_CARD_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
  html, body {{ margin: 0; padding: 0; width: {width}px; height: {height}px; overflow: hidden; }}
  body {{ font-family: -apple-system, "Helvetica Neue", Arial, sans-serif; background: transparent; }}
  .card {{ box-sizing: border-box; width: 100%; height: 100%; display: flex; flex-direction: column;
           border-radius: 12px; overflow: hidden; background: #f2f2f7; border: 1px solid #d1d1d6; }}
  .hero {{ flex: 1 1 auto; min-height: 0; background: #e5e5ea center / cover no-repeat; }}
  .caption {{ flex: 0 0 auto; padding: 8px 12px; }}
  .title {{ font-size: 13px; font-weight: 600; color: #1c1c1e; overflow: hidden;
            display: -webkit-box; -webkit-line-clamp: 2; -webkit-box-orient: vertical; }}
  .host {{ font-size: 11px; color: #8e8e93; margin-top: 2px; white-space: nowrap;
           overflow: hidden; text-overflow: ellipsis; }}
</style>
</head>
<body>
<div class="card">
  {hero}
  <div class="caption">
    <div class="title">{title}</div>
    <div class="host">{host}</div>
  </div>
</div>
</body>
</html>
"""


class CardRenderer(Protocol):
    async def render(self, metadata: LinkMetadata, size: Size) -> bytes:
        ...


def build_card_html(
    metadata: LinkMetadata,
    size: Size,
    image_data: Optional[bytes] = None,
) -> str:
    """Return a self-contained HTML document for the preview card."""
    width, height = size
    host = urlparse(metadata.url).netloc or metadata.url
    hero = ""
    if image_data:
        fmt = detect_image_format(image_data) or "png"
        mime = "image/jpeg" if fmt == "jpg" else f"image/{fmt}"
        encoded = base64.b64encode(image_data).decode("ascii")
        hero = f'<div class="hero" style="background-image: url(\'data:{mime};base64,{encoded}\')"></div>'
    return _CARD_TEMPLATE.format(
        width=f"{width:g}",
        height=f"{height:g}",
        hero=hero,
        title=html.escape(metadata.title or host),
        host=html.escape(host),
    )


def ensure_png(data: bytes) -> bytes:
    """Validate that ``data`` is a PNG image, raising ``RenderEncodeError``."""
    try:
        with Image.open(BytesIO(data)) as image:
            fmt = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise RenderEncodeError(f"Failed to create PNG data: {exc}") from exc
    if fmt != "PNG":
        raise RenderEncodeError(f"Failed to create PNG data: got {fmt}")
    return data


class PlaywrightCardRenderer:
    """Draw the card in headless Chromium and capture it as PNG.

    All rendering happens on the event loop that drives the invocation, so
    the browser is only ever touched from one thread.
    """

    def __init__(
        self,
        materializer: Optional[ImageMaterializer] = None,
        timeout: float = DEFAULT_TIMEOUT,
        device_scale_factor: float = 1.0,
    ) -> None:
        self.materializer = materializer
        self.timeout = timeout
        self.device_scale_factor = device_scale_factor

    async def _load_image(self, metadata: LinkMetadata) -> Optional[bytes]:
        if not metadata.image_url or self.materializer is None:
            return None
        try:
            return await self.materializer.materialize(metadata.image_url)
        except Exception as exc:  # noqa: BLE001 - the card renders without a hero image
            logger.warning("Rendering card without image for %s: %s", metadata.url, exc)
            return None

    async def render(self, metadata: LinkMetadata, size: Size) -> bytes:
        width, height = size
        viewport = {"width": max(1, round(width)), "height": max(1, round(height))}
        image_data = await self._load_image(metadata)
        document = build_card_html(metadata, size, image_data)

        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(headless=True)
                try:
                    page = await browser.new_page(
                        viewport=viewport,
                        device_scale_factor=self.device_scale_factor,
                    )
                    page.set_default_timeout(self.timeout * 1000)
                    await page.set_content(document, wait_until="load")
                    data = await page.screenshot(type="png", omit_background=True)
                finally:
                    await browser.close()
        except PlaywrightError as exc:
            raise RenderCaptureError(f"Failed to capture view: {exc}") from exc

        if not data:
            raise RenderCaptureError("Failed to capture view")
        return ensure_png(data)


class PreviewRenderer:
    """Resolve a rendered card path, short-circuiting on a render cache hit."""

    def __init__(
        self,
        metadata_resolver: MetadataResolver,
        card_renderer: CardRenderer,
        store: CacheStore,
        cache_dir: Optional[Path] = None,
    ) -> None:
        self.metadata_resolver = metadata_resolver
        self.card_renderer = card_renderer
        self.store = store
        self.cache_dir = cache_dir

    def cache_path(self, url: str, size: Size) -> Path:
        return derive_key(RENDER_PURPOSE, url, dimensions=size, cache_dir=self.cache_dir)

    async def render(self, url: str, size: Size) -> Path:
        path = self.cache_path(url, size)
        if self.store.exists(path):
            logger.debug("Render cache hit for %s at %gx%g", url, *size)
            return path

        metadata = await self.metadata_resolver.resolve(url)
        try:
            data = await self.card_renderer.render(metadata, size)
        except RinkuError:
            raise
        except Exception as exc:  # noqa: BLE001 - renderers are opaque
            raise RenderCaptureError(f"Failed to capture view: {exc}") from exc
        if not data:
            raise RenderCaptureError("Failed to capture view")
        self.store.persist(path, data)
        logger.debug("Rendered %s to %s", url, path)
        return path
