"""HTML parsing for OpenGraph, Twitter card and document metadata."""

from __future__ import annotations

import logging
from typing import Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from readability import Document

from .models import LinkMetadata

logger = logging.getLogger("rinku")

_TITLE_PROPERTIES = ("og:title", "twitter:title")
_URL_PROPERTIES = ("og:url",)
_IMAGE_PROPERTIES = (
    "og:image",
    "og:image:url",
    "og:image:secure_url",
    "twitter:image",
    "twitter:image:src",
)
_ICON_RELS = ("apple-touch-icon", "apple-touch-icon-precomposed", "icon", "shortcut icon")


def _meta_content(soup: BeautifulSoup, names: Iterable[str]) -> Optional[str]:
    """Return the first non-empty ``content`` of a property/name meta tag."""
    for name in names:
        for attr in ("property", "name"):
            tag = soup.find("meta", attrs={attr: name})
            if isinstance(tag, Tag):
                content = tag.get("content")
                if isinstance(content, str) and content.strip():
                    return content.strip()
    return None


def _link_href(soup: BeautifulSoup, rel: str) -> Optional[str]:
    wanted = rel.split()
    for tag in soup.find_all("link"):
        rels = [value.lower() for value in (tag.get("rel") or [])]
        if rels == wanted or (len(wanted) == 1 and wanted[0] in rels):
            href = tag.get("href")
            if isinstance(href, str) and href.strip():
                return href.strip()
    return None


def _document_title(html: str, soup: BeautifulSoup) -> Optional[str]:
    if soup.title and soup.title.string and soup.title.string.strip():
        return soup.title.string.strip()
    try:
        title = Document(html).short_title()
    except Exception as exc:  # noqa: BLE001 - readability raises on odd markup
        logger.debug("Readability could not find a title: %s", exc)
        return None
    if not title or not title.strip():
        return None
    return title.strip()


def _absolute(base_url: str, href: Optional[str]) -> Optional[str]:
    if not href or href.startswith("data:"):
        return None
    return urljoin(base_url, href)


def extract_link_metadata(
    html: str, final_url: str, requested_url: Optional[str] = None
) -> LinkMetadata:
    """Extract title, canonical URL and representative image from HTML.

    Relative references resolve against ``final_url`` (after redirects). The
    canonical URL falls back to ``requested_url`` when the page declares none.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = _meta_content(soup, _TITLE_PROPERTIES) or _document_title(html, soup)

    canonical = _meta_content(soup, _URL_PROPERTIES) or _link_href(soup, "canonical")
    url = _absolute(final_url, canonical) or requested_url or final_url

    image_href = _meta_content(soup, _IMAGE_PROPERTIES)
    if not image_href:
        for rel in _ICON_RELS:
            image_href = _link_href(soup, rel)
            if image_href:
                break
    image_url = _absolute(final_url, image_href)

    return LinkMetadata(url=url, title=title, image_url=image_url)
