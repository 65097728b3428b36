"""Metadata resolution: cache lookup, provider fetch and cache population."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol

import requests

from .cache import CacheStore
from .config import DEFAULT_TIMEOUT, USER_AGENT
from .content import extract_link_metadata
from .errors import CacheMiss, CacheWriteError, ProviderError
from .keys import METADATA_EXTENSION, METADATA_PURPOSE, derive_key
from .models import LinkMetadata

logger = logging.getLogger("rinku")

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class MetadataProvider(Protocol):
    async def fetch(self, url: str) -> LinkMetadata:
        ...


@contextmanager
def suppress_stderr() -> Iterator[None]:
    """Point file descriptor 2 at the null device for the enclosed block.

    Silences direct writes from noisy libraries (including C extensions and
    subprocesses inheriting the descriptor). The original descriptor is
    restored on every exit path.
    """
    sys.stderr.flush()
    original = os.dup(2)
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, 2)
    finally:
        os.close(devnull)
    try:
        yield
    finally:
        sys.stderr.flush()
        os.dup2(original, 2)
        os.close(original)


class HttpMetadataProvider:
    """Fetch a page over HTTP and extract its link preview metadata."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    async def fetch(self, url: str) -> LinkMetadata:
        return await asyncio.to_thread(self._fetch_sync, url)

    def _fetch_sync(self, url: str) -> LinkMetadata:
        try:
            resp = self.session.get(
                url,
                # Bounds the connect and each read; the worker thread is not
                # interrupted by the resolver-level wait_for.
                timeout=(self.timeout, self.timeout),
                allow_redirects=True,
                headers={"Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"},
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ProviderError(f"Failed to fetch {url}: {exc}") from exc

        final_url = resp.url or url
        content_type = resp.headers.get("Content-Type", "").split(";")[0].strip().lower()
        if content_type and content_type not in HTML_CONTENT_TYPES:
            logger.debug("Skipping metadata extraction for %s (%s)", final_url, content_type)
            return LinkMetadata(url=url)
        return extract_link_metadata(resp.text or "", final_url, requested_url=url)


class MetadataResolver:
    """Resolve page metadata, consulting the cache before the provider."""

    def __init__(
        self,
        provider: MetadataProvider,
        store: CacheStore,
        cache_dir: Optional[Path] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        quiet: bool = True,
    ) -> None:
        self.provider = provider
        self.store = store
        self.cache_dir = cache_dir
        self.timeout = timeout
        self.quiet = quiet

    def cache_path(self, url: str) -> Path:
        return derive_key(
            METADATA_PURPOSE,
            url,
            extension=METADATA_EXTENSION,
            cache_dir=self.cache_dir,
        )

    async def resolve(self, url: str) -> LinkMetadata:
        path = self.cache_path(url)
        cached = self._load_cached(path)
        if cached is not None:
            logger.debug("Metadata cache hit for %s", url)
            return cached

        metadata = await self._fetch(url)
        try:
            self.store.write(path, metadata.to_bytes())
        except CacheWriteError as exc:
            logger.debug("Ignoring metadata cache write failure: %s", exc)
        return metadata

    def _load_cached(self, path: Path) -> Optional[LinkMetadata]:
        if not self.store.exists(path):
            return None
        try:
            return LinkMetadata.from_bytes(self.store.read(path))
        except CacheMiss:
            return None
        except ValueError as exc:
            # Covers JSON and UTF-8 decoding errors too.
            logger.debug("Discarding unreadable metadata cache %s: %s", path, exc)
            return None

    async def _fetch(self, url: str) -> LinkMetadata:
        logger.debug("Fetching metadata for %s", url)
        if self.quiet:
            with suppress_stderr():
                return await self._call_provider(url)
        return await self._call_provider(url)

    async def _call_provider(self, url: str) -> LinkMetadata:
        try:
            if self.timeout:
                return await asyncio.wait_for(self.provider.fetch(url), self.timeout)
            return await self.provider.fetch(url)
        except ProviderError:
            raise
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"Timed out after {self.timeout:g}s fetching {url}"
            ) from exc
        except Exception as exc:  # noqa: BLE001 - providers are opaque
            raise ProviderError(str(exc) or exc.__class__.__name__) from exc
