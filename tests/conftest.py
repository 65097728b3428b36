import asyncio
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from PIL import Image

from rinku.cache import CacheStore
from rinku.errors import ProviderError
from rinku.models import LinkMetadata


def make_png(size: Tuple[int, int] = (4, 4), color=(200, 30, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(size: Tuple[int, int] = (4, 4)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, (10, 120, 10)).save(buffer, format="JPEG")
    return buffer.getvalue()


class FakeProvider:
    """Metadata provider that records calls and returns canned metadata."""

    def __init__(
        self,
        metadata: Optional[LinkMetadata] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.metadata = metadata
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    async def fetch(self, url: str) -> LinkMetadata:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.metadata or LinkMetadata(url=url, title="Example Domain")


class FakeMaterializer:
    def __init__(self, data: Optional[bytes] = None, error: Optional[Exception] = None) -> None:
        self.data = data if data is not None else make_png()
        self.error = error
        self.calls: List[str] = []

    async def materialize(self, handle: str) -> bytes:
        self.calls.append(handle)
        if self.error is not None:
            raise self.error
        return self.data


class FakeCardRenderer:
    def __init__(self, data: Optional[bytes] = None, error: Optional[Exception] = None) -> None:
        self.data = make_png((30, 15)) if data is None else data
        self.error = error
        self.calls: List[Tuple[LinkMetadata, Tuple[float, float]]] = []

    async def render(self, metadata: LinkMetadata, size: Tuple[float, float]) -> bytes:
        self.calls.append((metadata, size))
        if self.error is not None:
            raise self.error
        return self.data


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "link-previews"


@pytest.fixture
def store() -> CacheStore:
    return CacheStore(enabled=True)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def failing_provider() -> FakeProvider:
    return FakeProvider(error=ProviderError("The Internet connection appears to be offline."))


@pytest.fixture
def materializer() -> FakeMaterializer:
    return FakeMaterializer()


@pytest.fixture
def card_renderer() -> FakeCardRenderer:
    return FakeCardRenderer()
