"""Data models shared by the resolvers."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class LinkMetadata:
    """Link preview metadata for a page.

    ``image_url`` is the opaque handle the image materializer resolves to
    raw bytes; here it is the absolute URL of the representative image.
    """

    url: str
    title: Optional[str] = None
    image_url: Optional[str] = None

    def to_bytes(self) -> bytes:
        return json.dumps(asdict(self), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "LinkMetadata":
        """Deserialize a cached record, raising ``ValueError`` when malformed."""
        payload = json.loads(data.decode("utf-8"))
        if not isinstance(payload, dict):
            raise ValueError("cached metadata is not an object")
        url = payload.get("url")
        if not isinstance(url, str) or not url:
            raise ValueError("cached metadata has no url")
        title = payload.get("title")
        image_url = payload.get("image_url")
        if title is not None and not isinstance(title, str):
            raise ValueError("cached metadata title is not text")
        if image_url is not None and not isinstance(image_url, str):
            raise ValueError("cached metadata image_url is not text")
        return cls(url=url, title=title, image_url=image_url)
