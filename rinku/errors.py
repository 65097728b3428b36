"""Exception hierarchy surfaced to callers as ``{"error": ...}`` payloads."""

from __future__ import annotations


class RinkuError(Exception):
    """Base class for every failure reported back to the caller."""


class ValidationError(RinkuError):
    """Command-line input was rejected before any I/O happened."""


class DirectoryCreationError(RinkuError):
    """The cache directory could not be created."""


class EncodingError(RinkuError):
    """A cache key could not be encoded as UTF-8."""


class ProviderError(RinkuError):
    """The metadata provider failed to fetch or parse the page."""


class RenderCaptureError(RinkuError):
    """The card renderer produced no drawable output."""


class RenderEncodeError(RinkuError):
    """The rendered card could not be encoded as PNG."""


class CacheMiss(Exception):
    """No usable cache entry exists for a key."""


class CacheWriteError(RinkuError):
    """A cache entry could not be persisted.

    Fatal only where the response must point at the written file.
    """
