"""Error taxonomy for build fetching, extraction, and comparison."""

from __future__ import annotations

from typing import Optional


class BuildWatchError(Exception):
    """Base class for failures that abort a comparison."""


class ResourceUnavailable(BuildWatchError):
    """A build index, manifest, asset, or webhook request failed."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else (reason or "request failed")
        super().__init__(f"{url}: {detail}")


class ExtractionNotFound(BuildWatchError):
    """No module in a script asset exported the string table."""


class MalformedAsset(BuildWatchError):
    """A stylesheet or script asset could not be parsed."""
