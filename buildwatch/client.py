"""Builds API and asset host client on top of a Playwright request context."""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import APIRequestContext, APIResponse
from playwright.async_api import Error as PlaywrightError
from pydantic import ValidationError

from buildwatch.errors import MalformedAsset, ResourceUnavailable
from buildwatch.models.build import BuildIndexPage, BuildManifest
from buildwatch.models.config import WatcherConfig

logger = logging.getLogger(__name__)


class BuildsClient:
    """Fetches the build index, build manifests, and raw script/style assets."""

    def __init__(self, request: APIRequestContext, config: WatcherConfig):
        self.request = request
        self.config = config

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> APIResponse:
        logger.debug("GET %s %s", url, params or "")
        try:
            response = await self.request.get(
                url, params=params, timeout=self.config.request_timeout_ms,
            )
        except PlaywrightError as e:
            raise ResourceUnavailable(url, reason=str(e)) from e
        if not response.ok:
            raise ResourceUnavailable(url, status=response.status)
        return response

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._get(url, params)
        try:
            return await response.json()
        except (PlaywrightError, ValueError) as e:
            raise MalformedAsset(f"{url}: response is not JSON") from e

    async def get_index(self, page: int = 1, size: int = 2) -> BuildIndexPage:
        """Return one page of the build index, newest build first."""
        url = f"{self.config.builds_api_url}/raw"
        data = await self._get_json(url, {"page": page, "size": size})
        try:
            return BuildIndexPage.model_validate(data)
        except ValidationError as e:
            raise MalformedAsset(f"{url}: unexpected build index shape") from e

    async def get_manifest(self, build_hash: str) -> BuildManifest:
        url = f"{self.config.builds_api_url}/{build_hash}/raw"
        data = await self._get_json(url)
        try:
            return BuildManifest.model_validate(data)
        except ValidationError as e:
            raise MalformedAsset(f"{url}: unexpected manifest shape") from e

    async def get_asset(self, name: str) -> str:
        """Download a versioned script or stylesheet asset as text."""
        url = f"{self.config.assets_url}/{name.lstrip('/')}"
        response = await self._get(url)
        try:
            text = await response.text()
        except PlaywrightError as e:
            raise ResourceUnavailable(url, reason=str(e)) from e
        logger.debug("Fetched %s (%d chars)", url, len(text))
        return text
