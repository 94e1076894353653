"""Publishes rendered build messages to a Discord channel through a webhook."""

from __future__ import annotations

import logging

from playwright.async_api import APIRequestContext
from playwright.async_api import Error as PlaywrightError

from buildwatch.errors import ResourceUnavailable
from buildwatch.models.build import BuildManifest
from buildwatch.models.changes import BuildDifferences

from .renderer import ChatMessage, MessageRenderer

logger = logging.getLogger(__name__)


class DiscordWebhookNotifier:
    """Sends each rendered message as one webhook execution, in order."""

    def __init__(self, request: APIRequestContext, webhook_url: str, renderer: MessageRenderer):
        if not webhook_url:
            raise ValueError("A webhook URL is required to publish notifications")
        self.request = request
        self.webhook_url = webhook_url
        self.renderer = renderer

    async def send(self, message: ChatMessage) -> None:
        payload = message.to_payload()
        payload["allowed_mentions"] = {"parse": ["roles"]}
        try:
            response = await self.request.post(
                self.webhook_url, params={"wait": "true"}, data=payload,
            )
        except PlaywrightError as e:
            raise ResourceUnavailable(self.webhook_url, reason=str(e)) from e
        if not response.ok:
            logger.error("Webhook rejected message: %s", await response.text())
            raise ResourceUnavailable(self.webhook_url, status=response.status)

    async def publish(self, build: BuildManifest, differences: BuildDifferences) -> None:
        messages = self.renderer.render(build, differences)
        logger.info("Publishing %d messages for build %s", len(messages), build.build_hash)
        for message in messages:
            await self.send(message)
