"""Recovers the string and CSS rule tables of one build from its assets."""

from __future__ import annotations

import asyncio
import logging

from buildwatch.client import BuildsClient
from buildwatch.errors import ExtractionNotFound
from buildwatch.models.build import BuildManifest
from buildwatch.models.changes import ExtractedAssets

from .css import parse_css_rules
from .strings import StringTableExtractor

logger = logging.getLogger(__name__)


class AssetExtractor:
    """Fetches a build's string-bearing script and its stylesheet, then parses both."""

    def __init__(
        self,
        client: BuildsClient,
        strings: StringTableExtractor,
        script_index: int = 3,
    ):
        self.client = client
        self.strings = strings
        self.script_index = script_index

    def _strings_script(self, manifest: BuildManifest) -> str:
        if self.script_index >= len(manifest.root_scripts):
            raise ExtractionNotFound(
                f"Build {manifest.build_hash} has {len(manifest.root_scripts)} root scripts, "
                f"expected one at index {self.script_index}"
            )
        return manifest.root_scripts[self.script_index]

    async def extract(self, manifest: BuildManifest) -> ExtractedAssets:
        script_name = self._strings_script(manifest)
        if not manifest.stylesheet:
            raise ExtractionNotFound(f"Build {manifest.build_hash} has no stylesheet")

        logger.debug(
            "Extracting assets for %s (script=%s, stylesheet=%s)",
            manifest.build_hash, script_name, manifest.stylesheet,
        )
        script_text, stylesheet_text = await asyncio.gather(
            self.client.get_asset(script_name),
            self.client.get_asset(manifest.stylesheet),
        )

        strings = await self.strings.extract(script_text)
        css_rules = parse_css_rules(stylesheet_text)
        logger.info(
            "Build %s: %d strings, %d CSS selectors",
            manifest.build_hash, len(strings), len(css_rules),
        )
        return ExtractedAssets(strings=strings, css_rules=css_rules)
