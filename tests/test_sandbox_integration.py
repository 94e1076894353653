"""Runs the chunk sandbox against real webpack-style chunks in headless Chromium.

Skipped when no Chromium build is installed for Playwright.
"""

from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from buildwatch.errors import ExtractionNotFound, MalformedAsset
from buildwatch.extractor.strings import StringTableExtractor
from buildwatch.utils.browser import create_sandbox_context, launch_sandbox_browser
from buildwatch.utils.sandbox import ScriptSandbox

pytestmark = pytest.mark.integration

JSONP_CHUNK = """
(this.webpackJsonp = this.webpackJsonp || []).push([[3], [
  function (e, t, n) { e.exports = { unrelated: true }; },
  function (e, t, n) {
    var shape = { INTERACTION_REQUIRED_TITLE: 0 };
    throw new Error("requires the webpack runtime");
  },
  function (e, t, n) {
    var decoy = { INTERACTION_REQUIRED_TITLE: "not exported" };
    e.exports = decoy.missing;
  },
  function (e, t, n) {
    e.exports = {
      INTERACTION_REQUIRED_TITLE: "Interaction Required",
      MEMBER_COUNT: 3,
      NESTED: { a: 1 },
    };
  },
  function (e, t, n) {
    e.exports = { INTERACTION_REQUIRED_TITLE: "Second Table" };
  },
]]);
"""

CHUNK_PUSH_CHUNK = """
(self.webpackChunkdiscord_app = self.webpackChunkdiscord_app || []).push([[7], {
  101: function (e) { e.exports = { greeting: "hi" }; },
  202: function (e) {
    e.exports = { "INTERACTION_REQUIRED_TITLE": "Interaction Required", HELLO: "Hello" };
  },
}]);
"""


@asynccontextmanager
async def _sandbox():
    async with async_playwright() as playwright:
        try:
            browser = await launch_sandbox_browser(playwright)
        except PlaywrightError as e:
            pytest.skip(f"Chromium is not installed: {e}")
        try:
            context = await create_sandbox_context(browser, timeout_ms=10000)
            yield ScriptSandbox(context, timeout_ms=10000)
        finally:
            await browser.close()


class TestScriptSandbox:
    """ScriptSandbox against a real browser page."""

    @pytest.mark.asyncio
    async def test_lists_module_sources_of_jsonp_chunk(self):
        async with _sandbox() as sandbox:
            async with sandbox.open_chunk(JSONP_CHUNK) as chunk:
                assert len(chunk.module_sources) == 5
                assert "unrelated" in chunk.module_sources[0]

    @pytest.mark.asyncio
    async def test_throwing_module_is_rejected(self):
        async with _sandbox() as sandbox:
            async with sandbox.open_chunk(JSONP_CHUNK) as chunk:
                assert await chunk.evaluate_module(1, "INTERACTION_REQUIRED_TITLE") is None
                assert await chunk.evaluate_module(2, "INTERACTION_REQUIRED_TITLE") is None

    @pytest.mark.asyncio
    async def test_non_string_exports_are_stringified(self):
        async with _sandbox() as sandbox:
            async with sandbox.open_chunk(JSONP_CHUNK) as chunk:
                exports = await chunk.evaluate_module(3, "INTERACTION_REQUIRED_TITLE")

        assert exports == {
            "INTERACTION_REQUIRED_TITLE": "Interaction Required",
            "MEMBER_COUNT": "3",
            "NESTED": '{"a":1}',
        }

    @pytest.mark.asyncio
    async def test_chunk_that_throws_is_malformed(self):
        async with _sandbox() as sandbox:
            with pytest.raises(MalformedAsset):
                async with sandbox.open_chunk("throw new Error('boom');"):
                    pass


class TestStringTableExtraction:
    """StringTableExtractor end to end through the sandbox."""

    @pytest.mark.asyncio
    async def test_first_matching_module_wins(self):
        async with _sandbox() as sandbox:
            extractor = StringTableExtractor(sandbox, module_skip=0)
            table = await extractor.extract(JSONP_CHUNK)

        assert table["INTERACTION_REQUIRED_TITLE"] == "Interaction Required"

    @pytest.mark.asyncio
    async def test_object_keyed_chunk_on_global(self):
        async with _sandbox() as sandbox:
            extractor = StringTableExtractor(sandbox, module_skip=0)
            table = await extractor.extract(CHUNK_PUSH_CHUNK)

        assert table == {"INTERACTION_REQUIRED_TITLE": "Interaction Required", "HELLO": "Hello"}

    @pytest.mark.asyncio
    async def test_skipped_modules_are_not_searched(self):
        async with _sandbox() as sandbox:
            extractor = StringTableExtractor(sandbox, module_skip=5)
            with pytest.raises(ExtractionNotFound):
                await extractor.extract(JSONP_CHUNK)
