"""Tests for the script sandbox and the Playwright runtime helpers."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from buildwatch.errors import MalformedAsset
from buildwatch.utils.browser import (
    DEFAULT_USER_AGENT,
    create_request_context,
    create_sandbox_context,
    launch_sandbox_browser,
)
from buildwatch.utils.sandbox import ChunkSession, ScriptSandbox

MARKER = "INTERACTION_REQUIRED_TITLE"


def _context_with_page(page) -> MagicMock:
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    return context


# ============================================================================
# ScriptSandbox
# ============================================================================


class TestScriptSandbox:
    """Tests for ScriptSandbox.open_chunk() and ChunkSession."""

    @pytest.mark.asyncio
    async def test_open_chunk_yields_module_sources(self, mock_sandbox_page):
        mock_sandbox_page.evaluate.return_value = {"error": None, "modules": ["function(){}", ""]}
        sandbox = ScriptSandbox(_context_with_page(mock_sandbox_page), timeout_ms=1000)

        async with sandbox.open_chunk("chunk source") as chunk:
            assert chunk.module_sources == ["function(){}", ""]

        script, arg = mock_sandbox_page.evaluate.call_args.args
        assert arg == "chunk source"
        mock_sandbox_page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_chunk_that_throws_is_malformed(self, mock_sandbox_page):
        mock_sandbox_page.evaluate.return_value = {"error": "Unexpected token", "modules": []}
        sandbox = ScriptSandbox(_context_with_page(mock_sandbox_page))

        with pytest.raises(MalformedAsset):
            async with sandbox.open_chunk("not javascript {"):
                pass
        mock_sandbox_page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_page_crash_is_malformed(self, mock_sandbox_page):
        mock_sandbox_page.evaluate.side_effect = PlaywrightError("Target crashed")
        sandbox = ScriptSandbox(_context_with_page(mock_sandbox_page))

        with pytest.raises(MalformedAsset):
            async with sandbox.open_chunk("while(true){}"):
                pass
        mock_sandbox_page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_evaluation_timeout_is_malformed(self, mock_sandbox_page):
        async def _hang(*args):
            await asyncio.sleep(10)

        mock_sandbox_page.evaluate.side_effect = _hang
        sandbox = ScriptSandbox(_context_with_page(mock_sandbox_page), timeout_ms=10)

        with pytest.raises(MalformedAsset):
            async with sandbox.open_chunk("while(true){}"):
                pass

    @pytest.mark.asyncio
    async def test_module_exports_returned(self, mock_sandbox_page):
        mock_sandbox_page.evaluate.return_value = {"error": None, "exports": {MARKER: "Title"}}
        chunk = ChunkSession(mock_sandbox_page, ["function(e){}"], timeout_ms=1000)

        assert await chunk.evaluate_module(0, MARKER) == {MARKER: "Title"}
        _, arg = mock_sandbox_page.evaluate.call_args.args
        assert arg == [0, MARKER]

    @pytest.mark.asyncio
    async def test_throwing_module_is_a_rejection(self, mock_sandbox_page):
        mock_sandbox_page.evaluate.return_value = {
            "error": "n is not a function", "exports": None,
        }
        chunk = ChunkSession(mock_sandbox_page, ["function(e,t,n){n(1)}"], timeout_ms=1000)

        assert await chunk.evaluate_module(0, MARKER) is None

    @pytest.mark.asyncio
    async def test_module_without_marker(self, mock_sandbox_page):
        mock_sandbox_page.evaluate.return_value = {"error": None, "exports": None}
        chunk = ChunkSession(mock_sandbox_page, ["function(e){}"], timeout_ms=1000)

        assert await chunk.evaluate_module(0, MARKER) is None


# ============================================================================
# Browser helpers
# ============================================================================


class TestBrowserHelpers:
    """Tests for the Playwright context factories."""

    @pytest.mark.asyncio
    async def test_sandbox_context_is_offline(self):
        mock_browser = AsyncMock()
        mock_context = MagicMock()
        mock_context.route = AsyncMock()
        mock_browser.new_context = AsyncMock(return_value=mock_context)

        context = await create_sandbox_context(mock_browser, timeout_ms=5000)

        assert context is mock_context
        call_kwargs = mock_browser.new_context.call_args.kwargs
        assert call_kwargs["offline"] is True
        assert call_kwargs["service_workers"] == "block"
        mock_context.route.assert_awaited_once()
        assert mock_context.route.call_args.args[0] == "**/*"
        mock_context.set_default_timeout.assert_called_once_with(5000)

    @pytest.mark.asyncio
    async def test_request_context_default_user_agent(self):
        mock_playwright = MagicMock()
        mock_playwright.request.new_context = AsyncMock()

        await create_request_context(mock_playwright, timeout_ms=1234)

        call_kwargs = mock_playwright.request.new_context.call_args.kwargs
        assert call_kwargs["user_agent"] == DEFAULT_USER_AGENT
        assert call_kwargs["timeout"] == 1234

    @pytest.mark.asyncio
    async def test_request_context_custom_user_agent(self):
        mock_playwright = MagicMock()
        mock_playwright.request.new_context = AsyncMock()

        await create_request_context(mock_playwright, user_agent="buildwatch/1.0")

        assert mock_playwright.request.new_context.call_args.kwargs["user_agent"] == "buildwatch/1.0"

    @pytest.mark.asyncio
    async def test_launch_sandbox_browser_headless(self):
        mock_playwright = MagicMock()
        mock_playwright.chromium.launch = AsyncMock()

        await launch_sandbox_browser(mock_playwright)

        assert mock_playwright.chromium.launch.call_args.kwargs["headless"] is True
