"""Pytest configuration and shared fixtures."""

from contextlib import asynccontextmanager
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from playwright.async_api import APIRequestContext, APIResponse

from buildwatch.models.build import (
    BuildManifest,
    Experiment,
    ExperimentTreatment,
)
from buildwatch.models.config import NotificationConfig, WatcherConfig


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def notification_config() -> NotificationConfig:
    """Create a test notification configuration."""
    return NotificationConfig(
        webhook_url="https://discord.example/api/webhooks/1/token",
        global_env_role_id="111",
        strings_role_id="222",
        experiments_role_id="333",
        css_role_id="444",
        embeds_per_message=10,
    )


@pytest.fixture
def watcher_config(notification_config: NotificationConfig) -> WatcherConfig:
    """Create a test watcher configuration."""
    return WatcherConfig(
        builds_api_url="https://builds.example/api/builds",
        assets_url="https://cdn.example/assets",
        poll_interval_seconds=0.01,
        strings_script_index=1,
        strings_module_skip=0,
        notifications=notification_config,
    )


# ============================================================================
# Build Fixtures
# ============================================================================


@pytest.fixture
def experiment() -> Experiment:
    """Create a test experiment."""
    return Experiment(
        id="2021-03_stage_discovery",
        kind="user",
        label="Stage Discovery",
        defaultConfig={"enabled": False},
        treatments=[
            ExperimentTreatment(id=1, label="Enabled", config={"enabled": True}),
        ],
    )


@pytest.fixture
def manifest_factory() -> Callable[..., BuildManifest]:
    """Return a factory building manifests with sensible defaults."""

    def _make(
        build_hash: str = "aaaa1111",
        build_number: str = "80000",
        global_envs: Optional[dict[str, Any]] = None,
        experiments: Optional[list[Experiment]] = None,
        csp: str = "default-src 'self'",
        root_scripts: Optional[list[str]] = None,
        stylesheet: str = "style.css",
    ) -> BuildManifest:
        return BuildManifest(
            buildHash=build_hash,
            buildNumber=build_number,
            buildId=f"id-{build_hash}",
            dateCreated="2021-03-14T12:00:00+00:00",
            globalEnvs=global_envs if global_envs is not None else {"API_VERSION": "8"},
            experiments=experiments or [],
            csp=csp,
            rootScripts=root_scripts or [f"{build_hash}-0.js", f"{build_hash}-1.js"],
            stylesheet=stylesheet,
        )

    return _make


@pytest.fixture
def newer_manifest(manifest_factory) -> BuildManifest:
    return manifest_factory(build_hash="bbbb2222", build_number="80001")


@pytest.fixture
def older_manifest(manifest_factory) -> BuildManifest:
    return manifest_factory(build_hash="aaaa1111", build_number="80000")


# ============================================================================
# Playwright Mocks
# ============================================================================


def make_response(status: int = 200, json_data: Any = None, text: str = "") -> Mock:
    """Build a mock APIResponse."""
    response = Mock(spec=APIResponse)
    response.status = status
    response.ok = 200 <= status < 300
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)
    return response


@pytest.fixture
def mock_request() -> AsyncMock:
    """Create a mock Playwright APIRequestContext."""
    request = AsyncMock(spec=APIRequestContext)
    request.get = AsyncMock()
    request.post = AsyncMock(return_value=make_response(200, {"id": "1"}))
    return request


class FakeChunk:
    """Stand-in for a loaded chunk: module sources plus scripted exports.

    ``exports`` maps module index to the exports dict the module would produce;
    indices listed in ``throws`` behave like factories that raise.
    """

    def __init__(self, module_sources: list[str], exports: dict[int, dict], throws=()):
        self.module_sources = module_sources
        self.exports = exports
        self.throws = set(throws)
        self.evaluated: list[int] = []

    async def evaluate_module(self, index: int, marker: str):
        self.evaluated.append(index)
        if index in self.throws:
            return None
        exported = self.exports.get(index)
        if exported is None or marker not in exported:
            return None
        return exported


class FakeSandbox:
    def __init__(self, chunk_for_script: Callable[[str], FakeChunk]):
        self.chunk_for_script = chunk_for_script
        self.opened: list[str] = []

    @asynccontextmanager
    async def open_chunk(self, script_text: str):
        self.opened.append(script_text)
        yield self.chunk_for_script(script_text)


@pytest.fixture
def mock_sandbox_page() -> MagicMock:
    """Create a mock sandbox page."""
    page = MagicMock()
    page.evaluate = AsyncMock()
    page.close = AsyncMock()
    return page
