"""Poll coordinator: detects new builds and drives one comparison per build."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol

from buildwatch.client import BuildsClient
from buildwatch.differ.comparator import BuildComparator
from buildwatch.models.build import BuildManifest
from buildwatch.models.changes import BuildDifferences

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def publish(self, build: BuildManifest, differences: BuildDifferences) -> None:
        ...


class CoordinatorState(str, Enum):
    IDLE = "idle"
    COMPARING = "comparing"


class PollCoordinator:
    """Compares each newly published build against the last one processed.

    The last processed build hash lives in memory only. After a restart the
    reference build falls back to the second entry of the build index.
    """

    def __init__(
        self,
        client: BuildsClient,
        comparator: BuildComparator,
        notifier: Notifier,
        last_build_hash: Optional[str] = None,
    ):
        self.client = client
        self.comparator = comparator
        self.notifier = notifier
        self.last_build_hash = last_build_hash
        self.state = CoordinatorState.IDLE
        self._tick_lock = asyncio.Lock()

    async def tick(self) -> Optional[BuildDifferences]:
        """Run one poll cycle. Returns the differences if a new build was compared."""
        index = await self.client.get_index(page=1, size=2)
        if not index.data:
            logger.warning("Build index is empty")
            return None

        latest = index.data[0]
        if latest.build_hash == self.last_build_hash:
            logger.debug("No new build (latest is still %s)", latest.build_hash)
            return None

        reference_hash = self.last_build_hash
        if reference_hash is None and len(index.data) > 1:
            reference_hash = index.data[1].build_hash
        if reference_hash is None:
            logger.info("Only one build published (%s), nothing to compare against", latest.build_hash)
            self.last_build_hash = latest.build_hash
            return None

        logger.info("New build detected: %s (build %s)", latest.build_hash, latest.build_number)
        self.state = CoordinatorState.COMPARING
        try:
            build = await self.client.get_manifest(latest.build_hash)
            previous = await self.client.get_manifest(reference_hash)
            differences = await self.comparator.compare(build, previous)

            # Recorded before publishing: a notification failure never re-queues this build
            self.last_build_hash = latest.build_hash

            await self.notifier.publish(build, differences)
            return differences
        finally:
            self.state = CoordinatorState.IDLE

    async def _guarded_tick(self) -> None:
        async with self._tick_lock:
            try:
                await self.tick()
            except Exception:
                logger.exception("Poll tick failed; will retry on the next tick")

    async def run(self, interval: float, max_ticks: Optional[int] = None) -> None:
        """Start a tick every ``interval`` seconds.

        A tick that would start while the previous one is still running is
        skipped, so ticks never overlap.
        """
        logger.info("Polling for new builds every %.1fs", interval)
        pending: set[asyncio.Task] = set()
        ticks = 0
        try:
            while max_ticks is None or ticks < max_ticks:
                ticks += 1
                if self._tick_lock.locked():
                    logger.info("Previous tick still running, skipping this one")
                else:
                    task = asyncio.create_task(self._guarded_tick())
                    pending.add(task)
                    task.add_done_callback(pending.discard)
                if max_ticks is not None and ticks >= max_ticks:
                    break
                await asyncio.sleep(interval)
            if pending:
                await asyncio.gather(*pending)
        finally:
            for task in pending:
                task.cancel()
