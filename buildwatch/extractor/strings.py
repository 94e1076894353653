"""String table recovery from a bundled webpack chunk."""

from __future__ import annotations

import logging
import re
import time
from typing import Iterator, Sequence

from buildwatch.errors import ExtractionNotFound
from buildwatch.models.changes import StringTable
from buildwatch.utils.sandbox import ScriptSandbox

logger = logging.getLogger(__name__)


def _key_pattern(key: str) -> re.Pattern[str]:
    # KEY:, "KEY":, 'KEY': directly after an object brace, comma, or whitespace
    return re.compile(r"(?:^|[{,\s])([\"']?)" + re.escape(key) + r"\1\s*:")


def declares_key(source: str, key: str) -> bool:
    """Whether a module's source declares ``key`` as an object property."""
    return _key_pattern(key).search(source) is not None


def find_candidate_modules(
    module_sources: Sequence[str], marker: str, skip: int = 0
) -> Iterator[int]:
    """Yield indices of modules at or after ``skip`` that declare ``marker``, in order."""
    pattern = _key_pattern(marker)
    for index in range(skip, len(module_sources)):
        source = module_sources[index]
        if source and pattern.search(source):
            yield index


class StringTableExtractor:
    """Finds the first module whose exports hold the localized string table.

    Modules before ``module_skip`` never hold strings and are not inspected.
    The rest are filtered by source first, and only matching candidates are
    evaluated in the sandbox.
    """

    def __init__(
        self,
        sandbox: ScriptSandbox,
        marker_key: str = "INTERACTION_REQUIRED_TITLE",
        module_skip: int = 1000,
    ):
        self.sandbox = sandbox
        self.marker_key = marker_key
        self.module_skip = module_skip

    async def extract(self, script_text: str) -> StringTable:
        start = time.time()
        async with self.sandbox.open_chunk(script_text) as chunk:
            candidates = list(
                find_candidate_modules(chunk.module_sources, self.marker_key, self.module_skip)
            )
            logger.debug(
                "%d of %d modules declare %s",
                len(candidates), len(chunk.module_sources), self.marker_key,
            )
            for index in candidates:
                exports = await chunk.evaluate_module(index, self.marker_key)
                if exports is not None and self.marker_key in exports:
                    logger.info(
                        "String table found in module %d (%d strings, %.1fs)",
                        index, len(exports), time.time() - start,
                    )
                    return exports

        raise ExtractionNotFound(
            f"No module exports {self.marker_key} "
            f"(searched from module {self.module_skip}, {len(candidates)} candidates)"
        )
