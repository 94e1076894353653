"""Build comparison: runs the differ over every domain of a manifest pair."""

from __future__ import annotations

import asyncio
import logging
import time

from buildwatch.extractor.extractor import AssetExtractor
from buildwatch.models.build import BuildManifest
from buildwatch.models.changes import BuildDifferences, ChangeSet

from .differ import diff_experiments, diff_mappings, diff_scalar

logger = logging.getLogger(__name__)


def change_count(changes: ChangeSet) -> int:
    return changes.count


def has_changed(changes: ChangeSet) -> bool:
    return not changes.is_empty


def total_change_count(differences: BuildDifferences) -> int:
    """Sum of entries across all keyed domains. A CSP change is not counted."""
    return (
        change_count(differences.strings)
        + change_count(differences.global_envs)
        + change_count(differences.experiments)
        + change_count(differences.css_rules)
    )


class BuildComparator:
    """Computes the differences between a newer and an older build."""

    def __init__(self, extractor: AssetExtractor):
        self.extractor = extractor

    async def compare(self, newer: BuildManifest, older: BuildManifest) -> BuildDifferences:
        """Compare ``newer`` against ``older``.

        Asset extraction for both builds runs concurrently; a failure on
        either side propagates and no partial result is produced.
        """
        start = time.time()
        logger.info("Comparing build %s against %s", newer.build_hash, older.build_hash)

        differences = BuildDifferences(
            csp=diff_scalar(newer.csp, older.csp),
            global_envs=diff_mappings(newer.global_envs, older.global_envs),
            experiments=diff_experiments(newer.experiments, older.experiments),
        )

        newer_assets, older_assets = await asyncio.gather(
            self.extractor.extract(newer),
            self.extractor.extract(older),
        )

        differences.strings = diff_mappings(newer_assets.strings, older_assets.strings)
        differences.css_rules = diff_mappings(newer_assets.css_rules, older_assets.css_rules)

        logger.info(
            "Comparison complete in %.1fs: %d changes (envs=%d, experiments=%d, "
            "strings=%d, css=%d, csp %s)",
            time.time() - start,
            total_change_count(differences),
            differences.global_envs.count,
            differences.experiments.count,
            differences.strings.count,
            differences.css_rules.count,
            "changed" if differences.csp else "unchanged",
        )
        return differences
