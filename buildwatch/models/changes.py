"""Comparison results produced by the differ and the build comparator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

StringTable = dict[str, str]
CssRuleTable = dict[str, dict[str, str]]


@dataclass
class ChangedValue(Generic[T]):
    old_value: T
    new_value: T


@dataclass
class ChangeSet(Generic[T]):
    """Added / updated / removed partition of one keyed domain.

    A key appears in at most one of the three mappings. ``added`` and
    ``updated`` follow the newer snapshot's key order, ``removed`` the older's.
    """
    added: dict[str, T] = field(default_factory=dict)
    updated: dict[str, ChangedValue[T]] = field(default_factory=dict)
    removed: dict[str, T] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.added) + len(self.updated) + len(self.removed)

    @property
    def is_empty(self) -> bool:
        return self.count == 0


@dataclass
class ExtractedAssets:
    strings: StringTable = field(default_factory=dict)
    css_rules: CssRuleTable = field(default_factory=dict)


@dataclass
class BuildDifferences:
    experiments: ChangeSet = field(default_factory=ChangeSet)
    strings: ChangeSet = field(default_factory=ChangeSet)
    global_envs: ChangeSet = field(default_factory=ChangeSet)
    css_rules: ChangeSet = field(default_factory=ChangeSet)
    csp: Optional[ChangedValue[str]] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view, experiments dumped with their API field names."""
        def _plain(value: Any) -> Any:
            if isinstance(value, BaseModel):
                return value.model_dump(by_alias=True)
            return value

        def _changes(changes: ChangeSet) -> dict[str, Any]:
            return {
                "added": {k: _plain(v) for k, v in changes.added.items()},
                "updated": {
                    k: {"oldValue": _plain(v.old_value), "newValue": _plain(v.new_value)}
                    for k, v in changes.updated.items()
                },
                "removed": {k: _plain(v) for k, v in changes.removed.items()},
            }

        return {
            "experiments": _changes(self.experiments),
            "strings": _changes(self.strings),
            "globalEnvs": _changes(self.global_envs),
            "cssRules": _changes(self.css_rules),
            "csp": (
                {"oldValue": self.csp.old_value, "newValue": self.csp.new_value}
                if self.csp else None
            ),
        }
