"""Three-way set comparison over keyed build domains."""

from __future__ import annotations

import operator
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

from buildwatch.models.build import Experiment
from buildwatch.models.changes import ChangedValue, ChangeSet

T = TypeVar("T")


def _present(mapping: Mapping[str, T]) -> dict[str, T]:
    """Drop keys whose value is None; a None value counts as absence."""
    return {key: value for key, value in mapping.items() if value is not None}


def diff_mappings(
    newer: Mapping[str, T],
    older: Mapping[str, T],
    equals: Callable[[Any, Any], bool] = operator.eq,
) -> ChangeSet[T]:
    """Partition two snapshots of a keyed domain into added / updated / removed.

    ``added`` and ``updated`` are ordered like ``newer``, ``removed`` like
    ``older``. Keys whose values compare equal appear in none of the three.
    """
    newer = _present(newer)
    older = _present(older)

    changes: ChangeSet[T] = ChangeSet()
    for key, value in newer.items():
        if key not in older:
            changes.added[key] = value
        elif not equals(value, older[key]):
            changes.updated[key] = ChangedValue(old_value=older[key], new_value=value)

    for key, value in older.items():
        if key not in newer:
            changes.removed[key] = value

    return changes


def index_by_id(experiments: Iterable[Experiment]) -> dict[str, Experiment]:
    """Key experiments by id.

    A duplicate id keeps the position of its first occurrence and the value
    of its last.
    """
    indexed: dict[str, Experiment] = {}
    for experiment in experiments:
        indexed[experiment.id] = experiment
    return indexed


def diff_experiments(
    newer: Iterable[Experiment], older: Iterable[Experiment]
) -> ChangeSet[Experiment]:
    """Compare experiments by identity only.

    Config or treatment changes on an experiment present in both builds are
    not reported; ``updated`` is always empty.
    """
    return diff_mappings(index_by_id(newer), index_by_id(older), equals=lambda a, b: True)


def diff_scalar(newer: Optional[T], older: Optional[T]) -> Optional[ChangedValue[T]]:
    if newer == older:
        return None
    return ChangedValue(old_value=older, new_value=newer)
