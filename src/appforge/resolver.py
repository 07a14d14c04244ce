"""
appforge.resolver - Feature Dependency Resolution
=================================================

Given the user's feature picks, compute every feature the project needs,
ordered so that each feature comes strictly after all of its dependencies.

Algorithm
---------
1. **Normalize** the picks through catalog aliases and reject unknown ids.
2. **Seed** with the catalog's always-included features plus the picks.
3. **Close** over ``dependencies`` with a depth-first walk that tracks the
   current path; re-entering a node on the path is a cycle, reported with
   its full path.
4. **Order** the closure with Kahn's algorithm. Ready nodes are taken from a
   min-heap keyed on catalog declaration position, so the result depends
   only on the closure set. The same input always gives the same order,
   and ``resolve(resolve(S)) == resolve(S)``.
5. **Check conflicts** across the whole closure. A conflict pulled in
   through a dependency is still an error.

The resolver knows no feature ids of its own; always-included features are
catalog metadata.

Usage Example
-------------
>>> from appforge.catalog import load_builtin_catalog
>>> from appforge.resolver import resolve
>>> resolution = resolve(["crashlytics"], load_builtin_catalog())
>>> resolution.resolved
('app-core', 'firebase-analytics', 'crashlytics')
"""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from appforge.catalog import FeatureCatalog
from appforge.errors import DependencyCycleError, FeatureConflictError, UnknownFeatureError
from appforge.models import FeatureManifest


logger = logging.getLogger(__name__)


# =============================================================================
# Result Data Classes
# =============================================================================

@dataclass(frozen=True)
class AddedFeature:
    """
    A feature pulled in without being selected.

    Attributes
    ----------
    feature_id : str
        The added feature.

    required_by : str | None
        The feature whose dependency brought it in, or None when the
        catalog marks it as always included.
    """

    feature_id: str
    required_by: str | None


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of dependency resolution.

    Attributes
    ----------
    selected : tuple[str, ...]
        The user's picks after alias normalization, de-duplicated.

    added : tuple[AddedFeature, ...]
        Features added on top of the picks, in discovery order.

    resolved : tuple[str, ...]
        Every required feature, dependencies before dependents.
    """

    selected: tuple[str, ...]
    resolved: tuple[str, ...]
    added: tuple[AddedFeature, ...] = field(default=())


# =============================================================================
# Resolution
# =============================================================================

def resolve(selected: Iterable[str], catalog: FeatureCatalog) -> Resolution:
    """
    Resolve the transitive closure of ``selected`` in dependency order.

    Parameters
    ----------
    selected : Iterable[str]
        Feature ids or aliases picked by the user.

    catalog : FeatureCatalog
        The catalog to resolve against.

    Returns
    -------
    Resolution
        Normalized picks, the features added on their behalf, and the
        ordered resolved list.

    Raises
    ------
    UnknownFeatureError
        If a picked id, or an id named in a resolved manifest's
        ``dependencies`` or ``conflicts``, is not in the catalog.
    DependencyCycleError
        If the dependencies reachable from the picks form a cycle.
    FeatureConflictError
        If two resolved features are declared incompatible.
    """
    picks: list[str] = []
    for raw in selected:
        feature_id = catalog.normalize(raw)
        if feature_id not in catalog:
            raise UnknownFeatureError(feature_id)
        if feature_id not in picks:
            picks.append(feature_id)

    picked = set(picks)
    added: list[AddedFeature] = []
    seeds = list(catalog.always_included)
    for feature_id in seeds:
        if feature_id not in picked:
            added.append(AddedFeature(feature_id, None))
    seeds += sorted((p for p in picks if p not in seeds), key=catalog.position)

    closure = _close(seeds, catalog, picked, added)
    ordered = _order(closure, catalog)
    _check_conflicts(ordered, catalog)

    logger.debug(
        "Resolved %s -> %s (%d added)", picks, list(ordered), len(added)
    )
    return Resolution(selected=tuple(picks), resolved=ordered, added=tuple(added))


def resolve_manifests(
    selected: Iterable[str], catalog: FeatureCatalog
) -> list[FeatureManifest]:
    """Resolve ``selected`` and return the manifests in resolved order."""
    return [catalog.get(feature_id) for feature_id in resolve(selected, catalog).resolved]


# =============================================================================
# Internal Steps
# =============================================================================

def _close(
    seeds: list[str],
    catalog: FeatureCatalog,
    picked: set[str],
    added: list[AddedFeature],
) -> set[str]:
    """Depth-first closure over ``dependencies`` with cycle detection."""
    done: set[str] = set()
    path: list[str] = []
    on_path: set[str] = set()
    known = picked | {a.feature_id for a in added}

    def visit(feature_id: str) -> None:
        if feature_id in done:
            return
        if feature_id in on_path:
            raise DependencyCycleError(path[path.index(feature_id):])

        manifest = catalog.get(feature_id)
        path.append(feature_id)
        on_path.add(feature_id)

        for dependency in manifest.dependencies:
            if dependency not in catalog:
                raise UnknownFeatureError(dependency, referenced_by=feature_id)
            if dependency not in known:
                known.add(dependency)
                added.append(AddedFeature(dependency, feature_id))
            visit(dependency)

        path.pop()
        on_path.discard(feature_id)
        done.add(feature_id)

    for seed in seeds:
        visit(seed)

    return done


def _order(closure: set[str], catalog: FeatureCatalog) -> tuple[str, ...]:
    """Kahn's algorithm, breaking ties by catalog declaration order."""
    in_degree = dict.fromkeys(closure, 0)
    dependents: dict[str, list[str]] = defaultdict(list)

    for feature_id in closure:
        for dependency in catalog.get(feature_id).dependencies:
            in_degree[feature_id] += 1
            dependents[dependency].append(feature_id)

    ready = [(catalog.position(fid), fid) for fid, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    ordered: list[str] = []
    while ready:
        _, current = heapq.heappop(ready)
        ordered.append(current)
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, (catalog.position(dependent), dependent))

    if len(ordered) != len(closure):
        # Unreachable after _close, kept as a guard on the ordering itself.
        leftover = sorted(closure - set(ordered), key=catalog.position)
        raise DependencyCycleError(leftover)

    return tuple(ordered)


def _check_conflicts(ordered: tuple[str, ...], catalog: FeatureCatalog) -> None:
    """Fail on the first conflicting pair, reported in resolved order."""
    rank = {feature_id: i for i, feature_id in enumerate(ordered)}

    for feature_id in ordered:
        for other in catalog.get(feature_id).conflicts:
            if other not in catalog:
                raise UnknownFeatureError(other, referenced_by=feature_id)
            if other in rank:
                first, second = sorted((feature_id, other), key=rank.__getitem__)
                raise FeatureConflictError(first, second)
