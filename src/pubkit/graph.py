# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Dependency graph and publish tiers for workspace packages.

Builds a directed acyclic graph (DAG) from workspace packages, detects
cycles, and groups packages into tiers: tier 0 has no internal deps,
tier 1 depends only on tier 0, and so on. Packages in the same tier can
be uploaded in parallel; each tier must finish before the next starts.

Architecture, edge direction::

    Forward edges (``edges``): dependent → dependency (who needs what)
    Reverse edges (``reverse_edges``): dependency → dependent (who uses me)

    acme-cli ──→ acme-core ←── acme-plugin-sql
       (depends on)   (depended on by)

    edges["acme-cli"] = ["acme-core"]
    reverse_edges["acme-core"] = ["acme-cli", "acme-plugin-sql"]

Static tiers::

    Operators may pin tiers in ``pubkit.toml``. They are used as given,
    but checked against the manifests: a package listed in a tier at or
    before one of its dependencies is *drift*.

        tiers = [["acme-core"], ["acme-cli", "acme-plugin-sql"]]

        Tier 0: acme-core                 ✓
        Tier 1: acme-cli, acme-plugin-sql ✓ (both depend on tier 0)
        Tier 2: <computed, for packages no static tier names>

Usage::

    from pubkit.graph import build_graph, resolve_tiers

    graph = build_graph(found.packages)
    tiers = resolve_tiers(graph, static_tiers=ws_config.tiers)
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from pubkit.backends.workspace import Package
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DependencyGraph:
    """A directed graph of workspace package dependencies.

    Edges point from dependents to their dependencies: if ``A`` depends
    on ``B``, there is an edge ``A → B`` in :attr:`edges` and a reverse
    edge ``B → A`` in :attr:`reverse_edges`.

    Attributes:
        packages: Mapping from package name to :class:`Package`.
        edges: Forward adjacency list (dependent → list of dependencies).
        reverse_edges: Reverse adjacency list (dependency → list of dependents).
    """

    packages: dict[str, Package] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        """Sorted list of all package names in the graph."""
        return sorted(self.packages)

    def __len__(self) -> int:
        """Return the number of packages in the graph."""
        return len(self.packages)


@dataclass(frozen=True)
class TierDrift:
    """A static tier that places a package no later than a dependency.

    Attributes:
        package: The dependent package.
        tier: Its static tier index.
        dependency: The internal dependency it needs.
        dependency_tier: Where the dependency was placed.
    """

    package: str
    tier: int
    dependency: str
    dependency_tier: int

    def __str__(self) -> str:
        """Render as ``pkg (tier 0) depends on dep (tier 1)``."""
        return f'{self.package} (tier {self.tier}) depends on {self.dependency} (tier {self.dependency_tier})'


def build_graph(packages: list[Package]) -> DependencyGraph:
    """Build a dependency graph from a list of workspace packages.

    Only internal dependencies that are themselves in ``packages`` become
    edges; anything else is assumed to be on the registry already.
    """
    graph = DependencyGraph()
    pkg_names: set[str] = {p.name for p in packages}

    for pkg in packages:
        graph.packages[pkg.name] = pkg
        graph.edges[pkg.name] = []
        graph.reverse_edges[pkg.name] = []

    for pkg in packages:
        for dep_name in pkg.internal_deps:
            if dep_name in pkg_names and dep_name != pkg.name:
                graph.edges[pkg.name].append(dep_name)
                graph.reverse_edges[dep_name].append(pkg.name)

    # Sort for deterministic output.
    for name in graph.edges:
        graph.edges[name].sort()
    for name in graph.reverse_edges:
        graph.reverse_edges[name].sort()

    logger.debug(
        'built_dependency_graph',
        packages=len(packages),
        edges=sum(len(deps) for deps in graph.edges.values()),
    )
    return graph


def detect_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Detect all cycles in the dependency graph using DFS.

    Returns:
        A list of cycles, where each cycle is a list of package names
        forming the loop (first name repeated at the end). Empty list if
        acyclic.
    """
    _white, _gray, _black = 0, 1, 2
    color: dict[str, int] = {name: _white for name in graph.packages}
    parent: dict[str, str | None] = {name: None for name in graph.packages}
    cycles: list[list[str]] = []

    def _dfs(node: str) -> None:
        color[node] = _gray
        for neighbor in graph.edges.get(node, []):
            if color[neighbor] == _gray:
                cycle = [neighbor]
                current = node
                while current != neighbor:
                    cycle.append(current)
                    p = parent.get(current)
                    if p is None:
                        break
                    current = p
                cycle.append(neighbor)
                cycle.reverse()
                cycles.append(cycle)
            elif color[neighbor] == _white:
                parent[neighbor] = node
                _dfs(neighbor)
        color[node] = _black

    for name in sorted(graph.packages):
        if color[name] == _white:
            _dfs(name)

    if cycles:
        logger.warning('cycles_detected', count=len(cycles))
    return cycles


def topo_sort(graph: DependencyGraph) -> list[list[Package]]:
    """Topological sort with level grouping (Kahn's algorithm).

    Args:
        graph: The dependency graph. Must be acyclic.

    Returns:
        A list of levels, each a name-sorted list of :class:`Package`.

    Raises:
        PubkitError: If the graph contains cycles.
    """
    in_degree = {name: len(graph.edges[name]) for name in graph.packages}

    queue: deque[str] = deque(name for name in sorted(graph.packages) if in_degree[name] == 0)

    levels: list[list[Package]] = []
    processed = 0

    while queue:
        # All nodes currently in the queue are at the same level.
        level_names = sorted(queue)
        queue.clear()
        levels.append([graph.packages[name] for name in level_names])
        processed += len(level_names)

        for name in level_names:
            for dependent in graph.reverse_edges.get(name, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

    if processed != len(graph.packages):
        cycles = detect_cycles(graph)
        cycle_strs = [' → '.join(c) for c in cycles]
        raise PubkitError(
            code=E.GRAPH_CYCLE_DETECTED,
            message=f'Circular dependencies detected: {cycle_strs}',
            hint='Remove circular dependencies between packages.',
        )

    logger.debug('topo_sort_complete', levels=len(levels), packages=processed)
    return levels


def validate_tiers(graph: DependencyGraph, tiers: list[list[Package]]) -> list[TierDrift]:
    """Return every dependency edge that a tier assignment violates."""
    placed: dict[str, int] = {}
    for index, tier in enumerate(tiers):
        for pkg in tier:
            placed[pkg.name] = index

    drift: list[TierDrift] = []
    for name, tier_index in sorted(placed.items()):
        for dep in graph.edges.get(name, []):
            dep_tier = placed.get(dep)
            if dep_tier is not None and dep_tier >= tier_index:
                drift.append(TierDrift(package=name, tier=tier_index, dependency=dep, dependency_tier=dep_tier))
    return drift


def resolve_tiers(
    graph: DependencyGraph,
    static_tiers: list[list[str]] | None = None,
    *,
    strict: bool = True,
) -> list[list[Package]]:
    """Decide the publish tiers for ``graph``.

    Args:
        graph: The dependency graph of the packages to publish.
        static_tiers: Operator-declared tiers (package names). ``None`` or
            empty means "compute them".
        strict: Raise on drift instead of warning.

    Returns:
        Tiers of packages, earliest first. Empty tiers are dropped.

    Raises:
        PubkitError: The graph has a cycle, or ``strict`` is set and the
            static tiers drift from the manifests.
    """
    if not static_tiers:
        return topo_sort(graph)

    tiers: list[list[Package]] = []
    placed: set[str] = set()
    for index, names in enumerate(static_tiers):
        tier: list[Package] = []
        for name in names:
            if name not in graph.packages:
                logger.warning('static_tier_unknown_package', package=name, tier=index)
                continue
            if name in placed:
                logger.warning('static_tier_duplicate_package', package=name, tier=index)
                continue
            placed.add(name)
            tier.append(graph.packages[name])
        if tier:
            tiers.append(tier)

    leftover = [pkg for name, pkg in sorted(graph.packages.items()) if name not in placed]
    if leftover:
        logger.info('static_tier_leftover', count=len(leftover), packages=[p.name for p in leftover])
        tiers.extend(topo_sort(build_graph(leftover)))

    drift = validate_tiers(graph, tiers)
    if drift:
        details = '; '.join(str(d) for d in drift)
        if strict:
            raise PubkitError(
                code=E.GRAPH_TIER_DRIFT,
                message=f'Static tiers disagree with the manifests: {details}',
                hint='Move each package to a tier after its dependencies, or set strict_tiers = false.',
            )
        for d in drift:
            logger.warning(
                'tier_drift',
                package=d.package,
                tier=d.tier,
                dependency=d.dependency,
                dependency_tier=d.dependency_tier,
            )

    return tiers


__all__ = [
    'DependencyGraph',
    'TierDrift',
    'build_graph',
    'detect_cycles',
    'resolve_tiers',
    'topo_sort',
    'validate_tiers',
]
